"""Plugins CLI commands.

Install, uninstall and inspect plugins from the plugin directory.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from plugin_system import (
    JsonFileSettingsStore,
    PluginError,
    PluginFileManager,
    PluginManager,
    PluginRegistry,
    PluginRepositoryService,
)
from plugin_system.config import Config, get_config
from plugin_system.modules import (
    BundledPluginModule,
    ConfigurationModule,
    LicenseModule,
    StaticLicense,
)

console = Console()

plugins_app = typer.Typer(
    name="plugins",
    help="Install, uninstall and inspect plugins.",
)

DEFAULT_SETTINGS_FILE = Path.home() / ".plugin-system" / "settings.json"


def build_manager(config: Config) -> PluginManager:
    """Create a plugin manager with the standard modules registered.

    Args:
        config: Application configuration.

    Returns:
        Uninitialized PluginManager.
    """
    plugins_dir = Path(config.plugins_dir).expanduser() if config.plugins_dir else None
    settings_file = (
        Path(config.settings_file).expanduser()
        if config.settings_file
        else DEFAULT_SETTINGS_FILE
    )

    service = PluginRepositoryService(
        api_url=config.registry.api_url,
        token=config.registry.token or None,
        directory_owner=config.registry.owner,
        directory_repo=config.registry.repo,
        official_path=config.registry.official_path,
        community_path=config.registry.community_path,
        timeout=config.registry.timeout,
    )

    manager = PluginManager(
        file_manager=PluginFileManager(plugins_dir),
        registry=PluginRegistry(service),
        settings_store=JsonFileSettingsStore(settings_file),
        app_version=config.app_version,
    )
    manager.register_module(BundledPluginModule, config=config)
    manager.register_module(ConfigurationModule, config=config)
    manager.register_module(LicenseModule, license=StaticLicense(config.license.tier))
    return manager


async def _initialized_manager() -> PluginManager:
    manager = build_manager(get_config())
    await manager.initialize()
    return manager


def _run(coro):
    """Run a coroutine, turning plugin errors into a failed exit."""
    try:
        return asyncio.run(coro)
    except PluginError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


@plugins_app.command("list")
def list_plugins() -> None:
    """List installed plugins and whether they may run.

    Example:
        plugin-system plugins list
    """

    async def run():
        manager = await _initialized_manager()
        return await manager.get_plugins()

    snapshots = _run(run())

    if not snapshots:
        console.print("[yellow]No plugins installed[/yellow]")
        console.print("[dim]Install plugins with: plugin-system plugins install <id>[/dim]")
        return

    table = Table(title="Installed Plugins")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Origin", style="green")
    table.add_column("Status")

    for snapshot in snapshots:
        state = snapshot.disable_state
        if state.disabled:
            status = f"[red]disabled[/red] ({state.reason.value})"
            if state.detail is not None:
                status += f" [dim]{state.detail.cause.value}[/dim]"
        else:
            status = "[green]enabled[/green]"
        table.add_row(
            snapshot.id,
            snapshot.manifest.name,
            snapshot.manifest.version,
            snapshot.origin.value,
            status,
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(snapshots)} plugins[/dim]")


@plugins_app.command("install")
def install(
    plugin_id: str = typer.Argument(..., help="Plugin id to install"),
) -> None:
    """Install a plugin from the plugin directory.

    Example:
        plugin-system plugins install acme-er-diagram
    """

    async def run():
        manager = await _initialized_manager()
        return await manager.install_plugin(plugin_id)

    console.print(f"Installing {plugin_id}...")
    snapshot = _run(run())

    console.print(
        f"[green]✓ Installed {snapshot.manifest.name} v{snapshot.manifest.version}[/green]"
    )
    if snapshot.disabled:
        console.print(
            f"[yellow]Plugin is disabled: {snapshot.disable_state.reason.value}[/yellow]"
        )


@plugins_app.command("uninstall")
def uninstall(
    plugin_id: str = typer.Argument(..., help="Plugin id to uninstall"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Uninstall a plugin.

    Example:
        plugin-system plugins uninstall acme-er-diagram
    """
    if not yes and not typer.confirm(f"Uninstall '{plugin_id}'?"):
        raise typer.Exit(0)

    async def run():
        manager = await _initialized_manager()
        await manager.uninstall_plugin(plugin_id)

    _run(run())
    console.print(f"[green]✓ Uninstalled {plugin_id}[/green]")


@plugins_app.command("registry")
def registry(
    official: bool = typer.Option(False, "--official", help="Only official plugins"),
    community: bool = typer.Option(False, "--community", help="Only community plugins"),
) -> None:
    """List plugins available in the plugin directory.

    Examples:
        plugin-system plugins registry
        plugin-system plugins registry --community
    """

    async def run():
        manager = await _initialized_manager()
        return await manager.registry.get_entries()

    entries = _run(run())

    # Neither flag means both partitions
    show_official = official or not community
    show_community = community or not official

    rows = []
    if show_official:
        rows.extend(("official", entry) for entry in entries.official)
    if show_community:
        rows.extend(("community", entry) for entry in entries.community)

    if not rows:
        console.print("[yellow]No plugins available[/yellow]")
        return

    table = Table(title="Plugin Directory")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Origin", style="green")
    table.add_column("Author")
    table.add_column("Description", max_width=50)

    for origin, entry in rows:
        table.add_row(entry.id, entry.name, origin, entry.author, entry.description)

    console.print(table)


@plugins_app.command("info")
def info(
    plugin_id: str = typer.Argument(..., help="Plugin id"),
    readme: bool = typer.Option(False, "--readme", help="Print the README"),
) -> None:
    """Show directory and latest release details of a plugin.

    Example:
        plugin-system plugins info acme-er-diagram
    """

    async def run():
        manager = await _initialized_manager()
        origin, entry = await manager.registry.find_entry(plugin_id)
        repository = await manager.registry.get_repository(plugin_id)
        return origin, entry, repository

    origin, entry, repository = _run(run())
    manifest = repository.latest_release.manifest

    console.print(f"\n[bold cyan]{entry.name}[/bold cyan] v{manifest.version}")
    console.print(f"[dim]by {entry.author} ({origin.value})[/dim]\n")
    console.print(f"{entry.description}\n")

    console.print("[bold]Release[/bold]")
    console.print(f"  Repository: {entry.repo}")
    console.print(f"  Min app version: {manifest.min_app_version or '-'}")
    console.print(f"  Download: {repository.latest_release.download_url}")

    if readme and repository.readme:
        console.print(Panel(repository.readme, title="README"))

    console.print(f"\n[dim]Install with: plugin-system plugins install {entry.id}[/dim]")

