"""Plugin system CLI entry point."""

import logging

import typer
from rich.console import Console
from rich.markup import escape

from cli.commands.plugins import plugins_app

console = Console()

app = typer.Typer(
    name="plugin-system",
    help="Install, uninstall and inspect plugins.",
    no_args_is_help=True,
)

app.add_typer(plugins_app, name="plugins")


@app.callback()
def configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging from the loaded configuration."""
    from plugin_system.config import get_config
    from plugin_system.errors import ConfigError

    try:
        config = get_config()
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    level = "DEBUG" if verbose else config.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command()
def version() -> None:
    """Show the CLI version."""
    from cli import __version__

    console.print(f"plugin-system v{__version__}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
