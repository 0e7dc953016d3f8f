"""Plugins shipped with the application.

Copies bundled plugins into the plugins directory on first launch, and lets
allow-listed bundled plugins be installed from the local copy while the
plugin system is administratively disabled.

Bundled plugins are located:
- in packaged builds, under ``<resources_path>/bundled_plugins/<package>``;
- in development, in the directory of the importable package ``<package>``.
"""

from __future__ import annotations

import importlib.util
import logging
import shutil
import sys
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from plugin_system.config import Config
from plugin_system.errors import InstallError, ManifestError, PluginSystemDisabledError
from plugin_system.hooks import HookName, Module
from plugin_system.manifest import MANIFEST_FILENAME, Manifest
from plugin_system.types import PluginSource

if TYPE_CHECKING:
    from plugin_system.manager import PluginManager

logger = logging.getLogger(__name__)

BUNDLED_PLUGINS_DIRNAME = "bundled_plugins"


class BundledPluginModule(Module):
    """Install bundled plugins once, and serve them when the system is locked.

    A bundled plugin is copied only if its id has no settings entry yet. The
    settings entry written after the copy survives uninstall, so a plugin the
    user removed is not brought back on the next launch.

    Example:
        >>> manager.register_module(
        ...     BundledPluginModule,
        ...     config=config,
        ...     ensure_installed=["acme_ai_shell", "acme_er_diagram"],
        ... )
        >>> await manager.initialize()
    """

    def __init__(
        self,
        manager: PluginManager,
        config: Config,
        ensure_installed: list[str] | None = None,
        resources_path: Path | None = None,
        packaged: bool | None = None,
        skip_ensure_installed: bool = False,
    ):
        """Initialize the module.

        Args:
            manager: Owning plugin manager.
            config: Application configuration.
            ensure_installed: Bundled package names. Defaults to
                ``config.bundled.ensure_installed``.
            resources_path: Resources directory of a packaged build.
            packaged: Whether this is a packaged build. Detected from
                ``sys.frozen`` when omitted.
            skip_ensure_installed: Do not copy anything on initialize (tests).
        """
        super().__init__(manager)
        self.config = config
        self.ensure_installed = list(
            config.bundled.ensure_installed if ensure_installed is None else ensure_installed
        )
        if resources_path is None and config.bundled.resources_path:
            resources_path = Path(config.bundled.resources_path)
        self.resources_path = resources_path
        self.packaged = getattr(sys, "frozen", False) if packaged is None else packaged
        self.skip_ensure_installed = skip_ensure_installed

        self.hook(HookName.BEFORE_INITIALIZE, self.install_bundled_plugins)
        self.hook(HookName.PLUGIN_SOURCE, self.resolve_plugin_source)

    def resolve(self, package: str) -> Path:
        """Resolve the directory of a bundled plugin.

        Raises:
            InstallError: If the package cannot be located.
        """
        if self.packaged:
            if self.resources_path is None:
                raise InstallError("Packaged build has no resources path configured")
            return self.resources_path / BUNDLED_PLUGINS_DIRNAME / package

        try:
            spec = importlib.util.find_spec(package)
        except (ImportError, ValueError) as e:
            raise InstallError(f"Bundled plugin package {package} is not installed: {e}") from e
        if spec is None:
            raise InstallError(f"Bundled plugin package {package} is not installed")
        if spec.submodule_search_locations:
            return Path(list(spec.submodule_search_locations)[0])
        if spec.origin:
            return Path(spec.origin).parent
        raise InstallError(f"Cannot locate bundled plugin package {package}")

    def _parse_manifest(self, plugin_path: Path) -> Manifest | None:
        if not (plugin_path / MANIFEST_FILENAME).exists():
            return None
        return Manifest.from_dir(plugin_path)

    async def install_bundled_plugins(self) -> None:
        if self.skip_ensure_installed:
            return

        for package in self.ensure_installed:
            try:
                await self.ensure_install(package)
            except Exception:
                logger.exception("Error installing bundled plugin %s", package)

    async def ensure_install(self, package: str) -> None:
        """Copy a bundled plugin unless its id has been handled before."""
        logger.info("Resolving %s", package)

        plugin_path = self.resolve(package)
        manifest = self._parse_manifest(plugin_path)
        if manifest is None:
            raise InstallError(f"Manifest not found for {package}")

        plugin_id = manifest.id

        if plugin_id in self.manager.plugin_settings:
            logger.info('Plugin "%s" is previously installed, skipping.', plugin_id)
            return

        plugins_directory = self.manager.file_manager.plugins_directory
        plugins_directory.mkdir(parents=True, exist_ok=True)

        destination = plugins_directory / plugin_id
        if destination.exists():
            logger.info(
                'Plugin "%s" installation directory already exists on disk.', plugin_id
            )
        else:
            logger.info("Installing bundled plugin %s", plugin_id)
            shutil.copytree(plugin_path, destination)

        # The marker keeps the plugin from being copied again
        await self.manager.set_plugin_auto_update_enabled(plugin_id, True)

    def resolve_plugin_source(self, source: PluginSource) -> PluginSource:
        system = self.config.plugin_system
        if not system.disabled:
            return source

        if source.id not in system.allow:
            raise PluginSystemDisabledError(
                f'Cannot install "{source.id}": the plugin system is disabled and '
                "this plugin is not in the allow list."
            )

        for package in self.ensure_installed:
            try:
                plugin_path = self.resolve(package)
                manifest = self._parse_manifest(plugin_path)
            except (InstallError, ManifestError) as e:
                logger.warning("Skipping unresolvable bundled plugin %s: %s", package, e)
                continue
            if manifest is not None and manifest.id == source.id:
                return replace(source, path=plugin_path, cleanup_after_install=False)

        raise PluginSystemDisabledError(
            f'Cannot install "{source.id}": the plugin is in the allow list but no '
            "bundled version is available."
        )
