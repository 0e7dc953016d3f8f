"""Plugin manager.

The manager owns the installed plugins and their persisted settings and
drives install, uninstall and listing. Policy modules observe or veto these
operations through hook points; the manager never knows which modules are
registered.

Operations are coroutines but a manager instance is not safe for concurrent
``install_plugin``/``uninstall_plugin`` calls: both read-modify-write the
plugins directory and the settings store without locking, so callers must
serialize them.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from plugin_system.errors import (
    NotFoundPluginError,
    NotSupportedPluginError,
    PluginManagerError,
)
from plugin_system.file_manager import PluginFileManager
from plugin_system.hooks import Hookable, HookName
from plugin_system.manifest import MANIFEST_FILENAME, Manifest, version_compare
from plugin_system.registry import PluginRegistry, RestrictedPluginRegistry
from plugin_system.settings import MemorySettingsStore, SettingsStore
from plugin_system.types import PluginSettingsEntry, PluginSnapshot, PluginSource

logger = logging.getLogger(__name__)

PLUGIN_SETTINGS_KEY = "pluginSettings"


class PluginManager(Hookable):
    """Install, uninstall and list plugins.

    Example:
        >>> manager = PluginManager(
        ...     file_manager=PluginFileManager(plugins_dir),
        ...     registry=PluginRegistry(PluginRepositoryService()),
        ...     app_version="5.4.0",
        ... )
        >>> manager.register_module(LicenseModule, license=StaticLicense("indie"))
        >>> await manager.initialize()
        >>> snapshot = await manager.install_plugin("acme-plugin")
        >>> snapshots = await manager.get_plugins()
    """

    def __init__(
        self,
        file_manager: PluginFileManager,
        registry: PluginRegistry | RestrictedPluginRegistry,
        settings_store: SettingsStore | None = None,
        app_version: str = "",
    ):
        """Initialize the plugin manager.

        Args:
            file_manager: Owner of the plugins directory.
            registry: Cached plugin directory.
            settings_store: Where per-plugin settings persist.
            app_version: Host application version, checked against each
                manifest's ``minAppVersion``. Empty disables the check.
        """
        super().__init__()
        self.file_manager = file_manager
        self.registry = registry
        self.settings_store: SettingsStore = settings_store or MemorySettingsStore()
        self.app_version = app_version
        self._plugin_settings: dict[str, PluginSettingsEntry] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Load settings and run the ``before-initialize`` hook."""
        if self._initialized:
            return
        self._load_settings()
        await self.call_hook(HookName.BEFORE_INITIALIZE)
        self._initialized = True
        logger.info(
            "Plugin manager initialized (%d modules, %d known plugins)",
            len(self.modules),
            len(self._plugin_settings),
        )

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise PluginManagerError("Plugin manager is not initialized")

    # Settings

    def _load_settings(self) -> None:
        raw = self.settings_store.get(PLUGIN_SETTINGS_KEY) or {}
        self._plugin_settings = {
            plugin_id: PluginSettingsEntry.from_dict(value or {})
            for plugin_id, value in raw.items()
        }

    def _save_settings(self) -> None:
        self.settings_store.set(
            PLUGIN_SETTINGS_KEY,
            {pid: entry.to_dict() for pid, entry in self._plugin_settings.items()},
        )

    @property
    def plugin_settings(self) -> Mapping[str, PluginSettingsEntry]:
        """Settings of every plugin ever installed or configured.

        Entries are never removed, so this also answers "has this id been
        handled before" for plugins that are no longer installed.
        """
        return MappingProxyType(self._plugin_settings)

    def _settings_entry(self, plugin_id: str) -> PluginSettingsEntry:
        return self._plugin_settings.setdefault(plugin_id, PluginSettingsEntry())

    async def set_plugin_auto_update_enabled(self, plugin_id: str, enabled: bool) -> None:
        self._settings_entry(plugin_id).auto_update_enabled = enabled
        self._save_settings()

    async def set_plugin_disabled(self, plugin_id: str, disabled: bool) -> None:
        """Persist the user's own on/off choice for a plugin.

        The flag is stored for the host application to read. It is not an
        administrator or license restriction, so snapshot disable states do
        not reflect it.
        """
        self._settings_entry(plugin_id).disabled = disabled
        self._save_settings()

    # Lifecycle

    async def install_plugin(self, plugin_id: str) -> PluginSnapshot:
        """Install a plugin and return its snapshot.

        Args:
            plugin_id: Id of the plugin to install.

        Returns:
            Snapshot of the installed plugin.

        Raises:
            PluginError: A module vetoed the install, the release could not
                be fetched, or the copy failed. Vetoes leave no state behind.
        """
        self._ensure_initialized()

        await self.call_hook(HookName.BEFORE_INSTALL_PLUGIN, plugin_id)

        source: PluginSource = await self.apply_hook(
            HookName.PLUGIN_SOURCE, PluginSource(id=plugin_id)
        )

        temp_dir: Path | None = None
        try:
            if source.path is None:
                temp_dir = Path(tempfile.mkdtemp(prefix=f"plugin-{plugin_id}-"))
                source_path = await self._download_release(plugin_id, temp_dir)
            else:
                source_path = source.path

            manifest = self._install_from_path(source_path)
        finally:
            if temp_dir is not None:
                shutil.rmtree(temp_dir, ignore_errors=True)
            elif source.path is not None and source.cleanup_after_install:
                shutil.rmtree(source.path, ignore_errors=True)

        if manifest.id not in self._plugin_settings:
            self._plugin_settings[manifest.id] = PluginSettingsEntry(
                auto_update_enabled=True
            )
            self._save_settings()

        return await self.get_plugin(manifest.id)

    async def _download_release(self, plugin_id: str, work_dir: Path) -> Path:
        info = await self.registry.get_repository(plugin_id)
        release = info.latest_release
        self._check_compatible(release.manifest)

        archive_path = work_dir / release.manifest.archive_name
        await self.registry.repository_service.download(release.download_url, archive_path)

        extract_dir = work_dir / "extracted"
        extract_dir.mkdir()
        return self.file_manager.extract_archive(archive_path, extract_dir)

    def _install_from_path(self, source_path: Path) -> Manifest:
        # Compatibility is checked before anything is copied.
        if (source_path / MANIFEST_FILENAME).exists():
            self._check_compatible(Manifest.from_dir(source_path))
        return self.file_manager.install_from_path(source_path)

    def _check_compatible(self, manifest: Manifest) -> None:
        if not self.app_version or not manifest.min_app_version:
            return
        if version_compare(manifest.min_app_version, self.app_version) > 0:
            raise NotSupportedPluginError(
                f'Plugin "{manifest.id}" requires app version '
                f"{manifest.min_app_version} or newer (running {self.app_version})."
            )

    async def uninstall_plugin(self, plugin_id: str) -> None:
        """Remove an installed plugin. Its settings entry is kept.

        Raises:
            NotFoundPluginError: If the plugin is not installed.
        """
        self._ensure_initialized()
        if not self.file_manager.is_installed(plugin_id):
            raise NotFoundPluginError(f'Plugin "{plugin_id}" is not installed.')
        self.file_manager.remove(plugin_id)

    async def get_plugins(self) -> list[PluginSnapshot]:
        """Compute the snapshot of every installed plugin.

        Snapshots are ordered by plugin id. Modules rely on this order for
        quota decisions, so it must stay deterministic.
        """
        self._ensure_initialized()

        snapshots = []
        for manifest in self.file_manager.list_manifests():
            origin = await self.registry.resolve_origin(manifest.id)
            snapshots.append(PluginSnapshot(manifest=manifest, origin=origin))
        snapshots.sort(key=lambda s: s.id)

        return await self.apply_hook(HookName.PLUGIN_SNAPSHOTS, snapshots)

    async def get_plugin(self, plugin_id: str) -> PluginSnapshot:
        """Get the snapshot of one installed plugin.

        Raises:
            NotFoundPluginError: If the plugin is not installed.
        """
        for snapshot in await self.get_plugins():
            if snapshot.id == plugin_id:
                return snapshot
        raise NotFoundPluginError(f'Plugin "{plugin_id}" is not installed.')
