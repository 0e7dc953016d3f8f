"""Plugin file manager.

Owns the plugins directory: one subdirectory per plugin id, each holding a
``manifest.json`` at its top level::

    <plugins_directory>/
    ├── acme-plugin/
    │   ├── manifest.json
    │   └── index.html
    └── other-plugin/
        └── manifest.json
"""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path

from plugin_system.errors import InstallError, ManifestError, NotFoundPluginError
from plugin_system.manifest import MANIFEST_FILENAME, Manifest

logger = logging.getLogger(__name__)


class PluginFileManager:
    """Install, list and remove plugin directories.

    Example:
        >>> files = PluginFileManager(Path.home() / ".plugin-system" / "plugins")
        >>> files.install_from_path(Path("./my-plugin"))
        >>> files.list_manifests()
        >>> files.remove("my-plugin")
    """

    DEFAULT_PLUGINS_DIR = Path.home() / ".plugin-system" / "plugins"

    def __init__(self, plugins_directory: Path | None = None):
        self.plugins_directory = Path(plugins_directory or self.DEFAULT_PLUGINS_DIR)

    def plugin_path(self, plugin_id: str) -> Path:
        return self.plugins_directory / plugin_id

    def is_installed(self, plugin_id: str) -> bool:
        return (self.plugin_path(plugin_id) / MANIFEST_FILENAME).exists()

    def list_manifests(self) -> list[Manifest]:
        """Read the manifest of every installed plugin, sorted by id."""
        manifests: list[Manifest] = []

        if not self.plugins_directory.exists():
            return manifests

        for plugin_dir in self.plugins_directory.iterdir():
            if not plugin_dir.is_dir():
                continue
            if not (plugin_dir / MANIFEST_FILENAME).exists():
                continue
            try:
                manifests.append(Manifest.from_dir(plugin_dir))
            except ManifestError as e:
                logger.warning("Skipping plugin directory %s: %s", plugin_dir, e)

        return sorted(manifests, key=lambda m: m.id)

    def read_manifest(self, plugin_id: str) -> Manifest:
        """Read the manifest of an installed plugin.

        Raises:
            NotFoundPluginError: If the plugin is not installed.
        """
        if not self.is_installed(plugin_id):
            raise NotFoundPluginError(f'Plugin "{plugin_id}" is not installed.')
        return Manifest.from_dir(self.plugin_path(plugin_id))

    def install_from_path(self, source_path: Path) -> Manifest:
        """Copy a plugin directory into the plugins directory.

        Args:
            source_path: Directory containing manifest.json.

        Returns:
            Manifest of the installed plugin.

        Raises:
            InstallError: If the source has no manifest or the target
                directory already exists and is not empty.
        """
        if not (source_path / MANIFEST_FILENAME).exists():
            raise InstallError(f"No {MANIFEST_FILENAME} found in {source_path}")

        try:
            manifest = Manifest.from_dir(source_path)
        except ManifestError as e:
            raise InstallError(str(e)) from e

        target_dir = self.plugin_path(manifest.id)
        if target_dir.exists() and any(target_dir.iterdir()):
            raise InstallError(
                f'Plugin "{manifest.id}" is already installed at {target_dir}.'
            )

        self.plugins_directory.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source_path, target_dir, dirs_exist_ok=True)
        logger.info("Installed plugin %s %s", manifest.id, manifest.version)
        return manifest

    def extract_archive(self, archive_path: Path, destination: Path) -> Path:
        """Extract a release archive and locate the plugin root.

        The archive may hold the plugin files at its top level or inside a
        single top-level directory.

        Returns:
            Directory containing manifest.json.
        """
        try:
            with zipfile.ZipFile(archive_path) as archive:
                archive.extractall(destination)
        except zipfile.BadZipFile as e:
            raise InstallError(f"Invalid plugin archive {archive_path.name}: {e}") from e

        extracted = list(destination.iterdir())
        if len(extracted) == 1 and extracted[0].is_dir():
            plugin_root = extracted[0]
        else:
            plugin_root = destination

        if not (plugin_root / MANIFEST_FILENAME).exists():
            raise InstallError(f"Archive {archive_path.name} does not contain {MANIFEST_FILENAME}")
        return plugin_root

    def remove(self, plugin_id: str) -> None:
        """Delete an installed plugin directory.

        Raises:
            NotFoundPluginError: If the plugin is not installed.
        """
        target_dir = self.plugin_path(plugin_id)
        if not target_dir.is_dir():
            raise NotFoundPluginError(f'Plugin "{plugin_id}" is not installed.')
        shutil.rmtree(target_dir)
        logger.info("Removed plugin %s", plugin_id)
