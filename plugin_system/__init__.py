"""Plugin management core.

This package installs, uninstalls and lists plugins published in a remote
plugin directory, and lets policy modules veto or annotate those operations
through hook points.

Plugins are classified by origin:
- official: listed in the official directory partition
- community: listed in the community directory partition
- unlisted: installed but absent from both partitions

Plugins are stored in ~/.plugin-system/plugins/ by default.
"""

from plugin_system.errors import (
    ConfigError,
    ForbiddenPluginError,
    InstallError,
    ManifestError,
    NotFoundPluginError,
    NotSupportedPluginError,
    PluginError,
    PluginFetchError,
    PluginManagerError,
    PluginSystemDisabledError,
    PluginTimeoutError,
)
from plugin_system.file_manager import PluginFileManager
from plugin_system.hooks import Hookable, HookName, Module
from plugin_system.manager import PluginManager
from plugin_system.manifest import Manifest
from plugin_system.registry import PluginRegistry, RestrictedPluginRegistry
from plugin_system.repository import PluginRepositoryService
from plugin_system.settings import JsonFileSettingsStore, MemorySettingsStore
from plugin_system.types import (
    DisableReason,
    DisableState,
    LicenseCause,
    PluginOrigin,
    PluginSnapshot,
    PluginSource,
    RegistryEntry,
)

__all__ = [
    "ConfigError",
    "DisableReason",
    "DisableState",
    "ForbiddenPluginError",
    "Hookable",
    "HookName",
    "InstallError",
    "JsonFileSettingsStore",
    "LicenseCause",
    "Manifest",
    "ManifestError",
    "MemorySettingsStore",
    "Module",
    "NotFoundPluginError",
    "NotSupportedPluginError",
    "PluginError",
    "PluginFetchError",
    "PluginFileManager",
    "PluginManager",
    "PluginManagerError",
    "PluginOrigin",
    "PluginRegistry",
    "PluginRepositoryService",
    "PluginSnapshot",
    "PluginSource",
    "PluginSystemDisabledError",
    "PluginTimeoutError",
    "RegistryEntry",
    "RestrictedPluginRegistry",
]
