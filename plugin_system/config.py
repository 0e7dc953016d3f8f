"""Configuration management for the plugin system.

Loads configuration from:
1. config.toml (defaults)
2. Environment variables (overrides)

Administrator restrictions use the same key names as the desktop
application configuration::

    [pluginSystem]
    disabled = true
    communityDisabled = false
    allow = ["acme-ai-shell"]

    [plugins.acme-er-diagram]
    disabled = true
"""

import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, TypeVar

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from dotenv import load_dotenv

from plugin_system.errors import ConfigError

# Load .env file if present
load_dotenv()

T = TypeVar("T")


@dataclass
class PluginSystemConfig:
    """Administrator switches for the whole plugin system."""

    disabled: bool = False  # Block installs and disable every plugin
    community_disabled: bool = False  # Hide and disable community plugins
    allow: list[str] = field(default_factory=list)  # Ids exempt from `disabled`


@dataclass
class PluginConfig:
    """Per-plugin administrator settings."""

    disabled: bool = False


@dataclass
class RegistryConfig:
    """Plugin directory location and credentials.

    The token is also read from PLUGIN_REGISTRY_TOKEN.
    """

    api_url: str = "https://api.github.com"
    owner: str = "plugin-directory"
    repo: str = "plugins"
    official_path: str = "plugins.json"
    community_path: str = "community-plugins.json"
    token: str = ""
    timeout: float = 30.0


@dataclass
class BundledConfig:
    """Plugins shipped with the application."""

    ensure_installed: list[str] = field(default_factory=list)  # Package names
    resources_path: str = ""  # Packaged builds: directory holding bundled_plugins/


@dataclass
class LicenseConfig:
    """License tier used when no license provider is supplied."""

    tier: str = "free"  # "free" | "indie" | "pro+"


@dataclass
class Config:
    """Main configuration container."""

    plugins_dir: str = ""  # Default: ~/.plugin-system/plugins
    settings_file: str = ""  # Default: ~/.plugin-system/settings.json
    app_version: str = ""
    log_level: str = "INFO"
    plugin_system: PluginSystemConfig = field(default_factory=PluginSystemConfig)
    plugins: dict[str, PluginConfig] = field(default_factory=dict)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    bundled: BundledConfig = field(default_factory=BundledConfig)
    license: LicenseConfig = field(default_factory=LicenseConfig)

    def is_plugin_disabled(self, plugin_id: str) -> bool:
        plugin = self.plugins.get(plugin_id)
        return bool(plugin and plugin.disabled)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        system_data = data.get("pluginSystem", {})
        plugins_data = data.get("plugins", {})
        registry_data = data.get("registry", {})
        bundled_data = data.get("bundled", {})
        license_data = data.get("license", {})

        plugin_system = PluginSystemConfig(
            disabled=_as_bool(system_data.get("disabled", False)),
            community_disabled=_as_bool(system_data.get("communityDisabled", False)),
            allow=[str(x) for x in system_data.get("allow", []) if str(x)],
        )

        plugins = {
            str(plugin_id): PluginConfig(disabled=_as_bool(values.get("disabled", False)))
            for plugin_id, values in plugins_data.items()
            if isinstance(values, dict)
        }

        return cls(
            plugins_dir=data.get("plugins_dir", ""),
            settings_file=data.get("settings_file", ""),
            app_version=data.get("app_version", ""),
            log_level=data.get("log_level", "INFO"),
            plugin_system=plugin_system,
            plugins=plugins,
            registry=_section(RegistryConfig, "registry", registry_data),
            bundled=_section(BundledConfig, "bundled", bundled_data),
            license=_section(LicenseConfig, "license", license_data),
        )


CONFIG_FILENAME = "config.toml"

# Environment variable -> (section or None for top level, key)
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "PLUGINS_DIR": (None, "plugins_dir"),
    "LOG_LEVEL": (None, "log_level"),
    "PLUGIN_SYSTEM_DISABLED": ("pluginSystem", "disabled"),
    "PLUGIN_REGISTRY_API_URL": ("registry", "api_url"),
    "PLUGIN_REGISTRY_TOKEN": ("registry", "token"),
    "PLUGIN_LICENSE_TIER": ("license", "tier"),
}


def find_config_file() -> Path | None:
    """Locate the configuration file.

    PLUGIN_SYSTEM_CONFIG wins when set; otherwise config.toml is searched
    in the current directory and its parents.

    Returns:
        Path to the file or None if there is none.
    """
    explicit = os.getenv("PLUGIN_SYSTEM_CONFIG")
    if explicit:
        return Path(explicit).expanduser()

    cwd = Path.cwd()
    for directory in (cwd, *cwd.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Explicit config file. Searched for when omitted.

    Returns:
        Config with environment variables applied over the file values.
    """
    path = Path(config_path) if config_path is not None else find_config_file()
    data = _read_toml(path) if path is not None else {}

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None:
            continue
        target = data if section is None else data.setdefault(section, {})
        target[key] = value

    return Config.from_dict(data)


def _section(section_cls: type[T], name: str, data: dict[str, Any]) -> T:
    """Build a config section, rejecting keys the section does not define."""
    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"Unknown key(s) in [{name}]: {', '.join(unknown)}. "
            f"Valid keys: {', '.join(sorted(known))}"
        )
    return section_cls(**data)


def _as_bool(value: Any) -> bool:
    """Interpret TOML booleans and environment strings alike."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Discard the cached configuration and load it again."""
    global _config
    _config = load_config()
    return _config
