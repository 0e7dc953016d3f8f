"""Exceptions raised by the plugin system.

Every error derives from :class:`PluginError` so callers can catch the whole
family at once. Policy vetoes (configuration, license) are raised from hook
handlers and propagate unchanged out of the triggering manager operation.
"""


class PluginError(Exception):
    """Base class for plugin system errors."""

    pass


class NotFoundPluginError(PluginError):
    """Raised when a plugin is absent from the registry or not installed."""

    pass


class ForbiddenPluginError(PluginError):
    """Raised when the license tier does not allow an operation."""

    pass


class PluginSystemDisabledError(PluginError):
    """Raised when an administrator has disabled (part of) the plugin system."""

    pass


class PluginFetchError(PluginError):
    """Raised when the registry or a release could not be fetched."""

    pass


class PluginTimeoutError(PluginError):
    """Raised when a bounded wait on the registry upstream is exceeded."""

    pass


class NotSupportedPluginError(PluginError):
    """Raised when an operation does not apply to the given plugin."""

    pass


class InstallError(PluginError):
    """Raised when copying a plugin into the plugins directory fails."""

    pass


class ManifestError(PluginError):
    """Raised when manifest parsing or validation fails."""

    pass


class PluginManagerError(PluginError):
    """Raised when the manager is used before it is ready."""

    pass


class ConfigError(PluginError):
    """Raised when the configuration file holds unknown or invalid keys."""

    pass
