"""Policy modules registered on a PluginManager.

Snapshot hooks run in registration order and the first disable wins, so
register configuration before license:
- BundledPluginModule
- ConfigurationModule
- LicenseModule
"""

from plugin_system.modules.bundled import BundledPluginModule
from plugin_system.modules.configuration import ConfigurationModule
from plugin_system.modules.license import LicenseModule, LicenseTier, StaticLicense

__all__ = [
    "BundledPluginModule",
    "ConfigurationModule",
    "LicenseModule",
    "LicenseTier",
    "StaticLicense",
]
