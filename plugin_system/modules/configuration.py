"""Administrator restrictions from the application configuration.

Example config.toml::

    [pluginSystem]
    communityDisabled = true

    [plugins.acme-er-diagram]
    disabled = true
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from plugin_system.config import Config
from plugin_system.errors import NotFoundPluginError, PluginSystemDisabledError
from plugin_system.hooks import HookName, Module
from plugin_system.types import DisableReason, PluginOrigin, PluginSnapshot

if TYPE_CHECKING:
    from plugin_system.manager import PluginManager

logger = logging.getLogger(__name__)


class ConfigurationModule(Module):
    """Apply ``pluginSystem.*`` and ``plugins.<id>.disabled`` settings.

    Registering the module restricts the manager's registry: with the
    plugin system disabled both directory partitions read as empty, with
    community plugins disabled the community partition does.

    Example:
        >>> manager.register_module(ConfigurationModule, config=load_config())
    """

    def __init__(self, manager: PluginManager, config: Config):
        super().__init__(manager)
        self.config = config

        system = config.plugin_system
        if system.disabled or system.community_disabled:
            manager.registry = manager.registry.restricted(
                official=not system.disabled,
                community=not (system.disabled or system.community_disabled),
            )
            logger.info(
                "Plugin registry restricted (system disabled: %s, community disabled: %s)",
                system.disabled,
                system.community_disabled,
            )

        self.hook(HookName.BEFORE_INSTALL_PLUGIN, self.guard_install)
        self.hook(HookName.PLUGIN_SNAPSHOTS, self.apply_config)

    async def guard_install(self, plugin_id: str) -> None:
        system = self.config.plugin_system

        if system.disabled:
            raise PluginSystemDisabledError(
                f'Cannot install "{plugin_id}": the plugin system is disabled.'
            )

        if system.community_disabled:
            try:
                await self.manager.registry.find_entry(plugin_id)
            except NotFoundPluginError:
                raise PluginSystemDisabledError(
                    f'Cannot install "{plugin_id}": community plugins are disabled.'
                )

    def apply_config(self, snapshots: list[PluginSnapshot]) -> list[PluginSnapshot]:
        return [self._apply(snapshot) for snapshot in snapshots]

    def _apply(self, snapshot: PluginSnapshot) -> PluginSnapshot:
        # Do not override an earlier disable
        if snapshot.disabled:
            return snapshot

        system = self.config.plugin_system

        if system.disabled and snapshot.id not in system.allow:
            return snapshot.disable(DisableReason.PLUGIN_SYSTEM_DISABLED)

        if system.community_disabled and snapshot.origin == PluginOrigin.COMMUNITY:
            return snapshot.disable(DisableReason.COMMUNITY_PLUGINS_DISABLED)

        if self.config.is_plugin_disabled(snapshot.id):
            return snapshot.disable(DisableReason.DISABLED_BY_CONFIG)

        return snapshot
