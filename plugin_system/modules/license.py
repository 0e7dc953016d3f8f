"""License based limits on installing and activating plugins.

License tiers and limits:
- pro+: unlimited plugins
- indie: at most ``MAX_PLUGINS_FOR_INDIE`` plugins of any origin
- free: at most ``MAX_COMMUNITY_PLUGINS_FOR_FREE`` community or unlisted
  plugins and no official plugins

Limits are enforced when installing and again on every listing, so a license
change takes effect without reinstalling anything. When a quota is exceeded
the plugins that keep their slot are the first ones by id.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Union

from plugin_system.errors import ForbiddenPluginError
from plugin_system.hooks import HookName, Module
from plugin_system.types import (
    DisableReason,
    LicenseCause,
    LicenseDetail,
    PluginOrigin,
    PluginSnapshot,
)

if TYPE_CHECKING:
    from plugin_system.manager import PluginManager

logger = logging.getLogger(__name__)

MAX_PLUGINS_FOR_INDIE = 5
MAX_COMMUNITY_PLUGINS_FOR_FREE = 2

PRICING_URL = "https://plugin-system.dev/pricing"


class LicenseTier(str, Enum):
    """Commercial license level."""

    FREE = "free"
    INDIE = "indie"
    PRO_PLUS = "pro+"


class StaticLicense:
    """License provider returning a fixed, replaceable tier."""

    def __init__(self, tier: LicenseTier | str = LicenseTier.FREE):
        self.tier = LicenseTier(tier)

    def __call__(self) -> LicenseTier:
        return self.tier


LicenseProvider = Callable[[], Union[LicenseTier, str, Awaitable[Union[LicenseTier, str]]]]


class LicenseModule(Module):
    """Enforce license tier quotas.

    The tier is read from ``license`` on every check, so swapping the tier of
    a :class:`StaticLicense` (or any provider) applies at the next call.

    Example:
        >>> manager.register_module(LicenseModule, license=StaticLicense("indie"))
    """

    def __init__(
        self,
        manager: PluginManager,
        license: LicenseProvider | None = None,
        max_plugins_for_indie: int = MAX_PLUGINS_FOR_INDIE,
        max_community_plugins_for_free: int = MAX_COMMUNITY_PLUGINS_FOR_FREE,
    ):
        super().__init__(manager)
        self.license = license or StaticLicense()
        self.max_plugins_for_indie = max_plugins_for_indie
        self.max_community_plugins_for_free = max_community_plugins_for_free

        self.hook(HookName.BEFORE_INSTALL_PLUGIN, self.guard_install)
        self.hook(HookName.PLUGIN_SNAPSHOTS, self.apply_license_limits)

    async def get_tier(self) -> LicenseTier:
        tier = self.license()
        if inspect.isawaitable(tier):
            tier = await tier
        return LicenseTier(tier)

    async def guard_install(self, plugin_id: str) -> None:
        tier = await self.get_tier()

        if tier == LicenseTier.PRO_PLUS:
            return

        plugins = await self.manager.get_plugins()

        if tier == LicenseTier.INDIE:
            if len(plugins) < self.max_plugins_for_indie:
                return
            raise ForbiddenPluginError(
                f"You have reached the maximum of {self.max_plugins_for_indie} plugins "
                "allowed in your license. To install this plugin, please uninstall "
                f"an existing one or upgrade at {PRICING_URL}"
            )

        origin = await self.manager.registry.resolve_origin(plugin_id)

        if origin == PluginOrigin.OFFICIAL:
            _, entry = await self.manager.registry.find_entry(plugin_id)
            raise ForbiddenPluginError(
                f"Plugin {entry.name} ({entry.id}) is not available for the "
                f"{tier.value} tier."
            )

        # Community and unlisted plugins share the free quota
        community_plugins = [p for p in plugins if p.origin != PluginOrigin.OFFICIAL]
        if len(community_plugins) >= self.max_community_plugins_for_free:
            raise ForbiddenPluginError(
                f"You have reached the maximum of {self.max_community_plugins_for_free} "
                "community plugins. To install this plugin, please uninstall an "
                f"existing one or upgrade at {PRICING_URL}"
            )

    async def apply_license_limits(
        self, snapshots: list[PluginSnapshot]
    ) -> list[PluginSnapshot]:
        tier = await self.get_tier()
        logger.debug("Applying %s license limits to %d plugins", tier.value, len(snapshots))

        if tier == LicenseTier.PRO_PLUS:
            return snapshots
        if tier == LicenseTier.INDIE:
            return self._limit_indie(snapshots)
        return self._limit_free(snapshots)

    def _limit_indie(self, snapshots: list[PluginSnapshot]) -> list[PluginSnapshot]:
        limit = self.max_plugins_for_indie
        enabled_count = 0
        result = []

        for snapshot in snapshots:
            if snapshot.disabled:
                result.append(snapshot)
            elif enabled_count < limit:
                enabled_count += 1
                result.append(snapshot)
            else:
                result.append(
                    snapshot.disable(
                        DisableReason.DISABLED_BY_LICENSE,
                        LicenseDetail(LicenseCause.MAX_PLUGINS_REACHED, limit),
                    )
                )

        return result

    def _limit_free(self, snapshots: list[PluginSnapshot]) -> list[PluginSnapshot]:
        limit = self.max_community_plugins_for_free
        enabled_count = 0
        result = []

        for snapshot in snapshots:
            if snapshot.disabled:
                result.append(snapshot)
            elif snapshot.origin == PluginOrigin.OFFICIAL:
                result.append(
                    snapshot.disable(
                        DisableReason.DISABLED_BY_LICENSE,
                        LicenseDetail(LicenseCause.VALID_LICENSE_REQUIRED),
                    )
                )
            elif enabled_count < limit:
                enabled_count += 1
                result.append(snapshot)
            else:
                result.append(
                    snapshot.disable(
                        DisableReason.DISABLED_BY_LICENSE,
                        LicenseDetail(LicenseCause.MAX_COMMUNITY_PLUGINS_REACHED, limit),
                    )
                )

        return result
