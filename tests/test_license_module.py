"""Tests for license tier quotas."""

import pytest

from conftest import make_manifest, write_plugin_dir
from plugin_system import DisableReason, DisableState, ForbiddenPluginError, HookName
from plugin_system.config import Config, PluginConfig
from plugin_system.manager import PLUGIN_SETTINGS_KEY
from plugin_system.modules import ConfigurationModule, LicenseModule, LicenseTier, StaticLicense
from plugin_system.modules.license import (
    MAX_COMMUNITY_PLUGINS_FOR_FREE,
    MAX_PLUGINS_FOR_INDIE,
)
from plugin_system.types import LicenseCause, LicenseDetail

INSTALLED = ["comm-0", "comm-1", "comm-2", "comm-3", "core-0", "core-1"]


@pytest.fixture
def directory(server):
    for i in range(6):
        server.add_plugin(f"core-{i}", origin="official")
        server.add_plugin(f"comm-{i}", origin="community")
    return server


@pytest.fixture
def license():
    return StaticLicense(LicenseTier.PRO_PLUS)


@pytest.fixture
async def manager(make_manager, directory, license):
    manager = make_manager(modules=[(LicenseModule, {"license": license})])
    await manager.initialize()
    return manager


@pytest.fixture
async def populated(manager, license):
    """Four community and two official plugins installed under pro+."""
    for plugin_id in INSTALLED:
        await manager.install_plugin(plugin_id)
    return manager


def states(snapshots):
    return {s.id: s.disable_state for s in snapshots}


def license_disabled(cause, limit=None):
    return DisableState.because(DisableReason.DISABLED_BY_LICENSE, LicenseDetail(cause, limit))


def test_limits():
    assert MAX_PLUGINS_FOR_INDIE == 5
    assert MAX_COMMUNITY_PLUGINS_FOR_FREE == 2


class TestProPlus:
    async def test_unlimited(self, manager):
        for i in range(6):
            await manager.install_plugin(f"core-{i}")
            await manager.install_plugin(f"comm-{i}")

        snapshots = await manager.get_plugins()

        assert len(snapshots) == 12
        assert not any(s.disabled for s in snapshots)


class TestIndie:
    async def test_sixth_plugin_disabled(self, populated, license):
        license.tier = LicenseTier.INDIE

        assert states(await populated.get_plugins()) == {
            "comm-0": DisableState(),
            "comm-1": DisableState(),
            "comm-2": DisableState(),
            "comm-3": DisableState(),
            "core-0": DisableState(),
            "core-1": license_disabled(LicenseCause.MAX_PLUGINS_REACHED, 5),
        }

    async def test_install_blocked_at_limit(self, manager, license):
        license.tier = LicenseTier.INDIE
        for plugin_id in ["comm-0", "comm-1", "comm-2", "core-0", "core-1"]:
            await manager.install_plugin(plugin_id)

        with pytest.raises(ForbiddenPluginError, match="maximum of 5 plugins"):
            await manager.install_plugin("core-2")

    async def test_install_below_limit(self, manager, license):
        license.tier = LicenseTier.INDIE

        snapshot = await manager.install_plugin("core-0")

        assert not snapshot.disabled


class TestFree:
    async def test_snapshot_limits(self, populated, license):
        license.tier = LicenseTier.FREE

        assert states(await populated.get_plugins()) == {
            "comm-0": DisableState(),
            "comm-1": DisableState(),
            "comm-2": license_disabled(LicenseCause.MAX_COMMUNITY_PLUGINS_REACHED, 2),
            "comm-3": license_disabled(LicenseCause.MAX_COMMUNITY_PLUGINS_REACHED, 2),
            "core-0": license_disabled(LicenseCause.VALID_LICENSE_REQUIRED),
            "core-1": license_disabled(LicenseCause.VALID_LICENSE_REQUIRED),
        }

    async def test_official_install_forbidden(self, manager, license, plugins_dir):
        license.tier = LicenseTier.FREE

        with pytest.raises(ForbiddenPluginError, match=r"core-0 \(core-0\).*free tier"):
            await manager.install_plugin("core-0")

        assert not (plugins_dir / "core-0").exists()

    async def test_community_quota(self, manager, license):
        license.tier = LicenseTier.FREE
        await manager.install_plugin("comm-0")
        await manager.install_plugin("comm-1")

        with pytest.raises(ForbiddenPluginError, match="maximum of 2 community plugins"):
            await manager.install_plugin("comm-2")

    async def test_unlisted_plugins_use_community_quota(self, manager, license, plugins_dir):
        license.tier = LicenseTier.FREE
        write_plugin_dir(plugins_dir / "sideloaded", make_manifest("sideloaded"))
        await manager.install_plugin("comm-0")

        with pytest.raises(ForbiddenPluginError):
            await manager.install_plugin("comm-1")

    async def test_official_plugins_do_not_use_community_quota(self, populated, license):
        await populated.uninstall_plugin("comm-2")
        await populated.uninstall_plugin("comm-3")
        await populated.uninstall_plugin("comm-1")
        license.tier = LicenseTier.FREE

        snapshot = await populated.install_plugin("comm-1")

        assert not snapshot.disabled


class TestLicenseChange:
    async def test_downgrade_reevaluates_without_touching_state(
        self, populated, license, plugins_dir, settings_store
    ):
        settings_before = settings_store.get(PLUGIN_SETTINGS_KEY)
        on_disk_before = sorted(p.name for p in plugins_dir.iterdir())

        license.tier = LicenseTier.FREE
        downgraded = await populated.get_plugins()
        license.tier = LicenseTier.PRO_PLUS
        restored = await populated.get_plugins()

        assert sum(s.disabled for s in downgraded) == 4
        assert not any(s.disabled for s in restored)
        assert settings_store.get(PLUGIN_SETTINGS_KEY) == settings_before
        assert sorted(p.name for p in plugins_dir.iterdir()) == on_disk_before

    async def test_async_license_provider(self, make_manager, directory):
        async def provider():
            return "free"

        manager = make_manager(modules=[(LicenseModule, {"license": provider})])
        await manager.initialize()

        with pytest.raises(ForbiddenPluginError):
            await manager.install_plugin("core-0")

    async def test_idempotent(self, populated, license):
        license.tier = LicenseTier.FREE

        snapshots = await populated.get_plugins()
        again = await populated.apply_hook(HookName.PLUGIN_SNAPSHOTS, snapshots)

        assert again == snapshots


class TestWithConfiguration:
    async def test_first_disable_wins(self, make_manager, directory, populated):
        config = Config(
            plugins={
                "core-0": PluginConfig(disabled=True),
                "comm-0": PluginConfig(disabled=True),
            }
        )
        manager = make_manager(
            modules=[
                (ConfigurationModule, {"config": config}),
                (LicenseModule, {"license": StaticLicense("free")}),
            ]
        )
        await manager.initialize()

        result = states(await manager.get_plugins())

        assert result["core-0"] == DisableState.because(DisableReason.DISABLED_BY_CONFIG)
        assert result["core-1"] == license_disabled(LicenseCause.VALID_LICENSE_REQUIRED)
        # comm-0 is already disabled, so it does not take a community slot
        assert result["comm-0"] == DisableState.because(DisableReason.DISABLED_BY_CONFIG)
        assert result["comm-1"] == DisableState()
        assert result["comm-2"] == DisableState()
        assert result["comm-3"] == license_disabled(
            LicenseCause.MAX_COMMUNITY_PLUGINS_REACHED, 2
        )
