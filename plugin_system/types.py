"""Shared plugin system types.

Registry payloads are validated with pydantic since they come from the
network. Values computed locally (disable states, snapshots, install sources)
are plain frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from plugin_system.manifest import Manifest


class PluginOrigin(str, Enum):
    """Where a plugin is listed."""

    OFFICIAL = "official"
    COMMUNITY = "community"
    UNLISTED = "unlisted"


class DisableReason(str, Enum):
    """Why an installed plugin is not allowed to run."""

    DISABLED_BY_CONFIG = "disabled-by-config"
    PLUGIN_SYSTEM_DISABLED = "plugin-system-disabled"
    COMMUNITY_PLUGINS_DISABLED = "community-plugins-disabled"
    DISABLED_BY_LICENSE = "disabled-by-license"


class LicenseCause(str, Enum):
    """Detail of a license based disable."""

    MAX_PLUGINS_REACHED = "max-plugins-reached"
    MAX_COMMUNITY_PLUGINS_REACHED = "max-community-plugins-reached"
    VALID_LICENSE_REQUIRED = "valid-license-required"


@dataclass(frozen=True)
class LicenseDetail:
    cause: LicenseCause
    limit: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"cause": self.cause.value}
        if self.limit is not None:
            result["limit"] = self.limit
        return result


@dataclass(frozen=True)
class DisableState:
    """Tagged enabled/disabled decision for one plugin.

    ``DisableState()`` is the enabled state. Use :meth:`because` to build a
    disabled one so ``reason`` is always present when ``disabled`` is true.
    """

    disabled: bool = False
    reason: DisableReason | None = None
    detail: LicenseDetail | None = None

    @classmethod
    def because(
        cls, reason: DisableReason, detail: LicenseDetail | None = None
    ) -> DisableState:
        return cls(disabled=True, reason=reason, detail=detail)

    def to_dict(self) -> dict[str, Any]:
        if not self.disabled:
            return {"disabled": False}
        result: dict[str, Any] = {"disabled": True}
        if self.reason is not None:
            result["reason"] = self.reason.value
        if self.detail is not None:
            result["detail"] = self.detail.to_dict()
        return result


ENABLED = DisableState()


@dataclass(frozen=True)
class PluginSnapshot:
    """Point-in-time state of one installed plugin."""

    manifest: Manifest
    origin: PluginOrigin
    disable_state: DisableState = ENABLED

    @property
    def id(self) -> str:
        return self.manifest.id

    @property
    def disabled(self) -> bool:
        return self.disable_state.disabled

    def disable(
        self, reason: DisableReason, detail: LicenseDetail | None = None
    ) -> PluginSnapshot:
        """Return a copy disabled for ``reason``."""
        return replace(self, disable_state=DisableState.because(reason, detail))

    def to_dict(self) -> dict[str, Any]:
        return {
            "manifest": self.manifest.to_dict(),
            "origin": self.origin.value,
            "disableState": self.disable_state.to_dict(),
        }


@dataclass(frozen=True)
class PluginSource:
    """Where an install copies a plugin from.

    ``path`` stays ``None`` until a unit redirects the source; the manager
    then downloads the latest release from the registry.
    """

    id: str
    path: Path | None = None
    cleanup_after_install: bool = True


@dataclass
class PluginSettingsEntry:
    """Persisted per-plugin settings.

    An entry existing at all records that the plugin has been installed or
    configured before, whether or not it is installed now.
    """

    disabled: bool | None = None
    auto_update_enabled: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PluginSettingsEntry:
        disabled = data.get("disabled")
        auto_update = data.get("autoUpdateEnabled")
        return cls(
            disabled=None if disabled is None else bool(disabled),
            auto_update_enabled=None if auto_update is None else bool(auto_update),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.disabled is not None:
            result["disabled"] = self.disabled
        if self.auto_update_enabled is not None:
            result["autoUpdateEnabled"] = self.auto_update_enabled
        return result


class RegistryEntry(BaseModel):
    """Directory listing entry for one plugin."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    repo: str = Field(..., description="Source repository as owner/name")
    author: str = ""
    description: str = ""

    @property
    def owner_and_repo(self) -> tuple[str, str]:
        owner, _, repo = self.repo.partition("/")
        return owner, repo


@dataclass(frozen=True)
class Release:
    """Latest release of a plugin."""

    manifest: Manifest
    download_url: str


@dataclass(frozen=True)
class PluginRepository:
    """Repository information fetched on demand for one plugin."""

    latest_release: Release
    readme: str = ""


@dataclass(frozen=True)
class RegistryEntries:
    """Both partitions of the plugin directory."""

    official: list[RegistryEntry] = field(default_factory=list)
    community: list[RegistryEntry] = field(default_factory=list)
