"""Plugin manifest schema.

Defines the structure and validation for plugin manifests (manifest.json).
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from plugin_system.errors import ManifestError

MANIFEST_FILENAME = "manifest.json"

# Plugin ids double as directory names under the plugins directory.
_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class Manifest:
    """Plugin manifest containing metadata.

    Attributes:
        id: Stable unique plugin identifier, used as the primary key.
        name: Human readable name.
        version: Version string of this build (e.g., "1.0.0").
        min_app_version: Oldest host application version able to run it.
        author: Plugin author name or organization.
        description: Short description of what the plugin does.
        capabilities: Free-form capability declarations (views, menus...).
        manifest_version: Manifest schema version.
    """

    id: str
    name: str
    version: str
    min_app_version: str = ""
    author: str = ""
    description: str = ""
    capabilities: dict[str, Any] = field(default_factory=dict)
    manifest_version: int = 1

    def __post_init__(self) -> None:
        """Validate the manifest after initialization."""
        self._validate()

    def _validate(self) -> None:
        if not self.id:
            raise ManifestError("Plugin id is required")
        if not _ID_PATTERN.match(self.id):
            raise ManifestError(
                f"Invalid plugin id: {self.id}. "
                "Use only letters, numbers, dots, hyphens, and underscores."
            )
        if not self.name:
            raise ManifestError(f"Plugin name is required ({self.id})")
        if not self.version:
            raise ManifestError(f"Plugin version is required ({self.id})")

    @classmethod
    def from_json(cls, json_path: Path) -> Manifest:
        """Load manifest from a JSON file.

        Args:
            json_path: Path to manifest.json file.

        Returns:
            Parsed Manifest.

        Raises:
            ManifestError: If file is missing or invalid.
        """
        if not json_path.exists():
            raise ManifestError(f"Manifest not found: {json_path}")

        try:
            with open(json_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestError(f"Invalid JSON in {json_path}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestError(f"Manifest must be a JSON object: {json_path}")

        return cls.from_dict(data)

    @classmethod
    def from_dir(cls, plugin_dir: Path) -> Manifest:
        """Load the manifest at the top level of a plugin directory."""
        return cls.from_json(plugin_dir / MANIFEST_FILENAME)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Create manifest from a dictionary.

        Args:
            data: Dictionary with camelCase manifest keys.

        Returns:
            Parsed Manifest.

        Raises:
            ManifestError: If required fields are missing or invalid.
        """
        try:
            capabilities = data.get("capabilities") or {}
            if not isinstance(capabilities, dict):
                raise ManifestError("Manifest capabilities must be an object")

            return cls(
                id=str(data.get("id", "")),
                name=str(data.get("name", "")),
                version=str(data.get("version", "")),
                min_app_version=str(data.get("minAppVersion", "")),
                author=str(data.get("author", "")),
                description=str(data.get("description", "")),
                capabilities=capabilities,
                manifest_version=int(data.get("manifestVersion", 1)),
            )
        except (TypeError, ValueError) as e:
            raise ManifestError(f"Invalid manifest data: {e}")

    def to_dict(self) -> dict[str, Any]:
        """Convert manifest to its JSON dictionary form."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "author": self.author,
            "description": self.description,
            "capabilities": self.capabilities,
            "manifestVersion": self.manifest_version,
        }
        if self.min_app_version:
            result["minAppVersion"] = self.min_app_version
        return result

    def to_json(self, json_path: Path) -> None:
        """Save manifest to a JSON file."""
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @property
    def archive_name(self) -> str:
        """Name of the release asset holding this build."""
        return f"{self.id}-{self.version}.zip"

    def __repr__(self) -> str:
        return f"Manifest(id={self.id!r}, version={self.version!r})"


def version_compare(v1: str, v2: str) -> int:
    """Compare two version strings.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2.
    """
    try:
        parts1 = [int(x) for x in v1.split(".")]
        parts2 = [int(x) for x in v2.split(".")]

        for p1, p2 in zip(parts1, parts2):
            if p1 < p2:
                return -1
            if p1 > p2:
                return 1

        if len(parts1) < len(parts2):
            return -1
        if len(parts1) > len(parts2):
            return 1

        return 0
    except ValueError:
        # Fallback to string comparison
        return -1 if v1 < v2 else (1 if v1 > v2 else 0)
