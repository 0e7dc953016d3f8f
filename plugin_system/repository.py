"""Plugin repository service.

Talks to the GitHub-style REST API that hosts the plugin directory and the
plugin release assets. Results are not cached here; see
:class:`plugin_system.registry.PluginRegistry`.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from plugin_system.errors import (
    ManifestError,
    PluginFetchError,
    PluginTimeoutError,
)
from plugin_system.manifest import MANIFEST_FILENAME, Manifest
from plugin_system.types import PluginRepository, RegistryEntry, Release

logger = logging.getLogger(__name__)

_entries_adapter = TypeAdapter(list[RegistryEntry])

API_VERSION_HEADERS = {"X-GitHub-Api-Version": "2022-11-28"}

RATE_LIMIT_MESSAGE = (
    "Plugin registry rate limit exceeded. Set the PLUGIN_REGISTRY_TOKEN "
    "environment variable with a personal access token to increase the limit."
)


class PluginRepositoryService:
    """Client for the plugin directory and plugin releases.

    Example:
        >>> service = PluginRepositoryService()
        >>> entries = await service.fetch_official()
        >>> info = await service.fetch_plugin_repository("acme", "acme-plugin")
    """

    DEFAULT_API_URL = "https://api.github.com"
    DEFAULT_DIRECTORY_OWNER = "plugin-directory"
    DEFAULT_DIRECTORY_REPO = "plugins"
    OFFICIAL_PATH = "plugins.json"
    COMMUNITY_PATH = "community-plugins.json"

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        directory_owner: str | None = None,
        directory_repo: str | None = None,
        official_path: str | None = None,
        community_path: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the repository service.

        Args:
            api_url: Base URL of the REST API.
            token: Access token; raises the upstream rate limit.
            directory_owner: Owner of the repository holding the directory.
            directory_repo: Repository holding the directory JSON files.
            official_path: Path of the official directory file.
            community_path: Path of the community directory file.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_url = (api_url or self.DEFAULT_API_URL).rstrip("/")
        self.token = token or os.environ.get("PLUGIN_REGISTRY_TOKEN") or None
        self.directory_owner = directory_owner or self.DEFAULT_DIRECTORY_OWNER
        self.directory_repo = directory_repo or self.DEFAULT_DIRECTORY_REPO
        self.official_path = official_path or self.OFFICIAL_PATH
        self.community_path = community_path or self.COMMUNITY_PATH
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": "plugin-system"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
            follow_redirects=True,
        )

    async def _request(
        self,
        url: str,
        accept: str = "application/vnd.github+json",
    ) -> httpx.Response:
        """Make a GET request, translating failures into plugin errors."""
        if url.startswith("/"):
            url = self.api_url + url

        headers = {**API_VERSION_HEADERS, "Accept": accept}

        try:
            async with self._client() as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (403, 429):
                raise PluginFetchError(RATE_LIMIT_MESSAGE) from e
            if status == 404:
                raise PluginFetchError(f"Not found: {url}") from e
            raise PluginFetchError(f"Registry error {status}: {url}") from e
        except httpx.TimeoutException as e:
            raise PluginTimeoutError(f"Timed out fetching {url}") from e
        except httpx.RequestError as e:
            raise PluginFetchError(f"Connection error: {e}") from e

    async def _request_json(self, url: str, **kwargs: Any) -> Any:
        response = await self._request(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise PluginFetchError(f"Invalid JSON from {url}") from e

    @staticmethod
    def _decode_content(data: Any) -> str:
        try:
            return base64.b64decode(data["content"]).decode("utf-8")
        except (KeyError, TypeError, ValueError) as e:
            raise PluginFetchError(f"Malformed content payload: {e}") from e

    async def fetch_json(self, owner: str, repo: str, path: str) -> Any:
        """Fetch and decode a JSON file stored in a repository."""
        data = await self._request_json(f"/repos/{owner}/{repo}/contents/{path}")
        content = self._decode_content(data)
        try:
            return json.loads(content)
        except ValueError as e:
            raise PluginFetchError(f"Invalid JSON in {owner}/{repo}/{path}") from e

    async def _fetch_entries(self, path: str) -> list[RegistryEntry]:
        raw = await self.fetch_json(self.directory_owner, self.directory_repo, path)
        try:
            return _entries_adapter.validate_python(raw)
        except ValidationError as e:
            raise PluginFetchError(f"Invalid plugin directory {path}: {e}") from e

    async def fetch_official(self) -> list[RegistryEntry]:
        """Fetch the official (curated) plugin directory."""
        return await self._fetch_entries(self.official_path)

    async def fetch_community(self) -> list[RegistryEntry]:
        """Fetch the community plugin directory."""
        return await self._fetch_entries(self.community_path)

    async def fetch_latest_release(self, owner: str, repo: str) -> Release:
        """Fetch the manifest and archive location of the latest release.

        Raises:
            PluginFetchError: If ``manifest.json`` or the
                ``{id}-{version}.zip`` asset is missing.
        """
        data = await self._request_json(f"/repos/{owner}/{repo}/releases/latest")
        assets = data.get("assets", []) if isinstance(data, dict) else []

        manifest_asset = next(
            (a for a in assets if a.get("name") == MANIFEST_FILENAME), None
        )
        if manifest_asset is None:
            raise PluginFetchError(
                f"No {MANIFEST_FILENAME} found in the latest release of {owner}/{repo}"
            )

        response = await self._request(
            f"/repos/{owner}/{repo}/releases/assets/{manifest_asset['id']}",
            accept="application/octet-stream",
        )
        try:
            manifest = Manifest.from_dict(json.loads(response.content))
        except (ValueError, ManifestError) as e:
            raise PluginFetchError(
                f"Invalid {MANIFEST_FILENAME} in the latest release of {owner}/{repo}: {e}"
            ) from e

        archive_asset = next(
            (a for a in assets if a.get("name") == manifest.archive_name), None
        )
        if archive_asset is None:
            raise PluginFetchError(
                f"No asset found matching {manifest.archive_name} in the latest release"
            )

        return Release(
            manifest=manifest,
            download_url=archive_asset["browser_download_url"],
        )

    async def fetch_readme(self, owner: str, repo: str) -> str:
        data = await self._request_json(f"/repos/{owner}/{repo}/readme")
        return self._decode_content(data)

    async def fetch_plugin_repository(self, owner: str, repo: str) -> PluginRepository:
        """Fetch latest release and readme for a plugin repository."""
        latest_release = await self.fetch_latest_release(owner, repo)
        readme = await self.fetch_readme(owner, repo)
        return PluginRepository(latest_release=latest_release, readme=readme)

    async def download(self, url: str, destination: Path) -> Path:
        """Download a release archive to ``destination``."""
        logger.debug("Downloading %s", url)
        response = await self._request(url, accept="application/octet-stream")
        destination.write_bytes(response.content)
        return destination
