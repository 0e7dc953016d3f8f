"""Shared fixtures for plugin system tests.

The plugin directory upstream is simulated with ``httpx.MockTransport``. The
fake server serves directory files, latest releases, release assets, readmes
and archive downloads, and records every request so tests can assert that no
network access happened.
"""

import base64
import io
import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

from plugin_system import (
    MemorySettingsStore,
    PluginFileManager,
    PluginManager,
    PluginRegistry,
    PluginRepositoryService,
)

API_URL = "https://api.test"
DOWNLOAD_HOST = "downloads.test"


def make_manifest(
    plugin_id: str,
    name: Optional[str] = None,
    version: str = "1.0.0",
    min_app_version: str = "",
) -> dict[str, Any]:
    manifest = {
        "id": plugin_id,
        "name": name or plugin_id,
        "version": version,
        "author": f"{plugin_id}-author",
        "description": f"{name or plugin_id} description",
        "manifestVersion": 1,
    }
    if min_app_version:
        manifest["minAppVersion"] = min_app_version
    return manifest


def make_archive(manifest: dict[str, Any], nested: bool = True) -> bytes:
    """Build a release archive holding the manifest and an entry script."""
    prefix = f"{manifest['id']}/" if nested else ""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(prefix + "manifest.json", json.dumps(manifest))
        archive.writestr(prefix + "index.js", "module.exports = {};\n")
    return buffer.getvalue()


def write_plugin_dir(path: Path, manifest: dict[str, Any]) -> Path:
    """Create a plugin directory on disk."""
    path.mkdir(parents=True, exist_ok=True)
    (path / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    (path / "index.js").write_text("module.exports = {};\n", encoding="utf-8")
    return path


def _content(text: str) -> dict[str, str]:
    return {"content": base64.b64encode(text.encode("utf-8")).decode("ascii")}


class FakePluginServer:
    """In-memory plugin directory and release host."""

    def __init__(self):
        self.official: list[dict[str, Any]] = []
        self.community: list[dict[str, Any]] = []
        self.releases: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, int] = {}
        self.timeouts: set[str] = set()
        self._next_asset_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_plugin(
        self,
        plugin_id: str,
        origin: str = "official",
        name: Optional[str] = None,
        version: str = "1.0.0",
        min_app_version: str = "",
        with_archive: bool = True,
    ) -> dict[str, Any]:
        """List a plugin in a directory partition and publish a release."""
        name = name or plugin_id
        entry = {
            "id": plugin_id,
            "name": name,
            "repo": f"{plugin_id}/{plugin_id}",
            "author": f"{plugin_id}-author",
            "description": f"{name} description",
        }
        if origin == "official":
            self.official.append(entry)
        else:
            self.community.append(entry)

        manifest = make_manifest(plugin_id, name, version, min_app_version)
        self.publish(entry["repo"], manifest, with_archive=with_archive)
        return entry

    def publish(
        self, repo: str, manifest: dict[str, Any], with_archive: bool = True
    ) -> None:
        manifest_asset_id = self._next_asset_id
        self._next_asset_id += 1
        assets = [
            {
                "id": manifest_asset_id,
                "name": "manifest.json",
                "browser_download_url": f"https://{DOWNLOAD_HOST}/{repo}/manifest.json",
            }
        ]
        archive_name = f"{manifest['id']}-{manifest['version']}.zip"
        if with_archive:
            assets.append(
                {
                    "id": self._next_asset_id,
                    "name": archive_name,
                    "browser_download_url": f"https://{DOWNLOAD_HOST}/{repo}/{archive_name}",
                }
            )
            self._next_asset_id += 1
        self.releases[repo] = {
            "manifest": manifest,
            "manifest_asset_id": manifest_asset_id,
            "assets": assets,
            "archive_name": archive_name,
            "archive": make_archive(manifest),
            "readme": f"# {manifest['name']}\n",
        }

    def fail(self, path: str, status: int) -> None:
        self.failures[path] = status

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def count(self, path: str) -> int:
        return self.paths().count(path)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"message": "failure"})

        if request.url.host == DOWNLOAD_HOST:
            return self._download(path)

        if path == "/repos/plugin-directory/plugins/contents/plugins.json":
            return httpx.Response(200, json=_content(json.dumps(self.official)))
        if path == "/repos/plugin-directory/plugins/contents/community-plugins.json":
            return httpx.Response(200, json=_content(json.dumps(self.community)))

        parts = path.strip("/").split("/")
        if len(parts) >= 4 and parts[0] == "repos":
            repo = f"{parts[1]}/{parts[2]}"
            release = self.releases.get(repo)
            if release is None:
                return httpx.Response(404, json={"message": "Not Found"})
            rest = parts[3:]
            if rest == ["releases", "latest"]:
                return httpx.Response(200, json={"assets": release["assets"]})
            if rest[:2] == ["releases", "assets"]:
                if int(rest[2]) == release["manifest_asset_id"]:
                    return httpx.Response(200, content=json.dumps(release["manifest"]).encode())
            if rest == ["readme"]:
                return httpx.Response(200, json=_content(release["readme"]))

        return httpx.Response(404, json={"message": "Not Found"})

    def _download(self, path: str) -> httpx.Response:
        for repo, release in self.releases.items():
            if path == f"/{repo}/{release['archive_name']}":
                return httpx.Response(200, content=release["archive"])
        return httpx.Response(404)


@pytest.fixture
def server() -> FakePluginServer:
    return FakePluginServer()


@pytest.fixture
def service(server: FakePluginServer) -> PluginRepositoryService:
    return PluginRepositoryService(
        api_url=API_URL, token="test-token", transport=server.transport
    )


@pytest.fixture
def registry(service: PluginRepositoryService) -> PluginRegistry:
    return PluginRegistry(service)


@pytest.fixture
def plugins_dir(tmp_path: Path) -> Path:
    return tmp_path / "plugins"


@pytest.fixture
def settings_store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def make_manager(
    plugins_dir: Path, registry: PluginRegistry, settings_store: MemorySettingsStore
) -> Callable[..., PluginManager]:
    """Factory for managers sharing the plugins directory and settings store."""

    def factory(modules=(), registry_override=None, app_version: str = "") -> PluginManager:
        manager = PluginManager(
            file_manager=PluginFileManager(plugins_dir),
            registry=registry_override or registry,
            settings_store=settings_store,
            app_version=app_version,
        )
        for module_cls, options in modules:
            manager.register_module(module_cls, **options)
        return manager

    return factory
