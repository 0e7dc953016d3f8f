"""Plugin registry: cached access to the plugin directory.

Each directory partition and each plugin repository is fetched once and
cached until :meth:`PluginRegistry.clear_cache`. Concurrent first callers
share a single in-flight fetch instead of each hitting the upstream.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from plugin_system.errors import NotFoundPluginError
from plugin_system.repository import PluginRepositoryService
from plugin_system.types import (
    PluginOrigin,
    PluginRepository,
    RegistryEntries,
    RegistryEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PluginRegistry:
    """Cache and look up plugin directory entries.

    Example:
        >>> registry = PluginRegistry(PluginRepositoryService())
        >>> entries = await registry.get_entries()
        >>> origin, entry = await registry.find_entry("acme-plugin")
    """

    def __init__(self, repository_service: PluginRepositoryService):
        self.repository_service = repository_service
        self._partitions: dict[PluginOrigin, list[RegistryEntry]] = {}
        self._repositories: dict[str, PluginRepository] = {}
        self._inflight: dict[Any, asyncio.Future[Any]] = {}
        # Bumped by clear_cache; fetches started earlier do not write back
        self._generation = 0

    async def _dedupe(self, key: Any, fetch: Callable[[], Awaitable[T]]) -> T:
        """Run ``fetch`` once for all concurrent callers using ``key``."""
        inflight = self._inflight
        future = inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(fetch())
            inflight[key] = future
            future.add_done_callback(lambda done: _forget(inflight, key, done))
        return await asyncio.shield(future)

    async def _load_partition(self, origin: PluginOrigin) -> list[RegistryEntry]:
        if origin in self._partitions:
            return self._partitions[origin]

        generation = self._generation

        async def fetch() -> list[RegistryEntry]:
            logger.debug("Fetching %s entries...", origin.value)
            if origin == PluginOrigin.OFFICIAL:
                entries = await self.repository_service.fetch_official()
            else:
                entries = await self.repository_service.fetch_community()
            if generation == self._generation:
                self._partitions[origin] = entries
            return entries

        return await self._dedupe(("partition", origin), fetch)

    async def get_entries(self) -> RegistryEntries:
        """Get both directory partitions, fetching them if needed."""
        try:
            official, community = await asyncio.gather(
                self._load_partition(PluginOrigin.OFFICIAL),
                self._load_partition(PluginOrigin.COMMUNITY),
            )
        except Exception:
            logger.error("Failed to fetch registry", exc_info=True)
            raise
        return RegistryEntries(official=list(official), community=list(community))

    async def find_entry(self, plugin_id: str) -> tuple[PluginOrigin, RegistryEntry]:
        """Find a plugin in the directory, official partition first.

        Raises:
            NotFoundPluginError: If the id is in neither partition.
        """
        entries = await self.get_entries()
        for origin, partition in (
            (PluginOrigin.OFFICIAL, entries.official),
            (PluginOrigin.COMMUNITY, entries.community),
        ):
            for entry in partition:
                if entry.id == plugin_id:
                    return origin, entry
        raise NotFoundPluginError(f'Plugin "{plugin_id}" not found in registry.')

    async def resolve_origin(self, plugin_id: str) -> PluginOrigin:
        """Classify a plugin id; ids outside the directory are unlisted."""
        try:
            origin, _ = await self.find_entry(plugin_id)
        except NotFoundPluginError:
            return PluginOrigin.UNLISTED
        return origin

    async def get_repository(self, plugin_id: str) -> PluginRepository:
        """Get repository info for a plugin.

        The data is cached; use :meth:`reload_repository` to force a fetch.
        """
        if plugin_id in self._repositories:
            return self._repositories[plugin_id]
        return await self._dedupe(
            ("repository", plugin_id), lambda: self.reload_repository(plugin_id)
        )

    async def reload_repository(self, plugin_id: str) -> PluginRepository:
        generation = self._generation
        _, entry = await self.find_entry(plugin_id)
        logger.debug('Fetching info for plugin "%s" (repo: %s)...', plugin_id, entry.repo)

        owner, repo = entry.owner_and_repo
        try:
            info = await self.repository_service.fetch_plugin_repository(owner, repo)
        except Exception:
            logger.error('Failed to fetch info for plugin "%s"', plugin_id, exc_info=True)
            raise
        if generation == self._generation:
            self._repositories[plugin_id] = info
        return info

    def clear_cache(self) -> None:
        """Forget cached data, including fetches still in flight."""
        self._generation += 1
        self._partitions.clear()
        self._repositories.clear()
        self._inflight = {}

    def restricted(
        self, official: bool = True, community: bool = True
    ) -> RestrictedPluginRegistry:
        """Return a view that hides the disabled partitions."""
        return RestrictedPluginRegistry(self, official=official, community=community)


class RestrictedPluginRegistry:
    """Registry view with suppressed directory partitions.

    Suppressed partitions read as empty and are never fetched for listings or
    lookups. Origin classification still sees the partitions that the view
    keeps open, so that an installed community plugin is recognised as one
    while community listings are hidden. With every partition suppressed
    nothing is fetched at all.
    """

    def __init__(self, registry: PluginRegistry, official: bool, community: bool):
        self.registry = registry
        self.official = official
        self.community = community

    @property
    def repository_service(self) -> PluginRepositoryService:
        return self.registry.repository_service

    async def get_entries(self) -> RegistryEntries:
        official: list[RegistryEntry] = []
        community: list[RegistryEntry] = []
        if self.official:
            official = list(await self.registry._load_partition(PluginOrigin.OFFICIAL))
        if self.community:
            community = list(await self.registry._load_partition(PluginOrigin.COMMUNITY))
        return RegistryEntries(official=official, community=community)

    async def find_entry(self, plugin_id: str) -> tuple[PluginOrigin, RegistryEntry]:
        entries = await self.get_entries()
        for origin, partition in (
            (PluginOrigin.OFFICIAL, entries.official),
            (PluginOrigin.COMMUNITY, entries.community),
        ):
            for entry in partition:
                if entry.id == plugin_id:
                    return origin, entry
        raise NotFoundPluginError(f'Plugin "{plugin_id}" not found in registry.')

    async def resolve_origin(self, plugin_id: str) -> PluginOrigin:
        if not (self.official or self.community):
            return PluginOrigin.UNLISTED
        return await self.registry.resolve_origin(plugin_id)

    async def get_repository(self, plugin_id: str) -> PluginRepository:
        await self.find_entry(plugin_id)
        return await self.registry.get_repository(plugin_id)

    async def reload_repository(self, plugin_id: str) -> PluginRepository:
        await self.find_entry(plugin_id)
        return await self.registry.reload_repository(plugin_id)

    def clear_cache(self) -> None:
        self.registry.clear_cache()

    def restricted(
        self, official: bool = True, community: bool = True
    ) -> RestrictedPluginRegistry:
        return RestrictedPluginRegistry(
            self.registry,
            official=self.official and official,
            community=self.community and community,
        )


def _forget(
    inflight: dict[Any, asyncio.Future[Any]], key: Any, future: asyncio.Future[Any]
) -> None:
    if inflight.get(key) is future:
        del inflight[key]
