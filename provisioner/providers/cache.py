"""Explicit cache of provider HTTP clients."""

import hashlib
import time
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from provisioner.utils.logging import get_logger

logger = get_logger("providers.cache")


def fingerprint(*parts: str | None) -> str:
    """Hash credential material so raw secrets never become cache keys."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update((part or "").encode())
        digest.update(b"\0")
    return digest.hexdigest()[:16]


@dataclass
class _Entry:
    client: httpx.AsyncClient
    last_used: float
    leases: int = 0
    evicted: bool = False


class ClientCache:
    """LRU cache of ``httpx.AsyncClient`` keyed by provider + credential fingerprint.

    Clients are handed out as leases. An idle entry is one with no open
    lease that has not been used for ``idle_ttl`` seconds. When the cache
    is full the least recently used entry leaves the map; a leased client
    is closed only once its last lease is released, so a deployment that
    is still polling never loses its connection.
    """

    def __init__(
        self,
        max_entries: int = 32,
        idle_ttl: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.idle_ttl = idle_ttl
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], _Entry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    @asynccontextmanager
    async def lease(
        self,
        provider: str,
        key: str,
        factory: Callable[[], httpx.AsyncClient],
    ) -> AsyncIterator[httpx.AsyncClient]:
        """Borrow the client for (provider, key), building it if needed."""
        entry = await self._acquire(provider, key, factory)
        try:
            yield entry.client
        finally:
            entry.leases -= 1
            entry.last_used = self._clock()
            if entry.evicted and entry.leases == 0:
                await entry.client.aclose()

    async def close(self) -> None:
        """Close and drop every cached client."""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.evicted = True
            await entry.client.aclose()

    async def _acquire(
        self, provider: str, key: str, factory: Callable[[], httpx.AsyncClient]
    ) -> _Entry:
        now = self._clock()
        await self._evict_idle(now)

        cache_key = (provider, key)
        entry = self._entries.get(cache_key)
        if entry is None or entry.client.is_closed:
            entry = _Entry(client=factory(), last_used=now)
            self._entries[cache_key] = entry
            logger.debug("client_cache.created", provider=provider, size=len(self._entries))
        entry.last_used = now
        entry.leases += 1
        self._entries.move_to_end(cache_key)

        while len(self._entries) > self.max_entries:
            old_key, old = self._entries.popitem(last=False)
            await self._evict(old_key, old, "capacity")
        return entry

    async def _evict_idle(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.leases == 0 and now - entry.last_used > self.idle_ttl
        ]
        for key in expired:
            await self._evict(key, self._entries.pop(key), "idle")

    async def _evict(self, key: tuple[str, str], entry: _Entry, reason: str) -> None:
        entry.evicted = True
        logger.debug(
            "client_cache.evicted", provider=key[0], reason=reason, leased=entry.leases > 0
        )
        if entry.leases == 0:
            await entry.client.aclose()
