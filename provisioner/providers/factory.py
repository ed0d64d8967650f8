"""Builds provider clients from credential bundles."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from provisioner.config import settings
from provisioner.models.config import (
    AtlasCredentials,
    ClerkCredentials,
    CloudflareCredentials,
    GitHubCredentials,
    GoogleCloudCredentials,
    VercelCredentials,
)
from provisioner.providers.atlas import AtlasClient
from provisioner.providers.cache import ClientCache
from provisioner.providers.clerk import ClerkClient
from provisioner.providers.dns import CloudflareDnsClient
from provisioner.providers.gcloud import GoogleCloudClient
from provisioner.providers.github import GitHubClient
from provisioner.providers.vercel import VercelClient


class ProviderFactory:
    """Hands out provider clients whose HTTP connections come from a shared cache.

    Every method is an async context manager: the orchestrator holds a
    client for the length of a step and the underlying connection stays
    open until it lets go.

        async with factory.database(credentials) as client:
            await client.create(...)
    """

    def __init__(self, cache: ClientCache | None = None, request_timeout: float | None = None):
        if cache is None:
            cache = ClientCache(
                max_entries=settings.client_cache_max_entries,
                idle_ttl=settings.client_cache_idle_ttl,
            )
        self.cache = cache
        self.request_timeout = (
            request_timeout if request_timeout is not None else settings.provider_request_timeout
        )

    @asynccontextmanager
    async def repository(self, credentials: GitHubCredentials) -> AsyncIterator[GitHubClient]:
        async with self.cache.lease(
            GitHubClient.provider,
            GitHubClient.cache_key(credentials),
            lambda: GitHubClient.http_client(credentials, self.request_timeout),
        ) as http:
            yield GitHubClient.from_credentials(http, credentials)

    @asynccontextmanager
    async def hosting(self, credentials: VercelCredentials) -> AsyncIterator[VercelClient]:
        async with self.cache.lease(
            VercelClient.provider,
            VercelClient.cache_key(credentials),
            lambda: VercelClient.http_client(credentials, self.request_timeout),
        ) as http:
            yield VercelClient(http)

    @asynccontextmanager
    async def database(self, credentials: AtlasCredentials) -> AsyncIterator[AtlasClient]:
        async with self.cache.lease(
            AtlasClient.provider,
            AtlasClient.cache_key(credentials),
            lambda: AtlasClient.http_client(credentials, self.request_timeout),
        ) as http:
            yield AtlasClient(http)

    @asynccontextmanager
    async def identity(self, credentials: ClerkCredentials) -> AsyncIterator[ClerkClient]:
        async with self.cache.lease(
            ClerkClient.provider,
            ClerkClient.cache_key(credentials),
            lambda: ClerkClient.http_client(credentials, self.request_timeout),
        ) as http:
            yield ClerkClient(http)

    @asynccontextmanager
    async def cloud(self, credentials: GoogleCloudCredentials) -> AsyncIterator[GoogleCloudClient]:
        async with self.cache.lease(
            GoogleCloudClient.provider,
            GoogleCloudClient.cache_key(credentials),
            lambda: GoogleCloudClient.http_client(credentials, self.request_timeout),
        ) as http:
            yield GoogleCloudClient(http)

    @asynccontextmanager
    async def dns(self, credentials: CloudflareCredentials) -> AsyncIterator[CloudflareDnsClient]:
        async with self.cache.lease(
            CloudflareDnsClient.provider,
            CloudflareDnsClient.cache_key(credentials),
            lambda: CloudflareDnsClient.http_client(credentials, self.request_timeout),
        ) as http:
            yield CloudflareDnsClient(http)

    async def close(self) -> None:
        """Close every cached HTTP client."""
        await self.cache.close()


@lru_cache
def get_provider_factory() -> ProviderFactory:
    """Get the provider factory singleton."""
    return ProviderFactory()
