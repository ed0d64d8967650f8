"""Clients for the external providers a deployment provisions against."""

from provisioner.providers.atlas import AtlasClient
from provisioner.providers.base import PollingPolicy, ProviderClient
from provisioner.providers.cache import ClientCache
from provisioner.providers.clerk import ClerkClient
from provisioner.providers.dns import CloudflareDnsClient
from provisioner.providers.factory import ProviderFactory, get_provider_factory
from provisioner.providers.gcloud import GoogleCloudClient
from provisioner.providers.github import GitHubClient
from provisioner.providers.vercel import VercelClient

__all__ = [
    "AtlasClient",
    "ClerkClient",
    "ClientCache",
    "CloudflareDnsClient",
    "GitHubClient",
    "GoogleCloudClient",
    "PollingPolicy",
    "ProviderClient",
    "ProviderFactory",
    "VercelClient",
    "get_provider_factory",
]
