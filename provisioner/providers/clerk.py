"""Clerk identity-tenant client."""

import httpx
from pydantic import BaseModel, Field

from provisioner.models.config import ClerkCredentials
from provisioner.providers.base import ProviderClient
from provisioner.providers.cache import fingerprint

CLERK_API_URL = "https://api.clerk.com/v1"

DEFAULT_SOCIAL_PROVIDERS = ["google", "github"]

DEFAULT_JWT_CLAIMS = {
    "email": "{{user.email_addresses.0.email_address}}",
    "firstName": "{{user.first_name}}",
    "lastName": "{{user.last_name}}",
    "userId": "{{user.id}}",
}


class IdentityAppSpec(BaseModel):
    name: str
    home_url: str
    allowed_origins: list[str] = Field(default_factory=list)
    instance_type: str = "development"


class IdentityApplication(BaseModel):
    id: str
    name: str = ""
    status: str = "active"
    home_url: str | None = None


class ApiKeyPair(BaseModel):
    publishable_key: str
    secret_key: str


class ClerkClient(ProviderClient[IdentityAppSpec, str, IdentityApplication]):
    """Creates Clerk applications and applies a default auth configuration.

    Instances are usable as soon as they are created, so polling normally
    stops at the first read.
    """

    provider = "clerk"
    success_states = frozenset({"active"})
    failure_states = frozenset({"inactive"})

    @staticmethod
    def cache_key(credentials: ClerkCredentials) -> str:
        return fingerprint(credentials.secret_key)

    @staticmethod
    def http_client(credentials: ClerkCredentials, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=CLERK_API_URL,
            headers={"Authorization": f"Bearer {credentials.secret_key}"},
            timeout=timeout,
        )

    async def create(self, spec: IdentityAppSpec) -> IdentityApplication:
        data = await self._request(
            "POST",
            "/instances",
            json={
                "name": spec.name,
                "type": spec.instance_type,
                "allowed_origins": spec.allowed_origins or [spec.home_url],
                "home_url": spec.home_url,
            },
        )
        app = IdentityApplication.model_validate(data)
        self.logger.info("clerk.application.created", application_id=app.id)
        return app

    async def get(self, ref: str) -> IdentityApplication:
        data = await self._request("GET", f"/instances/{ref}")
        return IdentityApplication.model_validate(data)

    def state_of(self, resource: IdentityApplication) -> str:
        return resource.status

    async def create_api_keys(self, application_id: str) -> ApiKeyPair:
        """Issue a publishable and a secret key for the application."""
        publishable = await self._request(
            "POST", f"/instances/{application_id}/api_keys", json={"type": "publishable"}
        )
        secret = await self._request(
            "POST", f"/instances/{application_id}/api_keys", json={"type": "secret"}
        )
        return ApiKeyPair(publishable_key=publishable["key"], secret_key=secret["key"])

    async def setup_default_configuration(self, application_id: str) -> None:
        """Email + social sign-in, verified sign-up, organizations, default JWT template."""
        social = {
            "email_address": True,
            "phone_number": False,
            "username": False,
            "social": True,
            "social_providers": DEFAULT_SOCIAL_PROVIDERS,
        }
        await self._request("PATCH", f"/instances/{application_id}/sign_in", json=social)
        await self._request(
            "PATCH",
            f"/instances/{application_id}/sign_up",
            json={**social, "require_email_verification": True},
        )
        await self._request(
            "PATCH",
            f"/instances/{application_id}/organizations",
            json={
                "enabled": True,
                "max_allowed_memberships": 100,
                "admin_delete_enabled": True,
            },
        )
        await self._request(
            "POST",
            f"/instances/{application_id}/jwt_templates",
            json={
                "name": "default",
                "claims": DEFAULT_JWT_CLAIMS,
                "lifetime": 3600,
                "allowed_clock_skew": 5,
            },
        )
        self.logger.info("clerk.application.configured", application_id=application_id)

    async def add_domain(self, application_id: str, domain: str) -> None:
        await self._request(
            "POST",
            f"/instances/{application_id}/domains",
            json={"name": domain, "is_satellite": False},
        )
        self.logger.info("clerk.domain.added", application_id=application_id, domain=domain)
