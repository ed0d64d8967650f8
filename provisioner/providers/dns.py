"""Cloudflare DNS client."""

from dataclasses import dataclass

import httpx
from pydantic import BaseModel

from provisioner.core.exceptions import ProviderRequestError
from provisioner.models.config import CloudflareCredentials
from provisioner.providers.base import ProviderClient
from provisioner.providers.cache import fingerprint

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"

# Where Vercel expects custom domains to point
HOSTING_CNAME_TARGET = "cname.vercel-dns.com"


@dataclass(frozen=True)
class RecordRef:
    zone_id: str
    record_id: str

    def __str__(self) -> str:
        return f"{self.zone_id}/{self.record_id}"


class DnsRecordSpec(BaseModel):
    zone_id: str
    type: str
    name: str
    content: str
    ttl: int = 300
    proxied: bool = False


class DnsRecord(BaseModel):
    id: str
    type: str
    name: str
    content: str
    ttl: int = 300

    @property
    def state(self) -> str:
        # Cloudflare records are live once the API accepts them
        return "active"


class CloudflareDnsClient(ProviderClient[DnsRecordSpec, RecordRef, DnsRecord]):
    """Creates DNS records in a Cloudflare zone."""

    provider = "cloudflare"
    success_states = frozenset({"active"})

    @staticmethod
    def cache_key(credentials: CloudflareCredentials) -> str:
        return fingerprint(credentials.api_token)

    @staticmethod
    def http_client(
        credentials: CloudflareCredentials, timeout: float = 30.0
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=CLOUDFLARE_API_URL,
            headers={"Authorization": f"Bearer {credentials.api_token}"},
            timeout=timeout,
        )

    async def zone_id(self, domain: str) -> str:
        """Find the zone that serves the domain."""
        # Zones are registered by apex; a subdomain resolves through its parent
        labels = domain.split(".")
        apex = ".".join(labels[-2:]) if len(labels) > 2 else domain
        data = await self._request("GET", "/zones", params={"name": apex})
        zones = data.get("result") or []
        if not zones:
            raise ProviderRequestError(self.provider, 404, f"zone for {domain} not found")
        return zones[0]["id"]

    async def create(self, spec: DnsRecordSpec) -> DnsRecord:
        data = await self._request(
            "POST",
            f"/zones/{spec.zone_id}/dns_records",
            json=spec.model_dump(exclude={"zone_id"}),
        )
        record = DnsRecord.model_validate(data["result"])
        self.logger.info(
            "cloudflare.record.created",
            type=record.type,
            name=record.name,
            content=record.content,
        )
        return record

    async def get(self, ref: RecordRef) -> DnsRecord:
        data = await self._request("GET", f"/zones/{ref.zone_id}/dns_records/{ref.record_id}")
        return DnsRecord.model_validate(data["result"])

    def state_of(self, resource: DnsRecord) -> str:
        return resource.state

    async def point_to_hosting(
        self, domain: str, target: str = HOSTING_CNAME_TARGET
    ) -> list[DnsRecord]:
        """Create the apex and ``www`` CNAME records for a hosted domain."""
        zone_id = await self.zone_id(domain)
        records = []
        for name in (domain, f"www.{domain}"):
            records.append(
                await self.create(
                    DnsRecordSpec(zone_id=zone_id, type="CNAME", name=name, content=target)
                )
            )
        return records
