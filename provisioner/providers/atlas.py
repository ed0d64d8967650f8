"""MongoDB Atlas database-cluster client."""

from dataclasses import dataclass
from urllib.parse import quote_plus

import httpx
from pydantic import BaseModel, ConfigDict, Field

from provisioner.models.config import AtlasCredentials
from provisioner.providers.base import ProviderClient
from provisioner.providers.cache import fingerprint

ATLAS_API_URL = "https://cloud.mongodb.com/api/atlas/v1.0"


@dataclass(frozen=True)
class ClusterRef:
    group_id: str
    name: str

    def __str__(self) -> str:
        return f"{self.group_id}/{self.name}"


class AtlasProject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    org_id: str | None = Field(default=None, alias="orgId")


class ClusterSpec(BaseModel):
    group_id: str
    name: str
    region: str = "US_EAST_1"
    tier: str = "M10"
    provider: str = "AWS"
    mongodb_major_version: str = "7.0"


class ConnectionStrings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    standard: str | None = None
    standard_srv: str | None = Field(default=None, alias="standardSrv")


class Cluster(BaseModel):
    """A cluster as Atlas reports it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    group_id: str | None = Field(default=None, alias="groupId")
    state_name: str = Field(default="CREATING", alias="stateName")
    connection_strings: ConnectionStrings = Field(
        default_factory=ConnectionStrings, alias="connectionStrings"
    )


class AtlasClient(ProviderClient[ClusterSpec, ClusterRef, Cluster]):
    """Creates Atlas projects, clusters, database users and access-list entries.

    Cluster creation is asynchronous and typically takes several minutes;
    ``stateName`` moves from ``CREATING`` to ``IDLE`` when it is usable.
    """

    provider = "mongodb_atlas"
    success_states = frozenset({"IDLE"})
    failure_states = frozenset({"DELETING", "DELETED"})

    @staticmethod
    def cache_key(credentials: AtlasCredentials) -> str:
        return fingerprint(credentials.public_key, credentials.private_key)

    @staticmethod
    def http_client(credentials: AtlasCredentials, timeout: float = 30.0) -> httpx.AsyncClient:
        # Atlas programmatic API keys authenticate with HTTP digest
        return httpx.AsyncClient(
            base_url=ATLAS_API_URL,
            auth=httpx.DigestAuth(credentials.public_key, credentials.private_key),
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    async def create_project(self, name: str, org_id: str) -> AtlasProject:
        data = await self._request("POST", "/groups", json={"name": name, "orgId": org_id})
        project = AtlasProject.model_validate(data)
        self.logger.info("atlas.project.created", group_id=project.id, name=project.name)
        return project

    async def create(self, spec: ClusterSpec) -> Cluster:
        """Request a replica-set cluster in the project."""
        data = await self._request(
            "POST",
            f"/groups/{spec.group_id}/clusters",
            json={
                "name": spec.name,
                "clusterType": "REPLICASET",
                "mongoDBMajorVersion": spec.mongodb_major_version,
                "providerSettings": {
                    "providerName": spec.provider,
                    "regionName": spec.region,
                    "instanceSizeName": spec.tier,
                },
            },
        )
        cluster = Cluster.model_validate(data)
        self.logger.info(
            "atlas.cluster.requested",
            group_id=spec.group_id,
            cluster=cluster.name,
            state=cluster.state_name,
        )
        return cluster

    async def get(self, ref: ClusterRef) -> Cluster:
        data = await self._request("GET", f"/groups/{ref.group_id}/clusters/{ref.name}")
        return Cluster.model_validate(data)

    def state_of(self, resource: Cluster) -> str:
        return resource.state_name

    async def create_database_user(
        self, group_id: str, username: str, password: str, database: str
    ) -> None:
        """Create a user with read/write and admin roles on one database."""
        await self._request(
            "POST",
            f"/groups/{group_id}/databaseUsers",
            json={
                "databaseName": "admin",
                "username": username,
                "password": password,
                "roles": [
                    {"roleName": "readWrite", "databaseName": database},
                    {"roleName": "dbAdmin", "databaseName": database},
                ],
            },
        )
        self.logger.info("atlas.user.created", group_id=group_id, username=username)

    async def add_access_list_entry(
        self,
        group_id: str,
        cidr_block: str = "0.0.0.0/0",
        comment: str = "Allow access from anywhere",
    ) -> None:
        await self._request(
            "POST",
            f"/groups/{group_id}/accessList",
            json=[{"cidrBlock": cidr_block, "comment": comment}],
        )

    @staticmethod
    def connection_string(cluster: Cluster, username: str, password: str, database: str) -> str:
        """Build an SRV connection string with credentials embedded."""
        srv = cluster.connection_strings.standard_srv
        if not srv:
            raise ValueError(f"Cluster {cluster.name} has no SRV connection string yet")
        scheme, _, host = srv.partition("://")
        credentials = f"{quote_plus(username)}:{quote_plus(password)}"
        return f"{scheme}://{credentials}@{host}/{database}?retryWrites=true&w=majority"
