"""Integration tests for the HTTP API."""

import asyncio

import pytest
from httpx import AsyncClient

from provisioner.api import deps
from provisioner.core.launcher import DeploymentLauncher
from provisioner.main import app

VALID_REQUEST = {"project_name": "my-app", "description": "A test application"}


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["running_deployments"] == 0
        assert data["missing_required_providers"] == []
        assert "version" in data
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_degraded_without_required_credentials(self, client: AsyncClient, test_settings):
        unconfigured = test_settings.model_copy(update={"vercel_token": ""})

        async def override_settings():
            return unconfigured

        app.dependency_overrides[deps.get_app_settings] = override_settings
        response = await client.get("/v1/health")

        data = response.json()
        assert data["status"] == "degraded"
        assert data["missing_required_providers"] == ["vercel"]

    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get("/v1/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Response-Time"].endswith("ms")


class TestDeploymentEndpoints:
    """Tests for deployment endpoints."""

    @pytest.mark.asyncio
    async def test_submit_deployment(self, client: AsyncClient, launcher: DeploymentLauncher):
        response = await client.post("/v1/deployments", json=VALID_REQUEST)

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "started"
        assert data["deployment_id"].startswith("dep_")

        final = await launcher.wait(data["deployment_id"])
        assert final.status == "completed"

        response = await client.get(f"/v1/deployments/{data['deployment_id']}")
        assert response.status_code == 200
        record = response.json()
        assert record["status"] == "completed"
        assert [s["id"] for s in record["steps"]] == [
            "repository",
            "hosting",
            "database",
            "identity",
            "cloud",
        ]
        assert record["resources"]["repository"]["url"] == "https://github.com/octo/my-app"
        assert record["resources"]["hosting"]["url"] == "https://my-app.vercel.app"
        assert record["resources"]["database"] is None

    @pytest.mark.asyncio
    async def test_submit_with_missing_configuration(self, client: AsyncClient):
        response = await client.post(
            "/v1/deployments",
            json={"project_name": "", "description": "", "template": "rails"},
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "MISSING_CONFIGURATION"
        fields = {f["field"] for f in error["details"]["fields"]}
        assert fields == {"project_name", "description", "template"}

    @pytest.mark.asyncio
    async def test_submit_with_malformed_body(self, client: AsyncClient):
        response = await client.post(
            "/v1/deployments",
            json={**VALID_REQUEST, "features": {"database": "sometimes"}},
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION"
        assert error["details"]["fields"][0]["field"] == "features.database"

    @pytest.mark.asyncio
    async def test_rejected_request_creates_nothing(self, client: AsyncClient):
        await client.post("/v1/deployments", json={"project_name": "Not Valid"})

        response = await client.get("/v1/deployments")
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_get_unknown_deployment(self, client: AsyncClient):
        response = await client.get("/v1/deployments/dep_missing")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "DEPLOYMENT_NOT_FOUND"
        assert error["details"]["deployment_id"] == "dep_missing"

    @pytest.mark.asyncio
    async def test_stream_unknown_deployment(self, client: AsyncClient):
        response = await client.get("/v1/deployments/dep_missing/stream")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_queries_are_idempotent(self, client: AsyncClient, launcher: DeploymentLauncher):
        response = await client.post("/v1/deployments", json=VALID_REQUEST)
        deployment_id = response.json()["deployment_id"]
        await launcher.wait(deployment_id)

        first = await client.get(f"/v1/deployments/{deployment_id}")
        second = await client.get(f"/v1/deployments/{deployment_id}")

        assert first.json() == second.json()

    @pytest.mark.asyncio
    async def test_list_deployments(self, client: AsyncClient, launcher: DeploymentLauncher):
        ids = []
        for name in ("first-app", "second-app"):
            response = await client.post(
                "/v1/deployments", json={**VALID_REQUEST, "project_name": name}
            )
            ids.append(response.json()["deployment_id"])
        for deployment_id in ids:
            await launcher.wait(deployment_id)

        response = await client.get("/v1/deployments", params={"limit": 1})
        data = response.json()
        assert data["total"] == 2
        assert len(data["deployments"]) == 1
        assert data["limit"] == 1

        response = await client.get("/v1/deployments", params={"status": "failed"})
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_cancel_running_deployment(
        self, client: AsyncClient, launcher: DeploymentLauncher, providers
    ):
        providers.hosting_client.block = asyncio.Event()
        response = await client.post("/v1/deployments", json=VALID_REQUEST)
        deployment_id = response.json()["deployment_id"]
        await asyncio.wait_for(providers.hosting_client.started.wait(), timeout=1)

        response = await client.post(f"/v1/deployments/{deployment_id}/cancel")

        assert response.status_code == 202
        assert response.json() == {"deployment_id": deployment_id, "status": "failed"}
        record = (await client.get(f"/v1/deployments/{deployment_id}")).json()
        assert record["error"] == "Deployment cancelled"
        assert record["error_step"] == "hosting"

    @pytest.mark.asyncio
    async def test_cancel_finished_deployment(
        self, client: AsyncClient, launcher: DeploymentLauncher
    ):
        response = await client.post("/v1/deployments", json=VALID_REQUEST)
        deployment_id = response.json()["deployment_id"]
        await launcher.wait(deployment_id)

        response = await client.post(f"/v1/deployments/{deployment_id}/cancel")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DEPLOYMENT_CONFLICT"


class TestConfigEndpoint:
    """Tests for provider configuration status."""

    @pytest.mark.asyncio
    async def test_config_status(self, client: AsyncClient):
        response = await client.get("/v1/config/status")

        assert response.status_code == 200
        data = response.json()
        assert data["has_minimum_config"] is True
        services = {s["provider"]: s for s in data["services"]}
        assert services["github"]["configured"] is True
        assert services["mongodb_atlas"]["configured"] is False
        assert "MONGODB_API_KEY" in services["mongodb_atlas"]["env_vars"]
        assert data["summary"]["required_configured"] == 2
        assert data["summary"]["missing_required"] == []

    @pytest.mark.asyncio
    async def test_secrets_never_exposed(self, client: AsyncClient):
        response = await client.get("/v1/config/status")

        assert "ghp_test" not in response.text
        assert "vercel_test" not in response.text


class TestTemplateEndpoints:
    """Tests for the starter template catalogue."""

    @pytest.mark.asyncio
    async def test_list_templates(self, client: AsyncClient):
        response = await client.get("/v1/templates")

        assert response.status_code == 200
        templates = {t["id"]: t for t in response.json()}
        assert "minimal" in templates
        assert "package.json" not in templates["minimal"]["files"]
        saas_env = [e["key"] for e in templates["nextjs-saas"]["environment_variables"]]
        assert "MONGODB_URI" in saas_env

    @pytest.mark.asyncio
    async def test_preview_template(self, client: AsyncClient):
        response = await client.get(
            "/v1/templates/minimal/preview", params={"project_name": "demo-app"}
        )

        assert response.status_code == 200
        files = response.json()
        assert '"name": "demo-app"' in files["package.json"]

    @pytest.mark.asyncio
    async def test_preview_unknown_template(self, client: AsyncClient):
        response = await client.get("/v1/templates/rails/preview")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"
