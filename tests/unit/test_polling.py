"""Unit tests for the shared provider polling behaviour."""

import asyncio

import httpx
import pytest
import respx

from provisioner.core.exceptions import (
    ProviderRequestError,
    ProvisioningFailedError,
    ProvisioningTimeoutError,
)
from provisioner.providers.base import PollingPolicy, ProviderClient


class ScriptedClient(ProviderClient[str, str, str]):
    """Reports each scripted state in turn, then repeats the last one."""

    provider = "scripted"
    success_states = frozenset({"READY"})
    failure_states = frozenset({"ERROR"})

    def __init__(self, states: list[str], get_delay: float = 0.0):
        super().__init__(http=httpx.AsyncClient(base_url="https://api.example.test"))
        self.states = states
        self.get_delay = get_delay
        self.polls = 0

    async def create(self, spec: str) -> str:
        return self.states[0]

    async def get(self, ref: str) -> str:
        if self.get_delay:
            await asyncio.sleep(self.get_delay)
        state = self.states[min(self.polls, len(self.states) - 1)]
        self.polls += 1
        return state

    def state_of(self, resource: str) -> str:
        return resource


class TestPollingPolicy:
    @pytest.mark.parametrize("interval,deadline", [(0, 1), (-1, 1), (1, 0), (1, -5)])
    def test_rejects_non_positive(self, interval: float, deadline: float):
        with pytest.raises(ValueError):
            PollingPolicy(interval=interval, deadline=deadline)


class TestWaitUntilReady:
    """Tests for ProviderClient.wait_until_ready."""

    @pytest.mark.asyncio
    async def test_returns_immediately_when_ready(self):
        client = ScriptedClient(["READY"])

        result = await client.wait_until_ready("ref", PollingPolicy(interval=10, deadline=1))

        assert result == "READY"
        assert client.polls == 1

    @pytest.mark.asyncio
    async def test_polls_until_success(self):
        client = ScriptedClient(["QUEUED", "BUILDING", "BUILDING", "READY"])

        result = await client.wait_until_ready("ref", PollingPolicy(interval=0.001, deadline=1))

        assert result == "READY"
        assert client.polls == 4

    @pytest.mark.asyncio
    async def test_failure_state(self):
        client = ScriptedClient(["BUILDING", "ERROR"])

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await client.wait_until_ready("ref", PollingPolicy(interval=0.001, deadline=1))

        assert exc_info.value.provider == "scripted"
        assert exc_info.value.resource_state == "ERROR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval", [0.005, 0.02, 0.5])
    async def test_timeout_regardless_of_interval(self, interval: float):
        client = ScriptedClient(["BUILDING"])

        with pytest.raises(ProvisioningTimeoutError) as exc_info:
            await client.wait_until_ready("ref", PollingPolicy(interval=interval, deadline=0.05))

        assert exc_info.value.provider == "scripted"
        assert exc_info.value.elapsed >= 0.04
        assert client.polls >= 1

    @pytest.mark.asyncio
    async def test_shorter_interval_same_outcome_more_polls(self):
        slow = ScriptedClient(["BUILDING"] * 3 + ["READY"])
        fast = ScriptedClient(["BUILDING"] * 3 + ["READY"])

        assert await slow.wait_until_ready("ref", PollingPolicy(interval=0.01, deadline=1)) == "READY"
        assert await fast.wait_until_ready("ref", PollingPolicy(interval=0.001, deadline=1)) == "READY"
        assert slow.polls == fast.polls == 4

    @pytest.mark.asyncio
    async def test_slow_get_is_bounded_by_deadline(self):
        client = ScriptedClient(["READY"], get_delay=5)

        with pytest.raises(ProvisioningTimeoutError):
            await client.wait_until_ready("ref", PollingPolicy(interval=0.01, deadline=0.05))

    @pytest.mark.asyncio
    async def test_no_task_left_behind(self):
        client = ScriptedClient(["BUILDING"])
        before = len(asyncio.all_tasks())

        with pytest.raises(ProvisioningTimeoutError):
            await client.wait_until_ready("ref", PollingPolicy(interval=0.01, deadline=0.03))

        await asyncio.sleep(0)
        assert len(asyncio.all_tasks()) == before


class TestRequest:
    """Tests for ProviderClient._request error mapping."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_body_message(self):
        respx.post("https://api.example.test/things").mock(
            return_value=httpx.Response(422, json={"message": "name already exists"})
        )
        client = ScriptedClient(["READY"])

        with pytest.raises(ProviderRequestError) as exc_info:
            await client._request("POST", "/things", json={})

        assert exc_info.value.http_status == 422
        assert exc_info.value.provider == "scripted"
        assert "name already exists" in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_nested_error_message(self):
        respx.get("https://api.example.test/things").mock(
            return_value=httpx.Response(403, json={"error": {"message": "forbidden here"}})
        )
        client = ScriptedClient(["READY"])

        with pytest.raises(ProviderRequestError) as exc_info:
            await client._request("GET", "/things")

        assert "forbidden here" in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error(self):
        respx.get("https://api.example.test/things").mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        client = ScriptedClient(["READY"])

        with pytest.raises(ProviderRequestError) as exc_info:
            await client._request("GET", "/things")

        assert exc_info.value.http_status is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body(self):
        respx.delete("https://api.example.test/things/1").mock(return_value=httpx.Response(204))
        client = ScriptedClient(["READY"])

        assert await client._request("DELETE", "/things/1") == {}
