"""Base class for provider API clients."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from provisioner.core.exceptions import (
    ProviderRequestError,
    ProvisioningFailedError,
    ProvisioningTimeoutError,
)
from provisioner.utils.logging import get_logger

SpecT = TypeVar("SpecT")
RefT = TypeVar("RefT")
ResourceT = TypeVar("ResourceT")


@dataclass(frozen=True)
class PollingPolicy:
    """How often to poll and how long to wait, in seconds."""

    interval: float
    deadline: float

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.deadline <= 0:
            raise ValueError("deadline must be positive")


class ProviderClient(ABC, Generic[SpecT, RefT, ResourceT]):
    """Wraps one provider's HTTP API behind create / get / wait_until_ready.

    Subclasses declare the provider's state vocabulary:
    - success_states: states that mean the resource is usable
    - failure_states: states the resource can never recover from

    Providers that create synchronously report a success state from the
    first ``get``, so ``wait_until_ready`` returns on the first poll.
    """

    provider: str = "provider"
    success_states: frozenset[str] = frozenset()
    failure_states: frozenset[str] = frozenset()

    def __init__(self, http: httpx.AsyncClient):
        self.http = http
        self.logger = get_logger(f"providers.{self.provider}")

    @abstractmethod
    async def create(self, spec: SpecT) -> ResourceT:
        """Create the provider's primary resource."""

    @abstractmethod
    async def get(self, ref: RefT) -> ResourceT:
        """Read the resource's current state."""

    @abstractmethod
    def state_of(self, resource: ResourceT) -> str:
        """Extract the provider state field from a resource."""

    async def wait_until_ready(self, ref: RefT, policy: PollingPolicy) -> ResourceT:
        """Poll ``get`` until the resource reaches a terminal state.

        Raises:
            ProvisioningFailedError: the resource reached a failure state
            ProvisioningTimeoutError: the deadline passed first
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            return await asyncio.wait_for(
                self._poll(ref, policy.interval), timeout=policy.deadline
            )
        except asyncio.TimeoutError:
            elapsed = loop.time() - started
            self.logger.warning(
                "provider.poll.timeout",
                provider=self.provider,
                ref=str(ref),
                elapsed=round(elapsed, 2),
            )
            raise ProvisioningTimeoutError(self.provider, elapsed) from None

    async def _poll(self, ref: RefT, interval: float) -> ResourceT:
        polls = 0
        while True:
            resource = await self.get(ref)
            polls += 1
            state = self.state_of(resource)
            if state in self.success_states:
                self.logger.info(
                    "provider.poll.ready",
                    provider=self.provider,
                    ref=str(ref),
                    polls=polls,
                )
                return resource
            if state in self.failure_states:
                raise ProvisioningFailedError(self.provider, state)
            self.logger.debug(
                "provider.poll.waiting",
                provider=self.provider,
                ref=str(ref),
                state=state,
            )
            await asyncio.sleep(interval)

    async def _request(
        self,
        method: str,
        url: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Non-2xx responses and transport failures become ProviderRequestError.
        """
        try:
            response = await self.http.request(method, url, json=json, params=params)
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.provider, None, str(e) or type(e).__name__) from e

        if response.is_error:
            message = self._error_message(response)
            self.logger.warning(
                "provider.request.failed",
                provider=self.provider,
                method=method,
                url=url,
                status_code=response.status_code,
                error=message,
            )
            raise ProviderRequestError(self.provider, response.status_code, message)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _error_message(self, response: httpx.Response) -> str:
        """Pull a human-readable message out of an error response."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:500] or response.reason_phrase
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
            for key in ("message", "detail", "error_description"):
                if body.get(key):
                    return str(body[key])
            errors = body.get("errors")
            if isinstance(errors, list) and errors:
                first = errors[0]
                if isinstance(first, dict):
                    return str(first.get("message") or first)
                return str(first)
        return response.reason_phrase
