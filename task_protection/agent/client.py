"""
Protection API Client — talks to the ECS container agent's task protection
endpoint.

Behavioral Contract:
- One operation: set_protection(enabled, duration_minutes).
- Any 2xx is success and returns the decoded body. Other statuses and
  transport errors raise ProtectionRequestError, which the reconciler
  turns into a rejection.
- Timeouts and connection retries belong here, not in the reconciler.
"""

import logging
import math
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

PROTECTION_PATH = "/task-protection/v1/state"


class ProtectionRequestError(Exception):
    """Raised when the agent refuses or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProtectionClient(Protocol):
    async def set_protection(
        self, enabled: bool, duration_minutes: Optional[float] = None
    ) -> object:
        ...


class EcsAgentClient:
    """httpx client for PUT <agent>/task-protection/v1/state."""

    def __init__(
        self,
        agent_uri: str,
        timeout_seconds: float = 5.0,
        retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.agent_uri = agent_uri.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.agent_uri,
            timeout=timeout_seconds,
            transport=transport or httpx.AsyncHTTPTransport(retries=retries),
        )

    async def set_protection(
        self, enabled: bool, duration_minutes: Optional[float] = None
    ) -> dict:
        body: dict = {"ProtectionEnabled": enabled}
        if enabled:
            if duration_minutes is None or duration_minutes <= 0:
                raise ValueError("Enabling protection requires a positive duration")
            body["ExpiresInMinutes"] = _as_minutes(duration_minutes)

        try:
            response = await self._client.put(PROTECTION_PATH, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProtectionRequestError(
                f"Agent answered HTTP {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProtectionRequestError(f"Agent request failed: {e!r}") from e

        payload = _decode(response)
        logger.debug("Agent protection response: %s", payload)
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()


def _as_minutes(duration_minutes: float) -> int:
    """The agent only accepts whole minutes; round up so the lease is never short."""
    return math.ceil(duration_minutes)


def _decode(response: httpx.Response) -> dict:
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
