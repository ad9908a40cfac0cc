from typing import Any

import httpx
import structlog

from transfer_service.domain.exceptions import AuthorizationUnavailableError
from transfer_service.infrastructure.resilience import (
    TRANSPORT_ERRORS,
    CallPolicy,
    CircuitOpenError,
    ResilientHttpClient,
)


logger = structlog.get_logger()


def is_approved(response: httpx.Response) -> bool:
    """Approval needs both status == "success" and data.authorization is true."""
    try:
        body: Any = response.json()
    except ValueError:
        return False
    if not isinstance(body, dict):
        return False
    data = body.get("data")
    return body.get("status") == "success" and isinstance(data, dict) and data.get("authorization") is True


class AuthorizationClient:
    """Asks the external authorization service whether a transfer may proceed."""

    def __init__(self, http: ResilientHttpClient, url: str, policy: CallPolicy) -> None:
        self._http = http
        self._url = url
        self._policy = policy

    async def authorize(self) -> bool:
        """Return True only on explicit approval.

        Raises AuthorizationUnavailableError when no response could be obtained.
        """
        try:
            response = await self._http.call("GET", self._url, policy=self._policy)
        except CircuitOpenError as e:
            raise AuthorizationUnavailableError("circuit_open") from e
        except TRANSPORT_ERRORS as e:
            logger.warning("authorization_unreachable", url=self._url, error=repr(e))
            raise AuthorizationUnavailableError(type(e).__name__) from e

        approved = is_approved(response)
        if not approved:
            logger.info("authorization_denied", status_code=response.status_code)
        return approved
