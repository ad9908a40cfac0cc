import httpx

from transfer_service.domain.models import OutboxEntry
from transfer_service.infrastructure.resilience import CallPolicy, ResilientHttpClient


class NotificationClient:
    """Delivers outbox entries to the external notification service."""

    def __init__(self, http: ResilientHttpClient, url: str, policy: CallPolicy) -> None:
        self._http = http
        self._url = url
        self._policy = policy

    async def send(self, entry: OutboxEntry) -> httpx.Response:
        return await self._http.call(
            "POST",
            self._url,
            policy=self._policy,
            json=entry.payload(),
            headers={"Content-Type": "application/json"},
        )
