import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any

import httpx
import structlog

from transfer_service.infrastructure.metrics import (
    CIRCUIT_OPEN_REJECTIONS_TOTAL,
    REMOTE_CALL_ATTEMPTS_TOTAL,
)


logger = structlog.get_logger()

# Failures worth retrying: no usable response was obtained. A peer that answered,
# even with a 5xx, is not one of them.
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (httpx.RequestError, TimeoutError)


class CircuitOpenError(Exception):
    """Raised when a destination's circuit is open and no attempt was made."""

    def __init__(self, destination: str, retry_in: float) -> None:
        self.destination = destination
        self.retry_in = retry_in
        super().__init__(f"Circuit open for {destination}, retry in {retry_in:.1f}s")


@dataclass(frozen=True)
class CallPolicy:
    timeout_seconds: float = 2.0
    max_retries: int = 0
    backoff_base_seconds: float = 0.2

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds cannot be negative")


def backoff_delay(attempt: int, base_seconds: float) -> float:
    """Delay before the retry that follows the 1-based `attempt`."""
    return base_seconds * (2 ** (attempt - 1))


@dataclass
class CircuitState:
    failures: int = 0
    last_failure_at: float = 0.0


class CircuitBreakerRegistry:
    """
    Per-destination failure counters shared by every outbound call in the process.

    A destination is open once it has `open_after` consecutive failures and the
    last one happened less than `cool_down_seconds` ago. After the cool-down the
    next call goes through; success resets the counter, failure re-opens it.

    State is process-local. Several instances of the service each keep their
    own view of every destination.
    """

    def __init__(
        self,
        open_after: int = 5,
        cool_down_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if open_after < 1:
            raise ValueError("open_after must be at least 1")
        self._open_after = open_after
        self._cool_down_seconds = cool_down_seconds
        self._clock = clock
        self._states: dict[str, CircuitState] = {}

    @property
    def open_after(self) -> int:
        return self._open_after

    @property
    def cool_down_seconds(self) -> float:
        return self._cool_down_seconds

    def state(self, destination: str) -> CircuitState:
        return replace(self._states.get(destination, CircuitState()))

    def remaining_cool_down(self, destination: str) -> float:
        state = self._states.get(destination)
        if state is None or state.failures < self._open_after:
            return 0.0
        elapsed = self._clock() - state.last_failure_at
        return max(0.0, self._cool_down_seconds - elapsed)

    def is_open(self, destination: str) -> bool:
        return self.remaining_cool_down(destination) > 0

    def record_failure(self, destination: str) -> None:
        state = self._states.setdefault(destination, CircuitState())
        state.failures += 1
        state.last_failure_at = self._clock()
        if state.failures == self._open_after:
            logger.warning(
                "circuit_opened",
                destination=destination,
                failures=state.failures,
                cool_down_seconds=self._cool_down_seconds,
            )
        elif state.failures > self._open_after:
            logger.warning("circuit_reopened", destination=destination, failures=state.failures)

    def record_success(self, destination: str) -> None:
        state = self._states.get(destination)
        if state is None or state.failures == 0:
            return
        if state.failures >= self._open_after:
            logger.info("circuit_closed", destination=destination)
        self._states[destination] = CircuitState()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {
            destination: {
                "failures": state.failures,
                "open": self.is_open(destination),
                "retry_in": self.remaining_cool_down(destination),
            }
            for destination, state in self._states.items()
        }


class ResilientHttpClient:
    """
    Outbound HTTP with per-attempt timeout, exponential backoff and circuit breaking.

    Only failures that leave no usable response are retried, such as refused
    connections, attempt timeouts and undecodable bodies. A response with a
    failure status counts against the circuit but is returned to the caller
    immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        breakers: CircuitBreakerRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._breakers = breakers
        self._sleep = sleep

    async def call(
        self,
        method: str,
        url: str,
        *,
        policy: CallPolicy | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        policy = policy or CallPolicy()
        log = logger.bind(destination=url, method=method)

        if self._breakers.is_open(url):
            retry_in = self._breakers.remaining_cool_down(url)
            CIRCUIT_OPEN_REJECTIONS_TOTAL.labels(destination=url).inc()
            log.warning("remote_call_rejected_circuit_open", retry_in=retry_in)
            raise CircuitOpenError(url, retry_in)

        total_attempts = policy.max_retries + 1
        attempt = 1
        while True:
            try:
                async with asyncio.timeout(policy.timeout_seconds):
                    response = await self._client.request(method, url, json=json, headers=headers)
                break
            except TRANSPORT_ERRORS as e:
                self._breakers.record_failure(url)
                REMOTE_CALL_ATTEMPTS_TOTAL.labels(destination=url, outcome="transport_error").inc()
                if attempt == total_attempts:
                    log.warning(
                        "remote_call_failed",
                        attempts=attempt,
                        error=repr(e),
                    )
                    raise
                delay = backoff_delay(attempt, policy.backoff_base_seconds)
                log.warning(
                    "remote_call_retry_scheduled",
                    attempt=attempt,
                    next_delay_seconds=delay,
                    error=repr(e),
                )
                await self._sleep(delay)
                attempt += 1

        if response.is_success:
            self._breakers.record_success(url)
            REMOTE_CALL_ATTEMPTS_TOTAL.labels(destination=url, outcome="success").inc()
        else:
            self._breakers.record_failure(url)
            REMOTE_CALL_ATTEMPTS_TOTAL.labels(destination=url, outcome="rejected").inc()
            log.info("remote_call_rejected", attempt=attempt, status_code=response.status_code)
        return response
