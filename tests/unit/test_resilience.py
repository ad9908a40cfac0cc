"""Unit tests for retry, timeout and circuit breaking of outbound calls."""

import asyncio

import httpx
import pytest

from transfer_service.infrastructure.resilience import (
    CallPolicy,
    CircuitBreakerRegistry,
    CircuitOpenError,
    ResilientHttpClient,
    backoff_delay,
)


URL = "http://auth.test/authorize"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedTransport:
    """Plays back a list of outcomes: an int status code or an exception."""

    def __init__(self, *outcomes: int | Exception) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={}, request=request)


def make_client(
    transport: ScriptedTransport,
    breakers: CircuitBreakerRegistry | None = None,
    sleep: RecordingSleep | None = None,
) -> ResilientHttpClient:
    return ResilientHttpClient(
        httpx.AsyncClient(transport=httpx.MockTransport(transport)),
        breakers or CircuitBreakerRegistry(),
        sleep=sleep or RecordingSleep(),
    )


class TestCallPolicy:
    """Tests for CallPolicy validation and backoff schedule."""

    def test_defaults(self) -> None:
        policy = CallPolicy()
        assert policy.timeout_seconds == 2.0
        assert policy.max_retries == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"timeout_seconds": 0},
            {"max_retries": -1},
            {"backoff_base_seconds": -0.1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            CallPolicy(**kwargs)  # type: ignore[arg-type]

    def test_backoff_doubles(self) -> None:
        assert [backoff_delay(n, 0.2) for n in (1, 2, 3)] == pytest.approx([0.2, 0.4, 0.8])


class TestRetries:
    """Tests for ResilientHttpClient retry behavior."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self) -> None:
        transport = ScriptedTransport(200)
        sleep = RecordingSleep()
        client = make_client(transport, sleep=sleep)

        response = await client.call("GET", URL, policy=CallPolicy(max_retries=3))

        assert response.status_code == 200
        assert transport.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transport_errors_retried_with_exponential_backoff(self) -> None:
        transport = ScriptedTransport(httpx.ConnectError("refused"))
        sleep = RecordingSleep()
        client = make_client(transport, sleep=sleep)

        with pytest.raises(httpx.ConnectError):
            await client.call("GET", URL, policy=CallPolicy(max_retries=3, backoff_base_seconds=0.2))

        assert transport.calls == 4
        assert sleep.delays == pytest.approx([0.2, 0.4, 0.8])

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self) -> None:
        transport = ScriptedTransport(httpx.ReadTimeout("slow"), 200)
        client = make_client(transport)

        response = await client.call("GET", URL, policy=CallPolicy(max_retries=2))

        assert response.status_code == 200
        assert transport.calls == 2

    @pytest.mark.asyncio
    async def test_undecodable_response_is_retried_and_counted(self) -> None:
        transport = ScriptedTransport(httpx.DecodingError("invalid gzip stream"), 200)
        breakers = CircuitBreakerRegistry()
        client = make_client(transport, breakers=breakers)

        response = await client.call("GET", URL, policy=CallPolicy(max_retries=1))

        assert response.status_code == 200
        assert transport.calls == 2
        assert breakers.state(URL).failures == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_count_every_attempt(self) -> None:
        transport = ScriptedTransport(httpx.DecodingError("invalid gzip stream"))
        breakers = CircuitBreakerRegistry(open_after=10)
        client = make_client(transport, breakers=breakers)

        with pytest.raises(httpx.DecodingError):
            await client.call("GET", URL, policy=CallPolicy(max_retries=2))

        assert transport.calls == 3
        assert breakers.state(URL).failures == 3

    @pytest.mark.asyncio
    async def test_failure_status_is_returned_without_retry(self) -> None:
        """A peer that answered is not retried, even with a 5xx."""
        transport = ScriptedTransport(503)
        client = make_client(transport)

        response = await client.call("GET", URL, policy=CallPolicy(max_retries=3))

        assert response.status_code == 503
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_attempt_deadline_counts_as_transport_failure(self) -> None:
        async def hang(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200)

        breakers = CircuitBreakerRegistry()
        client = ResilientHttpClient(
            httpx.AsyncClient(transport=httpx.MockTransport(hang)),
            breakers,
            sleep=RecordingSleep(),
        )

        with pytest.raises(TimeoutError):
            await client.call("GET", URL, policy=CallPolicy(timeout_seconds=0.01, max_retries=1))

        assert breakers.state(URL).failures == 2


class TestCircuitBreaker:
    """Tests for CircuitBreakerRegistry and its use by ResilientHttpClient."""

    def test_opens_after_consecutive_failures(self) -> None:
        clock = FakeClock()
        breakers = CircuitBreakerRegistry(open_after=3, cool_down_seconds=10.0, clock=clock)

        for _ in range(2):
            breakers.record_failure(URL)
        assert breakers.is_open(URL) is False

        breakers.record_failure(URL)
        assert breakers.is_open(URL) is True
        assert breakers.remaining_cool_down(URL) == pytest.approx(10.0)

    def test_half_open_after_cool_down(self) -> None:
        clock = FakeClock()
        breakers = CircuitBreakerRegistry(open_after=1, cool_down_seconds=10.0, clock=clock)
        breakers.record_failure(URL)

        clock.advance(10.0)

        assert breakers.is_open(URL) is False

    def test_success_resets_counter(self) -> None:
        breakers = CircuitBreakerRegistry(open_after=2)
        breakers.record_failure(URL)
        breakers.record_success(URL)
        breakers.record_failure(URL)

        assert breakers.state(URL).failures == 1
        assert breakers.is_open(URL) is False

    def test_destinations_are_independent(self) -> None:
        breakers = CircuitBreakerRegistry(open_after=1)
        breakers.record_failure(URL)

        assert breakers.is_open(URL) is True
        assert breakers.is_open("http://notify.test/send") is False

    def test_snapshot(self) -> None:
        breakers = CircuitBreakerRegistry(open_after=1)
        breakers.record_failure(URL)

        snapshot = breakers.snapshot()

        assert snapshot[URL]["failures"] == 1
        assert snapshot[URL]["open"] is True

    def test_open_after_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreakerRegistry(open_after=0)

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_without_network_attempt(self) -> None:
        clock = FakeClock()
        breakers = CircuitBreakerRegistry(open_after=5, cool_down_seconds=10.0, clock=clock)
        transport = ScriptedTransport(httpx.ConnectError("refused"))
        client = make_client(transport, breakers=breakers)

        with pytest.raises(httpx.ConnectError):
            await client.call("GET", URL, policy=CallPolicy(max_retries=4))
        assert transport.calls == 5

        with pytest.raises(CircuitOpenError) as exc_info:
            await client.call("GET", URL, policy=CallPolicy(max_retries=4))

        assert transport.calls == 5
        assert exc_info.value.destination == URL
        assert exc_info.value.retry_in == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_trial_call_after_cool_down(self) -> None:
        clock = FakeClock()
        breakers = CircuitBreakerRegistry(open_after=1, cool_down_seconds=10.0, clock=clock)
        transport = ScriptedTransport(500, 200)
        client = make_client(transport, breakers=breakers)

        await client.call("GET", URL)
        assert breakers.is_open(URL) is True

        clock.advance(10.0)
        response = await client.call("GET", URL)

        assert response.status_code == 200
        assert breakers.state(URL).failures == 0

    @pytest.mark.asyncio
    async def test_failed_trial_reopens(self) -> None:
        clock = FakeClock()
        breakers = CircuitBreakerRegistry(open_after=1, cool_down_seconds=10.0, clock=clock)
        transport = ScriptedTransport(500)
        client = make_client(transport, breakers=breakers)

        await client.call("GET", URL)
        clock.advance(10.0)
        await client.call("GET", URL)

        assert breakers.is_open(URL) is True
        assert transport.calls == 2
