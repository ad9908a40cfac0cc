import time
from collections.abc import Awaitable, Callable
from functools import wraps

from prometheus_client import Counter, Gauge, Histogram


TRANSFER_REQUESTS_TOTAL = Counter(
    "transfer_requests_total",
    "Total number of transfer requests by outcome",
    ["outcome"],
)

TRANSFER_DURATION_SECONDS = Histogram(
    "transfer_duration_seconds",
    "Transfer processing duration",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
)

RATE_LIMIT_EXCEEDED_TOTAL = Counter(
    "rate_limit_exceeded_total",
    "Total number of rate limited requests",
    ["path"],
)

REMOTE_CALL_ATTEMPTS_TOTAL = Counter(
    "remote_call_attempts_total",
    "Outbound call attempts by destination and outcome",
    ["destination", "outcome"],
)

CIRCUIT_OPEN_REJECTIONS_TOTAL = Counter(
    "circuit_open_rejections_total",
    "Outbound calls rejected without a network attempt because the circuit was open",
    ["destination"],
)

OUTBOX_DELIVERIES_TOTAL = Counter(
    "outbox_deliveries_total",
    "Outbox delivery attempts by outcome",
    ["outcome"],
)

OUTBOX_PENDING_ENTRIES = Gauge(
    "outbox_pending_entries",
    "Number of outbox entries not yet sent or failed",
)


def track_transfer_duration[**P, R](
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration = time.perf_counter() - start
            TRANSFER_DURATION_SECONDS.observe(duration)

    return wrapper
