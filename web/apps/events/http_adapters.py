"""HTTP publisher for the event bus, with retries and a circuit breaker.

``HttpEventPublisher`` posts each event to ``EVENTS_BASE_URL/publish`` as
``{"exchange", "routing_key", "payload"}`` using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker shared by all publisher instances so an unhealthy bus is
  not hammered, with HALF_OPEN probing after a timeout.
- Exponential backoff retries for transport errors and 5xx responses.

The publisher owns its ``httpx.Client``: create it at startup (or per unit
of work) and ``close()`` it when done, or use it as a context manager.
"""

import logging
import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from apps.common.errors import DependencyUnavailable
from gateway.middleware import REQUEST_ID_CTX

from .domain import DomainEvent, EventPublisherPort

logger = logging.getLogger(__name__)


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe; only one probe may be in
      flight; a failed probe opens the circuit again.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current state, applying the OPEN -> HALF_OPEN timeout."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check the breaker before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            DependencyUnavailable: If the circuit is OPEN or a HALF_OPEN probe
                is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise DependencyUnavailable(self.name, "CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise DependencyUnavailable(self.name, "CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        """Release the HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False

    def reset(self):
        self.on_success()


_bus_cb = CircuitBreaker(
    "event-bus",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers with ``X-Request-ID`` (when inside a request) plus extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


# ---------------- Publisher ---------------- #

class HttpEventPublisher(EventPublisherPort):
    """Publish events to the HTTP event bus."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 breaker: CircuitBreaker | None = None):
        self.base_url = (base_url or settings.EVENTS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.breaker = breaker or _bus_cb
        self._client: httpx.Client | None = httpx.Client(timeout=self.timeout)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def publish(self, event: DomainEvent) -> None:
        """POST one event, retrying transport errors and 5xx with backoff.

        A 2xx response is success. 4xx responses mean the bus rejected the
        event and are not retried.

        Raises:
            DependencyUnavailable: Circuit open, publisher closed, retries
                exhausted, or the bus rejected the event.
        """
        if self._client is None:
            raise DependencyUnavailable(self.breaker.name, "publisher is closed")

        body = {"exchange": event.exchange, "routing_key": event.routing_key, "payload": event.payload()}
        max_attempts, backoff = _retry_policy()
        tries = 0

        state = self.breaker.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            while True:
                resp = None
                exc = None
                try:
                    resp = self._client.post(f"{self.base_url}/publish", json=body, headers=headers)
                    if 200 <= resp.status_code < 300:
                        self.breaker.on_success()
                        return
                    if not _should_retry(resp, None):
                        # the bus is up but refused this event
                        self.breaker.on_success()
                        raise DependencyUnavailable(
                            self.breaker.name, f"event rejected with HTTP {resp.status_code}"
                        )
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_attempts:
                    self.breaker.on_failure()
                    reason = str(exc) if exc else f"HTTP {resp.status_code}"
                    logger.warning(
                        "event publish failed",
                        extra={"routing_key": event.routing_key, "tries": tries, "reason": reason},
                    )
                    raise DependencyUnavailable(self.breaker.name, reason) from exc

                sleep_s = backoff * (2 ** (tries - 1))
                cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                time.sleep(min(sleep_s, cap))
        finally:
            self.breaker.on_finish()
