"""
Persistent store connection supervision.
"""

import asyncio
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, calculate_delay


class ConnectionState(Enum):
    """Connection lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting_down"  # Terminal


class ConnectionSupervisor:
    """Owns the store connection lifecycle and the readiness predicate.

    ``start`` launches a background task that keeps calling ``connect`` with
    exponential backoff and jitter until it succeeds. Attempts are unbounded
    and failures never reach the caller; they are logged and retried. Once
    connected the loop ends. A drop after that point is not re-supervised.

    The supervisor is the only writer of its state. Everything else reads
    ``is_ready()`` or the ``state`` property.
    """

    def __init__(self,
                 connect: Callable[[str], Awaitable[Any]],
                 disconnect: Callable[[], Awaitable[Any]],
                 retry_config: Optional[RetryConfig] = None,
                 metrics: Optional[MetricsCollector] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 uniform: Callable[[float, float], float] = random.uniform,
                 on_shutdown: Optional[Callable[[], Any]] = None):
        self._connect = connect
        self._disconnect = disconnect
        self.retry_config = retry_config or RetryConfig()
        self.metrics = metrics
        self._sleep = sleep
        self._uniform = uniform
        self._on_shutdown = on_shutdown
        self.logger = get_logger("store.supervisor")

        self._state = ConnectionState.DISCONNECTED
        self._task: Optional[asyncio.Task] = None
        self._attempts = 0
        self._last_error: Optional[str] = None
        self._publish_state()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_ready(self) -> bool:
        """True only while the store is connected."""
        return self._state is ConnectionState.CONNECTED

    def start(self, store_uri: str) -> asyncio.Task:
        """Launch the background connect loop; must run inside an event loop."""
        if self._state is ConnectionState.SHUTTING_DOWN:
            raise RuntimeError("Supervisor has been shut down")
        if self._task is not None and not self._task.done():
            return self._task

        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run(store_uri), name="store-connection-supervisor")
        return self._task

    async def _run(self, store_uri: str):
        """Retry loop; exits on success or cancellation."""
        while self._state is ConnectionState.CONNECTING:
            self._attempts += 1
            attempt = self._attempts
            try:
                await self._connect(store_uri)
            except Exception as e:
                self._last_error = str(e)
                self._record_attempt("failure")
                delay = calculate_delay(attempt, self.retry_config, self._uniform)
                self.logger.warning(
                    "Store connection attempt failed, retrying",
                    attempt=attempt,
                    delay=round(delay, 3),
                    error=str(e)
                )
                await self._sleep(delay)
                continue

            self._record_attempt("success")
            self._last_error = None
            # Shutdown may have started while the connect call was in flight.
            if self._state is ConnectionState.CONNECTING:
                self._set_state(ConnectionState.CONNECTED)
                self.logger.info("Store connected", attempts=attempt)

    async def shutdown(self):
        """Stop retrying, disconnect once, then tell the host to stop serving."""
        if self._state is ConnectionState.SHUTTING_DOWN:
            return

        was_connected = self._state is ConnectionState.CONNECTED
        self._set_state(ConnectionState.SHUTTING_DOWN)

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        try:
            await self._disconnect()
            self.logger.info("Store disconnected", was_connected=was_connected)
        except Exception as e:
            self.logger.error("Store disconnect failed", error=str(e))

        if self._on_shutdown is not None:
            self._on_shutdown()

    def describe(self) -> Dict[str, Any]:
        """Snapshot for health reporting."""
        return {
            "state": self._state.value,
            "ready": self.is_ready(),
            "attempts": self._attempts,
            "last_error": self._last_error,
        }

    def _set_state(self, state: ConnectionState):
        previous, self._state = self._state, state
        if previous is not state:
            self.logger.info("Store connection state changed", previous=previous.value, state=state.value)
        self._publish_state()

    def _publish_state(self):
        if self.metrics is None:
            return
        for candidate in ConnectionState:
            self.metrics.set_gauge(
                "store_connection_state",
                1.0 if candidate is self._state else 0.0,
                state=candidate.value
            )

    def _record_attempt(self, outcome: str):
        if self.metrics is not None:
            self.metrics.increment_counter("store_connection_attempts_total", outcome=outcome)
