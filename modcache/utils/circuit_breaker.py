"""
Circuit breaker guarding calls to the artifact source API.
"""

import asyncio
import logging
import time
from enum import Enum

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreakerError(Exception):
    """Raised when the circuit is open and a call is refused."""


class CircuitBreaker:
    """
    Stops hammering an API that keeps failing.

    States:
    - CLOSED: requests pass through
    - OPEN: too many consecutive failures, requests are refused
    - HALF_OPEN: recovery window, a few requests are let through
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        success_threshold: int = 2,
        ignored_exceptions: tuple[type[BaseException], ...] = (),
    ):
        """
        Args:
            failure_threshold: Consecutive failures before opening the circuit.
            recovery_timeout: Seconds to wait before attempting recovery.
            success_threshold: Consecutive successes needed to close the circuit.
            ignored_exceptions: Errors that say nothing about the service's
            health (e.g. a 404) and do not count as failures.
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.ignored_exceptions = ignored_exceptions

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _check_state(self) -> None:
        """Moves from OPEN to HALF_OPEN once the recovery timeout has passed."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return

        elapsed = time.monotonic() - self._last_failure_time
        if elapsed >= self.recovery_timeout:
            log.info(
                f"[yellow]Circuit breaker half-open, testing recovery after "
                f"{elapsed:.0f}s[/yellow]"
            )
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0

    async def _on_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    log.info("[green]✓ Circuit breaker closed, API recovered.[/green]")
                    self._state = CircuitState.CLOSED
                    self._success_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                log.warning(
                    "[yellow]Circuit breaker: recovery test failed, "
                    "reopening.[/yellow]"
                )
                self._state = CircuitState.OPEN
                self._failure_count = 0
                self._success_count = 0
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                log.error(
                    f"[red]✗ Circuit breaker opened after {self._failure_count} "
                    f"consecutive failures. Requests blocked for "
                    f"{self.recovery_timeout:.0f}s.[/red]"
                )
                self._state = CircuitState.OPEN

    async def __aenter__(self):
        async with self._lock:
            self._check_state()
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerError(
                    f"Circuit is open. Will try to recover after "
                    f"{self.recovery_timeout:.0f} seconds."
                )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None or (
            self.ignored_exceptions and issubclass(exc_type, self.ignored_exceptions)
        ):
            await self._on_success()
        else:
            await self._on_failure()
        return False
