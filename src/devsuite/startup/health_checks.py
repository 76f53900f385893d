"""devsuite Readiness Checks.

HTTP readiness probing for launched services. A service is ready once its
readiness URL answers with any 2xx or 3xx status; the body is never inspected.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
import logging
import time
from typing import Any

import httpx

from devsuite.startup.config_schema import ReadinessSettings

logger = logging.getLogger(__name__)

READY_STATUS_MIN = 200
READY_STATUS_MAX = 399


class ServiceStatus(StrEnum):
    """Outcome of a single readiness poll."""

    READY = "ready"
    NOT_READY = "not_ready"
    UNREACHABLE = "unreachable"


def is_ready_status(status_code: int) -> bool:
    """Check if an HTTP status counts as ready."""
    return READY_STATUS_MIN <= status_code <= READY_STATUS_MAX


@dataclass
class PollResult:
    """Result of one GET against a readiness URL."""

    status: ServiceStatus
    status_code: int | None = None
    error: str | None = None
    response_time_ms: float = 0.0


@dataclass
class ReadinessResult:
    """Result of waiting for one service to become ready."""

    service_name: str
    url: str
    ready: bool
    attempts: int
    elapsed: float
    last_status_code: int | None = None
    last_error: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def message(self) -> str:
        """Human readable outcome."""
        if self.ready:
            return (
                f"{self.service_name} ready at {self.url} after "
                f"{self.elapsed:.1f}s ({self.attempts} attempt(s))"
            )
        reason = ""
        if self.last_status_code is not None:
            reason = f", last status {self.last_status_code}"
        elif self.last_error:
            reason = f", last error: {self.last_error}"
        return (
            f"{self.service_name} failed to become ready after "
            f"{self.elapsed:.1f}s ({self.attempts} attempt(s){reason})"
        )

    def details(self) -> dict[str, Any]:
        """Details for progress reporting."""
        return {
            "url": self.url,
            "attempts": self.attempts,
            "elapsed": f"{self.elapsed:.1f}s",
        }


class ReadinessProber:
    """Polls readiness URLs until they answer or the window closes."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize readiness prober.

        Args:
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.transport = transport

    def _client(self, settings: ReadinessSettings) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout),
            follow_redirects=False,
            transport=self.transport,
        )

    async def poll_once(self, client: httpx.AsyncClient, url: str) -> PollResult:
        """Issue one GET; transport errors mean "not yet reachable"."""
        start_time = time.monotonic()
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            return PollResult(
                status=ServiceStatus.UNREACHABLE,
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                response_time_ms=(time.monotonic() - start_time) * 1000,
            )

        response_time = (time.monotonic() - start_time) * 1000
        status = (
            ServiceStatus.READY
            if is_ready_status(response.status_code)
            else ServiceStatus.NOT_READY
        )
        return PollResult(
            status=status,
            status_code=response.status_code,
            response_time_ms=response_time,
        )

    async def wait_until_ready(
        self,
        service_name: str,
        url: str,
        settings: ReadinessSettings,
    ) -> ReadinessResult:
        """Block until ``url`` is ready or ``settings.timeout`` elapses.

        The timeout is measured from the start of the call and includes the
        initial delay. Cancellation propagates immediately.
        """
        start_time = time.monotonic()
        deadline = start_time + settings.timeout
        attempts = 0
        last: PollResult | None = None

        logger.debug(
            "Waiting for %s at %s (delay=%.1fs interval=%.1fs timeout=%.1fs)",
            service_name,
            url,
            settings.initial_delay,
            settings.interval,
            settings.timeout,
        )

        await asyncio.sleep(min(settings.initial_delay, settings.timeout))

        async with self._client(settings) as client:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break

                attempts += 1
                poll_started = time.monotonic()
                try:
                    last = await asyncio.wait_for(
                        self.poll_once(client, url), timeout=remaining
                    )
                except TimeoutError:
                    last = PollResult(
                        status=ServiceStatus.UNREACHABLE, error="readiness window closed"
                    )
                    break

                if last.status == ServiceStatus.READY:
                    return ReadinessResult(
                        service_name=service_name,
                        url=url,
                        ready=True,
                        attempts=attempts,
                        elapsed=time.monotonic() - start_time,
                        last_status_code=last.status_code,
                    )

                logger.debug(
                    "%s not ready yet (attempt %d): %s",
                    service_name,
                    attempts,
                    last.status_code if last.status_code is not None else last.error,
                )

                # Polls start every interval, however long each one took
                now = time.monotonic()
                remaining = deadline - now
                if remaining <= 0:
                    break
                pause = max(0.0, settings.interval - (now - poll_started))
                await asyncio.sleep(min(pause, remaining))

        return ReadinessResult(
            service_name=service_name,
            url=url,
            ready=False,
            attempts=attempts,
            elapsed=time.monotonic() - start_time,
            last_status_code=last.status_code if last else None,
            last_error=last.error if last else None,
        )
