"""
Triage External Service Adapters
==================================

Adapters for services outside the triage core:
- LLM-backed urgency adjustment behind a circuit breaker
- APScheduler wrapper driving periodic re-triage
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from multisig_triage.core import CircuitOpenException
from multisig_triage.infrastructure.llm import ILLMClient
from multisig_triage.shared.infrastructure.logging import get_logger
from multisig_triage.triage.application import IScoringBackend
from multisig_triage.triage.domain import UrgencyPromptBuilder

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            elapsed = time.monotonic() - self._last_failure_time
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    @property
    def retry_after(self) -> float:
        """Seconds until an open circuit lets a probe through."""
        if self._last_failure_time is None:
            return 0.0
        elapsed = time.monotonic() - self._last_failure_time
        return max(0.0, self.recovery_timeout - elapsed)

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class LLMScoringBackend(IScoringBackend):
    """
    Adapter that asks an LLM for an urgency adjustment.

    Implements the application layer IScoringBackend interface using
    the infrastructure layer ILLMClient.
    """

    def __init__(
        self,
        llm_client: ILLMClient,
        temperature: float = 0.3,
        max_tokens: int = 200,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._llm = llm_client
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._circuit_breaker = circuit_breaker or CircuitBreaker()

    async def adjust(self, prompt: str) -> str:
        """
        Send the prompt and return the raw model text.

        Raises:
            CircuitOpenException: If the circuit is open
            LLMException: If the model call fails
        """
        if not self._circuit_breaker.allow_request():
            raise CircuitOpenException(self._circuit_breaker.retry_after)

        messages = [
            {"role": "system", "content": UrgencyPromptBuilder.get_system_prompt()},
            {"role": "user", "content": prompt}
        ]

        try:
            response = await self._llm.chat_completion(
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                operation="urgency_adjustment"
            )
        except Exception:
            self._circuit_breaker.record_failure()
            raise

        self._circuit_breaker.record_success()
        return response.content


class ReTriageScheduler:
    """
    Wrapper for APScheduler running the re-triage job on an interval.

    The handle returned by start() is the only way to cancel the job;
    stop() waits for a tick that is already running.
    """

    def __init__(self, interval_seconds: float = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._job_func: Optional[Callable[[], Awaitable[object]]] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> "ReTriageScheduler":
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Re-triage scheduler already running")
            return self

        self._job_func = job_func
        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            self._run_job,
            "interval",
            seconds=self.interval_seconds,
            id="retriage",
            name="Re-triage Job",
            misfire_grace_time=max(1, int(self.interval_seconds)),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Re-triage scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )
        return self

    async def _run_job(self) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._in_flight.add(task)
        try:
            await self._job_func()
        except Exception as e:
            logger.error("Re-triage tick failed", extra={"error": str(e)})
        finally:
            if task is not None:
                self._in_flight.discard(task)

    async def stop(self) -> None:
        """Stop the scheduler and wait for any running tick."""
        if not self._running:
            return

        self._running = False

        # Executor shutdown cancels pending ticks; drain them first
        if self._scheduler:
            self._scheduler.pause()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        logger.info("Re-triage scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
