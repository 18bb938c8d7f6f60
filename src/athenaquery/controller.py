"""Submit, poll and fetch lifecycle for Athena query executions.

The controller keeps only configuration on ``self``; everything that
belongs to one execution lives in a local ``_ExecutionTracker``, so one
controller can drive many executions concurrently.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from athenaquery.errors import (
    ExecutionError,
    QueryLookupError,
    QueryTimeoutError,
    SubmissionError,
)
from athenaquery.execution_client import ExecutionClient
from athenaquery.models import (
    ExecutionStatus,
    LifecyclePhase,
    QueryMode,
    QueryOutcome,
    QueryRequest,
    QueryState,
    ResultSet,
)
from athenaquery.results import assemble_result_set
from athenaquery.retry import retry_lookup

logger = logging.getLogger(__name__)

_PHASE_FOR_STATE = {
    QueryState.SUCCEEDED: LifecyclePhase.SUCCEEDED,
    QueryState.FAILED: LifecyclePhase.FAILED,
    QueryState.CANCELLED: LifecyclePhase.CANCELLED,
}


def format_status_line(status: Optional[ExecutionStatus], now: Optional[datetime] = None) -> str:
    """Return a human-readable status line for logs."""
    if status is None:
        return "[Athena Query Execution Status] no status"
    return (
        f"[Athena Query Execution Status] query_id={status.execution_id}, "
        f"query_state={status.state.value}, duration={status.duration_seconds(now):f}"
    )


class _ExecutionTracker:
    """Per-execution phase and poll-budget accounting."""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        self.phase = LifecyclePhase.SUBMITTED
        self.elapsed = 0.0
        self.polls = 0
        self.last_status: Optional[ExecutionStatus] = None

    def advance(self, phase: LifecyclePhase) -> None:
        if not self.phase.can_transition_to(phase):
            raise RuntimeError(
                f"Illegal lifecycle transition for {self.execution_id}: "
                f"{self.phase.value} -> {phase.value}"
            )
        self.phase = phase


class LifecycleController:
    """Drives one query at a time through submit, poll and fetch."""

    def __init__(
        self,
        client: ExecutionClient,
        output_location: Optional[str] = None,
        *,
        poll_interval_seconds: float = 3.0,
        timeout_seconds: float = 300.0,
        skip_header: bool = False,
        lookup_retries: int = 0,
        retry_base_delay_seconds: float = 0.5,
        cancel_on_timeout: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the controller.

        Args:
            client: Execution client used for every service call.
            output_location: Result staging location passed on submit.
            poll_interval_seconds: Delay between polls; also the amount each
                non-terminal poll adds to the timeout budget.
            timeout_seconds: Poll budget; exceeding it raises QueryTimeoutError.
            skip_header: Drop the first result row (SELECT header).
            lookup_retries: Retries for transient status/result lookups.
            retry_base_delay_seconds: First retry delay, doubled per attempt.
            cancel_on_timeout: Stop the remote execution when the budget runs out.
            sleep: Awaitable sleep, injectable for tests.
        """
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive.")
        self._client = client
        self._output_location = output_location
        self._poll_interval_seconds = poll_interval_seconds
        self._timeout_seconds = timeout_seconds
        self._skip_header = skip_header
        self._lookup_retries = lookup_retries
        self._retry_base_delay_seconds = retry_base_delay_seconds
        self._cancel_on_timeout = cancel_on_timeout
        self._sleep = sleep

    @property
    def client(self) -> ExecutionClient:
        return self._client

    @property
    def poll_interval_seconds(self) -> float:
        return self._poll_interval_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def execute(self, request: Optional[QueryRequest]) -> Optional[QueryOutcome]:
        """Dispatch a request by its mode.

        A ``None`` request is a no-op and returns ``None``.
        """
        if request is None:
            logger.debug("Empty Athena request; nothing to do.")
            return None

        if request.mode == QueryMode.SUBMIT_ONLY:
            execution_id = await self.submit(request)
            return QueryOutcome(execution_id=execution_id)

        if request.mode == QueryMode.STATUS_ONLY:
            status = await self.poll_once(request.execution_id)
            return QueryOutcome(execution_id=request.execution_id, status=status.state)

        return await self.run_to_completion(request)

    async def submit(self, request: QueryRequest) -> str:
        """Submit the request's SQL and return the service-assigned execution ID."""
        try:
            return await self._client.submit(
                request.sql, request.data_source, self._output_location
            )
        except SubmissionError:
            raise
        except Exception as exc:
            raise SubmissionError(f"Athena query submission failed: {exc}") from exc

    async def poll_once(self, execution_id: str) -> ExecutionStatus:
        """Check the execution status once and log it."""
        try:
            status = await retry_lookup(
                lambda: self._client.get_status(execution_id),
                "get_status",
                max_retries=self._lookup_retries,
                base_delay=self._retry_base_delay_seconds,
                sleep=self._sleep,
            )
        except QueryLookupError:
            raise
        except Exception as exc:
            raise QueryLookupError(
                execution_id, f"Status lookup failed for Athena query {execution_id}: {exc}"
            ) from exc
        logger.info(format_status_line(status))
        return status

    async def wait_for_completion(self, execution_id: str) -> Tuple[ExecutionStatus, float]:
        """Poll until the execution succeeds.

        Returns:
            The final status and the poll budget consumed.

        Raises:
            ExecutionError: The service reported FAILED or CANCELLED.
            QueryTimeoutError: The budget ran out before a terminal state.
            QueryLookupError: A status lookup failed.
        """
        tracker = _ExecutionTracker(execution_id)
        tracker.advance(LifecyclePhase.POLLING)

        while True:
            status = await self.poll_once(execution_id)
            tracker.polls += 1
            tracker.last_status = status

            if status.state.is_terminal:
                tracker.advance(_PHASE_FOR_STATE[status.state])
                if status.state == QueryState.SUCCEEDED:
                    return status, tracker.elapsed
                raise ExecutionError(execution_id, status.state, status.state_reason)

            tracker.elapsed += self._poll_interval_seconds
            if tracker.elapsed > self._timeout_seconds:
                tracker.advance(LifecyclePhase.TIMED_OUT)
                await self._cancel_after_timeout(execution_id)
                raise QueryTimeoutError(
                    execution_id,
                    elapsed_seconds=tracker.elapsed,
                    timeout_seconds=self._timeout_seconds,
                    last_status=status,
                )
            tracker.advance(LifecyclePhase.POLLING)
            await self._sleep(self._poll_interval_seconds)

    async def fetch_results(self, execution_id: str) -> ResultSet:
        """Fetch and assemble the result set of a succeeded execution."""
        try:
            columns, rows = await retry_lookup(
                lambda: self._client.get_results(execution_id),
                "get_results",
                max_retries=self._lookup_retries,
                base_delay=self._retry_base_delay_seconds,
                sleep=self._sleep,
            )
        except QueryLookupError:
            raise
        except Exception as exc:
            raise QueryLookupError(
                execution_id, f"Result fetch failed for Athena query {execution_id}: {exc}"
            ) from exc
        return assemble_result_set(columns, rows, skip_header=self._skip_header)

    async def run_to_completion(self, request: QueryRequest) -> QueryOutcome:
        """Submit, wait for success and fetch the results."""
        execution_id = await self.submit(request)
        status, elapsed = await self.wait_for_completion(execution_id)
        result_set = await self.fetch_results(execution_id)
        logger.info(
            "Athena query %s finished with %d rows (poll budget used %.2fs)",
            execution_id,
            result_set.row_count,
            elapsed,
        )
        return QueryOutcome(
            execution_id=execution_id,
            status=status.state,
            result_set=result_set,
            elapsed_seconds=elapsed,
        )

    async def _cancel_after_timeout(self, execution_id: str) -> None:
        if not self._cancel_on_timeout:
            return
        try:
            await self._client.cancel(execution_id)
        except Exception as exc:
            logger.warning("Timeout cancellation failed for %s: %s", execution_id, exc)
