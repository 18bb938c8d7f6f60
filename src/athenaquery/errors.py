"""Error taxonomy for the Athena query lifecycle.

Each error also derives from the closest built-in exception so callers can
catch either the package type or the standard one (``LookupError``,
``TimeoutError``, ...).
"""

from __future__ import annotations

from typing import Optional

from athenaquery.models import ExecutionStatus, QueryState


class AthenaQueryError(Exception):
    """Base class for all Athena query client errors."""


class ConfigurationError(AthenaQueryError, ValueError):
    """Missing or contradictory setup input. Raised at startup, never retried."""


class SubmissionError(AthenaQueryError, RuntimeError):
    """The service rejected or could not accept the query text."""


class QueryLookupError(AthenaQueryError, LookupError):
    """A status or result lookup failed for an existing execution."""

    def __init__(self, execution_id: Optional[str], message: str) -> None:
        """Initialize with the execution being looked up."""
        self.execution_id = execution_id
        super().__init__(message)


class ExecutionError(AthenaQueryError, RuntimeError):
    """The service reported a terminal FAILED or CANCELLED state."""

    def __init__(
        self, execution_id: str, state: QueryState, reason: Optional[str] = None
    ) -> None:
        """Initialize with the terminal state the service reported."""
        self.execution_id = execution_id
        self.state = state
        self.reason = reason
        verb = "was cancelled" if state == QueryState.CANCELLED else "failed"
        message = f"Athena query {execution_id} {verb}."
        if reason:
            message = f"{message} Reason: {reason}"
        super().__init__(message)


class QueryTimeoutError(AthenaQueryError, TimeoutError):
    """The local poll budget ran out while the execution was still in flight."""

    def __init__(
        self,
        execution_id: str,
        elapsed_seconds: float,
        timeout_seconds: float,
        last_status: Optional[ExecutionStatus] = None,
    ) -> None:
        """Initialize timeout details with the last observed status."""
        self.execution_id = execution_id
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds
        self.last_status = last_status
        state = last_status.state.value if last_status is not None else "unknown"
        super().__init__(
            f"Athena query {execution_id} exceeded {float(timeout_seconds):g}s timeout "
            f"(elapsed={float(elapsed_seconds):g}s, last_state={state})."
        )
