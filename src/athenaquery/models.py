from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class QueryMode(str, Enum):
    """Which part of the lifecycle a request asks for."""

    SUBMIT_ONLY = "startQuery"
    STATUS_ONLY = "queryStatus"
    RUN_TO_COMPLETION = "queryResult"


class QueryState(str, Enum):
    """Execution states as reported by Athena."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Return True when no further transitions can occur."""
        return self in _TERMINAL_STATES

    @classmethod
    def from_service(cls, value: Optional[str]) -> "QueryState":
        """Map a raw service state; unrecognized states count as still running."""
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.RUNNING


_TERMINAL_STATES = frozenset({QueryState.SUCCEEDED, QueryState.FAILED, QueryState.CANCELLED})


class LifecyclePhase(str, Enum):
    """Controller-side phases of a single execution."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """Return True for phases with no outgoing transitions."""
        return self not in (LifecyclePhase.SUBMITTED, LifecyclePhase.POLLING)

    def can_transition_to(self, target: "LifecyclePhase") -> bool:
        """Return True when ``target`` is a legal next phase."""
        return target in _PHASE_TRANSITIONS[self]


_PHASE_TRANSITIONS: Dict[LifecyclePhase, frozenset] = {
    LifecyclePhase.SUBMITTED: frozenset({LifecyclePhase.POLLING}),
    LifecyclePhase.POLLING: frozenset(
        {
            LifecyclePhase.POLLING,
            LifecyclePhase.SUCCEEDED,
            LifecyclePhase.FAILED,
            LifecyclePhase.CANCELLED,
            LifecyclePhase.TIMED_OUT,
        }
    ),
    LifecyclePhase.SUCCEEDED: frozenset(),
    LifecyclePhase.FAILED: frozenset(),
    LifecyclePhase.CANCELLED: frozenset(),
    LifecyclePhase.TIMED_OUT: frozenset(),
}


@dataclass(frozen=True)
class QueryRequest:
    """An immutable request for one lifecycle operation."""

    sql: str = ""
    data_source: str = ""
    mode: Union[QueryMode, str] = QueryMode.RUN_TO_COMPLETION
    execution_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Normalize the mode and check mode-specific fields."""
        object.__setattr__(self, "mode", QueryMode(self.mode))
        if self.mode == QueryMode.STATUS_ONLY and not self.execution_id:
            raise ValueError("A status-only request requires an execution_id.")


@dataclass(frozen=True)
class ExecutionStatus:
    """Observed status of one execution."""

    execution_id: str
    state: QueryState
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    state_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        """Return True when the execution reached a terminal state."""
        return self.state.is_terminal

    def duration_seconds(self, now: Optional[datetime] = None) -> float:
        """Return seconds from submission to completion (or to ``now``)."""
        if self.submitted_at is None:
            return 0.0
        end = self.completed_at
        if end is None:
            end = now or datetime.now(self.submitted_at.tzinfo or timezone.utc)
        return (end - self.submitted_at).total_seconds()


@dataclass(frozen=True)
class ColumnDescriptor:
    """Column metadata as returned by the service."""

    name: str
    type: Optional[str] = None
    label: Optional[str] = None
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    nullable: Optional[str] = None
    precision: Optional[int] = None
    scale: Optional[int] = None


Row = List[Optional[str]]


@dataclass(frozen=True)
class ResultSet:
    """Ordered columns and rows, positionally aligned."""

    columns: List[ColumnDescriptor] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def as_dicts(self) -> List[Dict[str, Any]]:
        """Return rows keyed by column name."""
        names = self.column_names
        return [dict(zip(names, row)) for row in self.rows]


@dataclass(frozen=True)
class QueryOutcome:
    """Return value of a lifecycle operation."""

    execution_id: str
    status: Optional[QueryState] = None
    result_set: Optional[ResultSet] = None
    elapsed_seconds: float = 0.0
