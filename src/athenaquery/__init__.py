"""Client-side lifecycle controller for Athena submit-then-poll queries."""

from .athena_executor import AthenaExecutionClient
from .config import AthenaConfig
from .controller import LifecycleController
from .errors import (
    AthenaQueryError,
    ConfigurationError,
    ExecutionError,
    QueryLookupError,
    QueryTimeoutError,
    SubmissionError,
)
from .execution_client import ExecutionClient
from .factory import get_instance
from .models import (
    ColumnDescriptor,
    ExecutionStatus,
    LifecyclePhase,
    QueryMode,
    QueryOutcome,
    QueryRequest,
    QueryState,
    ResultSet,
)
from .results import assemble_result_set

__all__ = [
    "AthenaConfig",
    "AthenaExecutionClient",
    "AthenaQueryError",
    "ColumnDescriptor",
    "ConfigurationError",
    "ExecutionClient",
    "ExecutionError",
    "ExecutionStatus",
    "LifecycleController",
    "LifecyclePhase",
    "QueryLookupError",
    "QueryMode",
    "QueryOutcome",
    "QueryRequest",
    "QueryState",
    "QueryTimeoutError",
    "ResultSet",
    "SubmissionError",
    "assemble_result_set",
    "get_instance",
]
