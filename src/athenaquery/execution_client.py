from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from athenaquery.models import ExecutionStatus

# Raw service payloads: Athena ColumnInfo dicts and Row dicts ({"Data": [...]}).
RawColumns = List[Dict[str, Any]]
RawRows = List[Dict[str, Any]]


@runtime_checkable
class ExecutionClient(Protocol):
    """Capability set over a submit-then-poll query service.

    Implementations must be safe for concurrent use by several controllers.
    """

    async def submit(self, sql: str, data_source: str, output_location: Optional[str]) -> str:
        """Start an execution and return the service-assigned execution ID."""
        ...

    async def get_status(self, execution_id: str) -> ExecutionStatus:
        """Return the current status of an execution."""
        ...

    async def get_results(self, execution_id: str) -> Tuple[RawColumns, RawRows]:
        """Return column metadata and rows for a succeeded execution."""
        ...

    async def cancel(self, execution_id: str) -> None:
        """Request cancellation of a running execution."""
        ...
