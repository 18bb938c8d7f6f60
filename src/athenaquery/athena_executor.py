import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from athenaquery.errors import QueryLookupError, SubmissionError
from athenaquery.execution_client import ExecutionClient, RawColumns, RawRows
from athenaquery.models import ExecutionStatus, QueryState
from athenaquery.tracing import trace_query_operation

logger = logging.getLogger(__name__)

_SERVICE_ERRORS = (BotoCoreError, ClientError)


class AthenaExecutionClient(ExecutionClient):
    """ExecutionClient backed by a boto3 Athena client."""

    def __init__(
        self,
        athena_client: Any = None,
        workgroup: Optional[str] = None,
        max_rows: Optional[int] = None,
        *,
        client_factory: Optional[Callable[[], Any]] = None,
        skip_header: bool = False,
    ) -> None:
        """Initialize with a boto3 ``athena`` client (thread-safe, shared).

        Args:
            athena_client: A ready boto3 ``athena`` client.
            workgroup: Workgroup to run queries in.
            max_rows: Maximum data rows returned by ``get_results``.
            client_factory: Builds the boto3 client on first use when
                ``athena_client`` is not given. Creation errors such as a
                missing region surface from the call that needed the client.
            skip_header: Results start with a header row that does not count
                toward ``max_rows``.
        """
        if athena_client is None and client_factory is None:
            raise ValueError("Either athena_client or client_factory is required.")
        self._client = athena_client
        self._client_factory = client_factory
        self._workgroup = workgroup
        self._row_limit = max_rows + 1 if max_rows and skip_header else max_rows

    def _athena(self) -> Any:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def submit(self, sql: str, data_source: str, output_location: Optional[str]) -> str:
        """Start a query execution and return its ID."""
        logger.info("Submitting Athena query to database=%s", data_source)
        try:
            execution_id = await trace_query_operation(
                "athena.query.submit",
                asyncio.to_thread(
                    _start_query_execution,
                    self._athena(),
                    sql,
                    data_source,
                    output_location,
                    self._workgroup,
                ),
                sql=sql,
            )
        except _SERVICE_ERRORS as exc:
            raise SubmissionError(f"Athena rejected query submission: {exc}") from exc
        if not execution_id:
            raise SubmissionError("Athena accepted the query but returned no execution ID.")
        logger.info("Submitted Athena query execution_id=%s", execution_id)
        return execution_id

    async def get_status(self, execution_id: str) -> ExecutionStatus:
        """Return the current status of an execution."""
        try:
            response = await trace_query_operation(
                "athena.query.poll",
                asyncio.to_thread(
                    self._athena().get_query_execution, QueryExecutionId=execution_id
                ),
                execution_id=execution_id,
            )
        except _SERVICE_ERRORS as exc:
            raise QueryLookupError(
                execution_id, f"Status lookup failed for Athena query {execution_id}: {exc}"
            ) from exc
        return _status_from_execution(execution_id, response.get("QueryExecution") or {})

    async def get_results(self, execution_id: str) -> Tuple[RawColumns, RawRows]:
        """Return column metadata and all rows, following pagination."""
        try:
            return await trace_query_operation(
                "athena.query.fetch",
                asyncio.to_thread(_fetch_results, self._athena(), execution_id, self._row_limit),
                execution_id=execution_id,
            )
        except _SERVICE_ERRORS as exc:
            raise QueryLookupError(
                execution_id, f"Result fetch failed for Athena query {execution_id}: {exc}"
            ) from exc

    async def cancel(self, execution_id: str) -> None:
        """Stop a running query execution."""
        await trace_query_operation(
            "athena.query.cancel",
            asyncio.to_thread(
                self._athena().stop_query_execution, QueryExecutionId=execution_id
            ),
            execution_id=execution_id,
        )
        logger.info("Requested cancellation of Athena query execution_id=%s", execution_id)


def _start_query_execution(
    client,
    sql: str,
    database: str,
    output_location: Optional[str],
    workgroup: Optional[str],
) -> Optional[str]:
    kwargs: Dict[str, Any] = {
        "QueryString": sql,
        "QueryExecutionContext": {"Database": database},
    }
    if output_location:
        kwargs["ResultConfiguration"] = {"OutputLocation": output_location}
    if workgroup:
        kwargs["WorkGroup"] = workgroup
    response = client.start_query_execution(**kwargs)
    return response.get("QueryExecutionId")


def _status_from_execution(execution_id: str, execution: Dict[str, Any]) -> ExecutionStatus:
    status = execution.get("Status") or {}
    return ExecutionStatus(
        execution_id=execution.get("QueryExecutionId") or execution_id,
        state=QueryState.from_service(status.get("State")),
        submitted_at=status.get("SubmissionDateTime"),
        completed_at=status.get("CompletionDateTime"),
        state_reason=status.get("StateChangeReason"),
    )


def _fetch_results(
    client, execution_id: str, max_rows: Optional[int]
) -> Tuple[RawColumns, RawRows]:
    columns: Optional[RawColumns] = None
    rows: RawRows = []
    next_token = None

    while True:
        kwargs: Dict[str, Any] = {"QueryExecutionId": execution_id}
        if max_rows:
            remaining = max_rows - len(rows)
            if remaining <= 0:
                break
            # Athena caps MaxResults at 1000 per page.
            kwargs["MaxResults"] = min(remaining, 1000)
        if next_token:
            kwargs["NextToken"] = next_token
        response = client.get_query_results(**kwargs)
        result_set = response.get("ResultSet") or {}
        if columns is None:
            columns = list((result_set.get("ResultSetMetadata") or {}).get("ColumnInfo") or [])
        rows.extend(result_set.get("Rows") or [])
        next_token = response.get("NextToken")
        if not next_token:
            break

    if max_rows:
        rows = rows[:max_rows]
    return columns or [], rows
