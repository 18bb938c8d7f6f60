"""Unit tests for the submit/poll/fetch lifecycle controller."""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from athenaquery.controller import LifecycleController, format_status_line
from athenaquery.errors import (
    ExecutionError,
    QueryLookupError,
    QueryTimeoutError,
    SubmissionError,
)
from athenaquery.models import (
    ColumnDescriptor,
    ExecutionStatus,
    QueryMode,
    QueryOutcome,
    QueryRequest,
    QueryState,
    ResultSet,
)
from tests._support.execution_clients import (
    AlwaysFailClient,
    AlwaysSucceedClient,
    RecordingSleep,
    SlowThenTerminalClient,
)


def _controller(client, **kwargs):
    sleep = kwargs.pop("sleep", RecordingSleep())
    return LifecycleController(client, "s3://bucket/out/", sleep=sleep, **kwargs)


@pytest.mark.asyncio
async def test_submit_only_returns_client_execution_id():
    """Submit-only requests return the service ID verbatim and never poll."""
    client = AlwaysSucceedClient()
    controller = _controller(client)
    request = QueryRequest(
        sql="SELECT * FROM viewership", data_source="viewership", mode=QueryMode.SUBMIT_ONLY
    )

    outcome = await controller.execute(request)

    assert outcome == QueryOutcome(execution_id="12345-12345")
    assert client.submitted == [("SELECT * FROM viewership", "viewership", "s3://bucket/out/")]
    assert client.status_calls == []
    assert client.result_calls == []


@pytest.mark.asyncio
async def test_status_only_reports_state_without_fetch():
    """Status-only requests poll once and do not fetch results."""
    client = AlwaysSucceedClient()
    controller = _controller(client)
    request = QueryRequest(mode="queryStatus", execution_id="12345-12345")

    outcome = await controller.execute(request)

    assert outcome == QueryOutcome(execution_id="12345-12345", status=QueryState.SUCCEEDED)
    assert client.status_calls == ["12345-12345"]
    assert client.result_calls == []
    assert client.submitted == []


@pytest.mark.asyncio
async def test_run_to_completion_viewership_scenario():
    """A query that succeeds on the first poll yields the fetched result set."""
    client = AlwaysSucceedClient()
    sleep = RecordingSleep()
    controller = _controller(client, sleep=sleep)
    request = QueryRequest(sql="SELECT * FROM viewership", data_source="viewership")

    outcome = await controller.execute(request)

    assert outcome.execution_id == "12345-12345"
    assert outcome.status == QueryState.SUCCEEDED
    assert outcome.result_set == ResultSet(
        columns=[
            ColumnDescriptor(
                name="max_job_id",
                type="string",
                schema_name="job_id",
                table_name="viewership",
            )
        ],
        rows=[["20200825"]],
    )
    assert outcome.elapsed_seconds == 0
    assert client.status_calls == ["12345-12345"]
    assert client.result_calls == ["12345-12345"]
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_none_request_is_a_noop():
    """A missing request returns None without touching the client."""
    client = AlwaysSucceedClient()
    controller = _controller(client)

    assert await controller.execute(None) is None
    assert client.submitted == []
    assert client.status_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [QueryState.FAILED, QueryState.CANCELLED])
async def test_terminal_failure_raises_without_retry(state):
    """FAILED/CANCELLED on the first poll raise ExecutionError with no further polls."""
    client = SlowThenTerminalClient([state], reason="HIVE_BAD_DATA")
    sleep = RecordingSleep()
    controller = _controller(client, sleep=sleep)

    with pytest.raises(ExecutionError) as exc_info:
        await controller.run_to_completion(QueryRequest(sql="SELECT 1", data_source="db"))

    assert exc_info.value.execution_id == "12345-12345"
    assert exc_info.value.state == state
    assert exc_info.value.reason == "HIVE_BAD_DATA"
    assert client.status_calls == ["12345-12345"]
    assert client.result_calls == []
    assert client.cancelled == []
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_timeout_shorter_than_interval_fails_after_one_poll():
    """A budget smaller than one interval times out after exactly one poll."""
    client = SlowThenTerminalClient([QueryState.RUNNING])
    sleep = RecordingSleep()
    controller = _controller(client, sleep=sleep, poll_interval_seconds=3, timeout_seconds=1)

    with pytest.raises(QueryTimeoutError) as exc_info:
        await controller.run_to_completion(QueryRequest(sql="SELECT 1", data_source="db"))

    error = exc_info.value
    assert isinstance(error, TimeoutError)
    assert error.execution_id == "12345-12345"
    assert error.elapsed_seconds == 3
    assert error.last_status.state == QueryState.RUNNING
    assert client.status_calls == ["12345-12345"]
    assert client.cancelled == ["12345-12345"]
    assert client.result_calls == []
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_timeout_budget_accumulates_by_interval():
    """Elapsed advances by the poll interval per non-terminal poll."""
    client = SlowThenTerminalClient([QueryState.QUEUED, QueryState.RUNNING])
    sleep = RecordingSleep()
    controller = _controller(client, sleep=sleep, poll_interval_seconds=1, timeout_seconds=3)

    with pytest.raises(QueryTimeoutError) as exc_info:
        await controller.wait_for_completion("12345-12345")

    assert exc_info.value.elapsed_seconds == 4
    assert len(client.status_calls) == 4
    assert sleep.calls == [1, 1, 1]


@pytest.mark.asyncio
async def test_slow_query_succeeds_and_fetches_once():
    """Queued/running polls are followed by a single fetch once succeeded."""
    client = SlowThenTerminalClient(
        [QueryState.QUEUED, QueryState.RUNNING, QueryState.SUCCEEDED]
    )
    sleep = RecordingSleep()
    controller = _controller(client, sleep=sleep, poll_interval_seconds=2, timeout_seconds=10)

    outcome = await controller.run_to_completion(QueryRequest(sql="SELECT 1", data_source="db"))

    assert outcome.status == QueryState.SUCCEEDED
    assert outcome.elapsed_seconds == 4
    assert len(client.status_calls) == 3
    assert client.result_calls == ["12345-12345"]
    assert sleep.calls == [2, 2]
    assert client.cancelled == []


@pytest.mark.asyncio
async def test_timeout_cancel_failure_does_not_mask_timeout(caplog):
    """A failing cancel is logged and the timeout still surfaces."""

    class _CancelFails(SlowThenTerminalClient):
        async def cancel(self, execution_id):
            raise RuntimeError("stop failed")

    controller = _controller(
        _CancelFails([QueryState.RUNNING]), poll_interval_seconds=5, timeout_seconds=1
    )

    with caplog.at_level(logging.WARNING):
        with pytest.raises(QueryTimeoutError):
            await controller.wait_for_completion("12345-12345")

    assert any("Timeout cancellation failed" in r.message for r in caplog.records)


@pytest.mark.asyncio
async def test_timeout_without_cancel_when_disabled():
    """cancel_on_timeout=False leaves the remote execution alone."""
    client = SlowThenTerminalClient([QueryState.RUNNING])
    controller = _controller(
        client, poll_interval_seconds=5, timeout_seconds=1, cancel_on_timeout=False
    )

    with pytest.raises(QueryTimeoutError):
        await controller.wait_for_completion("12345-12345")

    assert client.cancelled == []


@pytest.mark.asyncio
async def test_failing_client_surfaces_typed_errors():
    """Transport failures map to SubmissionError and QueryLookupError."""
    client = AlwaysFailClient()
    controller = _controller(client)

    with pytest.raises(SubmissionError):
        await controller.execute(
            QueryRequest(sql="SELECT 1", data_source="db", mode=QueryMode.SUBMIT_ONLY)
        )
    with pytest.raises(QueryLookupError):
        await controller.execute(
            QueryRequest(mode=QueryMode.STATUS_ONLY, execution_id="12345-12345")
        )
    with pytest.raises(SubmissionError):
        await controller.execute(QueryRequest(sql="SELECT 1", data_source="db"))
    with pytest.raises(LookupError):
        await controller.fetch_results("12345-12345")

    assert client.status_calls == ["12345-12345"]


@pytest.mark.asyncio
async def test_unexpected_fetch_error_is_wrapped_as_lookup_error():
    """Non-taxonomy client errors during fetch are wrapped as QueryLookupError."""

    class _BrokenFetch(AlwaysSucceedClient):
        async def get_results(self, execution_id):
            raise OSError("socket closed")

    controller = _controller(_BrokenFetch())

    with pytest.raises(QueryLookupError) as exc_info:
        await controller.fetch_results("12345-12345")

    assert exc_info.value.execution_id == "12345-12345"
    assert isinstance(exc_info.value.__cause__, OSError)



@pytest.mark.asyncio
async def test_unexpected_status_error_is_wrapped_as_lookup_error():
    """Non-taxonomy client errors during a status lookup are wrapped as QueryLookupError."""

    class _BrokenStatus(AlwaysSucceedClient):
        async def get_status(self, execution_id):
            raise OSError("socket closed")

    controller = _controller(_BrokenStatus())

    with pytest.raises(QueryLookupError) as exc_info:
        await controller.poll_once("12345-12345")

    assert exc_info.value.execution_id == "12345-12345"
    assert isinstance(exc_info.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_unexpected_submit_error_is_wrapped_as_submission_error():
    """Non-taxonomy client errors during submission are wrapped as SubmissionError."""

    class _BrokenSubmit(AlwaysSucceedClient):
        async def submit(self, sql, data_source, output_location):
            raise OSError("socket closed")

    controller = _controller(_BrokenSubmit())

    with pytest.raises(SubmissionError) as exc_info:
        await controller.execute(
            QueryRequest(sql="SELECT 1", data_source="db", mode=QueryMode.SUBMIT_ONLY)
        )

    assert isinstance(exc_info.value.__cause__, OSError)

@pytest.mark.asyncio
async def test_skip_header_drops_first_row():
    """skip_header=True drops the SELECT header row from results."""

    class _WithHeader(AlwaysSucceedClient):
        async def get_results(self, execution_id):
            columns, rows = await super().get_results(execution_id)
            return columns, [{"Data": [{"VarCharValue": "max_job_id"}]}] + rows

    controller = _controller(_WithHeader(), skip_header=True)

    result_set = await controller.fetch_results("12345-12345")

    assert result_set.rows == [["20200825"]]


@pytest.mark.asyncio
async def test_poll_once_logs_status_line(caplog):
    """poll_once emits a status line with the id and state."""
    controller = _controller(AlwaysSucceedClient())

    with caplog.at_level(logging.INFO, logger="athenaquery.controller"):
        status = await controller.poll_once("12345-12345")

    assert status.state == QueryState.SUCCEEDED
    assert any(
        "query_id=12345-12345" in r.message and "query_state=SUCCEEDED" in r.message
        for r in caplog.records
    )


@pytest.mark.asyncio
async def test_lookup_retries_recover_from_throttling():
    """Transient status failures are retried when lookup_retries is set."""

    class _ThrottledOnce(AlwaysSucceedClient):
        async def get_status(self, execution_id):
            if not self.status_calls:
                self.status_calls.append(execution_id)
                raise QueryLookupError(execution_id, "ThrottlingException: Rate exceeded")
            return await super().get_status(execution_id)

    client = _ThrottledOnce()
    sleep = RecordingSleep()
    controller = _controller(
        client, sleep=sleep, lookup_retries=2, retry_base_delay_seconds=0.25
    )

    status = await controller.poll_once("12345-12345")

    assert status.state == QueryState.SUCCEEDED
    assert len(client.status_calls) == 2
    assert sleep.calls == [0.25]


@pytest.mark.asyncio
async def test_controller_is_shareable_across_executions():
    """Concurrent runs on one controller keep independent poll budgets."""

    class _PerExecutionClient(AlwaysSucceedClient):
        def __init__(self, states_by_id):
            super().__init__()
            self._states_by_id = states_by_id
            self._polls = {execution_id: 0 for execution_id in states_by_id}

        async def get_status(self, execution_id):
            self.status_calls.append(execution_id)
            states = self._states_by_id[execution_id]
            state = states[min(self._polls[execution_id], len(states) - 1)]
            self._polls[execution_id] += 1
            return ExecutionStatus(execution_id=execution_id, state=state)

    client = _PerExecutionClient(
        {
            "fast": [QueryState.RUNNING, QueryState.SUCCEEDED],
            "stuck": [QueryState.QUEUED, QueryState.RUNNING],
        }
    )
    controller = _controller(client, poll_interval_seconds=1, timeout_seconds=2.5)

    fast, stuck = await asyncio.gather(
        controller.wait_for_completion("fast"),
        controller.wait_for_completion("stuck"),
        return_exceptions=True,
    )

    assert fast[0].execution_id == "fast"
    assert fast[1] == 1
    assert isinstance(stuck, QueryTimeoutError)
    assert stuck.execution_id == "stuck"
    assert stuck.elapsed_seconds == 3
    assert client.status_calls.count("fast") == 2
    assert client.status_calls.count("stuck") == 3
    assert client.cancelled == ["stuck"]


def test_controller_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        LifecycleController(AlwaysSucceedClient(), poll_interval_seconds=0)


def test_format_status_line_with_duration():
    """Status line reports duration between submission and completion."""
    status = ExecutionStatus(
        execution_id="12345-12345",
        state=QueryState.SUCCEEDED,
        submitted_at=datetime(2020, 1, 1, 1, tzinfo=timezone.utc),
        completed_at=datetime(2020, 1, 2, 1, tzinfo=timezone.utc),
    )

    assert format_status_line(status) == (
        "[Athena Query Execution Status] query_id=12345-12345, "
        "query_state=SUCCEEDED, duration=86400.000000"
    )
    assert format_status_line(None) == "[Athena Query Execution Status] no status"
