import pytest
from google.auth.exceptions import TransportError
from googleapiclient.errors import HttpError
from httplib2 import ServerNotFoundError

from game_server.config import PollPolicy
from game_server.poller import OperationPoller, Outcome, classify

from .conftest import FakeClock, http_error


def _statuses(*statuses):
    """Query that returns the given statuses in order, counting calls."""
    calls = []

    def query(operation):
        calls.append(operation)
        return {"name": operation["name"], "status": statuses[len(calls) - 1]}

    query.calls = calls
    return query


def _failing(error):
    calls = []

    def query(operation):
        calls.append(operation)
        raise error

    query.calls = calls
    return query


def test_completes_after_nth_tick():
    clock = FakeClock()
    query = _statuses("RUNNING", "RUNNING", "DONE")
    fallback = _statuses()
    poller = OperationPoller(query, fallback, PollPolicy(3, 120), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "PENDING"})

    assert result.outcome is Outcome.COMPLETED
    assert result.ticks == 3
    assert len(query.calls) == 3
    assert fallback.calls == []
    assert clock.sleeps == [3, 3, 3]


def test_already_done_is_not_polled():
    clock = FakeClock()
    query = _statuses()
    poller = OperationPoller(query, query, PollPolicy(3, 120), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "DONE"})

    assert result.outcome is Outcome.COMPLETED
    assert result.ticks == 0
    assert query.calls == []


def test_times_out_and_stops_querying():
    clock = FakeClock()
    query = _statuses(*["RUNNING"] * 100)
    poller = OperationPoller(query, query, PollPolicy(5, 20), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "PENDING"})

    assert result.outcome is Outcome.TIMED_OUT
    assert result.operation["status"] == "RUNNING"
    assert len(query.calls) == 4
    assert clock.now == 20


def test_done_at_deadline_counts_as_completed():
    clock = FakeClock()
    query = _statuses("RUNNING", "DONE")
    poller = OperationPoller(query, query, PollPolicy(5, 10), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "PENDING"})

    assert clock.now == 10
    assert result.outcome is Outcome.COMPLETED


def test_operation_error_is_reported():
    clock = FakeClock()

    def query(operation):
        return {
            "name": "op-1",
            "status": "DONE",
            "error": {"errors": [{"code": "QUOTA_EXCEEDED", "message": "Quota 'CPUS' exceeded"}]},
        }

    poller = OperationPoller(query, query, PollPolicy(2, 60), sleep=clock.sleep, clock=clock)
    result = poller.poll({"name": "op-1", "status": "RUNNING"})

    assert result.outcome is Outcome.COMPLETED_WITH_ERROR
    assert result.error["code"] == "QUOTA_EXCEEDED"
    assert "CPUS" in result.error["message"]


def test_fallback_runs_on_the_same_tick():
    clock = FakeClock()
    query = _failing(http_error(503, message="backend unavailable"))
    fallback = _statuses("DONE")
    poller = OperationPoller(query, fallback, PollPolicy(3, 120), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "RUNNING"})

    assert result.outcome is Outcome.COMPLETED
    assert len(query.calls) == 1
    assert len(fallback.calls) == 1
    assert clock.sleeps == [3]


def test_fallback_after_transport_error():
    clock = FakeClock()
    query = _failing(ServerNotFoundError("Unable to find the server at compute.googleapis.com"))
    fallback = _statuses("DONE")
    poller = OperationPoller(query, fallback, PollPolicy(3, 120), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "RUNNING"})

    assert result.outcome is Outcome.COMPLETED
    assert len(query.calls) == 1
    assert len(fallback.calls) == 1


def test_transport_errors_on_both_queries_keep_polling():
    clock = FakeClock()
    query = _failing(ServerNotFoundError("dns"))
    fallback = _failing(TransportError("token refresh failed"))
    poller = OperationPoller(query, fallback, PollPolicy(2, 6), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "RUNNING"})

    assert result.outcome is Outcome.TIMED_OUT
    assert len(fallback.calls) == 3


def test_both_queries_failing_keeps_polling():
    clock = FakeClock()
    query = _failing(http_error(500))
    fallback = _failing(ConnectionResetError("reset"))
    poller = OperationPoller(query, fallback, PollPolicy(3, 9), sleep=clock.sleep, clock=clock)

    result = poller.poll({"name": "op-1", "status": "RUNNING"})

    assert result.outcome is Outcome.TIMED_OUT
    assert result.operation == {"name": "op-1", "status": "RUNNING"}
    assert len(query.calls) == 3
    assert len(fallback.calls) == 3


def test_non_transient_fallback_error_propagates():
    clock = FakeClock()
    query = _failing(http_error(404))
    fallback = _failing(http_error(403, "PERMISSION_DENIED"))
    poller = OperationPoller(query, fallback, PollPolicy(3, 9), sleep=clock.sleep, clock=clock)

    with pytest.raises(HttpError) as excinfo:
        poller.poll({"name": "op-1", "status": "RUNNING"})
    assert excinfo.value.resp.status == 403


def test_classify_by_status():
    assert classify({"status": "RUNNING"}).outcome is Outcome.TIMED_OUT
    assert classify({"status": "DONE"}).outcome is Outcome.COMPLETED
    assert classify({"status": "DONE", "error": {"errors": []}}).outcome is Outcome.COMPLETED
