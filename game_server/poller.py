"""Bounded polling of Compute Engine long-running operations.

A mutating call (start, stop, patch, insert) returns an operation that keeps
running on the provider side. The poller re-fetches it at a fixed interval
until it is DONE or the wait budget is spent. Running out of budget is not a
failure: the operation carries on without us and the caller reports
"in progress".
"""
import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import PollPolicy
from .errors import QUERY_ERRORS, is_transient, operation_error
from .logs import log

DONE = "DONE"

Query = Callable[[dict], dict]


class Outcome(enum.Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERROR = "completed_with_error"
    TIMED_OUT = "timed_out"


@dataclass
class PollResult:
    outcome: Outcome
    operation: dict
    ticks: int = 0

    @property
    def done(self) -> bool:
        return self.outcome is not Outcome.TIMED_OUT

    @property
    def error(self) -> Optional[dict]:
        return operation_error(self.operation)


def classify(operation: dict, ticks: int = 0) -> PollResult:
    # By status, not by elapsed time: DONE at the deadline still counts.
    if operation.get("status") != DONE:
        return PollResult(Outcome.TIMED_OUT, operation, ticks)
    if operation_error(operation):
        return PollResult(Outcome.COMPLETED_WITH_ERROR, operation, ticks)
    return PollResult(Outcome.COMPLETED, operation, ticks)


class OperationPoller:
    """Wait for one operation using a preferred query and a fallback query.

    ``query`` and ``fallback`` take the latest known operation and return a
    fresher copy of it. A failure of ``query`` is retried through
    ``fallback`` on the same tick; if that fails transiently too the tick is
    skipped and the last known state is kept.
    """

    def __init__(
        self,
        query: Query,
        fallback: Query,
        policy: PollPolicy,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.query = query
        self.fallback = fallback
        self.policy = policy
        self.sleep = sleep or time.sleep
        self.clock = clock or time.monotonic

    def poll(self, operation: dict) -> PollResult:
        deadline = self.clock() + self.policy.max_wait
        state = operation
        ticks = 0

        while state.get("status") != DONE and self.clock() < deadline:
            self.sleep(self.policy.interval)
            ticks += 1
            state = self._tick(state, ticks)

        result = classify(state, ticks)
        if result.done:
            log("operation.done", operation=state.get("name"), ticks=ticks,
                outcome=result.outcome.value)
        else:
            log("operation.timeout", severity="WARNING", operation=state.get("name"),
                ticks=ticks, last_status=state.get("status"),
                max_wait=self.policy.max_wait)
        return result

    def _tick(self, state: dict, tick: int) -> dict:
        try:
            updated = self.query(state)
        except QUERY_ERRORS as e:
            log("operation.poll.fallback", severity="WARNING",
                operation=state.get("name"), tick=tick, error=str(e))
            try:
                updated = self.fallback(state)
            except QUERY_ERRORS as fallback_error:
                if not is_transient(fallback_error):
                    raise
                log("operation.poll.retry", severity="WARNING",
                    operation=state.get("name"), tick=tick, error=str(fallback_error))
                return state

        log("operation.poll.tick", severity="DEBUG", operation=updated.get("name"),
            tick=tick, status=updated.get("status"))
        return updated

