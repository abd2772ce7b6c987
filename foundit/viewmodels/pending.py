"""
Per-item command state: idle -> pending -> succeeded | failed(reason).

Views query it to show a busy control and to refuse a second submission
while the first one is still in flight.
"""

from __future__ import annotations

import itertools
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from foundit.errors import DuplicateSubmissionError, FoundItError


class CommandState(str, Enum):
    idle = "idle"
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"


@dataclass(frozen=True)
class ItemStatus:
    state: CommandState = CommandState.idle
    operation: Optional[str] = None
    reason: Optional[str] = None

    def as_dict(self) -> dict:
        return {"state": self.state.value, "operation": self.operation, "reason": self.reason}


IDLE = ItemStatus()

StatusCallback = Callable[[str, ItemStatus], None]


def failure_reason(err: BaseException) -> str:
    if isinstance(err, FoundItError):
        return err.message
    return "Unexpected error"


class PendingTracker:
    def __init__(self, max_finished: int = 1024):
        # pending items live until they finish; finished ones are kept for
        # status reads, oldest evicted first past ``max_finished``
        self._pending: dict[str, ItemStatus] = {}
        self._finished: OrderedDict[str, ItemStatus] = OrderedDict()
        self.max_finished = max_finished

        self._lock = threading.Lock()
        self._listeners: dict[int, StatusCallback] = {}
        self._listener_ids = itertools.count(1)

    def status(self, key: str) -> ItemStatus:
        with self._lock:
            return self._pending.get(key) or self._finished.get(key, IDLE)

    def is_pending(self, key: str) -> bool:
        return self.status(key).state == CommandState.pending

    def begin(self, key: str, operation: str) -> None:
        with self._lock:
            if key in self._pending:
                raise DuplicateSubmissionError(key)
            status = ItemStatus(CommandState.pending, operation)
            self._finished.pop(key, None)
            self._pending[key] = status
        self._emit(key, status)

    def succeed(self, key: str) -> None:
        self._finish(key, CommandState.succeeded, None)

    def fail(self, key: str, reason: str) -> None:
        self._finish(key, CommandState.failed, reason)

    @contextmanager
    def track(self, key: str, operation: str):
        """Run the block as ``operation`` on ``key``: any exception fails it, a clean exit succeeds it."""
        self.begin(key, operation)
        try:
            yield
        except Exception as e:
            self.fail(key, failure_reason(e))
            raise
        self.succeed(key)

    def reset(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)
            self._finished.pop(key, None)
        self._emit(key, IDLE)

    def _finish(self, key: str, state: CommandState, reason: Optional[str]) -> None:
        with self._lock:
            current = self._pending.pop(key, None)
            if current is None:
                raise RuntimeError(f"{key} is not pending")

            status = ItemStatus(state, current.operation, reason)
            self._finished[key] = status
            while len(self._finished) > self.max_finished:
                self._finished.popitem(last=False)
        self._emit(key, status)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._finished)

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = callback

        def unsubscribe():
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _emit(self, key: str, status: ItemStatus) -> None:
        for callback in list(self._listeners.values()):
            callback(key, status)
