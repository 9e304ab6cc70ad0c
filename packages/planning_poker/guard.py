"""
Operation boundary for session operations.

Host maps offer only per-key get/set/delete, so a multi-step operation
that fails halfway would leave partial writes behind. Every write goes
through a `Journal`; when the operation raises, the journal replays the
previous values in reverse order and the fault is logged instead of being
propagated to the host's render cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from planning_poker import metrics
from planning_poker.providers.interfaces import SyncedMapLike, SyncedState

_LOG = logging.getLogger(__name__)


def _restore(target: SyncedMapLike[Any], key: str, previous: Any) -> None:
    if previous is None:
        target.delete(key)
    else:
        target.set(key, previous)


class Journal:
    def __init__(self) -> None:
        self._undo: list[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._undo)

    def set(self, target: SyncedMapLike[Any], key: str, value: Any) -> None:
        previous = target.get(key)
        target.set(key, value)
        self._undo.append(lambda: _restore(target, key, previous))

    def delete(self, target: SyncedMapLike[Any], key: str) -> None:
        previous = target.get(key)
        target.delete(key)
        if previous is not None:
            self._undo.append(lambda: target.set(key, previous))

    def set_state(self, target: SyncedState[Any], value: Any) -> None:
        previous = target.get()
        target.set(value)
        self._undo.append(lambda: target.set(previous))

    def rollback(self) -> None:
        while self._undo:
            undo = self._undo.pop()
            try:
                undo()
            except Exception:
                _LOG.exception("rollback_step_failed")


@contextmanager
def guarded(op: str) -> Iterator[Journal]:
    journal = Journal()
    try:
        yield journal
    except Exception:
        _LOG.exception("operation_failed", extra={"op": op, "writes": len(journal)})
        metrics.inc_op_error(op)
        journal.rollback()
