"""
Presence reconciliation while a round is open.

Every poll cycle compares the host's active users with the stored
participants: newcomers are registered, known users get a fresh
`last_active_time`, and participants idle for longer than the grace
period are dropped unless they already voted this round. Users who merely
disconnect are not removed right away so their hands survive a reload.

Polling state lives in a `PollingState` owned by each reconciler, so two
sessions in one process never share timers or counters.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from planning_poker import metrics
from planning_poker.context import SessionSettings
from planning_poker.guard import Journal, guarded
from planning_poker.providers.interfaces import (
    IdentityProvider,
    SyncedMapLike,
    SyncedState,
    Timer,
)
from planning_poker.session_flow import ANONYMOUS, SessionController, now_ms
from planning_poker.session_types import Participant, SessionState, Vote

_LOG = logging.getLogger(__name__)


@dataclass
class PollingState:
    active: bool = False
    timer_handle: Any = None
    poll_count: int = 0
    in_cycle: bool = False
    active_user_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PollResult:
    users_joined: list[str] = field(default_factory=list)
    users_left: list[str] = field(default_factory=list)
    evicted: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.users_joined or self.users_left or self.evicted)


class AutoUpdateScheduler:
    """Re-arming timer loop that stops itself once `condition()` turns false."""

    def __init__(
        self,
        timer: Timer,
        interval_ms: int,
        condition: Callable[[], bool],
        on_tick: Callable[[], Any],
        on_complete: Callable[[], None] | None = None,
        state: PollingState | None = None,
    ):
        self.timer = timer
        self.interval_ms = interval_ms
        self.condition = condition
        self.on_tick = on_tick
        self.on_complete = on_complete
        self.state = state or PollingState()

    @property
    def is_active(self) -> bool:
        return self.state.active

    def start(self) -> None:
        if self.state.active:
            self.stop()
        self.state.active = True
        self.state.timer_handle = self.timer.schedule(self.interval_ms, self._tick)

    def stop(self) -> None:
        self.state.active = False
        handle, self.state.timer_handle = self.state.timer_handle, None
        if handle is not None:
            self.timer.cancel(handle)

    def _tick(self) -> None:
        self.state.timer_handle = None
        if not self.state.active:
            return
        if not self.condition():
            self.stop()
            if self.on_complete is not None:
                self.on_complete()
            return
        self.on_tick()
        if self.state.active:
            self.state.timer_handle = self.timer.schedule(self.interval_ms, self._tick)


class PresenceReconciler:
    def __init__(
        self,
        state: SyncedState[SessionState],
        participants: SyncedMapLike[Participant],
        votes: SyncedMapLike[Vote],
        identity: IdentityProvider,
        timer: Timer,
        *,
        settings: SessionSettings | None = None,
        clock: Callable[[], int] | None = None,
        polling: PollingState | None = None,
    ):
        self.state = state
        self.participants = participants
        self.votes = votes
        self.identity = identity
        self.settings = settings or SessionSettings.build()
        self.clock = clock or now_ms
        self.polling = polling or PollingState()
        self.scheduler = AutoUpdateScheduler(
            timer,
            self.settings.poll_interval_ms,
            condition=self._is_voting,
            on_tick=self.poll_once,
            on_complete=self._on_voting_closed,
            state=self.polling,
        )

    @classmethod
    def for_controller(cls, controller: SessionController, timer: Timer) -> PresenceReconciler:
        return cls(
            controller.state,
            controller.participants,
            controller.votes,
            controller.identity,
            timer,
            settings=controller.settings,
            clock=controller.clock,
        )

    def _is_voting(self) -> bool:
        try:
            return self.state.get().status == "voting"
        except Exception:
            _LOG.warning("session_state_unavailable", exc_info=True)
            return False

    def _on_voting_closed(self) -> None:
        _LOG.info("presence_poll_stopped", extra={"polls": self.polling.poll_count})
        self.polling.poll_count = 0

    @property
    def is_polling(self) -> bool:
        return self.polling.active

    def sync(self) -> None:
        """Align the poll loop with the session status. Safe to call on every render."""
        if self._is_voting():
            if not self.polling.active:
                self.start()
        elif self.polling.active:
            self.stop()

    def start(self) -> bool:
        if not self._is_voting():
            return False
        if self.polling.active:
            return True
        self.poll_once()
        try:
            self.scheduler.start()
        except Exception:
            _LOG.exception("presence_poll_schedule_failed")
            self.polling.active = False
            self.polling.timer_handle = None
            return False
        return True

    def stop(self) -> None:
        try:
            self.scheduler.stop()
        except Exception:
            _LOG.exception("presence_poll_cancel_failed")
        self._on_voting_closed()

    def poll_once(self) -> PollResult:
        if self.polling.in_cycle:
            return PollResult()
        self.polling.in_cycle = True
        result = PollResult()
        try:
            with guarded("presence_poll") as journal:
                result = self._poll(journal)
        finally:
            self.polling.in_cycle = False
        return result

    def _poll(self, journal: Journal) -> PollResult:
        now = self.clock()
        self.polling.poll_count += 1
        previous = list(self.polling.active_user_ids)

        try:
            active = [u for u in self.identity.active_users() if u.id]
        except Exception:
            _LOG.warning("active_users_unavailable", exc_info=True)
            active = None

        if active is None:
            current_ids = previous
        else:
            current_ids = [u.id for u in active]
            for user in active:
                existing = self.participants.get(user.id)
                if existing is None:
                    journal.set(
                        self.participants,
                        user.id,
                        Participant(
                            user_id=user.id,
                            user_name=user.name or ANONYMOUS,
                            joined_at=now,
                            last_active_time=now,
                        ),
                    )
                else:
                    journal.set(self.participants, user.id, replace(existing, last_active_time=now))

        joined = [uid for uid in current_ids if uid not in previous]
        left = [uid for uid in previous if uid not in current_ids]
        evicted = self._sweep(journal, now)

        self.polling.active_user_ids = list(current_ids)
        if joined or left or evicted:
            _LOG.info(
                "presence_changed",
                extra={
                    "poll": self.polling.poll_count,
                    "joined": joined,
                    "left": left,
                    "evicted": evicted,
                },
            )
        metrics.inc_eviction(len(evicted))
        return PollResult(users_joined=joined, users_left=left, evicted=evicted)

    def _sweep(self, journal: Journal, now: int) -> list[str]:
        grace = self.settings.grace_period_ms
        evicted: list[str] = []
        for pid in self.participants.keys():
            participant = self.participants.get(pid)
            if participant is None or participant.last_active_time is None:
                continue
            if now - participant.last_active_time <= grace:
                continue
            if self.votes.get(pid) is not None:
                continue
            journal.delete(self.participants, pid)
            evicted.append(pid)
        return evicted
