# packages/planning_poker/session_flow.py
"""
Session state machine: waiting -> voting -> revealed -> voting (reset) -> ...

`SessionController` is the only writer of the shared session singleton.
It receives every host capability by injection and never lets an
exception escape a public operation: identity problems fall back to a
generated id, invalid requests become a user notification, and any other
fault is logged and rolled back (see `planning_poker.guard`).
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import replace

from planning_poker import card_quality, metrics
from planning_poker.card_quality import CardQualityTable
from planning_poker.cards import describe_cards
from planning_poker.catalog import VoteValue, is_known_value
from planning_poker.context import SessionSettings
from planning_poker.guard import Journal, guarded
from planning_poker.hand_eval import PokerWinner, determine_poker_winner
from planning_poker.providers.interfaces import (
    IdentityProvider,
    Notifier,
    SyncedMapLike,
    SyncedState,
)
from planning_poker.session_types import Participant, SessionState, Vote, VoteResult
from planning_poker.votes import group_votes_by_value

_LOG = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"

MSG_NO_VOTES = "Cannot reveal results - no votes have been cast yet!"
MSG_FACILITATOR_ONLY = "Only the facilitator can do that."
MSG_NO_CARDS = "You don't have any cards to replace."
MSG_REPLACEMENT_USED = "You can only replace one card per turn. Wait for the next round!"


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionController:
    def __init__(
        self,
        state: SyncedState[SessionState],
        participants: SyncedMapLike[Participant],
        votes: SyncedMapLike[Vote],
        identity: IdentityProvider,
        notifier: Notifier,
        *,
        settings: SessionSettings | None = None,
        table: CardQualityTable | None = None,
        clock: Callable[[], int] | None = None,
        rng: random.Random | None = None,
    ):
        self.state = state
        self.participants = participants
        self.votes = votes
        self.identity = identity
        self.notifier = notifier
        self.settings = settings or SessionSettings.build()
        self.table = table
        self.clock = clock or now_ms
        self.rng = rng

    # --- identity -----------------------------------------------------------

    def _current_user_id(self) -> str | None:
        try:
            return self.identity.current_user_id() or None
        except Exception:
            _LOG.warning("current_user_unavailable", exc_info=True)
            return None

    def _current_user_name(self) -> str:
        try:
            return self.identity.current_user_name() or ANONYMOUS
        except Exception:
            _LOG.warning("current_user_name_unavailable", exc_info=True)
            return ANONYMOUS

    def _resolve_identity(self) -> tuple[str, str]:
        user_id = self._current_user_id()
        if user_id is None:
            user_id = f"user-{self.clock()}"
            _LOG.info("identity_fallback", extra={"user_id": user_id})
            return user_id, ANONYMOUS
        return user_id, self._current_user_name()

    # --- helpers ------------------------------------------------------------

    def _notify(self, message: str, timeout: int | None = None) -> None:
        try:
            self.notifier.notify(message, timeout=timeout or self.settings.notify_timeout_ms)
        except Exception:
            _LOG.warning("notify_failed", extra={"notice": message}, exc_info=True)

    def _reject(self, op: str, message: str) -> None:
        metrics.inc_session_op(op, "rejected")
        self._notify(message, self.settings.reject_timeout_ms)

    def _may_control(self, user_id: str, state: SessionState) -> bool:
        if not self.settings.restrict_controls_to_facilitator:
            return True
        return user_id == state.facilitator_id

    def _upsert_participant(self, journal: Journal, user_id: str, user_name: str) -> Participant:
        # hand, replacement count and joinedAt survive a rejoin
        now = self.clock()
        existing = self.participants.get(user_id)
        if existing is None:
            participant = Participant(
                user_id=user_id, user_name=user_name, joined_at=now, last_active_time=now
            )
        else:
            participant = replace(existing, user_name=user_name, last_active_time=now)
            _LOG.info(
                "participant_rejoined",
                extra={"user_id": user_id, "cards": len(existing.cards)},
            )
        journal.set(self.participants, user_id, participant)
        return participant

    # --- queries ------------------------------------------------------------

    def vote_results(self) -> list[VoteResult]:
        """Grouped votes for display. A failing host map yields an empty list."""
        try:
            return group_votes_by_value(self.votes)
        except Exception:
            _LOG.exception("vote_results_failed")
            return []

    def current_user_vote(self) -> Vote | None:
        user_id = self._current_user_id()
        if user_id is None:
            return None
        try:
            return self.votes.get(user_id)
        except Exception:
            _LOG.exception("current_vote_failed")
            return None

    # --- operations ---------------------------------------------------------

    def start_session(self) -> None:
        with guarded("start_session") as journal:
            user_id, user_name = self._resolve_identity()
            _LOG.info("session_start", extra={"user_id": user_id})
            self._upsert_participant(journal, user_id, user_name)
            journal.set_state(
                self.state,
                SessionState(status="voting", participants=(user_id,), facilitator_id=user_id),
            )
            metrics.inc_session_op("start")

    def join_session(self) -> None:
        with guarded("join_session") as journal:
            user_id, user_name = self._resolve_identity()
            self._upsert_participant(journal, user_id, user_name)
            state = self.state.get()
            if user_id not in state.participants:
                journal.set_state(
                    self.state, replace(state, participants=state.participants + (user_id,))
                )
            metrics.inc_session_op("join")

    def cast_vote(self, value: VoteValue | None) -> None:
        """Store the caller's estimate; `None` withdraws it."""
        with guarded("cast_vote") as journal:
            user_id = self._current_user_id()
            if user_id is None:
                _LOG.info("vote_without_identity")
                return
            if self.state.get().status != "voting":
                _LOG.info("vote_outside_voting", extra={"user_id": user_id})
                return
            if value is None:
                journal.delete(self.votes, user_id)
                metrics.inc_vote("cleared")
                return
            if not is_known_value(value):
                _LOG.warning("vote_unknown_value", extra={"user_id": user_id, "value": value})
                return
            vote = Vote(
                user_id=user_id,
                user_name=self._current_user_name(),
                value=value,
                timestamp=self.clock(),
            )
            journal.set(self.votes, user_id, vote)
            metrics.inc_vote("cast")

    def reveal_results(self, vote_results: Sequence[VoteResult] | None = None) -> None:
        with guarded("reveal_results") as journal:
            user_id = self._current_user_id()
            if user_id is None:
                _LOG.info("reveal_without_identity")
                return
            state = self.state.get()
            if state.status != "voting":
                _LOG.info("reveal_outside_voting", extra={"status": state.status})
                return
            if not self._may_control(user_id, state):
                self._reject("reveal", MSG_FACILITATOR_ONLY)
                return
            if self.votes.size == 0:
                _LOG.info("reveal_without_votes")
                self._reject("reveal", MSG_NO_VOTES)
                return

            # grouping faults must reach the guard
            if vote_results is not None:
                results = list(vote_results)
            else:
                results = group_votes_by_value(self.votes)
            personal = None
            if self.settings.enable_card_rewards:
                personal = self._distribute_cards(journal, results, user_id)
            else:
                _LOG.info("card_rewards_disabled")

            snapshot = self._capture_snapshot(state)
            journal.set_state(
                self.state,
                replace(
                    state,
                    status="revealed",
                    participants_snapshot=snapshot,
                    poker_results_revealed=False,
                ),
            )
            metrics.inc_session_op("reveal")
            if personal:
                self._notify(personal)

    def _distribute_cards(
        self, journal: Journal, results: Sequence[VoteResult], current_user_id: str
    ) -> str | None:
        personal = None
        for voter_id in self.votes.keys():
            participant = self.participants.get(voter_id)
            vote = self.votes.get(voter_id)
            if participant is None or vote is None:
                continue
            award = card_quality.add_card_to_participant_with_quality(
                participant.cards, vote.value, results, rng=self.rng, table=self.table
            )
            journal.set(self.participants, voter_id, replace(participant, cards=tuple(award.cards)))
            metrics.inc_card_awarded(award.category, award.tier)
            _LOG.info(
                "card_awarded",
                extra={
                    "user_id": voter_id,
                    "vote": vote.value,
                    "category": award.category,
                    "tier": award.tier,
                    "hand_size": len(award.cards),
                },
            )
            if voter_id == current_user_id:
                personal = award.reason
        return personal

    def _capture_snapshot(self, state: SessionState) -> tuple[Participant, ...]:
        try:
            active = self.identity.active_users() or []
        except Exception:
            _LOG.warning("active_users_unavailable_for_snapshot", exc_info=True)
            active = []

        snapshot: list[Participant] = []
        if active:
            now = self.clock()
            for user in active:
                if not user.id:
                    continue
                name = user.name or ANONYMOUS
                stored = self.participants.get(user.id)
                if stored is None:
                    snapshot.append(Participant(user_id=user.id, user_name=name, joined_at=now))
                else:
                    snapshot.append(replace(stored, user_name=name))
            return tuple(snapshot)

        for uid in state.participants:
            stored = self.participants.get(uid)
            if stored is not None:
                snapshot.append(stored)
        return tuple(snapshot)

    def reset_session(self) -> None:
        with guarded("reset_session") as journal:
            user_id = self._current_user_id()
            if user_id is None:
                _LOG.info("reset_without_identity")
                return
            state = self.state.get()
            if state.status == "waiting":
                _LOG.info("reset_before_start")
                return
            if not self._may_control(user_id, state):
                self._reject("reset", MSG_FACILITATOR_ONLY)
                return

            for key in self.votes.keys():
                journal.delete(self.votes, key)
            # hands are kept, only the per-round allowance starts over
            for pid in self.participants.keys():
                participant = self.participants.get(pid)
                if participant is not None and participant.card_replacements_used:
                    journal.set(
                        self.participants, pid, replace(participant, card_replacements_used=0)
                    )
            journal.set_state(
                self.state,
                replace(
                    state,
                    status="voting",
                    participants_snapshot=None,
                    poker_results_revealed=False,
                ),
            )
            metrics.inc_session_op("reset")

    def replace_random_card(self) -> None:
        with guarded("replace_random_card") as journal:
            user_id = self._current_user_id()
            if user_id is None:
                return
            participant = self.participants.get(user_id)
            if participant is None or not participant.cards:
                self._reject("replace_card", MSG_NO_CARDS)
                return
            used = participant.card_replacements_used
            if used >= self.settings.max_replacements_per_round:
                self._reject("replace_card", MSG_REPLACEMENT_USED)
                return

            updated = card_quality.replace_random_card(participant.cards, rng=self.rng)
            journal.set(
                self.participants,
                user_id,
                replace(participant, cards=tuple(updated), card_replacements_used=used + 1),
            )
            metrics.inc_session_op("replace_card")
            self._notify(f"Replaced one card! You now have {len(updated)} cards.")

    def reveal_poker_results(self) -> PokerWinner | None:
        """Showdown over the revealed snapshot. Only hands holding cards take part."""
        with guarded("reveal_poker_results") as journal:
            state = self.state.get()
            if state.status != "revealed":
                _LOG.info("showdown_outside_reveal", extra={"status": state.status})
                return None
            if state.participants_snapshot is not None:
                pool = list(state.participants_snapshot)
            else:
                pool = [p for p in map(self.participants.get, state.participants) if p]
            winner = determine_poker_winner(p for p in pool if p.cards)
            journal.set_state(self.state, replace(state, poker_results_revealed=True))
            if winner is not None:
                _LOG.info(
                    "showdown_winner",
                    extra={
                        "user_id": winner.user_id,
                        "hand": winner.hand.hand,
                        "cards": describe_cards(winner.cards),
                    },
                )
            return winner
        return None
