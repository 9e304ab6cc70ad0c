from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from planning_poker.providers.interfaces import SyncedMapLike
from planning_poker.session_types import Participant, SessionState, Vote
from planning_poker.votes import calculate_vote_progress


@dataclass(frozen=True)
class ParticipantStatus:
    user_id: str
    user_name: str
    has_voted: bool


@dataclass(frozen=True)
class VotingProgress:
    participants: list[ParticipantStatus]
    votes_cast: int
    total_eligible: int

    @property
    def label(self) -> str:
        return calculate_vote_progress(self.votes_cast, self.total_eligible)


# active users first; falls back to the session's participant list
def build_participant_status(
    state: SessionState,
    participants: SyncedMapLike[Participant],
    votes: SyncedMapLike[Vote],
    active_user_ids: Sequence[str],
) -> VotingProgress:
    statuses = []
    for uid in active_user_ids:
        participant = participants.get(uid)
        if participant is None:
            continue
        statuses.append(
            ParticipantStatus(
                user_id=uid,
                user_name=participant.user_name,
                has_voted=votes.get(uid) is not None,
            )
        )
    total = len(active_user_ids) if active_user_ids else len(state.participants)
    return VotingProgress(participants=statuses, votes_cast=votes.size, total_eligible=total)
