# packages/planning_poker/session_types.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from planning_poker.cards import PlayingCard
from planning_poker.catalog import VoteValue

SessionStatus = Literal["waiting", "voting", "revealed"]

MAX_HAND_SIZE = 5


@dataclass(frozen=True)
class Vote:
    user_id: str
    user_name: str
    value: VoteValue
    timestamp: int  # epoch ms

    def as_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "value": self.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Vote:
        return cls(
            user_id=str(data["userId"]),
            user_name=str(data.get("userName") or "Anonymous"),
            value=data["value"],
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass(frozen=True)
class Participant:
    user_id: str
    user_name: str
    joined_at: int  # epoch ms
    last_active_time: int | None = None  # None: legacy records, never swept
    cards: tuple[PlayingCard, ...] = ()
    card_replacements_used: int = 0

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "userId": self.user_id,
            "userName": self.user_name,
            "joinedAt": self.joined_at,
            "cards": [c.as_dict() for c in self.cards],
            "cardReplacementsUsed": self.card_replacements_used,
        }
        if self.last_active_time is not None:
            out["lastActiveTime"] = self.last_active_time
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Participant:
        last_active = data.get("lastActiveTime")
        return cls(
            user_id=str(data["userId"]),
            user_name=str(data.get("userName") or "Anonymous"),
            joined_at=int(data.get("joinedAt") or 0),
            last_active_time=int(last_active) if last_active is not None else None,
            cards=tuple(PlayingCard.from_dict(c) for c in data.get("cards") or ()),
            card_replacements_used=int(data.get("cardReplacementsUsed") or 0),
        )


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus = "waiting"
    participants: tuple[str, ...] = ()
    facilitator_id: str = ""
    participants_snapshot: tuple[Participant, ...] | None = None
    poker_results_revealed: bool = False

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "status": self.status,
            "participants": list(self.participants),
            "facilitatorId": self.facilitator_id,
            "pokerResultsRevealed": self.poker_results_revealed,
        }
        if self.participants_snapshot is not None:
            out["participantsSnapshot"] = [p.as_dict() for p in self.participants_snapshot]
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionState:
        snapshot = data.get("participantsSnapshot")
        return cls(
            status=data.get("status", "waiting"),
            participants=tuple(data.get("participants") or ()),
            facilitator_id=str(data.get("facilitatorId") or ""),
            participants_snapshot=(
                tuple(Participant.from_dict(p) for p in snapshot) if snapshot is not None else None
            ),
            poker_results_revealed=bool(data.get("pokerResultsRevealed", False)),
        )


@dataclass(frozen=True)
class VoterRef:
    name: str
    user_id: str


@dataclass
class VoteResult:
    """One group of identical votes. Derived from the vote map, never stored."""

    value: VoteValue
    participants: list[VoterRef] = field(default_factory=list)
    count: int = 0
