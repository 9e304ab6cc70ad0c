from __future__ import annotations

from planning_poker.catalog import VoteValue, is_numeric_value
from planning_poker.providers.interfaces import SyncedMapLike
from planning_poker.session_types import Vote, VoteResult, VoterRef


def _group_key(value: VoteValue) -> tuple[str, VoteValue]:
    # 5 and "5" are different groups
    return ("n" if is_numeric_value(value) else "s", value)


def _sort_key(result: VoteResult) -> tuple:
    value = result.value
    if is_numeric_value(value):
        return (0, value, "")
    text = str(value)
    return (1, text.casefold(), text)


def group_votes_by_value(votes: SyncedMapLike[Vote]) -> list[VoteResult]:
    """Group votes by value: numbers ascending first, then strings alphabetically."""
    grouped: dict[tuple[str, VoteValue], VoteResult] = {}
    for key in votes.keys():
        vote = votes.get(key)
        if vote is None:
            continue
        gk = _group_key(vote.value)
        result = grouped.get(gk)
        if result is None:
            result = grouped[gk] = VoteResult(value=vote.value)
        result.participants.append(VoterRef(name=vote.user_name, user_id=vote.user_id))
        result.count += 1
    return sorted(grouped.values(), key=_sort_key)


def calculate_vote_progress(votes: int, total: int) -> str:
    return f"{votes}/{total}"
