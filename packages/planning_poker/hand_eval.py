"""
Poker hand evaluation for collected participant hands.

Hands hold between 0 and 5 cards and may contain duplicates, since cards
are drawn independently from fresh decks. Only the first five supplied
cards are evaluated. Short hands are evaluated as they are: straights and
flushes need five real cards, and nothing is padded with filler cards.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal, Protocol

from planning_poker.cards import PlayingCard, get_rank_value

PokerHand = Literal[
    "royal-flush",
    "straight-flush",
    "four-of-a-kind",
    "full-house",
    "flush",
    "straight",
    "three-of-a-kind",
    "two-pair",
    "one-pair",
    "high-card",
]

HAND_RANKS: dict[str, int] = {
    "royal-flush": 10,
    "straight-flush": 9,
    "four-of-a-kind": 8,
    "full-house": 7,
    "flush": 6,
    "straight": 5,
    "three-of-a-kind": 4,
    "two-pair": 3,
    "one-pair": 2,
    "high-card": 1,
}

HAND_NAMES: dict[str, str] = {
    "royal-flush": "Royal Flush",
    "straight-flush": "Straight Flush",
    "four-of-a-kind": "Four of a Kind",
    "full-house": "Full House",
    "flush": "Flush",
    "straight": "Straight",
    "three-of-a-kind": "Three of a Kind",
    "two-pair": "Two Pair",
    "one-pair": "One Pair",
    "high-card": "High Card",
}

HAND_SIZE = 5
_WHEEL = [2, 3, 4, 5, 14]


@dataclass(frozen=True)
class HandEvaluation:
    hand: PokerHand
    rank: int
    cards: list[PlayingCard]
    kickers: list[PlayingCard] = field(default_factory=list)

    @property
    def name(self) -> str:
        return get_poker_hand_name(self.hand)

    def high_card_value(self) -> int:
        return max((get_rank_value(c.rank) for c in self.cards), default=0)


@dataclass(frozen=True)
class PokerWinner:
    user_id: str
    user_name: str
    hand: HandEvaluation
    cards: list[PlayingCard]


class HandHolder(Protocol):
    user_id: str
    user_name: str
    cards: Sequence[PlayingCard]


def _is_straight(values: list[int]) -> bool:
    ordered = sorted(values)
    if ordered == _WHEEL:
        return True
    return all(b == a + 1 for a, b in zip(ordered, ordered[1:], strict=False))


def _is_flush(cards: list[PlayingCard]) -> bool:
    return len({c.suit for c in cards}) == 1


def _kickers(cards: list[PlayingCard], grouped: set[int]) -> list[PlayingCard]:
    rest = [c for c in cards if get_rank_value(c.rank) not in grouped]
    return sorted(rest, key=lambda c: get_rank_value(c.rank), reverse=True)


def _result(
    hand: PokerHand, cards: list[PlayingCard], kickers: list[PlayingCard] | None = None
) -> HandEvaluation:
    return HandEvaluation(hand=hand, rank=HAND_RANKS[hand], cards=cards, kickers=kickers or [])


def evaluate_poker_hand(cards: Iterable[PlayingCard]) -> HandEvaluation:
    hand = list(cards)[:HAND_SIZE]
    values = [get_rank_value(c.rank) for c in hand]
    counter = Counter(values)
    counts = sorted(counter.values(), reverse=True)
    unique_desc = sorted(counter, reverse=True)
    n = len(hand)

    full = n == HAND_SIZE
    flush = full and _is_flush(hand)
    straight = full and len(counter) == HAND_SIZE and _is_straight(values)

    if flush and straight and unique_desc[:2] == [14, 13]:
        return _result("royal-flush", hand)
    if flush and straight:
        return _result("straight-flush", hand)
    if n >= 4 and counts[0] >= 4:
        quad = {v for v, k in counter.items() if k >= 4}
        return _result("four-of-a-kind", hand, _kickers(hand, quad))
    if full and counts[:2] == [3, 2]:
        return _result("full-house", hand)
    if flush:
        return _result("flush", hand)
    if straight:
        return _result("straight", hand)
    if n >= 3 and counts[0] == 3:
        trips = {v for v, k in counter.items() if k == 3}
        return _result("three-of-a-kind", hand, _kickers(hand, trips))
    if n >= 4 and counts[:2] == [2, 2]:
        pairs = {v for v, k in counter.items() if k == 2}
        return _result("two-pair", hand, _kickers(hand, pairs))
    if n >= 2 and counts[0] == 2:
        pair = {v for v, k in counter.items() if k == 2}
        return _result("one-pair", hand, _kickers(hand, pair))
    return _result("high-card", hand)


def determine_poker_winner(participants: Iterable[HandHolder]) -> PokerWinner | None:
    """Best category wins; equal categories fall back to the single highest card.

    Remaining ties keep input order.
    """
    evaluations = [(p, evaluate_poker_hand(p.cards)) for p in participants]
    if not evaluations:
        return None
    evaluations.sort(key=lambda item: (item[1].rank, item[1].high_card_value()), reverse=True)
    best, evaluation = evaluations[0]
    return PokerWinner(
        user_id=best.user_id,
        user_name=best.user_name,
        hand=evaluation,
        cards=list(best.cards),
    )


def get_poker_hand_name(hand: str) -> str:
    return HAND_NAMES[hand]
