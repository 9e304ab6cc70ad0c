from __future__ import annotations

import random
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from planning_poker.rng import resolve_rng

Suit = Literal["clubs", "diamonds", "hearts", "spades"]
Rank = Literal["2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A"]

SUITS: tuple[Suit, ...] = ("clubs", "diamonds", "hearts", "spades")
RANKS: tuple[Rank, ...] = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")

RANK_ORDER: dict[str, int] = {rank: i + 2 for i, rank in enumerate(RANKS)}
SUIT_ORDER: dict[str, int] = {suit: i + 1 for i, suit in enumerate(SUITS)}
SUIT_SYMBOLS = {"clubs": "♣", "diamonds": "♦", "hearts": "♥", "spades": "♠"}


@dataclass(frozen=True)
class PlayingCard:
    suit: Suit
    rank: Rank

    @property
    def id(self) -> str:
        return f"{self.rank}-{self.suit}"

    def as_dict(self) -> dict[str, str]:
        return {"suit": self.suit, "rank": self.rank, "id": self.id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayingCard:
        return make_card(str(data["rank"]), str(data["suit"]))

    def __str__(self) -> str:
        return get_card_symbol(self)


def make_card(rank: str | int, suit: str) -> PlayingCard:
    rank = str(rank).upper()
    suit = suit.lower()
    if rank not in RANK_ORDER:
        raise ValueError(f"Invalid rank: {rank}")
    if suit not in SUIT_ORDER:
        raise ValueError(f"Invalid suit: {suit}")
    return PlayingCard(suit=suit, rank=rank)  # type: ignore[arg-type]


def parse_card_id(card_id: str) -> PlayingCard:
    rank, sep, suit = card_id.strip().partition("-")
    if not sep:
        raise ValueError(f"Invalid card id: {card_id}")
    return make_card(rank, suit)


def get_rank_value(rank: str) -> int:
    return RANK_ORDER[rank]


def create_deck() -> list[PlayingCard]:
    """52 cards, suits outer (clubs..spades), ranks inner (2..A)."""
    return [PlayingCard(suit=suit, rank=rank) for suit in SUITS for rank in RANKS]


def shuffle_deck(
    deck: Iterable[PlayingCard], rng: random.Random | None = None
) -> list[PlayingCard]:
    # Fisher-Yates on a copy; the caller's deck is untouched
    shuffled = list(deck)
    r = resolve_rng(rng)
    for i in range(len(shuffled) - 1, 0, -1):
        j = r.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def draw_random_card(rng: random.Random | None = None) -> PlayingCard:
    """Uniform draw from a fresh deck. Repeated draws may return the same card."""
    return resolve_rng(rng).choice(create_deck())


def sort_cards(cards: Iterable[PlayingCard]) -> list[PlayingCard]:
    return sorted(cards, key=lambda c: (RANK_ORDER[c.rank], SUIT_ORDER[c.suit]))


def get_card_symbol(card: PlayingCard) -> str:
    return f"{card.rank}{SUIT_SYMBOLS[card.suit]}"


def get_card_symbol_formatted(card: PlayingCard) -> str:
    return f"{card.rank:>2}{SUIT_SYMBOLS[card.suit]}"


def describe_cards(cards: Iterable[PlayingCard]) -> str:
    return " ".join(get_card_symbol(c) for c in cards)
