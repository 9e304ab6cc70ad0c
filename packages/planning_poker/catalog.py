"""Estimation cards offered to voters."""

from __future__ import annotations

from dataclasses import dataclass

VoteValue = int | float | str


@dataclass(frozen=True)
class EstimationCard:
    value: VoteValue
    title: str
    tooltip: str


STORY_POINT_CARDS: tuple[EstimationCard, ...] = (
    EstimationCard(0, "Already Done!", "We are already done, and we haven't even started yet"),
    EstimationCard(0.5, "One liner", "I'll be finished before you have time to grab coffee"),
    EstimationCard(
        1, "Quick Win", "Tell PM it's going to take a day and then scroll Instagram for 4 hours"
    ),
    EstimationCard(2, "A few unknowns", "A day should do it - we know almost everything after all"),
    EstimationCard(3, "Dependencies are piling up", "A task every few days keeps the manager at bay"),
    EstimationCard(
        5,
        "The everything estimate",
        "You start on Monday and on Friday finish off by bringing production down",
    ),
    EstimationCard(8, "It's getting difficult", "It better be finished before the sprint ends"),
    EstimationCard(13, "Heavy Lift", "We won't finish this before the sprint ends"),
)

JOKER_CARDS: tuple[EstimationCard, ...] = (
    EstimationCard("∞", "Will take Forever", "This is way too big to estimate buddy"),
    EstimationCard("?", "What is this about?", "Still no idea what we are talking about"),
    EstimationCard("🍦", "Time for Ice Cream!", "Somebody is inviting you to an ice cream party"),
    EstimationCard("☕", "Coffee please", "Need a break to think - let's get some coffee"),
)

# 🤷‍♀️ is no longer offered but may still sit in older vote maps
SPECIAL_CARD_VALUES: frozenset[str] = frozenset(
    [c.value for c in JOKER_CARDS if isinstance(c.value, str)] + ["🤷‍♀️"]
)


def is_numeric_value(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def is_special_value(value: object) -> bool:
    """Joker tokens and anything else that is not a number."""
    return value in SPECIAL_CARD_VALUES or not is_numeric_value(value)


def is_known_value(value: object) -> bool:
    if value in SPECIAL_CARD_VALUES:
        return True
    return is_numeric_value(value) and any(c.value == value for c in STORY_POINT_CARDS)


def find_card(value: VoteValue) -> EstimationCard | None:
    for card in STORY_POINT_CARDS + JOKER_CARDS:
        if card.value == value and is_numeric_value(card.value) == is_numeric_value(value):
            return card
    return None
