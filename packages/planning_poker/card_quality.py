"""
Consensus-driven card rewards.

After a reveal every voter draws one playing card. How good that card is
likely to be depends on how the voter's estimate relates to the group:

- the vote results are reduced to a majority (strict plurality) or none,
- the voter is classified into a quality category,
- the category's odds pick a reward tier (high / medium / low),
- a card of a random rank from that tier and a random suit is drawn.

When a joker token is the majority the whole round counts as a failed
estimate: every voter is penalised and loses one random card on top of
the reduced odds. Penalised hands therefore keep their size while getting
worse; unpenalised hands grow by one up to the cap of five, after which a
random card makes room for the new one.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from planning_poker.cards import RANKS, SUITS, PlayingCard, draw_random_card, get_card_symbol
from planning_poker.catalog import VoteValue, is_numeric_value, is_special_value
from planning_poker.config_loader import load_yaml_cached
from planning_poker.rng import resolve_rng, weighted_pick
from planning_poker.session_types import MAX_HAND_SIZE, VoteResult

_LOG = logging.getLogger(__name__)

QualityCategory = Literal[
    "perfectConsensus",
    "majorityVoter",
    "closeToMajority",
    "farFromMajority",
    "specialCardVoter",
    "specialCardPenalty",
    "noMajority",
]
Tier = Literal["high", "medium", "low"]

TIER_ORDER: tuple[Tier, ...] = ("high", "medium", "low")

DEFAULT_CATEGORY_ODDS: dict[str, dict[str, int]] = {
    "perfectConsensus": {"high": 35, "medium": 50, "low": 15},
    "majorityVoter": {"high": 40, "medium": 45, "low": 15},
    "closeToMajority": {"high": 25, "medium": 50, "low": 25},
    "farFromMajority": {"high": 15, "medium": 35, "low": 50},
    "specialCardVoter": {"high": 20, "medium": 40, "low": 40},
    "specialCardPenalty": {"high": 0, "medium": 40, "low": 60},
    "noMajority": {"high": 25, "medium": 45, "low": 30},
}

DEFAULT_TIER_RANKS: dict[str, tuple[str, ...]] = {
    "high": ("J", "Q", "K", "A"),
    "medium": ("7", "8", "9", "10"),
    "low": ("2", "3", "4", "5", "6"),
}

_TIER_LABELS = {"high": "a high card", "medium": "a medium card", "low": "a low card"}

_REASONS = {
    "perfectConsensus": "Perfect consensus! Everyone agreed",
    "majorityVoter": "You voted with the majority",
    "closeToMajority": "Close to the majority",
    "farFromMajority": "Far from the majority",
    "specialCardVoter": "You played a special card",
    "specialCardPenalty": "Special cards won the round",
    "noMajority": "No clear majority this round",
}


class CardQualityConfigError(ValueError):
    """The reward table does not describe valid odds."""


@dataclass(frozen=True)
class CardQualityTable:
    odds: Mapping[str, Mapping[str, int]]
    tier_ranks: Mapping[str, tuple[str, ...]]

    def odds_for(self, category: str) -> dict[str, int]:
        return dict(self.odds[category])

    @classmethod
    def default(cls) -> CardQualityTable:
        return cls(odds=DEFAULT_CATEGORY_ODDS, tier_ranks=DEFAULT_TIER_RANKS)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> CardQualityTable:
        raw_cats = data.get("categories") or {}
        raw_tiers = data.get("tiers") or {}
        if not isinstance(raw_cats, Mapping) or not isinstance(raw_tiers, Mapping):
            raise CardQualityConfigError("categories and tiers must be mappings")

        odds: dict[str, dict[str, int]] = {}
        for category in DEFAULT_CATEGORY_ODDS:
            row = raw_cats.get(category)
            if not isinstance(row, Mapping):
                raise CardQualityConfigError(f"missing category: {category}")
            try:
                parsed = {tier: int(row.get(tier, 0)) for tier in TIER_ORDER}
            except (TypeError, ValueError) as e:
                raise CardQualityConfigError(f"non-integer odds for {category}") from e
            if any(v < 0 for v in parsed.values()) or sum(parsed.values()) != 100:
                raise CardQualityConfigError(f"odds for {category} must be >= 0 and sum to 100")
            odds[category] = parsed

        tiers: dict[str, tuple[str, ...]] = {}
        for tier in TIER_ORDER:
            ranks = tuple(str(r).upper() for r in raw_tiers.get(tier) or ())
            if not ranks or any(r not in RANKS for r in ranks):
                raise CardQualityConfigError(f"invalid ranks for tier {tier}")
            tiers[tier] = ranks
        return cls(odds=odds, tier_ranks=tiers)


_TABLE_FILE = "card_quality.yaml"
# rel_path -> (mapping returned by the loader, table built from it)
_TABLES: dict[str, tuple[Mapping[str, object], CardQualityTable]] = {}


def _build_table(data: Mapping[str, object], version: int) -> CardQualityTable:
    if not data:
        return CardQualityTable.default()
    try:
        return CardQualityTable.from_mapping(data)
    except CardQualityConfigError:
        _LOG.warning("card_quality_config_invalid", extra={"version": version}, exc_info=True)
        return CardQualityTable.default()


def get_card_quality_table() -> CardQualityTable:
    """Current reward table; follows edits to the YAML file after the loader's TTL."""
    data, version = load_yaml_cached(_TABLE_FILE, ttl_seconds=30)
    cached = _TABLES.get(_TABLE_FILE)
    # the loader returns the same mapping object until it reloads the file
    if cached is not None and cached[0] is data:
        return cached[1]
    table = _build_table(data, version)
    _TABLES[_TABLE_FILE] = (data, table)
    return table


def clear_table_cache() -> None:
    _TABLES.clear()


@dataclass(frozen=True)
class VoteConsensus:
    is_perfect_consensus: bool
    majority: VoteResult | None
    is_special_majority: bool


@dataclass(frozen=True)
class CardAward:
    cards: list[PlayingCard]
    reason: str
    is_special_penalty: bool
    category: QualityCategory
    tier: Tier
    card: PlayingCard


def analyze_vote_consensus(vote_results: Sequence[VoteResult]) -> VoteConsensus:
    if not vote_results:
        return VoteConsensus(is_perfect_consensus=False, majority=None, is_special_majority=False)
    top = max(r.count for r in vote_results)
    leaders = [r for r in vote_results if r.count == top]
    majority = leaders[0] if len(leaders) == 1 else None
    return VoteConsensus(
        is_perfect_consensus=len(vote_results) == 1,
        majority=majority,
        is_special_majority=majority is not None and is_special_value(majority.value),
    )


def calculate_vote_distance(a: VoteValue, b: VoteValue) -> float:
    if is_special_value(a) or is_special_value(b):
        return math.inf
    return abs(float(a) - float(b))


def get_card_quality_category(
    voter_value: VoteValue, vote_results: Sequence[VoteResult]
) -> QualityCategory:
    consensus = analyze_vote_consensus(vote_results)
    # checked before perfect consensus: a lone joker vote is still a penalty
    if consensus.is_special_majority:
        return "specialCardPenalty"
    if consensus.is_perfect_consensus:
        return "perfectConsensus"
    if is_special_value(voter_value):
        return "specialCardVoter"
    if consensus.majority is None:
        return "noMajority"
    majority_value = consensus.majority.value
    if is_numeric_value(majority_value) and voter_value == majority_value:
        return "majorityVoter"
    if calculate_vote_distance(voter_value, majority_value) <= 1:
        return "closeToMajority"
    return "farFromMajority"


def select_tier(
    category: str,
    rng: random.Random | None = None,
    table: CardQualityTable | None = None,
) -> Tier:
    odds = (table or get_card_quality_table()).odds_for(category)
    return weighted_pick(TIER_ORDER, [odds[t] for t in TIER_ORDER], resolve_rng(rng))


def draw_card_from_tier(
    tier: str,
    rng: random.Random | None = None,
    table: CardQualityTable | None = None,
) -> PlayingCard:
    r = resolve_rng(rng)
    ranks = (table or get_card_quality_table()).tier_ranks[tier]
    return PlayingCard(suit=r.choice(SUITS), rank=r.choice(ranks))  # type: ignore[arg-type]


def _drop_random(cards: list[PlayingCard], r: random.Random) -> PlayingCard:
    return cards.pop(r.randrange(len(cards)))


def add_card_to_participant_with_quality(
    existing_cards: Sequence[PlayingCard] | None,
    voter_value: VoteValue,
    vote_results: Sequence[VoteResult],
    rng: random.Random | None = None,
    table: CardQualityTable | None = None,
) -> CardAward:
    r = resolve_rng(rng)
    table = table or get_card_quality_table()
    cards = list(existing_cards or ())

    category = get_card_quality_category(voter_value, vote_results)
    tier = select_tier(category, r, table)
    card = draw_card_from_tier(tier, r, table)

    penalty = category == "specialCardPenalty"
    discarded = None
    if penalty and cards:
        discarded = _drop_random(cards, r)
    while len(cards) >= MAX_HAND_SIZE:
        discarded = _drop_random(cards, r)
    cards.append(card)

    headline = _REASONS[category]
    if penalty and discarded is not None:
        headline += f" - your {get_card_symbol(discarded)} was discarded"
    reason = f"{headline} - you drew {_TIER_LABELS[tier]}: {get_card_symbol(card)}"
    if discarded is not None and not penalty:
        reason += f" (replaced {get_card_symbol(discarded)})"
    return CardAward(
        cards=cards,
        reason=reason,
        is_special_penalty=penalty,
        category=category,
        tier=tier,
        card=card,
    )


def replace_random_card(
    cards: Sequence[PlayingCard] | None, rng: random.Random | None = None
) -> list[PlayingCard]:
    """Swap one random card for a fresh draw. The new card may equal the old one."""
    updated = list(cards or ())
    if not updated:
        return []
    r = resolve_rng(rng)
    updated[r.randrange(len(updated))] = draw_random_card(r)
    return updated
