# packages/planning_poker/metrics.py
from __future__ import annotations

from prometheus_client import REGISTRY, Counter


# --- helpers: get_or_create, avoids duplicate registration on re-import ---
def _get_or_create_counter(name: str, doc: str, labels: list[str]):
    try:
        return Counter(name, doc, labels)
    except ValueError:
        return REGISTRY._names_to_collectors[name]  # type: ignore[attr-defined]


VOTES = _get_or_create_counter("planning_poker_votes_total", "Votes cast or cleared", ["kind"])
SESSION_OPS = _get_or_create_counter(
    "planning_poker_session_ops_total", "Session control operations", ["op", "status"]
)
CARDS_AWARDED = _get_or_create_counter(
    "planning_poker_cards_awarded_total", "Reward cards handed out", ["category", "tier"]
)
EVICTIONS = _get_or_create_counter(
    "planning_poker_evictions_total", "Participants dropped after the grace period", []
)
OP_ERRORS = _get_or_create_counter(
    "planning_poker_operation_errors_total", "Faults swallowed at an operation boundary", ["op"]
)


def inc_vote(kind: str) -> None:
    VOTES.labels(kind or "unknown").inc()


def inc_session_op(op: str, status: str = "success") -> None:
    SESSION_OPS.labels(op or "unknown", status or "success").inc()


def inc_card_awarded(category: str, tier: str) -> None:
    CARDS_AWARDED.labels(category or "unknown", tier or "unknown").inc()


def inc_eviction(count: int = 1) -> None:
    if count > 0:
        EVICTIONS.inc(count)


def inc_op_error(op: str) -> None:
    OP_ERRORS.labels(op or "unknown").inc()
