"""Runtime settings for a planning poker session, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class SessionSettings:
    enable_card_rewards: bool = True
    restrict_controls_to_facilitator: bool = False
    poll_interval_ms: int = 2000
    grace_period_ms: int = 10 * 60 * 1000
    notify_timeout_ms: int = 5000
    reject_timeout_ms: int = 3000
    max_replacements_per_round: int = 1

    @classmethod
    def build(cls) -> SessionSettings:
        return cls(
            enable_card_rewards=_env_flag("PLANNING_POKER_CARD_REWARDS", default=True),
            restrict_controls_to_facilitator=_env_flag(
                "PLANNING_POKER_FACILITATOR_ONLY", default=False
            ),
            poll_interval_ms=_env_int("PLANNING_POKER_POLL_INTERVAL_MS", 2000),
            grace_period_ms=_env_int("PLANNING_POKER_GRACE_PERIOD_MS", 10 * 60 * 1000),
            notify_timeout_ms=_env_int("PLANNING_POKER_NOTIFY_TIMEOUT_MS", 5000),
        )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    value = raw.strip()
    if value == "":
        return bool(default)
    if default:
        # default True: only "0" disables
        return value != "0"
    # default False: only "1" enables
    return value == "1"


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


__all__ = ["SessionSettings"]
