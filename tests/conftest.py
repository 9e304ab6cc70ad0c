# tests/conftest.py
import random
import sys
from pathlib import Path

import pytest

# project root: one level above tests/
ROOT = Path(__file__).resolve().parents[1]
PACKAGES_DIR = ROOT / "packages"

sys.path.insert(0, str(PACKAGES_DIR))

from planning_poker import card_quality, config_loader  # noqa: E402
from planning_poker.context import SessionSettings  # noqa: E402
from planning_poker.providers.memory import (  # noqa: E402
    InMemorySyncedMap,
    InMemorySyncedState,
    RecordingNotifier,
    StaticIdentityProvider,
)
from planning_poker.session_flow import SessionController  # noqa: E402
from planning_poker.session_types import SessionState  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    for name in (
        "PLANNING_POKER_CONFIG_DIR",
        "PLANNING_POKER_CARD_REWARDS",
        "PLANNING_POKER_FACILITATOR_ONLY",
        "PLANNING_POKER_POLL_INTERVAL_MS",
        "PLANNING_POKER_GRACE_PERIOD_MS",
        "PLANNING_POKER_NOTIFY_TIMEOUT_MS",
    ):
        monkeypatch.delenv(name, raising=False)
    config_loader.clear_cache()
    card_quality.clear_table_cache()
    yield
    config_loader.clear_cache()
    card_quality.clear_table_cache()


class Clock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class Host:
    """One client's view of a shared session, backed by in-memory maps."""

    def __init__(self, user_id="alice", user_name="Alice", active=None, settings=None, seed=7):
        self.state = InMemorySyncedState(SessionState())
        self.participants = InMemorySyncedMap()
        self.votes = InMemorySyncedMap()
        self.identity = StaticIdentityProvider(
            user_id, user_name, active=active if active is not None else []
        )
        self.notifier = RecordingNotifier()
        self.clock = Clock()
        self.settings = settings or SessionSettings()
        self.controller = SessionController(
            self.state,
            self.participants,
            self.votes,
            self.identity,
            self.notifier,
            settings=self.settings,
            clock=self.clock,
            rng=random.Random(seed),
        )

    def act_as(self, user_id, user_name=None):
        self.identity.user_id = user_id
        self.identity.user_name = user_name or user_id.title()
        return self.controller

    def vote(self, user_id, value):
        self.act_as(user_id).cast_vote(value)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def host():
    return Host()


@pytest.fixture
def make_host():
    return Host
