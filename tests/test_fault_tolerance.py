from prometheus_client import REGISTRY

from planning_poker.cards import parse_card_id
from planning_poker.guard import Journal, guarded
from planning_poker.polling import PresenceReconciler
from planning_poker.providers.interfaces import ActiveUser
from planning_poker.providers.memory import InMemorySyncedMap, InMemorySyncedState, ManualTimer
from planning_poker.session_types import Participant, SessionState


class FlakyMap(InMemorySyncedMap):
    """Host map that raises on the operations armed through its `fail_*` attributes."""

    def __init__(self):
        super().__init__()
        self.fail_on = None
        self.fail_delete_on = None
        self.fail_reads = False

    def get(self, key):
        if self.fail_reads:
            raise ConnectionError(f"read of {key} dropped")
        return super().get(key)

    def delete(self, key):
        if key == self.fail_delete_on:
            raise ConnectionError(f"delete of {key} dropped")
        super().delete(key)

    def set(self, key, value):
        if key == self.fail_on:
            raise ConnectionError(f"write to {key} dropped")
        super().set(key, value)


class FlakyState(InMemorySyncedState):
    def __init__(self, initial):
        super().__init__(initial)
        self.broken = False

    def set(self, value):
        if self.broken:
            raise ConnectionError("state write dropped")
        super().set(value)


class BrokenIdentity:
    def current_user_id(self):
        raise RuntimeError("identity service down")

    def current_user_name(self):
        raise RuntimeError("identity service down")

    def active_users(self):
        raise RuntimeError("identity service down")


def _errors(op):
    return REGISTRY.get_sample_value("planning_poker_operation_errors_total", {"op": op}) or 0.0


def _flaky_host(make_host):
    host = make_host()
    host.participants = FlakyMap()
    host.votes = FlakyMap()
    host.state = FlakyState(SessionState())
    host.controller.participants = host.participants
    host.controller.votes = host.votes
    host.controller.state = host.state
    return host


def test_journal_rolls_back_in_reverse_order():
    m = InMemorySyncedMap({"a": 1})
    s = InMemorySyncedState("before")
    j = Journal()
    j.set(m, "a", 2)
    j.set(m, "b", 3)
    j.delete(m, "a")
    j.set_state(s, "after")
    assert len(j) == 4
    j.rollback()
    assert m.to_dict() == {"a": 1}
    assert s.get() == "before"
    assert len(j) == 0


def test_guarded_swallows_and_counts():
    m = InMemorySyncedMap()
    before = _errors("unit")
    with guarded("unit") as j:
        j.set(m, "k", "v")
        raise KeyError("boom")
    assert m.size == 0
    assert _errors("unit") == before + 1


def test_reveal_fault_midway_restores_hands_and_status(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    host.act_as("bob").join_session()
    host.vote("alice", 5)
    host.vote("bob", 8)
    before = _errors("reveal_results")

    host.participants.fail_on = "bob"
    host.act_as("alice").reveal_results()

    assert host.participants.get("alice").cards == ()
    assert host.state.get().status == "voting"
    assert host.votes.size == 2
    assert _errors("reveal_results") == before + 1

    host.participants.fail_on = None
    host.act_as("alice").reveal_results()
    assert host.state.get().status == "revealed"
    assert len(host.participants.get("alice").cards) == 1


def test_reset_fault_restores_votes(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    host.vote("alice", 3)
    host.act_as("alice").reveal_results()
    cards = host.participants.get("alice").cards

    host.state.broken = True
    host.act_as("alice").reset_session()

    assert host.votes.get("alice").value == 3
    assert host.state.get().status == "revealed"
    assert host.participants.get("alice").cards == cards


def test_start_fault_leaves_no_participant(make_host):
    host = _flaky_host(make_host)
    host.state.broken = True
    host.controller.start_session()
    assert host.participants.size == 0
    assert host.state.get() == SessionState()


def test_broken_identity_falls_back(make_host):
    host = make_host()
    host.controller.identity = BrokenIdentity()
    host.controller.start_session()
    uid = f"user-{host.clock.now}"
    assert host.state.get().participants == (uid,)
    assert host.participants.get(uid).user_name == "Anonymous"

    host.controller.cast_vote(5)
    assert host.votes.size == 0
    host.controller.reveal_results()
    assert host.state.get().status == "voting"
    assert host.controller.current_user_vote() is None


def test_notifier_failure_does_not_undo_reveal(make_host):
    host = make_host()

    class DeadNotifier:
        def notify(self, message, *, timeout=None):
            raise OSError("toast host gone")

    host.controller.notifier = DeadNotifier()
    host.act_as("alice").start_session()
    host.vote("alice", 5)
    host.act_as("alice").reveal_results()
    assert host.state.get().status == "revealed"
    assert len(host.participants.get("alice").cards) == 1


def test_reveal_grouping_fault_rolls_back(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    for uid in ("bob", "carol"):
        host.act_as(uid).join_session()
    for uid in ("alice", "bob", "carol"):
        host.vote(uid, 5)
    before = _errors("reveal_results")

    host.votes.fail_reads = True
    host.act_as("alice").reveal_results()

    assert host.state.get().status == "voting"
    assert all(host.participants.get(u).cards == () for u in ("alice", "bob", "carol"))
    assert host.notifier.last is None
    assert _errors("reveal_results") == before + 1

    host.votes.fail_reads = False
    host.act_as("alice").reveal_results()
    assert host.state.get().status == "revealed"
    assert host.notifier.last.startswith("Perfect consensus")


def test_join_fault_removes_new_participant(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    before = _errors("join_session")

    host.state.broken = True
    host.act_as("bob").join_session()

    assert host.participants.get("bob") is None
    assert host.state.get().participants == ("alice",)
    assert _errors("join_session") == before + 1


def test_cast_vote_fault_keeps_previous_vote(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    host.vote("alice", 3)
    before = _errors("cast_vote")

    host.votes.fail_on = "alice"
    host.vote("alice", 8)

    assert host.votes.get("alice").value == 3
    assert host.votes.size == 1
    assert _errors("cast_vote") == before + 1


def test_replace_card_fault_keeps_hand_and_allowance(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    hand = tuple(parse_card_id(i) for i in ("2-clubs", "K-hearts"))
    host.participants.set(
        "alice", Participant(user_id="alice", user_name="Alice", joined_at=1, cards=hand)
    )

    host.participants.fail_on = "alice"
    host.act_as("alice").replace_random_card()

    p = host.participants.get("alice")
    assert p.cards == hand
    assert p.card_replacements_used == 0
    assert host.notifier.last is None


def test_showdown_fault_leaves_flag_unset(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    host.vote("alice", 5)
    host.act_as("alice").reveal_results()
    before = _errors("reveal_poker_results")

    host.state.broken = True
    assert host.controller.reveal_poker_results() is None

    assert host.state.get().poker_results_revealed is False
    assert host.state.get().status == "revealed"
    assert _errors("reveal_poker_results") == before + 1


def test_poll_fault_mid_sweep_undoes_refresh_and_evictions(make_host):
    host = _flaky_host(make_host)
    host.act_as("alice").start_session()
    host.identity.active = [ActiveUser("alice", "Alice")]
    reconciler = PresenceReconciler.for_controller(host.controller, ManualTimer())
    reconciler.poll_once()
    assert reconciler.polling.active_user_ids == ["alice"]

    for uid in ("bob", "carol"):
        host.participants.set(
            uid, Participant(user_id=uid, user_name=uid.title(), joined_at=0, last_active_time=0)
        )
    host.clock.advance(60_000)
    alice_before = host.participants.get("alice")
    host.identity.active = [ActiveUser("alice", "Alice"), ActiveUser("dave", "Dave")]
    evictions = REGISTRY.get_sample_value("planning_poker_evictions_total") or 0.0
    before = _errors("presence_poll")

    host.participants.fail_delete_on = "carol"
    result = reconciler.poll_once()

    assert not result.changed
    assert host.participants.get("alice") == alice_before
    assert host.participants.get("bob") is not None
    assert host.participants.get("dave") is None
    assert reconciler.polling.active_user_ids == ["alice"]
    assert (REGISTRY.get_sample_value("planning_poker_evictions_total") or 0.0) == evictions
    assert _errors("presence_poll") == before + 1
