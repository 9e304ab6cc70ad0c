from planning_poker.catalog import (
    JOKER_CARDS,
    STORY_POINT_CARDS,
    find_card,
    is_known_value,
    is_special_value,
)
from planning_poker.providers.memory import InMemorySyncedMap
from planning_poker.session_types import Vote
from planning_poker.votes import calculate_vote_progress, group_votes_by_value


def _votes(*pairs):
    m = InMemorySyncedMap()
    for i, value in enumerate(pairs):
        uid = f"u{i}"
        m.set(uid, Vote(user_id=uid, user_name=f"User {i}", value=value, timestamp=i))
    return m


def test_numbers_before_strings():
    grouped = group_votes_by_value(_votes(5, "?", 8, 5))
    assert [g.value for g in grouped] == [5, 8, "?"]
    assert [g.count for g in grouped] == [2, 1, 1]


def test_strings_sorted_alphabetically_after_numbers():
    grouped = group_votes_by_value(_votes("∞", 3, 1, "?"))
    assert [g.value for g in grouped] == [1, 3, "?", "∞"]


def test_fractional_values_sort_numerically():
    grouped = group_votes_by_value(_votes(13, 0.5, 2, 0))
    assert [g.value for g in grouped] == [0, 0.5, 2, 13]


def test_groups_carry_voter_names():
    grouped = group_votes_by_value(_votes(3, 3, 5))
    three = grouped[0]
    assert three.count == 2
    assert [(p.name, p.user_id) for p in three.participants] == [
        ("User 0", "u0"),
        ("User 1", "u1"),
    ]


def test_number_and_numeric_string_do_not_merge():
    grouped = group_votes_by_value(_votes(5, "5"))
    assert [g.value for g in grouped] == [5, "5"]


class _StaleMap(InMemorySyncedMap):
    """keys() still lists an entry another client already removed."""

    def keys(self):
        return super().keys() + ["ghost"]


def test_stale_keys_are_skipped():
    m = _StaleMap()
    m.set("a", Vote(user_id="a", user_name="A", value=2, timestamp=0))
    grouped = group_votes_by_value(m)
    assert len(grouped) == 1
    assert grouped[0].count == 1


def test_empty_votes():
    assert group_votes_by_value(InMemorySyncedMap()) == []


def test_vote_progress_label():
    assert calculate_vote_progress(2, 5) == "2/5"


def test_catalog_values():
    assert [c.value for c in STORY_POINT_CARDS] == [0, 0.5, 1, 2, 3, 5, 8, 13]
    assert all(is_special_value(c.value) for c in JOKER_CARDS)
    assert is_special_value("🤷‍♀️")
    assert not is_special_value(8)
    assert is_known_value(13)
    assert not is_known_value(4)
    assert not is_known_value(True)
    assert find_card("?").title == "What is this about?"
    assert find_card(21) is None
