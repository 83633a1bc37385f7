from hypothesis import given, settings

import differ
from tests.strategies import membership_change


def test_diff_scenario():
    d = differ.diff({"a", "b", "c"}, {"b", "c", "d"})
    assert d.to_add == ("d",)
    assert d.to_remove == ("a",)
    assert not d.is_empty


def test_diff_of_equal_sets_is_empty():
    assert differ.diff({"x", "y"}, {"y", "x"}).is_empty


def test_diff_is_case_sensitive():
    d = differ.diff({"Alice"}, {"alice"})
    assert d.to_add == ("alice",)
    assert d.to_remove == ("Alice",)


def test_diff_output_is_sorted():
    d = differ.diff(set(), {"zeta", "alpha", "mid"})
    assert d.to_add == ("alpha", "mid", "zeta")


def test_diff_state_treats_missing_category_as_empty():
    diffs = differ.diff_state({"users": {"a"}}, {"organizations": {"org"}}, categories=("users", "organizations", "repositories"))
    assert diffs["users"].to_remove == ("a",)
    assert diffs["organizations"].to_add == ("org",)
    assert diffs["repositories"].is_empty


@settings(max_examples=200)
@given(membership_change())
def test_diff_applied_reaches_desired(change):
    current, desired = change
    d = differ.diff(current, desired)
    assert (set(current) - set(d.to_remove)) | set(d.to_add) == set(desired)
    assert not set(d.to_add) & set(d.to_remove)
    assert set(d.to_add).isdisjoint(current)
    assert set(d.to_remove) <= current
