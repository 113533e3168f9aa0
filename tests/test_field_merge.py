"""Tests for the length-heuristic field merge policy."""

from cardgen.core.field_merge import LengthHeuristicMergePolicy, is_empty_value


def _merge(existing, generated):
    return LengthHeuristicMergePolicy().merge(existing, generated)


def test_empty_existing_takes_generated():
    assert _merge({"description": ""}, {"description": "X"}) == {"description": "X"}


def test_whitespace_existing_counts_as_empty():
    assert _merge({"description": "   "}, {"description": "Filled"})["description"] == "Filled"


def test_missing_existing_takes_generated():
    assert _merge({}, {"tags": ["a", "b"]}) == {"tags": ["a", "b"]}


def test_short_generation_keeps_existing():
    # len("short") * 1.5 == 7.5; "shorter" is 7 chars
    assert _merge({"title": "short"}, {"title": "shorter"})["title"] == "short"


def test_exactly_ratio_keeps_existing():
    existing = "abcd"  # 4 * 1.5 = 6
    assert _merge({"f": existing}, {"f": "123456"})["f"] == existing


def test_substantially_longer_generation_replaces():
    merged = _merge({"title": "short"}, {"title": "a much longer title"})
    assert merged["title"] == "a much longer title"


def test_user_only_keys_are_preserved():
    merged = _merge({"title": "Login", "custom": "keep me"}, {"description": "New"})
    assert merged == {"title": "Login", "custom": "keep me", "description": "New"}


def test_list_values_compare_by_joined_text():
    merged = _merge({"tags": ["auth"]}, {"tags": ["auth", "security", "login"]})
    assert merged["tags"] == ["auth", "security", "login"]


def test_false_and_zero_are_not_empty():
    assert not is_empty_value(False)
    assert not is_empty_value(0)
    assert is_empty_value([])
    assert is_empty_value(None)


def test_custom_ratio():
    policy = LengthHeuristicMergePolicy(enhancement_ratio=1.0)
    assert policy.merge({"f": "abc"}, {"f": "abcd"})["f"] == "abcd"


def test_existing_input_not_mutated():
    existing = {"description": ""}
    _merge(existing, {"description": "X"})
    assert existing == {"description": ""}
