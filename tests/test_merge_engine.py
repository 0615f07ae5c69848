"""Tests for per-field submission merging"""

import pytest

from infoflow.domain.errors import ValidationError
from infoflow.engine.merge_engine import merge_submissions, parse_strategies
from infoflow.domain.enums import MergeStrategy


def sub(branch, **data):
    return {"branch": branch, "state": "X", "data": data}


def test_sum_keeps_integers():
    merged = merge_submissions([sub("A", mw=10), sub("B", mw=5)], {"mw": "sum"})
    assert merged == {"mw": 15}
    assert isinstance(merged["mw"], int)


@pytest.mark.parametrize("strategy,expected", [
    ("avg", 7.5),
    ("max", 10),
    ("min", 5),
])
def test_numeric_strategies(strategy, expected):
    merged = merge_submissions([sub("A", mw=10), sub("B", mw=5)], {"mw": strategy})
    assert merged["mw"] == expected


def test_numeric_strings_are_parsed():
    merged = merge_submissions([sub("A", mw="1,200"), sub("B", mw=" 300 ")], {"mw": "sum"})
    assert merged["mw"] == 1500


def test_booleans_and_garbage_are_not_numbers():
    merged = merge_submissions(
        [sub("A", mw=True), sub("B", mw="n/a"), sub("C", mw=2)],
        {"mw": "sum"}
    )
    assert merged["mw"] == 2


@pytest.mark.parametrize("strategy", ["sum", "avg", "max", "min"])
def test_non_finite_floats_are_not_numbers(strategy):
    merged = merge_submissions(
        [sub("A", mw=float("inf")), sub("B", mw=float("-inf")), sub("C", mw=float("nan")), sub("D", mw=4)],
        {"mw": strategy}
    )
    assert merged["mw"] == 4


def test_field_with_nothing_to_reduce_is_omitted():
    merged = merge_submissions([sub("A", mw="n/a"), sub("B", mw=None)], {"mw": "max"})
    assert "mw" not in merged


def test_concat_labels_blocks_in_input_order():
    merged = merge_submissions(
        [sub("B", notes="second"), sub("A", notes="first"), sub("C", notes="  ")],
        {"notes": "concat"}
    )
    assert merged["notes"] == "[B]\nsecond\n\n[A]\nfirst"


def test_concat_falls_back_to_state_label():
    merged = merge_submissions(
        [{"branch": None, "state": "X", "data": {"notes": "state text"}}],
        {"notes": "concat"}
    )
    assert merged["notes"] == "[X]\nstate text"


def test_unlisted_fields_pass_through_only_when_unique():
    merged = merge_submissions(
        [sub("A", mw=1, contact="a@x"), sub("B", mw=2, remark="only B")],
        {}
    )
    assert merged == {"contact": "a@x", "remark": "only B"}


def test_fields_keep_first_seen_order():
    merged = merge_submissions(
        [sub("A", b=1, a=1), sub("B", c=1)],
        {"a": "sum", "b": "sum", "c": "sum"}
    )
    assert list(merged) == ["b", "a", "c"]


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        merge_submissions([sub("A", mw=1)], {"mw": "median"})
    assert exc_info.value.details["field"] == "mw"
    assert "sum" in exc_info.value.details["allowed"]


def test_strategy_names_are_case_insensitive():
    assert parse_strategies({"mw": "SUM", "n": MergeStrategy.CONCAT}) == {
        "mw": MergeStrategy.SUM,
        "n": MergeStrategy.CONCAT,
    }


def test_merge_is_deterministic():
    inputs = [sub("A", mw=3.5, notes="x"), sub("B", mw=1, notes="y")]
    strategies = {"mw": "avg", "notes": "concat"}
    assert merge_submissions(inputs, strategies) == merge_submissions(inputs, strategies)
