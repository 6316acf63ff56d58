"""
Draft keys: canonical identity of a draft across store, queue and server.
"""
from __future__ import annotations

import pytest

from backend.drafts.keys import DraftKey, make_draft_key, parse_draft_key, tab_label


def test_quiz_defaults_to_quiz_variant():
    key = make_draft_key("mod-1", "quiz")
    assert key == DraftKey("mod-1", "quiz", "quiz")
    assert key.as_string() == "mod-1:quiz:quiz"


def test_final_test_variant_is_distinct_from_quiz():
    quiz = make_draft_key("mod-1", "quiz", "quiz")
    final = make_draft_key("mod-1", "quiz", "final_test")
    assert quiz != final
    assert final.as_string() == "mod-1:quiz:final_test"


def test_non_quiz_types_reject_variants():
    with pytest.raises(ValueError) as exc:
        make_draft_key("mod-1", "assignment", "quiz")
    assert str(exc.value) == "invalid_variant"


@pytest.mark.parametrize(
    "module_id,draft_type,variant,detail",
    [
        ("", "assignment", None, "invalid_module_id"),
        ("mod/1", "assignment", None, "invalid_module_id"),
        ("mod-1", "notes", None, "invalid_draft_type"),
        ("mod-1", "quiz", "midterm", "invalid_variant"),
    ],
)
def test_invalid_inputs_raise_short_details(module_id, draft_type, variant, detail):
    with pytest.raises(ValueError) as exc:
        make_draft_key(module_id, draft_type, variant)
    assert str(exc.value) == detail


def test_parse_is_inverse_of_as_string():
    for key in (
        make_draft_key("m1", "assignment"),
        make_draft_key("m1", "flashcards"),
        make_draft_key("m1", "quiz", "final_test"),
    ):
        assert parse_draft_key(key.as_string()) == key


def test_parse_rejects_garbage():
    with pytest.raises(ValueError):
        parse_draft_key("only-one-part")


def test_tab_labels_are_human_readable():
    assert tab_label(make_draft_key("m", "assignment")) == "Assignment"
    assert tab_label(make_draft_key("m", "quiz")) == "Quiz"
    assert tab_label(make_draft_key("m", "quiz", "final_test")) == "Final Test"
    assert tab_label(make_draft_key("m", "presentation")) == "Presentation"
