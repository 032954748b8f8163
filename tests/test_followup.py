from __future__ import annotations

import pytest

from predoctor.services.followup import (
    FollowupMode,
    FollowupSuggestion,
    decide_next_turn,
    normalize_question,
)


def _qa(*questions):
    return [{"question": q, "answer": "yes"} for q in questions]


def _suggest(mode="followup", question="Do you have a fever?", note=None):
    calls = []

    def _fn(history):
        calls.append(list(history))
        return FollowupSuggestion(mode=mode, question=question, note=note)

    _fn.calls = calls
    return _fn


def test_first_turn_asks():
    suggest = _suggest()
    decision = decide_next_turn([], suggest)
    assert decision.mode is FollowupMode.ASKING
    assert decision.question == "Do you have a fever?"
    assert not decision.is_final


def test_cap_reached_skips_provider():
    suggest = _suggest()
    decision = decide_next_turn(_qa("a?", "b?", "c?"), suggest)
    assert decision.is_final
    assert decision.reason == "max_turns"
    assert suggest.calls == []


def test_last_slot_finishes():
    decision = decide_next_turn(_qa("How long?", "Any cough?"), _suggest(question="Any pain?"))
    assert decision.is_final
    assert decision.reason == "max_turns"


@pytest.mark.parametrize("mode,question", [("final", "Anything else?"), ("followup", "  "), ("followup", None)])
def test_provider_final_or_blank(mode, question):
    decision = decide_next_turn([], _suggest(mode=mode, question=question, note="enough info"))
    assert decision.is_final
    assert decision.note == "enough info"


def test_repeated_question_finishes():
    history = _qa("Do you have a  FEVER?")
    decision = decide_next_turn(history, _suggest(question=" do you have a fever? "))
    assert decision.is_final
    assert decision.reason == "repeat"


def test_custom_cap():
    decision = decide_next_turn(_qa("a?"), _suggest(question="b?"), max_turns=5)
    assert decision.mode is FollowupMode.ASKING


def test_pure_for_same_input():
    history = _qa("How long?")
    first = decide_next_turn(history, _suggest(question="Any cough?"))
    second = decide_next_turn(history, _suggest(question="Any cough?"))
    assert first == second


def test_normalize_question():
    assert normalize_question("  Any\tCough ?\n") == "any cough ?"
    assert normalize_question(None) == ""
