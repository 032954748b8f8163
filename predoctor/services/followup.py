"""Bounded clarifying-question loop before a final assessment.

:func:`decide_next_turn` is a pure function of the Q&A history and the
provider's suggestion. The client keeps the history and resubmits it on every
turn, so a turn can be retried or replayed freely.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 3


class FollowupMode(str, enum.Enum):
    ASKING = "followup"
    FINAL = "final"


@dataclass(frozen=True)
class FollowupSuggestion:
    """What the provider proposed for this turn."""

    mode: str
    question: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class FollowupDecision:
    mode: FollowupMode
    question: str | None = None
    note: str | None = None
    reason: str | None = None

    @property
    def is_final(self) -> bool:
        return self.mode is FollowupMode.FINAL


def normalize_question(text: Any) -> str:
    """Lowercase, trim and collapse inner whitespace."""
    if text is None:
        return ""
    return " ".join(str(text).split()).lower()


def _question_of(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("question")
    return getattr(item, "question", None)


def decide_next_turn(
    history: Sequence[Any],
    suggest: Callable[[Sequence[Any]], FollowupSuggestion],
    max_turns: int = DEFAULT_MAX_TURNS,
) -> FollowupDecision:
    """Ask one more question or finish the conversation.

    ``history`` items are ``{"question", "answer"}`` mappings (or objects with
    a ``question`` attribute). ``suggest`` is only called when the cap has not
    been reached yet.
    """
    if len(history) >= max_turns:
        return FollowupDecision(FollowupMode.FINAL, reason="max_turns")

    suggestion = suggest(history)
    question = (suggestion.question or "").strip()
    if (suggestion.mode or "").strip().lower() != FollowupMode.ASKING.value or not question:
        return FollowupDecision(FollowupMode.FINAL, note=suggestion.note, reason="provider_final")

    asked = {normalize_question(_question_of(item)) for item in history}
    if normalize_question(question) in asked:
        logger.info("Provider repeated a follow-up question, finishing conversation")
        return FollowupDecision(FollowupMode.FINAL, note=suggestion.note, reason="repeat")

    if len(history) + 1 >= max_turns:
        return FollowupDecision(FollowupMode.FINAL, note=suggestion.note, reason="max_turns")

    return FollowupDecision(FollowupMode.ASKING, question=question, note=suggestion.note)


__all__ = [
    "DEFAULT_MAX_TURNS",
    "FollowupDecision",
    "FollowupMode",
    "FollowupSuggestion",
    "decide_next_turn",
    "normalize_question",
]
