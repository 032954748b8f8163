from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any


def completion(content: str | None, total_tokens: int = 42) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


def assessment_json(**overrides: Any) -> str:
    payload: dict[str, Any] = {
        "assistantIntro": "Hello!",
        "summary": "Likely a mild viral infection.",
        "possibleConditions": [{"name": "Common cold", "probability": 0.7, "notes": "viral"}],
        "riskLevel": "low",
        "recommendedTests": [{"name": "CBC", "priority": "medium"}],
        "dietPlan": ["Warm fluids"],
        "whatToAvoid": ["Cold drinks"],
        "homeCare": ["Rest"],
        "recommendedDoctorId": None,
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeCompletions:
    """Stand-in for ``client.chat.completions`` returning queued replies.

    Queue items are strings (reply content) or exceptions to raise. When the
    queue is empty a default assessment is returned.
    """

    def __init__(self) -> None:
        self.queue: list[Any] = []
        self.calls: list[dict[str, Any]] = []

    def push(self, *items: Any) -> None:
        self.queue.extend(items)

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        item = self.queue.pop(0) if self.queue else assessment_json()
        if isinstance(item, BaseException):
            raise item
        return completion(item)


def fake_sdk(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))
