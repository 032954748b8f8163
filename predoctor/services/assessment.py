"""AI pre-assessment orchestration.

Prompts are built from the hospital's assistant configuration and sent
through :class:`~predoctor.services.ai_client.AiClient`; replies are validated
against a strict schema. Feature toggles are sent to
the model as instructions *and* re-applied to the parsed result, since models
do not always follow instructions.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from predoctor.config import DEFAULT_INTRO_TEMPLATE
from predoctor.metrics import doctor_recommendation_dropped_total
from predoctor.models import Doctor
from predoctor.services.ai_client import (
    AiClient,
    EffectiveAiConfig,
    MalformedProviderResponse,
)
from predoctor.services.followup import FollowupSuggestion

logger = logging.getLogger(__name__)

# Upper bound of the integer primary key column.
MAX_DOCTOR_ID = 2**31 - 1

DEFAULT_ASSISTANT_NAME = "HealthAI"
DEFAULT_TONE = "friendly"
DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class FeatureToggles:
    diet_plan: bool = True
    test_suggestions: bool = True
    doctor_recommendation: bool = True

    @classmethod
    def from_settings(cls, raw: Mapping[str, Any] | None) -> "FeatureToggles":
        raw = raw or {}
        # only an explicit False disables a feature
        return cls(
            diet_plan=raw.get("diet_plan") is not False,
            test_suggestions=raw.get("test_suggestions") is not False,
            doctor_recommendation=raw.get("doctor_recommendation") is not False,
        )


@dataclass(frozen=True)
class AssistantConfig:
    """Hospital-level assistant persona merged with defaults."""

    name: str = DEFAULT_ASSISTANT_NAME
    tone: str = DEFAULT_TONE
    language: str = DEFAULT_LANGUAGE
    intro_template: str = DEFAULT_INTRO_TEMPLATE
    instructions: str = ""
    style_notes: str = ""
    features: FeatureToggles = field(default_factory=FeatureToggles)

    @classmethod
    def from_hospital_settings(cls, settings: Mapping[str, Any] | None) -> "AssistantConfig":
        s = settings or {}
        return cls(
            name=(s.get("assistant_name") or DEFAULT_ASSISTANT_NAME).strip(),
            tone=(s.get("assistant_tone") or DEFAULT_TONE).strip(),
            language=(s.get("assistant_language") or DEFAULT_LANGUAGE).strip(),
            intro_template=s.get("assistant_intro_template") or DEFAULT_INTRO_TEMPLATE,
            instructions=(s.get("ai_instructions") or "").strip(),
            style_notes=(s.get("extra_style_instructions") or "").strip(),
            features=FeatureToggles.from_settings(s.get("enabled_features")),
        )

    @classmethod
    def from_hospital(cls, hospital: Any) -> "AssistantConfig":
        return cls.from_hospital_settings(getattr(hospital, "settings", None))


def render_intro(template: str | None, assistant_name: str, hospital_name: str) -> str:
    """Fill the intro greeting.

    Recognised placeholders: ``{{assistantName}}`` and ``{{hospitalName}}``.
    Anything else is left untouched.
    """
    text = template or DEFAULT_INTRO_TEMPLATE
    return text.replace("{{assistantName}}", assistant_name).replace(
        "{{hospitalName}}", hospital_name
    )


@dataclass(frozen=True)
class PatientProfile:
    age: int | None = None
    gender: str | None = None


@dataclass(frozen=True)
class DoctorSummary:
    id: int
    name: str
    specialization: str
    expertise_tags: tuple[str, ...] = ()

    @classmethod
    def from_model(cls, doctor: Doctor) -> "DoctorSummary":
        return cls(
            id=doctor.id,
            name=doctor.name,
            specialization=doctor.specialization,
            expertise_tags=tuple(doctor.expertise_tags or ()),
        )


@dataclass(frozen=True)
class DoctorSnapshot:
    """Doctor display fields copied into a report at creation time."""

    id: int
    name: str
    qualification: str
    specialization: str


@dataclass(frozen=True)
class AssessmentRequest:
    hospital_name: str
    assistant: AssistantConfig
    symptom_input: str
    qa_history: Sequence[Mapping[str, str]] = ()
    doctors: Sequence[DoctorSummary] = ()
    patient: PatientProfile = field(default_factory=PatientProfile)


def load_active_doctors(db: Session, hospital_id: int) -> list[DoctorSummary]:
    rows = (
        db.query(Doctor)
        .filter(Doctor.hospital_id == hospital_id, Doctor.status == "active")
        .order_by(Doctor.id)
        .all()
    )
    return [DoctorSummary.from_model(row) for row in rows]


# --- response schema -------------------------------------------------------


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    cleaned = []
    for item in value:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            text = str(item).strip()
            if text:
                cleaned.append(text)
    return cleaned


def _named_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict) and _clean_text(item.get("name"))]


class Condition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    probability: float | None = None
    notes: str | None = None

    @field_validator("probability", mode="before")
    @classmethod
    def _clamp_probability(cls, v: Any) -> float | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            prob = float(v)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(prob):
            return None
        return min(max(prob, 0.0), 1.0)

    @field_validator("name", "notes", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _clean_text(v)


class RecommendedTest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    notes: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v: Any) -> str:
        text = (_clean_text(v) or "").lower()
        return text if text in {"low", "medium", "high", "urgent"} else "medium"

    @field_validator("name", "notes", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _clean_text(v)


class AssessmentPayload(BaseModel):
    """Validated provider output for a final assessment."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    assistant_intro: str | None = Field(None, alias="assistantIntro")
    summary: str = Field(min_length=1)
    possible_conditions: list[Condition] = Field(default_factory=list, alias="possibleConditions")
    risk_level: Literal["low", "medium", "high"] = Field(alias="riskLevel")
    recommended_tests: list[RecommendedTest] = Field(default_factory=list, alias="recommendedTests")
    diet_plan: list[str] = Field(default_factory=list, alias="dietPlan")
    what_to_avoid: list[str] = Field(default_factory=list, alias="whatToAvoid")
    home_care: list[str] = Field(default_factory=list, alias="homeCare")
    recommended_doctor_id: str | None = Field(None, alias="recommendedDoctorId")
    model_info: str | None = Field(None, alias="modelInfo")

    @field_validator("summary", "assistant_intro", "model_info", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _clean_text(v)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("possible_conditions", "recommended_tests", mode="before")
    @classmethod
    def _items(cls, v: Any) -> list[dict[str, Any]]:
        return _named_items(v)

    @field_validator("diet_plan", "what_to_avoid", "home_care", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _clean_str_list(v)

    @field_validator("recommended_doctor_id", mode="before")
    @classmethod
    def _doctor_id(cls, v: Any) -> str | None:
        if isinstance(v, bool):
            return None
        return _clean_text(v)


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _load_json_object(raw: str | None) -> dict[str, Any]:
    try:
        data = json.loads(_strip_code_fence(raw or ""))
    except json.JSONDecodeError as exc:
        raise MalformedProviderResponse("Failed to parse AI response JSON") from exc
    if not isinstance(data, dict):
        raise MalformedProviderResponse("AI response is not a JSON object")
    return data


def parse_assessment(raw: str | None) -> AssessmentPayload:
    """Parse provider text into :class:`AssessmentPayload` or raise."""
    data = _load_json_object(raw)
    if not _clean_text(data.get("summary")) or not _clean_text(data.get("riskLevel")):
        raise MalformedProviderResponse("AI response missing required fields")
    try:
        return AssessmentPayload.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
        raise MalformedProviderResponse(f"AI response failed validation: {fields}") from exc


def enforce_feature_toggles(payload: AssessmentPayload, features: FeatureToggles) -> AssessmentPayload:
    """Blank out disabled features regardless of what the model returned."""
    update: dict[str, Any] = {}
    if not features.test_suggestions:
        update["recommended_tests"] = []
    if not features.diet_plan:
        update["diet_plan"] = []
    if not features.doctor_recommendation:
        update["recommended_doctor_id"] = None
    return payload.model_copy(update=update) if update else payload


def reconcile_doctor(db: Session, hospital_id: int, doctor_id: str | int | None) -> DoctorSnapshot | None:
    """Return the recommended doctor if active in this hospital, else None."""
    if doctor_id is None:
        return None
    try:
        doc_pk = int(str(doctor_id).strip())
    except ValueError:
        doc_pk = None
    doctor = None
    if doc_pk is not None and 0 < doc_pk <= MAX_DOCTOR_ID:
        doctor = (
            db.query(Doctor)
            .filter(
                Doctor.id == doc_pk,
                Doctor.hospital_id == hospital_id,
                Doctor.status == "active",
            )
            .one_or_none()
        )
    if doctor is None:
        doctor_recommendation_dropped_total.inc()
        logger.info(
            "Dropping unknown doctor recommendation %r",
            doctor_id,
            extra={"hospital_id": hospital_id},
        )
        return None
    return DoctorSnapshot(
        id=doctor.id,
        name=doctor.name,
        qualification=doctor.qualification or "",
        specialization=doctor.specialization,
    )


# --- prompts ---------------------------------------------------------------

_ASSESSMENT_SCHEMA = """{
  "assistantIntro": "string, greeting that uses the assistant and hospital name",
  "summary": "string",
  "possibleConditions": [{"name": "string", "probability": 0.0-1.0, "notes": "string"}],
  "riskLevel": "low" | "medium" | "high",
  "recommendedTests": [{"name": "string", "priority": "low" | "medium" | "high" | "urgent", "notes": "string"}],
  "dietPlan": ["string"],
  "whatToAvoid": ["string"],
  "homeCare": ["string"],
  "recommendedDoctorId": "id from the doctor list, or null",
  "modelInfo": "optional string describing the approach"
}"""


def _on_off(flag: bool) -> str:
    return "enabled" if flag else "DISABLED"


def _demographics(patient: PatientProfile) -> str:
    age = patient.age if patient.age is not None else "not provided"
    gender = patient.gender or "prefer_not_to_say"
    return f"- Age: {age}\n- Gender: {gender}"


def build_assessment_prompt(req: AssessmentRequest) -> tuple[str, str]:
    """Return ``(system, user)`` messages for a final assessment."""
    a = req.assistant
    f = a.features
    system_lines = [
        f"You are {a.name}, the AI health pre-assessment assistant of {req.hospital_name}.",
        "You are not a doctor. Always state that this is not a diagnosis and that the "
        "patient should consult a qualified clinician.",
        f"Use a {a.tone} tone and write every text field in language '{a.language}'.",
        "Answer with a single JSON object only, following the schema you are given.",
        "Feature settings:",
        f"- dietPlan: {_on_off(f.diet_plan)} (if DISABLED return an empty array)",
        f"- recommendedTests: {_on_off(f.test_suggestions)} (if DISABLED return an empty array)",
        f"- recommendedDoctorId: {_on_off(f.doctor_recommendation)} (if DISABLED return null)",
    ]
    if a.instructions:
        system_lines.append(a.instructions)
    if a.style_notes:
        system_lines.append(a.style_notes)

    doctors = [
        {
            "id": str(d.id),
            "name": d.name,
            "specialization": d.specialization,
            "expertiseTags": list(d.expertise_tags),
        }
        for d in req.doctors
    ]
    user = "\n\n".join(
        [
            f"Symptom input:\n{req.symptom_input}",
            "Follow-up Q&A:\n" + json.dumps(list(req.qa_history), ensure_ascii=False, indent=2),
            "Patient demographics:\n" + _demographics(req.patient),
            "Available doctors:\n" + json.dumps(doctors, ensure_ascii=False, indent=2),
            "Respond ONLY with JSON matching this schema:\n" + _ASSESSMENT_SCHEMA,
        ]
    )
    return "\n".join(system_lines), user


def _history_summary(history: Sequence[Mapping[str, str]]) -> str:
    if not history:
        return "No follow-up questions have been asked yet."
    lines = []
    for idx, item in enumerate(history, start=1):
        lines.append(f"Q{idx}: {item.get('question') or 'Unknown question'}")
        lines.append(f"Answer: {item.get('answer') or 'Not provided'}")
    return "\n".join(lines)


def build_followup_prompt(req: AssessmentRequest, max_turns: int) -> tuple[str, str]:
    """Return ``(system, user)`` messages for one follow-up turn."""
    a = req.assistant
    system_lines = [
        f"You are {a.name}, helping a patient of {req.hospital_name} describe symptoms "
        "before a visit. Do not give a diagnosis in this conversation.",
        "Patient age and gender are already known; never ask for them.",
        "Ask at most one new question, about the most important missing detail.",
        "Never repeat or rephrase a question that is already in the history.",
        f"The conversation is limited to {max_turns} follow-up questions in total.",
        'Reply with JSON only: {"mode": "followup", "followupQuestion": "...", "note": "..."} '
        'or {"mode": "final", "followupQuestion": null, "note": "..."} when you have enough.',
        f"Use a {a.tone} tone in language '{a.language}'.",
    ]
    if a.instructions:
        system_lines.append(a.instructions)
    if a.style_notes:
        system_lines.append(a.style_notes)
    user = "\n\n".join(
        [
            f"Symptom input:\n{req.symptom_input}",
            "Questions already asked:\n" + _history_summary(req.qa_history),
            "Patient demographics (do not ask):\n" + _demographics(req.patient),
        ]
    )
    return "\n".join(system_lines), user


# --- orchestration ---------------------------------------------------------


@dataclass(frozen=True)
class AssessmentResult:
    provider: str
    model: str
    assistant_intro: str
    payload: AssessmentPayload
    tokens_used: int


def run_assessment(
    ai_client: AiClient,
    ai_config: EffectiveAiConfig,
    req: AssessmentRequest,
    temperature: float = 0.3,
) -> AssessmentResult:
    """Call the provider and return a validated, toggle-enforced result.

    Raises ``ProviderConfigError``, ``ProviderCallError`` or
    ``MalformedProviderResponse``. Doctor reconciliation happens at
    persistence time via :func:`reconcile_doctor`.
    """
    system, user = build_assessment_prompt(req)
    reply = ai_client.complete(
        ai_config.provider,
        model=ai_config.model,
        system=system,
        user=user,
        temperature=temperature,
    )
    payload = enforce_feature_toggles(parse_assessment(reply.text), req.assistant.features)
    intro = render_intro(req.assistant.intro_template, req.assistant.name, req.hospital_name)
    return AssessmentResult(
        provider=ai_config.provider,
        model=ai_config.model,
        assistant_intro=intro,
        payload=payload,
        tokens_used=reply.total_tokens,
    )


def parse_followup(raw: str | None) -> FollowupSuggestion:
    data = _load_json_object(raw)
    mode = _clean_text(data.get("mode"))
    if mode is None:
        raise MalformedProviderResponse("AI follow-up response missing mode")
    return FollowupSuggestion(
        mode=mode.lower(),
        question=_clean_text(data.get("followupQuestion")),
        note=_clean_text(data.get("note")),
    )


def suggest_followup(
    ai_client: AiClient,
    ai_config: EffectiveAiConfig,
    req: AssessmentRequest,
    max_turns: int,
    temperature: float = 0.2,
) -> FollowupSuggestion:
    system, user = build_followup_prompt(req, max_turns)
    reply = ai_client.complete(
        ai_config.provider,
        model=ai_config.model,
        system=system,
        user=user,
        temperature=temperature,
    )
    return parse_followup(reply.text)


__all__ = [
    "AssessmentPayload",
    "AssessmentRequest",
    "AssessmentResult",
    "AssistantConfig",
    "DoctorSnapshot",
    "DoctorSummary",
    "FeatureToggles",
    "PatientProfile",
    "build_assessment_prompt",
    "build_followup_prompt",
    "enforce_feature_toggles",
    "load_active_doctors",
    "parse_assessment",
    "parse_followup",
    "reconcile_doctor",
    "render_intro",
    "run_assessment",
    "suggest_followup",
]
