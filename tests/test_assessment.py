from __future__ import annotations

import json

import pytest

from predoctor.db import SessionLocal
from predoctor.models import Doctor
from predoctor.services.ai_client import AiClient, EffectiveAiConfig, MalformedProviderResponse
from predoctor.services.assessment import (
    AssessmentRequest,
    AssistantConfig,
    DoctorSummary,
    FeatureToggles,
    PatientProfile,
    build_assessment_prompt,
    build_followup_prompt,
    enforce_feature_toggles,
    parse_assessment,
    parse_followup,
    reconcile_doctor,
    render_intro,
    run_assessment,
    suggest_followup,
)
from tests.utils.factories import make_doctor, make_hospital
from tests.utils.fake_ai import FakeCompletions, assessment_json, fake_sdk

CONFIG = EffectiveAiConfig(provider="openai", openai_model="gpt-4.1-mini", groq_model="openai/gpt-oss-20b")


def _request(**overrides) -> AssessmentRequest:
    fields = dict(
        hospital_name="City Hospital",
        assistant=AssistantConfig(),
        symptom_input="Sore throat and fever for two days",
        qa_history=[{"question": "Any cough?", "answer": "A little"}],
        doctors=[DoctorSummary(id=7, name="Dr. Rao", specialization="ENT", expertise_tags=("throat",))],
        patient=PatientProfile(age=34, gender="female"),
    )
    fields.update(overrides)
    return AssessmentRequest(**fields)


def test_assistant_config_defaults():
    cfg = AssistantConfig.from_hospital_settings({})
    assert cfg.name == "HealthAI"
    assert cfg.tone == "friendly"
    assert cfg.language == "en"
    assert cfg.features == FeatureToggles(True, True, True)


def test_assistant_config_from_settings():
    cfg = AssistantConfig.from_hospital_settings(
        {
            "assistant_name": "Asha",
            "assistant_language": "hi",
            "enabled_features": {"diet_plan": False},
        }
    )
    assert cfg.name == "Asha"
    assert cfg.language == "hi"
    assert cfg.features.diet_plan is False
    assert cfg.features.test_suggestions is True


def test_render_intro_replaces_known_placeholders_only():
    text = render_intro("Hi {{assistantName}} at {{hospitalName}} {{other}}", "Asha", "Apollo")
    assert text == "Hi Asha at Apollo {{other}}"


def test_render_intro_default_template():
    assert render_intro(None, "HealthAI", "Apollo") == (
        "Hi, I'm HealthAI, your AI health assistant for Apollo."
    )


def test_assessment_prompt_contents():
    req = _request(
        assistant=AssistantConfig(
            name="Asha",
            tone="formal",
            instructions="Mention our 24x7 helpline.",
            features=FeatureToggles(diet_plan=False),
        )
    )
    system, user = build_assessment_prompt(req)
    assert "Asha" in system and "City Hospital" in system
    assert "not a diagnosis" in system
    assert "formal" in system
    assert "dietPlan: DISABLED" in system
    assert "Mention our 24x7 helpline." in system
    assert "Sore throat" in user
    assert "Any cough?" in user
    assert "Age: 34" in user
    assert '"id": "7"' in user
    assert "riskLevel" in user


def test_followup_prompt_forbids_demographic_questions():
    system, user = build_followup_prompt(_request(), max_turns=3)
    assert "never ask" in system
    assert "Never repeat" in system
    assert "Q1: Any cough?" in user


def test_parse_assessment_coerces_fields():
    raw = assessment_json(
        possibleConditions=[{"name": "Flu", "probability": 1.7}, {"probability": 0.2}, "junk"],
        recommendedTests=[{"name": "CBC", "priority": "asap"}],
        dietPlan=["Soup", "", 3, None],
        recommendedDoctorId=7,
        riskLevel=" HIGH ",
        extraField="ignored",
    )
    payload = parse_assessment(f"```json\n{raw}\n```")
    assert [c.name for c in payload.possible_conditions] == ["Flu"]
    assert payload.possible_conditions[0].probability == 1.0
    assert payload.recommended_tests[0].priority == "medium"
    assert payload.diet_plan == ["Soup", "3"]
    assert payload.recommended_doctor_id == "7"
    assert payload.risk_level == "high"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        json.dumps({"riskLevel": "low"}),
        json.dumps({"summary": "ok"}),
        assessment_json(riskLevel="extreme"),
        "",
        None,
    ],
)
def test_parse_assessment_rejects_malformed(raw):
    with pytest.raises(MalformedProviderResponse):
        parse_assessment(raw)


def test_feature_toggles_enforced_after_parse():
    payload = parse_assessment(assessment_json(recommendedDoctorId="7"))
    trimmed = enforce_feature_toggles(
        payload, FeatureToggles(diet_plan=False, test_suggestions=False, doctor_recommendation=False)
    )
    assert trimmed.recommended_tests == []
    assert trimmed.diet_plan == []
    assert trimmed.recommended_doctor_id is None
    assert trimmed.home_care == payload.home_care
    assert enforce_feature_toggles(payload, FeatureToggles()) is payload


def test_reconcile_doctor():
    hospital = make_hospital()
    other = make_hospital()
    active = make_doctor(hospital.id, name="Dr. Active", qualification="MD")
    inactive = make_doctor(hospital.id, status="inactive")
    foreign = make_doctor(other.id)
    with SessionLocal() as db:
        snap = reconcile_doctor(db, hospital.id, str(active.id))
        assert snap is not None
        assert (snap.id, snap.name, snap.qualification) == (active.id, "Dr. Active", "MD")
        assert reconcile_doctor(db, hospital.id, inactive.id) is None
        assert reconcile_doctor(db, hospital.id, foreign.id) is None
        assert reconcile_doctor(db, hospital.id, "not-a-number") is None
        assert reconcile_doctor(db, hospital.id, str(2**70)) is None
        assert reconcile_doctor(db, hospital.id, 2**31) is None
        assert reconcile_doctor(db, hospital.id, "-1") is None
        assert reconcile_doctor(db, hospital.id, None) is None
        assert db.get(Doctor, active.id) is not None


def test_run_assessment_applies_toggles_and_intro():
    completions = FakeCompletions()
    completions.push(assessment_json(dietPlan=["Soup"]))
    client = AiClient({"openai": fake_sdk(completions)})
    req = _request(assistant=AssistantConfig(name="Asha", features=FeatureToggles(diet_plan=False)))
    result = run_assessment(client, CONFIG, req)
    assert result.provider == "openai"
    assert result.model == "gpt-4.1-mini"
    assert result.assistant_intro == "Hi, I'm Asha, your AI health assistant for City Hospital."
    assert result.payload.diet_plan == []
    assert result.tokens_used == 42
    call = completions.calls[0]
    assert call["model"] == "gpt-4.1-mini"
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0]["role"] == "system"


def test_suggest_followup_parses_reply():
    completions = FakeCompletions()
    completions.push(json.dumps({"mode": "followup", "followupQuestion": "Any rash?", "note": None}))
    client = AiClient({"openai": fake_sdk(completions)})
    suggestion = suggest_followup(client, CONFIG, _request(), max_turns=3)
    assert suggestion.mode == "followup"
    assert suggestion.question == "Any rash?"


def test_parse_followup_requires_mode():
    with pytest.raises(MalformedProviderResponse):
        parse_followup(json.dumps({"followupQuestion": "x"}))
    assert parse_followup('{"mode": "FINAL"}').mode == "final"
