from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from predoctor import db as db_module
from predoctor.dependencies import (
    AuthUser,
    ErrorResponse,
    ai_rate_limit,
    get_ai_client,
    raise_error,
    require_hospital_context,
    settings,
)
from predoctor.metrics import ai_checks_total, ai_followup_total, quota_reject_total
from predoctor.middleware.tenant import HospitalContext
from predoctor.models import ErrorCode
from predoctor.services import quota
from predoctor.services.ai_client import (
    AiClient,
    EffectiveAiConfig,
    MalformedProviderResponse,
    ProviderCallError,
    ProviderConfigError,
    get_effective_ai_config,
)
from predoctor.services.assessment import (
    AssessmentRequest,
    AssessmentResult,
    AssistantConfig,
    DoctorSummary,
    PatientProfile,
    load_active_doctors,
    reconcile_doctor,
    run_assessment,
    suggest_followup,
)
from predoctor.services.followup import decide_next_turn
from predoctor.services.notifications import send_report_email
from predoctor.services.reports import create_report, serialize_report
from predoctor.services.usage_log import UsageEntry, record_usage_safely

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

MAX_QA_ITEMS = 3
MIN_SYMPTOM_LENGTH = 5


class QaItem(BaseModel):
    question: str
    answer: str

    @field_validator("question", "answer")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class CheckupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symptom_input: str = Field(alias="symptomInput")
    qa_flow: list[QaItem] = Field(default_factory=list, alias="qaFlow", max_length=MAX_QA_ITEMS)

    @field_validator("symptom_input")
    @classmethod
    def _symptom(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_SYMPTOM_LENGTH:
            raise ValueError(f"symptomInput must be at least {MIN_SYMPTOM_LENGTH} characters")
        return v

    @field_validator("qa_flow", mode="before")
    @classmethod
    def _qa_none(cls, v: Any) -> Any:
        return [] if v is None else v

    def history(self) -> list[dict[str, str]]:
        return [item.model_dump() for item in self.qa_flow]


class FollowupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode: str
    followup_question: str | None = Field(None, alias="followupQuestion")
    note: str | None = None


class _BadRequest(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


async def _parse_body(request: Request) -> CheckupRequest:
    try:
        data = await request.json()
    except (json.JSONDecodeError, ValueError, RuntimeError):
        raise _BadRequest("invalid JSON")
    if not isinstance(data, dict):
        raise _BadRequest("request body must be an object")
    try:
        return CheckupRequest.model_validate(data)
    except ValidationError as err:
        message = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}"
            for e in err.errors()
        )
        raise _BadRequest(message)


def _bad_request(message: str) -> JSONResponse:
    err = ErrorResponse(code=ErrorCode.BAD_REQUEST.value, message=message)
    return JSONResponse(status_code=400, content={"detail": err.model_dump()})


def _raise_provider_error(exc: Exception, count_check: bool = False) -> NoReturn:
    if isinstance(exc, ProviderConfigError):
        if count_check:
            ai_checks_total.labels(status="not_configured").inc()
        raise_error(503, ErrorCode.AI_NOT_CONFIGURED, str(exc))
    if isinstance(exc, MalformedProviderResponse):
        if count_check:
            ai_checks_total.labels(status="malformed").inc()
        raise_error(502, ErrorCode.AI_MALFORMED_RESPONSE, "AI returned an unexpected response")
    if count_check:
        ai_checks_total.labels(status="provider_error").inc()
    raise_error(502, ErrorCode.AI_PROVIDER_ERROR, "AI provider request failed")


@dataclass(frozen=True)
class _Context:
    ai_config: EffectiveAiConfig
    doctors: list[DoctorSummary]


def _load_context(hospital_id: int, with_doctors: bool) -> _Context:
    with db_module.SessionLocal() as db:
        ai_config = get_effective_ai_config(db, settings)
        doctors = load_active_doctors(db, hospital_id) if with_doctors else []
        return _Context(ai_config=ai_config, doctors=doctors)


def _build_request(
    hospital: HospitalContext, user: AuthUser, body: CheckupRequest, doctors: list[DoctorSummary]
) -> AssessmentRequest:
    return AssessmentRequest(
        hospital_name=hospital.name,
        assistant=AssistantConfig.from_hospital(hospital),
        symptom_input=body.symptom_input,
        qa_history=body.history(),
        doctors=doctors,
        patient=PatientProfile(age=user.age, gender=user.gender),
    )


def _quota_check(hospital_id: int) -> quota.QuotaCheck:
    with db_module.SessionLocal() as db:
        return quota.check_and_reserve(db, hospital_id)


def _persist(
    hospital: HospitalContext,
    user: AuthUser,
    body: CheckupRequest,
    result: AssessmentResult,
) -> dict[str, Any] | None:
    """Store the report and charge the quota in one transaction.

    Returns None when the cap was reached by a concurrent request.
    """
    with db_module.SessionLocal() as db:
        doctor = reconcile_doctor(db, hospital.id, result.payload.recommended_doctor_id)
        report = create_report(
            db,
            hospital_id=hospital.id,
            patient_id=user.id,
            symptom_input=body.symptom_input,
            qa_flow=body.history(),
            payload=result.payload,
            doctor=doctor,
            model_info=result.payload.model_info or f"{result.provider}:{result.model}",
        )
        if not quota.commit(db, hospital.id):
            db.rollback()
            return None
        db.commit()
        return serialize_report(report)


@router.post(
    "/health-check",
    status_code=201,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def health_check(
    request: Request,
    user: AuthUser = Depends(ai_rate_limit),
    ai_client: AiClient = Depends(get_ai_client),
):
    hospital = require_hospital_context(request, user)
    try:
        body = await _parse_body(request)
    except _BadRequest as exc:
        ai_checks_total.labels(status="bad_request").inc()
        return _bad_request(exc.message)

    check = await asyncio.to_thread(_quota_check, hospital.id)
    if not check.ok:
        quota_reject_total.inc()
        ai_checks_total.labels(status="limit_reached").inc()
        raise_error(403, ErrorCode.LIMIT_REACHED, "Monthly AI check limit reached for this hospital")

    ctx = await asyncio.to_thread(_load_context, hospital.id, True)
    assessment_req = _build_request(hospital, user, body, ctx.doctors)
    try:
        result = await asyncio.to_thread(
            run_assessment,
            ai_client,
            ctx.ai_config,
            assessment_req,
            settings.assessment_temperature,
        )
    except (ProviderConfigError, ProviderCallError, MalformedProviderResponse) as exc:
        logger.warning(
            "Assessment failed: %s",
            exc,
            extra={"hospital_id": hospital.id, "user_id": user.id},
        )
        _raise_provider_error(exc, count_check=True)

    report = await asyncio.to_thread(_persist, hospital, user, body, result)
    if report is None:
        quota_reject_total.inc()
        ai_checks_total.labels(status="limit_reached").inc()
        raise_error(403, ErrorCode.LIMIT_REACHED, "Monthly AI check limit reached for this hospital")

    await asyncio.to_thread(
        record_usage_safely,
        UsageEntry(
            hospital_id=hospital.id,
            user_id=user.id,
            patient_id=user.id,
            provider=result.provider,
            model=result.model,
            tokens_used=result.tokens_used,
            meta={
                "riskLevel": result.payload.risk_level,
                "conditions": len(result.payload.possible_conditions),
                "reportId": report["id"],
            },
        ),
    )
    await send_report_email(
        user.email,
        patient_name=user.name,
        hospital_name=hospital.name,
        summary=result.payload.summary,
        risk_level=result.payload.risk_level,
    )
    ai_checks_total.labels(status="ok").inc()
    logger.info(
        "Assessment stored (report=%s)",
        report["id"],
        extra={"hospital_id": hospital.id, "user_id": user.id},
    )
    return JSONResponse(
        status_code=201,
        content={"assistantIntro": result.assistant_intro, "report": report},
    )


@router.post(
    "/checkup-followup",
    response_model=FollowupResponse,
    response_model_by_alias=True,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def checkup_followup(
    request: Request,
    user: AuthUser = Depends(ai_rate_limit),
    ai_client: AiClient = Depends(get_ai_client),
):
    hospital = require_hospital_context(request, user)
    try:
        body = await _parse_body(request)
    except _BadRequest as exc:
        return _bad_request(exc.message)

    check = await asyncio.to_thread(_quota_check, hospital.id)
    if not check.ok:
        quota_reject_total.inc()
        ai_followup_total.labels(mode="limit_reached").inc()
        raise_error(403, ErrorCode.LIMIT_REACHED, "Monthly AI check limit reached for this hospital")

    ctx = await asyncio.to_thread(_load_context, hospital.id, False)
    assessment_req = _build_request(hospital, user, body, [])
    max_turns = settings.followup_max_turns

    def _suggest(_history):
        return suggest_followup(
            ai_client,
            ctx.ai_config,
            assessment_req,
            max_turns,
            settings.followup_temperature,
        )

    try:
        decision = await asyncio.to_thread(
            decide_next_turn, assessment_req.qa_history, _suggest, max_turns
        )
    except (ProviderConfigError, ProviderCallError, MalformedProviderResponse) as exc:
        logger.warning(
            "Follow-up failed: %s",
            exc,
            extra={"hospital_id": hospital.id, "user_id": user.id},
        )
        _raise_provider_error(exc)

    ai_followup_total.labels(mode=decision.mode.value).inc()
    return FollowupResponse(
        mode=decision.mode.value,
        followup_question=decision.question,
        note=decision.note,
    )
