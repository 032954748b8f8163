from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from predoctor import db as db_module
from predoctor.dependencies import AuthUser, ErrorResponse, raise_error, require_role, settings
from predoctor.models import ErrorCode
from predoctor.services.ai_client import (
    PROVIDERS,
    get_effective_ai_config,
    update_global_ai_settings,
)
from predoctor.services.plans import PlanNotFound, assign_plan

router = APIRouter(prefix="/super", tags=["super-admin"])

require_super_admin = require_role("SUPER_ADMIN")


class PlanAssignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: int = Field(alias="planId")
    max_ai_checks_per_month: int | None = Field(None, alias="maxAiChecksPerMonth")


class HospitalPlanResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    plan_name: str = Field(alias="planName")
    subscription_plan_id: int | None = Field(None, alias="subscriptionPlanId")
    max_ai_checks_per_month: int = Field(alias="maxAiChecksPerMonth")
    ai_checks_used_this_month: int = Field(alias="aiChecksUsedThisMonth")
    billing_period_start: datetime | None = Field(None, alias="billingPeriodStart")
    billing_period_end: datetime | None = Field(None, alias="billingPeriodEnd")


class AiSettingsBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ai_provider: str | None = Field(None, alias="aiProvider")
    openai_model: str | None = Field(None, alias="openaiModel")
    groq_model: str | None = Field(None, alias="groqModel")


class AiSettingsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ai_provider: str = Field(alias="aiProvider")
    openai_model: str = Field(alias="openaiModel")
    groq_model: str = Field(alias="groqModel")
    providers: list[str] = Field(default_factory=lambda: list(PROVIDERS))


@router.put(
    "/hospitals/{hospital_id}/plan",
    response_model=HospitalPlanResponse,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse}},
)
async def put_hospital_plan(
    hospital_id: int,
    body: PlanAssignRequest,
    _user: AuthUser = Depends(require_super_admin),
):
    def _db_call() -> HospitalPlanResponse:
        with db_module.SessionLocal() as db:
            hospital = assign_plan(
                db, hospital_id, body.plan_id, override=body.max_ai_checks_per_month
            )
            return HospitalPlanResponse(
                id=hospital.id,
                plan_name=hospital.plan_name,
                subscription_plan_id=hospital.subscription_plan_id,
                max_ai_checks_per_month=hospital.max_ai_checks_per_month,
                ai_checks_used_this_month=hospital.ai_checks_used_this_month,
                billing_period_start=hospital.billing_period_start,
                billing_period_end=hospital.billing_period_end,
            )

    try:
        return await asyncio.to_thread(_db_call)
    except PlanNotFound as exc:
        raise_error(404, ErrorCode.NOT_FOUND, str(exc))


def _current_ai_settings() -> AiSettingsResponse:
    with db_module.SessionLocal() as db:
        cfg = get_effective_ai_config(db, settings)
    return AiSettingsResponse(
        ai_provider=cfg.provider,
        openai_model=cfg.openai_model,
        groq_model=cfg.groq_model,
    )


@router.get("/settings/ai", response_model=AiSettingsResponse, response_model_by_alias=True)
async def get_ai_settings(_user: AuthUser = Depends(require_super_admin)):
    return await asyncio.to_thread(_current_ai_settings)


@router.put(
    "/settings/ai",
    response_model=AiSettingsResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse}},
)
async def put_ai_settings(
    body: AiSettingsBody,
    _user: AuthUser = Depends(require_super_admin),
):
    provider = body.ai_provider.strip().lower() if body.ai_provider else None

    def _db_call() -> None:
        with db_module.SessionLocal() as db:
            update_global_ai_settings(
                db,
                ai_provider=provider,
                openai_model=body.openai_model,
                groq_model=body.groq_model,
            )

    try:
        await asyncio.to_thread(_db_call)
    except ValueError as exc:
        raise_error(400, ErrorCode.BAD_REQUEST, str(exc))
    return await asyncio.to_thread(_current_ai_settings)
