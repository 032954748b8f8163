from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from predoctor.middleware.tenant import HospitalContext
from predoctor.services.assessment import AssistantConfig, render_intro

router = APIRouter(tags=["public"])


class HospitalMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    subdomain: str
    status: str
    assistant_name: str = Field(alias="assistantName")
    assistant_intro: str = Field(alias="assistantIntro")


class PublicMeta(BaseModel):
    mode: str
    subdomain: str | None = None
    hospital: HospitalMeta | None = None


def _hospital_meta(hospital: HospitalContext) -> HospitalMeta:
    assistant = AssistantConfig.from_hospital(hospital)
    return HospitalMeta(
        id=hospital.id,
        name=hospital.name,
        subdomain=hospital.subdomain,
        status=hospital.status,
        assistant_name=assistant.name,
        assistant_intro=render_intro(assistant.intro_template, assistant.name, hospital.name),
    )


@router.get("/public/meta", response_model=PublicMeta, response_model_by_alias=True)
async def public_meta(request: Request):
    """Tenant state for the current host: global, not_found, inactive or hospital."""
    subdomain = getattr(request.state, "subdomain", None)
    hospital: HospitalContext | None = getattr(request.state, "hospital", None)
    if subdomain is None:
        return PublicMeta(mode="global")
    if hospital is None:
        return PublicMeta(mode="not_found", subdomain=subdomain)
    mode = "hospital" if hospital.is_active else "inactive"
    return PublicMeta(mode=mode, subdomain=subdomain, hospital=_hospital_meta(hospital))


@router.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok"}
