from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Request

from predoctor import db as db_module
from predoctor.dependencies import AuthUser, ErrorResponse, raise_error, require_hospital_context, require_role
from predoctor.models import ErrorCode
from predoctor.services.reports import get_report, serialize_report

router = APIRouter(prefix="/patient", tags=["patient"])


@router.get(
    "/checkups/{report_id}",
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_checkup(
    report_id: int,
    request: Request,
    user: AuthUser = Depends(require_role("PATIENT")),
):
    hospital = require_hospital_context(request, user)

    def _db_call() -> dict[str, Any] | None:
        with db_module.SessionLocal() as db:
            report = get_report(db, hospital.id, user.id, report_id)
            return serialize_report(report) if report else None

    report = await asyncio.to_thread(_db_call)
    if report is None:
        raise_error(404, ErrorCode.NOT_FOUND, "Report not found")
    return {"report": report}
