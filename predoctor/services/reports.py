from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy.orm import Session

from predoctor.models import Report
from predoctor.services.assessment import AssessmentPayload, DoctorSnapshot


def create_report(
    db: Session,
    *,
    hospital_id: int,
    patient_id: int,
    symptom_input: str,
    qa_flow: Sequence[dict[str, str]],
    payload: AssessmentPayload,
    doctor: DoctorSnapshot | None,
    model_info: str | None = None,
) -> Report:
    """Stage a report in ``db`` without committing.

    The caller commits it together with the quota increment.
    """
    report = Report(
        hospital_id=hospital_id,
        patient_id=patient_id,
        created_by=patient_id,
        symptom_input=symptom_input,
        qa_flow=[dict(item) for item in qa_flow],
        summary=payload.summary,
        possible_conditions=[c.model_dump(exclude_none=True) for c in payload.possible_conditions],
        risk_level=payload.risk_level,
        recommended_tests=[t.model_dump(exclude_none=True) for t in payload.recommended_tests],
        diet_plan=list(payload.diet_plan),
        what_to_avoid=list(payload.what_to_avoid),
        home_care=list(payload.home_care),
        recommended_doctor_id=doctor.id if doctor else None,
        recommended_doctor_name=doctor.name if doctor else None,
        recommended_doctor_qualification=doctor.qualification if doctor else None,
        recommended_doctor_specialization=doctor.specialization if doctor else None,
        source="AI",
        model_info=model_info or payload.model_info,
    )
    db.add(report)
    db.flush()
    return report


def get_report(db: Session, hospital_id: int, patient_id: int, report_id: int) -> Report | None:
    return (
        db.query(Report)
        .filter(
            Report.id == report_id,
            Report.hospital_id == hospital_id,
            Report.patient_id == patient_id,
        )
        .one_or_none()
    )


def serialize_report(report: Report) -> dict[str, Any]:
    """camelCase wire shape; the doctor block comes from the stored snapshot."""
    doctor = None
    if report.recommended_doctor_id is not None:
        doctor = {
            "id": str(report.recommended_doctor_id),
            "name": report.recommended_doctor_name,
            "qualification": report.recommended_doctor_qualification,
            "specialization": report.recommended_doctor_specialization,
        }
    created = report.created_at.isoformat() if report.created_at else None
    return {
        "id": report.id,
        "hospitalId": report.hospital_id,
        "patientId": report.patient_id,
        "symptomInput": report.symptom_input,
        "qaFlow": list(report.qa_flow or []),
        "summary": report.summary,
        "possibleConditions": list(report.possible_conditions or []),
        "riskLevel": report.risk_level,
        "recommendedTests": list(report.recommended_tests or []),
        "dietPlan": list(report.diet_plan or []),
        "whatToAvoid": list(report.what_to_avoid or []),
        "homeCare": list(report.home_care or []),
        "recommendedDoctorId": (
            str(report.recommended_doctor_id) if report.recommended_doctor_id is not None else None
        ),
        "recommendedDoctor": doctor,
        "source": report.source,
        "modelInfo": report.model_info,
        "createdAt": created,
    }


__all__ = ["create_report", "get_report", "serialize_report"]
