"""Best-effort report emails to patients."""
from __future__ import annotations

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from predoctor.config import Settings
from predoctor.metrics import notification_fail_total

settings = Settings()
logger = logging.getLogger(__name__)


def build_report_email(
    to: str,
    *,
    patient_name: str,
    hospital_name: str,
    summary: str,
    risk_level: str,
    sender: str,
) -> MIMEMultipart:
    message = MIMEMultipart("alternative")
    message["Subject"] = f"Your health pre-assessment from {hospital_name}"
    message["From"] = sender
    message["To"] = to
    text = (
        f"Hi {patient_name},\n\n"
        f"Your AI pre-assessment is ready.\n\n"
        f"Risk level: {risk_level}\n"
        f"Summary: {summary}\n\n"
        "This is not a diagnosis. Please consult a doctor.\n"
    )
    message.attach(MIMEText(text, "plain"))
    return message


async def send_report_email(
    to: str | None,
    *,
    patient_name: str,
    hospital_name: str,
    summary: str,
    risk_level: str,
    cfg: Settings | None = None,
) -> bool:
    """Send the report summary; failures are logged and counted, never raised."""
    cfg = cfg or settings
    if not to:
        return False
    if not cfg.smtp_host:
        logger.debug("SMTP not configured, skipping report email")
        return False

    message = build_report_email(
        to,
        patient_name=patient_name,
        hospital_name=hospital_name,
        summary=summary,
        risk_level=risk_level,
        sender=cfg.smtp_from or cfg.smtp_user or "no-reply@localhost",
    )
    try:
        await aiosmtplib.send(
            message,
            hostname=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_user,
            password=cfg.smtp_password,
            start_tls=True,
            timeout=cfg.smtp_timeout_seconds,
        )
    except (aiosmtplib.SMTPException, OSError) as exc:
        notification_fail_total.inc()
        logger.warning("Failed to send report email: %s", exc)
        return False
    return True


__all__ = ["build_report_email", "send_report_email"]
