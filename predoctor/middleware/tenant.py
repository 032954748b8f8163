"""Tenant resolution middleware.

Every request is mapped to one of three tenant states before routing:

* no subdomain requested -> global/platform context (``hospital`` is None,
  ``subdomain`` is None);
* subdomain requested but unknown -> ``hospital`` is None, ``subdomain`` set;
* hospital found -> ``hospital`` set. Inactive hospitals are rejected with 403
  unless the path is on the public allowlist.
"""
from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from predoctor import db as db_module
from predoctor.config import Settings
from predoctor.dependencies import ErrorResponse
from predoctor.metrics import tenant_blocked_total
from predoctor.models import ErrorCode, Hospital

settings = Settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HospitalContext:
    """Detached snapshot of the tenant attached to ``request.state``."""

    id: int
    name: str
    subdomain: str
    status: str
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_model(cls, hospital: Hospital) -> "HospitalContext":
        return cls(
            id=hospital.id,
            name=hospital.name,
            subdomain=hospital.subdomain,
            status=hospital.status or "active",
            settings=dict(hospital.settings or {}),
        )


def _normalize(candidate: str | None) -> str | None:
    if candidate is None:
        return None
    value = candidate.strip().lower()
    return value or None


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def extract_subdomain(
    host: str | None,
    tenant_hint: str | None = None,
    reserved: Iterable[str] = ("www", "api"),
) -> str | None:
    """Return the tenant subdomain candidate for a request, or None."""
    reserved_set = {r.lower() for r in reserved}

    # explicit hint always wins over host parsing
    hint = _normalize(tenant_hint)
    if hint is not None:
        return None if hint in reserved_set else hint

    raw = (host or "").strip().lower()
    if not raw or raw.startswith("["):
        return None
    hostname = raw.split(":", 1)[0].rstrip(".")
    if not hostname or _is_ip_literal(hostname):
        return None

    parts = [p for p in hostname.split(".") if p]
    candidate: str | None = None
    if parts and parts[-1] == "localhost":
        if len(parts) >= 2:
            candidate = parts[0]
    elif len(parts) >= 3:
        candidate = parts[0]

    candidate = _normalize(candidate)
    if candidate is None or candidate in reserved_set:
        return None
    return candidate


def is_public_path(path: str, public_paths: Iterable[str]) -> bool:
    for prefix in public_paths:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def load_hospital_context(subdomain: str) -> HospitalContext | None:
    with db_module.SessionLocal() as db:
        hospital = (
            db.query(Hospital)
            .filter(Hospital.subdomain == subdomain.strip().lower())
            .one_or_none()
        )
        if hospital is None:
            return None
        return HospitalContext.from_model(hospital)


class TenantMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.hospital`` and ``request.state.subdomain``."""

    async def dispatch(self, request: Request, call_next):
        subdomain = extract_subdomain(
            request.headers.get("host"),
            request.headers.get(settings.tenant_header),
            reserved=settings.reserved_subdomains,
        )
        request.state.subdomain = subdomain
        request.state.hospital = None

        if subdomain is None:
            return await call_next(request)

        hospital = await asyncio.to_thread(load_hospital_context, subdomain)
        if hospital is None:
            logger.info("Tenant not found", extra={"subdomain": subdomain})
            return await call_next(request)

        if not hospital.is_active and not is_public_path(
            request.url.path, settings.tenant_public_paths
        ):
            tenant_blocked_total.inc()
            logger.warning(
                "Blocked request for inactive hospital (status=%s)",
                hospital.status,
                extra={"hospital_id": hospital.id, "subdomain": subdomain},
            )
            err = ErrorResponse(
                code=ErrorCode.TENANT_INACTIVE.value, message="Hospital is not active"
            )
            return JSONResponse(status_code=403, content={"detail": err.model_dump()})

        request.state.hospital = hospital
        return await call_next(request)


__all__ = [
    "HospitalContext",
    "TenantMiddleware",
    "extract_subdomain",
    "is_public_path",
    "load_hospital_context",
]
