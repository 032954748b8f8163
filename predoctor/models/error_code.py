from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned in ``ErrorResponse.code``."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    HOSPITAL_CONTEXT_MISSING = "HOSPITAL_CONTEXT_MISSING"
    TENANT_INACTIVE = "TENANT_INACTIVE"
    LIMIT_REACHED = "LIMIT_REACHED"
    AI_NOT_CONFIGURED = "AI_NOT_CONFIGURED"
    AI_PROVIDER_ERROR = "AI_PROVIDER_ERROR"
    AI_MALFORMED_RESPONSE = "AI_MALFORMED_RESPONSE"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


__all__ = ["ErrorCode"]
