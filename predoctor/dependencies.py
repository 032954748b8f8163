from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, NoReturn

import jwt
import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel
from redis.exceptions import RedisError

from predoctor import db as db_module
from predoctor.config import Settings
from predoctor.models import ErrorCode, User

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    code: str
    message: str


def raise_error(status_code: int, code: ErrorCode, message: str) -> NoReturn:
    err = ErrorResponse(code=code.value, message=message)
    raise HTTPException(status_code=status_code, detail=err.model_dump())


@dataclass(frozen=True)
class AuthUser:
    """Identity yielded by the auth capability check."""

    id: int
    role: str
    hospital_id: int | None
    name: str
    email: str | None = None
    age: int | None = None
    gender: str | None = None


def _load_user(user_id: int) -> User | None:
    with db_module.SessionLocal() as db:
        return db.get(User, user_id)


async def get_current_user(
    authorization: str | None = Header(None, alias="Authorization"),
) -> AuthUser:
    """Verify the bearer token and load the acting user."""
    if not authorization or not authorization.startswith("Bearer "):
        raise_error(401, ErrorCode.UNAUTHORIZED, "Not authorized, token missing")
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        user_id = int(payload["id"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError) as exc:
        logger.info("Auth error: %s", exc)
        raise_error(401, ErrorCode.UNAUTHORIZED, "Not authorized, token failed")

    user = await asyncio.to_thread(_load_user, user_id)
    if user is None:
        raise_error(401, ErrorCode.UNAUTHORIZED, "User no longer exists")
    if user.status == "banned":
        raise_error(403, ErrorCode.FORBIDDEN, "Account is banned")
    return AuthUser(
        id=user.id,
        role=user.role,
        hospital_id=user.hospital_id,
        name=user.name,
        email=user.email,
        age=user.age,
        gender=user.gender,
    )


def require_role(*roles: str) -> Callable[..., Any]:
    async def _guard(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if user.role not in roles:
            raise_error(403, ErrorCode.FORBIDDEN, "Forbidden")
        return user

    return _guard


def require_hospital_context(request: Request, user: AuthUser) -> Any:
    """Return the resolved tenant after asserting the user belongs to it."""
    hospital = getattr(request.state, "hospital", None)
    if hospital is None:
        if getattr(request.state, "subdomain", None):
            raise_error(404, ErrorCode.NOT_FOUND, "Hospital not found")
        raise_error(400, ErrorCode.HOSPITAL_CONTEXT_MISSING, "Hospital context not found")
    if user.hospital_id is None or user.hospital_id != hospital.id:
        raise_error(
            403,
            ErrorCode.FORBIDDEN,
            "You are not allowed to access this hospital",
        )
    return hospital


async def ai_rate_limit(
    request: Request,
    user: AuthUser = Depends(require_role("PATIENT")),
) -> AuthUser:
    """Throttle assessment requests per user via Redis."""
    key = f"rate:ai:{user.id}"
    try:
        pipe = redis_client.pipeline()
        pipe.incr(key)
        pipe.expire(key, 60)
        count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        raise_error(503, ErrorCode.SERVICE_UNAVAILABLE, "Rate limiter unavailable")
    if count > settings.ai_rate_limit_per_minute:
        raise_error(
            429,
            ErrorCode.TOO_MANY_REQUESTS,
            "Too many AI requests, please slow down.",
        )
    return user


def get_ai_client(request: Request):
    """AI provider client built once in the application lifespan."""
    client = getattr(request.app.state, "ai_client", None)
    if client is None:
        raise_error(503, ErrorCode.SERVICE_UNAVAILABLE, "AI client not initialized")
    return client
