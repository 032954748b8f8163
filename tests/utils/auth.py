from __future__ import annotations

import jwt

from predoctor.config import Settings


def make_token(user_id: int, *, secret: str | None = None) -> str:
    settings = Settings()
    return jwt.encode(
        {"id": user_id},
        secret or settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def auth_headers(user_id: int, subdomain: str | None = None, **kwargs) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}
    if subdomain is not None:
        headers[Settings().tenant_header] = subdomain
    return headers
