from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from levelup_api.core.config import Settings

ALGORITHM = "HS256"


def issue_token(
    user_id: str,
    *,
    guest: bool = False,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> str:
    cfg = settings or Settings()
    issued = now or datetime.now(UTC)
    claims: dict[str, Any] = {
        "iss": cfg.auth_jwt_issuer,
        "sub": str(user_id),
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(minutes=int(cfg.auth_jwt_exp_minutes))).timestamp()),
        "guest": bool(guest),
    }
    return jwt.encode(claims, cfg.auth_jwt_secret, algorithm=ALGORITHM)


def subject_from_token(token: str, *, settings: Settings | None = None) -> str:
    """Verified ``sub`` claim of a bearer token.

    Raises ``jwt.InvalidTokenError`` for bad signatures, expiry, a foreign
    issuer, or a token without a subject.
    """
    cfg = settings or Settings()
    claims = jwt.decode(
        token,
        cfg.auth_jwt_secret,
        algorithms=[ALGORITHM],
        issuer=cfg.auth_jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise jwt.InvalidTokenError("token has an empty subject")
    return subject
