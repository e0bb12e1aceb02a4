from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from .config import settings


ALGORITHM = "HS256"


def create_access_token(subject: str | int, expires_delta: Optional[int] = None) -> str:
    """Mint a bearer token for ``subject``.

    The identity provider normally issues these; the helper exists for
    development tooling and tests that need a valid caller.
    """
    expire_seconds = expires_delta or settings.AUTH_TOKEN_TTL_SECONDS
    now = datetime.now(timezone.utc)
    expire = now + timedelta(seconds=expire_seconds)
    to_encode: dict[str, Any] = {"sub": str(subject), "exp": expire, "iat": now}
    return jwt.encode(to_encode, settings.AUTH_TOKEN_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.AUTH_TOKEN_SECRET, algorithms=[ALGORITHM])
