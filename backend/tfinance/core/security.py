import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import jwt
from fastapi import Request
from passlib.hash import bcrypt

from tfinance.core.config import Settings

JWT_ALGORITHM = "HS256"
ROLE_USER = "User"
ROLE_PREMIUM = "Premium"

InvalidTokenError = jwt.InvalidTokenError


@dataclass(frozen=True)
class CookiePolicy:
    secure: bool
    samesite: str


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.verify(password, password_hash)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return bcrypt.hash(secrets.token_urlsafe(16))


def verify_dummy_password(password: str) -> None:
    # Burns one full bcrypt verification so unknown logins cost the same as wrong passwords.
    bcrypt.verify(password, _dummy_hash())


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def new_verification_token() -> str:
    return uuid.uuid4().hex


def new_session_id() -> str:
    return str(uuid.uuid4())


def encode_access_token(
    settings: Settings,
    *,
    user_id: int,
    login: str,
    email: str,
    role: str,
    session_id: str,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=settings.jwt_expires_hours)
    payload = {
        "sub": str(user_id),
        "name": login,
        "email": email,
        "role": role,
        "jti": session_id,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.jwt_key, algorithm=JWT_ALGORITHM)
    return token, expires_at


def decode_access_token(token: str, settings: Settings) -> dict[str, Any]:
    """Validate signature, issuer, audience and lifetime with no clock skew.

    Raises ``InvalidTokenError`` (or a subclass) for any rejected token.
    """
    return jwt.decode(
        token,
        settings.jwt_key,
        algorithms=[JWT_ALGORITHM],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=0,
        options={"require": ["exp", "iat", "sub", "jti"]},
    )


def is_https_request(req: Request) -> bool:
    if req.url.scheme == "https":
        return True
    return req.headers.get("x-forwarded-proto", "").strip().lower() == "https"


def cookie_policy(req: Request, settings: Settings) -> CookiePolicy:
    secure = is_https_request(req) or not settings.is_development
    if settings.is_development:
        samesite = "none" if secure else "lax"
    else:
        samesite = "strict"
    return CookiePolicy(secure=secure, samesite=samesite)
