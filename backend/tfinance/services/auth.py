import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, Response

from tfinance.core.config import settings
from tfinance.core.security import (
    ROLE_PREMIUM,
    ROLE_USER,
    CookiePolicy,
    InvalidTokenError,
    decode_access_token,
    encode_access_token,
    hash_password,
    hash_token,
    new_session_id,
    new_verification_token,
    verify_dummy_password,
    verify_password,
)
from tfinance.core.validators import validate_email, validate_login, validate_password
from tfinance.db.pool import db_conn
from tfinance.models.auth import RegisterRequest
from tfinance.services.state import rate_limiter

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"
USERNAME_COOKIE = "username"

DUPLICATE_USER_MESSAGE = "A user with this email or login is already registered."
INVALID_CREDENTIALS_MESSAGE = "Invalid login or password"
EMAIL_NOT_CONFIRMED_MESSAGE = (
    "Email address is not confirmed. Please check your mailbox and follow the confirmation link."
)
NOT_AUTHENTICATED_MESSAGE = "Not authenticated"

VERIFIED = "verified"
TOKEN_INVALID = "token_invalid"
TOKEN_EXPIRED = "token_expired"
USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    login: str
    email: str
    role: str
    session_id: str

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "CurrentUser":
        return cls(
            user_id=int(claims["sub"]),
            login=str(claims.get("name") or ""),
            email=str(claims.get("email") or ""),
            role=str(claims.get("role") or ROLE_USER),
            session_id=str(claims["jti"]),
        )


@dataclass(frozen=True)
class VerificationResult:
    outcome: str
    user: dict[str, Any] | None = None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_client_ip(req: Request) -> str:
    """Address used for per-IP rate limits.

    Forwarded headers are honoured only when the direct peer is listed in
    ``TRUSTED_PROXIES``.
    """
    peer = req.client.host if req.client else "unknown"
    if peer not in settings.trusted_proxies:
        return peer
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    return peer


def enforce_register_rate_limit(req: Request) -> None:
    client_ip = get_client_ip(req)
    if rate_limiter.exceeded(
        f"register:ip:{client_ip}",
        settings.register_rate_limit,
        settings.register_rate_window,
    ):
        logger.warning("Register rate limit hit for %s", client_ip)
        raise HTTPException(status_code=429, detail="Too many registration attempts. Try again later.")


def enforce_login_rate_limit(req: Request, identifier: str) -> None:
    client_ip = get_client_ip(req)
    if rate_limiter.exceeded(f"login:ip:{client_ip}", settings.login_rate_limit, settings.login_rate_window):
        logger.warning("Login rate limit hit for %s", client_ip)
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")
    if rate_limiter.exceeded(
        f"login:user:{identifier.lower()}",
        settings.login_user_rate_limit,
        settings.login_rate_window,
    ):
        logger.warning("Login rate limit hit for identifier %s", identifier)
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")


def is_user_premium(user: dict[str, Any], now: datetime | None = None) -> bool:
    if not user.get("is_premium"):
        return False
    started = user.get("premium_created_at")
    expires = user.get("premium_expires_at")
    if started is None or expires is None:
        return False
    current = now or now_utc()
    return started <= current <= expires


def role_for(user: dict[str, Any], now: datetime | None = None) -> str:
    return ROLE_PREMIUM if is_user_premium(user, now) else ROLE_USER


def find_user_by_login_or_email(cur, login_or_email: str) -> dict[str, Any] | None:
    cur.execute(
        """
        SELECT user_id, login, email, password_hash, is_premium,
               premium_created_at, premium_expires_at, is_email_confirmed
        FROM users
        WHERE login=%s OR email=%s
        ORDER BY user_id
        LIMIT 1
        """,
        (login_or_email, login_or_email),
    )
    return cur.fetchone()


def create_verification_token(cur, user_id: int, now: datetime | None = None) -> str:
    """Store a fresh one-time token for ``user_id`` and return its raw value.

    Only the sha256 of the token is persisted; the raw value goes out by email.
    """
    issued_at = now or now_utc()
    token = new_verification_token()
    cur.execute(
        """
        INSERT INTO email_verification_tokens (user_id, token_hash, created_at, expires_at, is_used)
        VALUES (%s, %s, %s, %s, FALSE)
        """,
        (user_id, hash_token(token), issued_at, issued_at + timedelta(hours=settings.email_token_ttl_hours)),
    )
    return token


def register_user(cur, data: RegisterRequest) -> tuple[dict[str, Any], str]:
    email = (data.email or "").strip()
    login = (data.login or "").strip()
    password = data.password or ""

    error = validate_email(email) or validate_login(login) or validate_password(password)
    if error:
        raise HTTPException(status_code=400, detail=error)

    cur.execute("SELECT user_id FROM users WHERE email=%s OR login=%s LIMIT 1", (email, login))
    if cur.fetchone():
        logger.warning("Register: user already exists (email=%s, login=%s)", email, login)
        raise HTTPException(status_code=400, detail=DUPLICATE_USER_MESSAGE)

    cur.execute(
        """
        INSERT INTO users (login, email, password_hash, is_premium, is_email_confirmed)
        VALUES (%s, %s, %s, FALSE, FALSE)
        RETURNING user_id, login, email
        """,
        (login, email, hash_password(password)),
    )
    user = cur.fetchone()
    token = create_verification_token(cur, user["user_id"])
    return user, token


def authenticate_user(cur, login_or_email: str, password: str) -> dict[str, Any]:
    user = find_user_by_login_or_email(cur, login_or_email)
    if not user:
        verify_dummy_password(password)
        logger.info("Login failed: unknown identifier %s", login_or_email)
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS_MESSAGE)
    if not verify_password(password, user["password_hash"]):
        logger.info("Login failed: wrong password for user %s", user["user_id"])
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS_MESSAGE)
    if not user["is_email_confirmed"]:
        logger.warning("Login refused: email %s is not confirmed", user["email"])
        raise HTTPException(status_code=401, detail=EMAIL_NOT_CONFIRMED_MESSAGE)
    return user


def issue_session(cur, user: dict[str, Any], now: datetime | None = None) -> tuple[str, datetime]:
    issued_at = now or now_utc()
    session_id = new_session_id()
    token, expires_at = encode_access_token(
        settings,
        user_id=user["user_id"],
        login=user["login"],
        email=user["email"],
        role=role_for(user, issued_at),
        session_id=session_id,
        now=issued_at,
    )
    cur.execute(
        """
        INSERT INTO sessions (session_id, user_id, token_hash, created_at, expires_at)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (session_id, user["user_id"], hash_token(token), issued_at, expires_at),
    )
    return token, expires_at


def revoke_session(cur, session_id: str, now: datetime | None = None) -> None:
    cur.execute(
        "UPDATE sessions SET revoked_at=%s WHERE session_id=%s AND revoked_at IS NULL",
        (now or now_utc(), session_id),
    )


def is_session_active(cur, session_id: str, token: str, now: datetime | None = None) -> bool:
    cur.execute(
        """
        SELECT 1 AS active
        FROM sessions
        WHERE session_id=%s AND token_hash=%s AND revoked_at IS NULL AND expires_at > %s
        """,
        (session_id, hash_token(token), now or now_utc()),
    )
    return cur.fetchone() is not None


def authenticate_token(token: str, detail: str = NOT_AUTHENTICATED_MESSAGE) -> CurrentUser:
    try:
        claims = decode_access_token(token, settings)
    except InvalidTokenError as exc:
        logger.info("Rejected access token: %s", exc)
        raise HTTPException(status_code=401, detail=detail)

    with db_conn() as conn, conn.cursor() as cur:
        active = is_session_active(cur, str(claims["jti"]), token)
    if not active:
        raise HTTPException(status_code=401, detail=detail)
    return CurrentUser.from_claims(claims)


def read_request_token(req: Request) -> str | None:
    token = (req.cookies.get(TOKEN_COOKIE) or "").strip()
    if token:
        return token
    header = req.headers.get("authorization", "")
    parts = header.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    return None


def require_session_user(req: Request) -> CurrentUser:
    token = read_request_token(req)
    if not token:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED_MESSAGE)
    return authenticate_token(token)


def require_role(*roles: str):
    allowed = frozenset(roles)

    def dependency(current: CurrentUser = Depends(require_session_user)) -> CurrentUser:
        if current.role not in allowed:
            raise HTTPException(status_code=403, detail="Access denied")
        return current

    return dependency


def set_auth_cookies(
    response: Response,
    token: str,
    username: str,
    expires_at: datetime,
    policy: CookiePolicy,
) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        expires=expires_at,
        path="/",
        secure=policy.secure,
        httponly=True,
        samesite=policy.samesite,
    )
    # Readable by the frontend, so it can show who is logged in.
    response.set_cookie(
        USERNAME_COOKIE,
        username,
        expires=expires_at,
        path="/",
        secure=policy.secure,
        httponly=False,
        samesite=policy.samesite,
    )


def clear_auth_cookies(response: Response, policy: CookiePolicy) -> None:
    response.delete_cookie(TOKEN_COOKIE, path="/", secure=policy.secure, httponly=True, samesite=policy.samesite)
    response.delete_cookie(USERNAME_COOKIE, path="/", secure=policy.secure, httponly=False, samesite=policy.samesite)


def build_verification_link(req: Request, token: str) -> str:
    base_url = settings.app_base_url or str(req.base_url).rstrip("/")
    return f"{base_url}/api/auth/verify-email?token={token}"


def confirm_email(cur, token: str, now: datetime | None = None) -> VerificationResult:
    current = now or now_utc()
    cur.execute(
        """
        SELECT t.token_id, t.user_id, t.expires_at,
               u.user_id AS owner_id, u.login, u.email, u.is_email_confirmed
        FROM email_verification_tokens t
        LEFT JOIN users u ON u.user_id = t.user_id
        WHERE t.token_hash=%s AND NOT t.is_used
        """,
        (hash_token(token),),
    )
    row = cur.fetchone()
    if not row:
        return VerificationResult(TOKEN_INVALID)
    if row["owner_id"] is None:
        logger.error("Verification token %s points at missing user %s", row["token_id"], row["user_id"])
        return VerificationResult(USER_NOT_FOUND)

    user = {"user_id": row["owner_id"], "login": row["login"], "email": row["email"]}
    if row["expires_at"] < current:
        logger.warning("Verification token %s expired at %s", row["token_id"], row["expires_at"])
        return VerificationResult(TOKEN_EXPIRED, user)

    cur.execute("UPDATE users SET is_email_confirmed=TRUE WHERE user_id=%s", (row["owner_id"],))
    cur.execute("UPDATE email_verification_tokens SET is_used=TRUE WHERE token_id=%s", (row["token_id"],))
    logger.info(
        "Email confirmed for user %s (%s), previously confirmed: %s",
        row["owner_id"],
        row["email"],
        row["is_email_confirmed"],
    )
    return VerificationResult(VERIFIED, user)
