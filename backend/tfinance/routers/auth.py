import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from psycopg import Error as DatabaseError
from psycopg.errors import UniqueViolation

from tfinance.core.config import settings
from tfinance.core.security import InvalidTokenError, cookie_policy, decode_access_token
from tfinance.db.pool import db_conn
from tfinance.models.auth import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, ValidateResponse
from tfinance.services.auth import (
    DUPLICATE_USER_MESSAGE,
    TOKEN_COOKIE,
    TOKEN_EXPIRED,
    VERIFIED,
    authenticate_token,
    authenticate_user,
    build_verification_link,
    clear_auth_cookies,
    confirm_email,
    create_verification_token,
    enforce_login_rate_limit,
    enforce_register_rate_limit,
    issue_session,
    register_user,
    revoke_session,
    set_auth_cookies,
)
from tfinance.services.mail import send_verification_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=MessageResponse)
def register(payload: RegisterRequest, req: Request, background_tasks: BackgroundTasks):
    enforce_register_rate_limit(req)

    with db_conn() as conn, conn.cursor() as cur:
        try:
            user, token = register_user(cur, payload)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
        except UniqueViolation:
            conn.rollback()
            raise HTTPException(status_code=400, detail=DUPLICATE_USER_MESSAGE)

    logger.info("Register: user %s created (login=%s)", user["user_id"], user["login"])
    background_tasks.add_task(
        send_verification_email,
        user["email"],
        build_verification_link(req, token),
        user["login"],
    )
    return MessageResponse(
        message="Registration successful. Please check your email to confirm your address.",
    )


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, req: Request, response: Response):
    identifier = (payload.login_or_email or "").strip()
    if not identifier:
        raise HTTPException(status_code=400, detail="Login or email is required")
    if not (payload.password or "").strip():
        raise HTTPException(status_code=400, detail="Password is required")
    enforce_login_rate_limit(req, identifier)

    with db_conn() as conn, conn.cursor() as cur:
        try:
            user = authenticate_user(cur, identifier, payload.password)
            token, expires_at = issue_session(cur, user)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise

    policy = cookie_policy(req, settings)
    logger.info(
        "Login: user %s signed in (secure=%s, samesite=%s, origin=%s)",
        user["user_id"],
        policy.secure,
        policy.samesite,
        req.headers.get("origin", "-"),
    )
    set_auth_cookies(response, token, user["login"], expires_at, policy)
    return LoginResponse(message="Success", username=user["login"])


@router.post("/logout", response_model=MessageResponse)
def logout(req: Request, response: Response):
    token = (req.cookies.get(TOKEN_COOKIE) or "").strip()
    if token:
        try:
            claims = decode_access_token(token, settings)
        except InvalidTokenError:
            claims = None
        if claims:
            with db_conn() as conn, conn.cursor() as cur:
                revoke_session(cur, str(claims["jti"]))
                conn.commit()

    clear_auth_cookies(response, cookie_policy(req, settings))
    return MessageResponse(message="You have been logged out")


@router.get("/validate", response_model=ValidateResponse)
def validate(req: Request):
    token = (req.cookies.get(TOKEN_COOKIE) or "").strip()
    if not token:
        raise HTTPException(status_code=401, detail="Token missing")
    current = authenticate_token(token, detail="Token invalid")
    return ValidateResponse(message="Token valid", username=current.login, role=current.role)


@router.get("/verify-email")
def verify_email(req: Request, background_tasks: BackgroundTasks, token: str | None = None):
    login_url = f"{settings.frontend_url}/login"
    token = (token or "").strip()
    if not token:
        logger.warning("Email verification called without a token")
        return RedirectResponse(f"{login_url}?error=token_missing")

    try:
        with db_conn() as conn, conn.cursor() as cur:
            result = confirm_email(cur, token)
            fresh_token = None
            if result.outcome == TOKEN_EXPIRED:
                fresh_token = create_verification_token(cur, result.user["user_id"])
            conn.commit()
    except DatabaseError:
        logger.exception("Email verification failed on the database side")
        return RedirectResponse(f"{login_url}?error=server_error")

    if result.outcome == VERIFIED:
        return RedirectResponse(f"{login_url}?verified=true")
    if fresh_token:
        background_tasks.add_task(
            send_verification_email,
            result.user["email"],
            build_verification_link(req, fresh_token),
            result.user["login"],
        )
    return RedirectResponse(f"{login_url}?error={result.outcome}")
