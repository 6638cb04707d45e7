"""Input validation for registration and account forms.

Each validator returns an error message, or ``None`` when the value is valid.
"""

import re

EMAIL_MAX_LEN = 254
LOGIN_MIN_LEN = 3
LOGIN_MAX_LEN = 50
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128
PASSWORD_MAX_BYTES = 72
ACCOUNT_NAME_MIN_LEN = 7
ACCOUNT_NAME_MAX_LEN = 100

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9](?:[a-zA-Z0-9._-]*[a-zA-Z0-9])?@[a-zA-Z0-9](?:[a-zA-Z0-9.-]*[a-zA-Z0-9])?\.[a-zA-Z]{2,}$",
    re.IGNORECASE,
)
_LOGIN_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_UPPER_RE = re.compile(r"[A-ZА-ЯЁ]")
_LOWER_RE = re.compile(r"[a-zа-яё]")
_DIGIT_RE = re.compile(r"[0-9]")
_SPECIAL_CHARS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"


def validate_email(email: str | None) -> str | None:
    if not email or not email.strip():
        return "Email must not be empty"
    if len(email) > EMAIL_MAX_LEN:
        return f"Email is too long (max {EMAIL_MAX_LEN} characters)"
    if not _EMAIL_RE.fullmatch(email):
        return "Invalid email format"
    return None


def validate_login(login: str | None) -> str | None:
    if not login or not login.strip():
        return "Login must not be empty"
    if len(login) < LOGIN_MIN_LEN:
        return f"Login must be at least {LOGIN_MIN_LEN} characters"
    if len(login) > LOGIN_MAX_LEN:
        return f"Login must be at most {LOGIN_MAX_LEN} characters"
    if not _LOGIN_RE.fullmatch(login):
        return "Login may contain only letters, digits, hyphen and underscore"
    return None


def validate_password(password: str | None) -> str | None:
    if not password or not password.strip():
        return "Password must not be empty"
    if len(password) < PASSWORD_MIN_LEN:
        return f"Password must be at least {PASSWORD_MIN_LEN} characters"
    if len(password) > PASSWORD_MAX_LEN:
        return f"Password must be at most {PASSWORD_MAX_LEN} characters"
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"Password too long (max {PASSWORD_MAX_BYTES} bytes)"
    if not _UPPER_RE.search(password):
        return "Password must contain at least one uppercase letter"
    if not _LOWER_RE.search(password):
        return "Password must contain at least one lowercase letter"
    if not _DIGIT_RE.search(password):
        return "Password must contain at least one digit"
    if not any(ch in _SPECIAL_CHARS for ch in password):
        return f"Password must contain at least one special character ({_SPECIAL_CHARS})"
    return None


def validate_account_name(name: str | None) -> str | None:
    cleaned = (name or "").strip()
    if len(cleaned) < ACCOUNT_NAME_MIN_LEN:
        return f"Account name must be at least {ACCOUNT_NAME_MIN_LEN} characters"
    if len(cleaned) > ACCOUNT_NAME_MAX_LEN:
        return f"Account name must be at most {ACCOUNT_NAME_MAX_LEN} characters"
    return None
