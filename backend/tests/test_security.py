import dataclasses
import unittest
from datetime import datetime, timedelta, timezone

import jwt
from starlette.requests import Request

import support  # noqa: F401

from tfinance.core.config import settings
from tfinance.core.security import (
    InvalidTokenError,
    cookie_policy,
    decode_access_token,
    encode_access_token,
    hash_password,
    hash_token,
    new_verification_token,
    verify_dummy_password,
    verify_password,
)


def make_request(scheme: str = "http", headers: dict[str, str] | None = None) -> Request:
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "scheme": scheme,
            "method": "GET",
            "path": "/",
            "query_string": b"",
            "headers": raw_headers,
            "server": ("testserver", 443 if scheme == "https" else 80),
        }
    )


def issue(now: datetime | None = None, **overrides) -> str:
    token, _ = encode_access_token(
        overrides.pop("cfg", settings),
        user_id=overrides.pop("user_id", 42),
        login="alice",
        email="alice@example.com",
        role=overrides.pop("role", "User"),
        session_id="session-1",
        now=now,
    )
    return token


class PasswordHashingTests(unittest.TestCase):
    def test_hash_and_verify(self):
        hashed = hash_password("Str0ng!pass")
        self.assertTrue(hashed.startswith("$2"))
        self.assertTrue(verify_password("Str0ng!pass", hashed))
        self.assertFalse(verify_password("Str0ng!pasS", hashed))

    def test_dummy_verification_runs_without_error(self):
        self.assertIsNone(verify_dummy_password("anything"))

    def test_verification_tokens_are_random_hex(self):
        first, second = new_verification_token(), new_verification_token()
        self.assertEqual(len(first), 32)
        self.assertNotEqual(first, second)
        self.assertEqual(hash_token(first), hash_token(first))
        self.assertNotEqual(hash_token(first), first)


class AccessTokenTests(unittest.TestCase):
    def test_round_trip_claims(self):
        now = datetime.now(timezone.utc)
        token, expires_at = encode_access_token(
            settings,
            user_id=7,
            login="alice",
            email="alice@example.com",
            role="Premium",
            session_id="abc",
            now=now,
        )
        claims = decode_access_token(token, settings)
        self.assertEqual(claims["sub"], "7")
        self.assertEqual(claims["name"], "alice")
        self.assertEqual(claims["role"], "Premium")
        self.assertEqual(claims["jti"], "abc")
        self.assertEqual(claims["iss"], settings.jwt_issuer)
        self.assertEqual(expires_at, now + timedelta(hours=settings.jwt_expires_hours))

    def test_expired_token_is_rejected(self):
        token = issue(now=datetime.now(timezone.utc) - timedelta(hours=settings.jwt_expires_hours, seconds=5))
        with self.assertRaises(InvalidTokenError):
            decode_access_token(token, settings)

    def test_wrong_audience_and_issuer_are_rejected(self):
        other_audience = dataclasses.replace(settings, jwt_audience="someone-else")
        other_issuer = dataclasses.replace(settings, jwt_issuer="someone-else")
        with self.assertRaises(InvalidTokenError):
            decode_access_token(issue(cfg=other_audience), settings)
        with self.assertRaises(InvalidTokenError):
            decode_access_token(issue(cfg=other_issuer), settings)

    def test_foreign_signature_is_rejected(self):
        forged = jwt.encode(
            {"sub": "1", "jti": "x", "iss": settings.jwt_issuer, "aud": settings.jwt_audience,
             "iat": 0, "exp": 4102444800},
            "another-signing-key-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )
        with self.assertRaises(InvalidTokenError):
            decode_access_token(forged, settings)


class CookiePolicyTests(unittest.TestCase):
    def test_production_is_always_secure_and_strict(self):
        prod = dataclasses.replace(settings, environment="production")
        policy = cookie_policy(make_request("http"), prod)
        self.assertTrue(policy.secure)
        self.assertEqual(policy.samesite, "strict")

    def test_development_over_plain_http_is_lax(self):
        dev = dataclasses.replace(settings, environment="development")
        policy = cookie_policy(make_request("http"), dev)
        self.assertFalse(policy.secure)
        self.assertEqual(policy.samesite, "lax")

    def test_development_behind_https_proxy_is_none(self):
        dev = dataclasses.replace(settings, environment="development")
        policy = cookie_policy(make_request("http", {"X-Forwarded-Proto": "HTTPS"}), dev)
        self.assertTrue(policy.secure)
        self.assertEqual(policy.samesite, "none")


if __name__ == "__main__":
    unittest.main()
