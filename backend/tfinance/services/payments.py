import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Any

import httpx
from fastapi import HTTPException

from tfinance.core.config import Settings, settings
from tfinance.models.payment import GatewayPayment, WebhookNotification
from tfinance.services.auth import is_user_premium, now_utc

logger = logging.getLogger(__name__)

STATUS_SUCCEEDED = "succeeded"


class PaymentGatewayError(RuntimeError):
    pass


class YooKassaClient:
    def __init__(
        self,
        shop_id: str,
        secret_key: str,
        return_url: str,
        api_url: str = "https://api.yookassa.ru/v3",
        timeout: float = 15,
        client: httpx.Client | None = None,
    ) -> None:
        if not shop_id:
            raise PaymentGatewayError("YooKassa shop id is not configured")
        if not secret_key:
            raise PaymentGatewayError("YooKassa secret key is not configured")
        if not return_url:
            raise PaymentGatewayError("YooKassa return url is not configured")
        self.api_url = api_url.rstrip("/")
        self.return_url = return_url
        self._auth = httpx.BasicAuth(shop_id, secret_key)
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "YooKassaClient":
        return cls(
            shop_id=cfg.yookassa_shop_id,
            secret_key=cfg.yookassa_secret_key,
            return_url=cfg.yookassa_return_url,
            api_url=cfg.yookassa_api_url,
            timeout=cfg.yookassa_timeout,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> GatewayPayment:
        try:
            response = self._client.request(method, f"{self.api_url}{path}", auth=self._auth, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("YooKassa request %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError(f"YooKassa request failed: {exc}") from exc

        if response.is_error:
            logger.error("YooKassa API error: %s - %s", response.status_code, response.text)
            raise PaymentGatewayError(f"YooKassa API error: {response.status_code}")

        try:
            return GatewayPayment.model_validate(response.json())
        except ValueError as exc:
            raise PaymentGatewayError("Could not parse YooKassa response") from exc

    def create_payment(self, amount: Decimal, currency: str, description: str, user_id: str) -> GatewayPayment:
        body = {
            "amount": {"value": format(amount, ".2f"), "currency": currency},
            "confirmation": {"type": "redirect", "return_url": self.return_url},
            "capture": True,
            "description": description,
            "metadata": {"user_id": user_id},
        }
        # YooKassa deduplicates on this key, so every new payment needs its own.
        headers = {"Idempotence-Key": str(uuid.uuid4())}
        return self._request("POST", "/payments", json=body, headers=headers)

    def get_payment(self, payment_id: str) -> GatewayPayment:
        return self._request("GET", f"/payments/{payment_id}")

    def close(self) -> None:
        self._client.close()


@lru_cache(maxsize=1)
def get_gateway() -> YooKassaClient:
    return YooKassaClient.from_settings(settings)


def close_gateway() -> None:
    if get_gateway.cache_info().currsize:
        get_gateway().close()
        get_gateway.cache_clear()


def get_user_by_id(cur, user_id: int) -> dict[str, Any] | None:
    cur.execute(
        """
        SELECT user_id, login, email, is_premium, premium_created_at, premium_expires_at
        FROM users
        WHERE user_id=%s
        """,
        (user_id,),
    )
    return cur.fetchone()


def create_premium_payment(cur, user: dict[str, Any], gateway: YooKassaClient) -> GatewayPayment:
    amount = settings.premium_price
    currency = settings.premium_currency
    payment = gateway.create_payment(
        amount=amount,
        currency=currency,
        description=f"Premium subscription for user {user['login']}",
        user_id=str(user["user_id"]),
    )
    cur.execute(
        """
        INSERT INTO payments (user_id, provider_payment_id, status, amount, currency, description, created_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        """,
        (
            user["user_id"],
            payment.id,
            payment.status,
            amount,
            currency,
            payment.description,
            payment.created_at or now_utc(),
        ),
    )
    logger.info("Payment %s created for user %s (%s)", payment.id, user["user_id"], payment.status)
    return payment


def grant_premium(cur, user_id: int, paid_at: datetime) -> bool:
    user = get_user_by_id(cur, user_id)
    if not user:
        logger.error("Cannot grant premium: user %s not found", user_id)
        return False
    if is_user_premium(user, paid_at):
        return False
    expires_at = paid_at + timedelta(days=settings.premium_duration_days)
    cur.execute(
        """
        UPDATE users
        SET is_premium=TRUE, premium_created_at=%s, premium_expires_at=%s
        WHERE user_id=%s
        """,
        (paid_at, expires_at, user_id),
    )
    logger.info("Premium granted to user %s until %s", user_id, expires_at)
    return True


def apply_webhook(
    cur,
    notification: WebhookNotification,
    gateway: YooKassaClient | None = None,
) -> dict[str, Any]:
    """Record a gateway notification against the stored payment.

    With ``gateway`` given, status and paid_at are re-read from YooKassa
    instead of trusting the notification body.
    """
    if not notification.event or notification.object is None:
        raise HTTPException(status_code=400, detail="Invalid notification format")
    provider_id = notification.object.id

    cur.execute(
        """
        SELECT payment_id, user_id, provider_payment_id, status
        FROM payments
        WHERE provider_payment_id=%s
        FOR UPDATE
        """,
        (provider_id,),
    )
    payment = cur.fetchone()
    if not payment:
        logger.warning("Webhook for unknown payment %s", provider_id)
        raise HTTPException(status_code=404, detail="Payment not found")

    status = notification.object.status
    paid_at = notification.object.paid_at
    if gateway is not None:
        remote = gateway.get_payment(provider_id)
        status, paid_at = remote.status, remote.paid_at

    if status == STATUS_SUCCEEDED and paid_at is not None:
        cur.execute(
            "UPDATE payments SET status=%s, paid_at=%s WHERE payment_id=%s",
            (status, paid_at, payment["payment_id"]),
        )
        grant_premium(cur, payment["user_id"], paid_at)
    else:
        cur.execute(
            "UPDATE payments SET status=%s WHERE payment_id=%s",
            (status, payment["payment_id"]),
        )
    logger.info("Webhook %s applied to payment %s: %s", notification.event, provider_id, status)
    return {**payment, "status": status, "paid_at": paid_at}


def get_payment_for_user(cur, provider_payment_id: str, user_id: int) -> dict[str, Any]:
    cur.execute(
        """
        SELECT provider_payment_id, user_id, status, amount, currency, created_at, paid_at
        FROM payments
        WHERE provider_payment_id=%s
        """,
        (provider_payment_id,),
    )
    payment = cur.fetchone()
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    if payment["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return payment
