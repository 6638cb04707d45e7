import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest import mock

from fastapi.testclient import TestClient

import support  # noqa: F401
from support import FakeCursor, fake_db

from tfinance.main import app
from tfinance.models.payment import GatewayPayment
from tfinance.services.auth import CurrentUser, require_session_user
from tfinance.services.payments import PaymentGatewayError

client = TestClient(app)

CURRENT = CurrentUser(user_id=7, login="alice", email="alice@example.com", role="User", session_id="s-1")
CREATED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

USER_ROW = {
    "user_id": 7,
    "login": "alice",
    "email": "alice@example.com",
    "is_premium": False,
    "premium_created_at": None,
    "premium_expires_at": None,
}

GATEWAY_PAYMENT = GatewayPayment.model_validate(
    {
        "id": "2d5f-0001",
        "status": "pending",
        "amount": {"value": "999.00", "currency": "RUB"},
        "confirmation": {"type": "redirect", "confirmation_url": "https://yoomoney.ru/checkout/2d5f-0001"},
        "created_at": "2026-03-01T12:00:00Z",
    }
)


class AuthenticatedTestCase(unittest.TestCase):
    def setUp(self):
        app.dependency_overrides[require_session_user] = lambda: CURRENT

    def tearDown(self):
        app.dependency_overrides.clear()


class CreatePaymentRouteTests(AuthenticatedTestCase):
    def test_returns_confirmation_url(self):
        cur = FakeCursor(fetchone=[USER_ROW])
        db_conn, conn = fake_db(cur)
        gateway = mock.Mock()
        gateway.create_payment.return_value = GATEWAY_PAYMENT
        with mock.patch("tfinance.routers.payment.db_conn", db_conn), mock.patch(
            "tfinance.routers.payment.get_gateway", return_value=gateway
        ):
            response = client.post("/api/payment/create")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "paymentId": "2d5f-0001",
                "confirmationUrl": "https://yoomoney.ru/checkout/2d5f-0001",
                "status": "pending",
            },
        )
        self.assertEqual(conn.commits, 1)
        self.assertEqual(len(cur.statements("INSERT INTO payments")), 1)

    def test_active_premium_is_refused(self):
        now = datetime.now(timezone.utc)
        premium = {
            **USER_ROW,
            "is_premium": True,
            "premium_created_at": now - timedelta(days=1),
            "premium_expires_at": now + timedelta(days=1),
        }
        db_conn, _ = fake_db(FakeCursor(fetchone=[premium]))
        with mock.patch("tfinance.routers.payment.db_conn", db_conn), mock.patch(
            "tfinance.routers.payment.get_gateway"
        ) as get_gateway:
            response = client.post("/api/payment/create")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "You already have a Premium subscription")
        get_gateway.assert_not_called()

    def test_missing_user(self):
        db_conn, _ = fake_db(FakeCursor(fetchone=[None]))
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.post("/api/payment/create")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "User does not exist")

    def test_gateway_failure(self):
        db_conn, conn = fake_db(FakeCursor(fetchone=[USER_ROW]))
        gateway = mock.Mock()
        gateway.create_payment.side_effect = PaymentGatewayError("YooKassa API error: 500")
        with mock.patch("tfinance.routers.payment.db_conn", db_conn), mock.patch(
            "tfinance.routers.payment.get_gateway", return_value=gateway
        ):
            response = client.post("/api/payment/create")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"ok": False, "message": "Failed to create payment"})
        self.assertEqual(conn.rollbacks, 1)

    def test_requires_authentication(self):
        app.dependency_overrides.clear()
        response = client.post("/api/payment/create")
        self.assertEqual(response.status_code, 401)


class WebhookRouteTests(unittest.TestCase):
    def test_unknown_payment(self):
        db_conn, conn = fake_db(FakeCursor(fetchone=[None]))
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.post(
                "/api/payment/webhook",
                json={"type": "notification", "event": "payment.succeeded", "object": {"id": "nope"}},
            )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(conn.rollbacks, 1)

    def test_succeeded_payment_grants_premium(self):
        cur = FakeCursor(
            fetchone=[
                {"payment_id": 1, "user_id": 7, "provider_payment_id": "2d5f-0001", "status": "pending"},
                USER_ROW,
            ]
        )
        db_conn, conn = fake_db(cur)
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.post(
                "/api/payment/webhook",
                json={
                    "type": "notification",
                    "event": "payment.succeeded",
                    "object": {"id": "2d5f-0001", "status": "succeeded", "paid_at": "2026-03-01T12:05:00Z"},
                },
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "message": "Webhook processed"})
        self.assertEqual(conn.commits, 1)
        self.assertEqual(len(cur.statements("UPDATE users")), 1)

    def test_notification_without_object(self):
        db_conn, _ = fake_db(FakeCursor())
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.post("/api/payment/webhook", json={"event": "payment.succeeded"})
        self.assertEqual(response.status_code, 400)


class PaymentStatusRouteTests(AuthenticatedTestCase):
    def payment_row(self, user_id=7):
        return {
            "provider_payment_id": "2d5f-0001",
            "user_id": user_id,
            "status": "succeeded",
            "amount": Decimal("999.00"),
            "currency": "RUB",
            "created_at": CREATED_AT,
            "paid_at": CREATED_AT + timedelta(minutes=5),
        }

    def test_owner_sees_status(self):
        db_conn, _ = fake_db(FakeCursor(fetchone=[self.payment_row()]))
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.get("/api/payment/status/2d5f-0001")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["paymentId"], "2d5f-0001")
        self.assertEqual(body["status"], "succeeded")
        self.assertEqual(body["amount"], 999.0)
        self.assertEqual(body["currency"], "RUB")
        self.assertIn("createdAt", body)
        self.assertIn("paidAt", body)

    def test_foreign_payment_is_forbidden(self):
        db_conn, _ = fake_db(FakeCursor(fetchone=[self.payment_row(user_id=8)]))
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.get("/api/payment/status/2d5f-0001")
        self.assertEqual(response.status_code, 403)

    def test_unknown_payment(self):
        db_conn, _ = fake_db(FakeCursor(fetchone=[None]))
        with mock.patch("tfinance.routers.payment.db_conn", db_conn):
            response = client.get("/api/payment/status/missing")
        self.assertEqual(response.status_code, 404)


class LifespanTests(unittest.TestCase):
    def test_shutdown_closes_gateway_and_pool(self):
        with mock.patch("tfinance.main.open_db_pool") as open_pool, mock.patch("tfinance.main.init_db"), mock.patch(
            "tfinance.main.close_db_pool"
        ) as close_pool, mock.patch("tfinance.main.close_gateway") as close_gateway:
            with TestClient(app) as running:
                self.assertEqual(running.get("/health").json(), {"ok": True})
                close_gateway.assert_not_called()

        open_pool.assert_called_once_with()
        close_gateway.assert_called_once_with()
        close_pool.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
