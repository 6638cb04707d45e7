import logging

from fastapi import APIRouter, Depends, HTTPException

from tfinance.core.config import settings
from tfinance.db.pool import db_conn
from tfinance.models.auth import MessageResponse
from tfinance.models.payment import CreatePaymentResponse, PaymentStatusResponse, WebhookNotification
from tfinance.services.auth import CurrentUser, is_user_premium, require_session_user
from tfinance.services.payments import (
    PaymentGatewayError,
    apply_webhook,
    create_premium_payment,
    get_gateway,
    get_payment_for_user,
    get_user_by_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.post("/create", response_model=CreatePaymentResponse)
def create_payment(current: CurrentUser = Depends(require_session_user)):
    with db_conn() as conn, conn.cursor() as cur:
        user = get_user_by_id(cur, current.user_id)
        if not user:
            raise HTTPException(status_code=400, detail="User does not exist")
        if is_user_premium(user):
            raise HTTPException(status_code=400, detail="You already have a Premium subscription")

        try:
            payment = create_premium_payment(cur, user, get_gateway())
            conn.commit()
        except PaymentGatewayError:
            conn.rollback()
            logger.exception("Payment creation failed for user %s", current.user_id)
            raise HTTPException(status_code=500, detail="Failed to create payment")

    return CreatePaymentResponse(
        payment_id=payment.id,
        confirmation_url=payment.confirmation.confirmation_url if payment.confirmation else None,
        status=payment.status,
    )


@router.post("/webhook", response_model=MessageResponse)
def webhook(notification: WebhookNotification):
    logger.info(
        "YooKassa webhook received: event=%s payment=%s",
        notification.event,
        notification.object.id if notification.object else None,
    )
    with db_conn() as conn, conn.cursor() as cur:
        try:
            gateway = get_gateway() if settings.payment_webhook_verify else None
            apply_webhook(cur, notification, gateway)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
        except PaymentGatewayError:
            conn.rollback()
            logger.exception("Webhook processing failed")
            raise HTTPException(status_code=500, detail="Failed to process webhook")
    return MessageResponse(message="Webhook processed")


@router.get("/status/{payment_id}", response_model=PaymentStatusResponse)
def payment_status(payment_id: str, current: CurrentUser = Depends(require_session_user)):
    with db_conn() as conn, conn.cursor() as cur:
        payment = get_payment_for_user(cur, payment_id, current.user_id)
    return PaymentStatusResponse(
        payment_id=payment["provider_payment_id"],
        status=payment["status"],
        amount=payment["amount"],
        currency=payment["currency"],
        created_at=payment["created_at"],
        paid_at=payment["paid_at"],
    )
