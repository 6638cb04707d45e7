from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _assume_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GatewayAmount(BaseModel):
    value: str
    currency: str


class GatewayConfirmation(BaseModel):
    type: str
    confirmation_url: str | None = None
    return_url: str | None = None


class GatewayPayment(BaseModel):
    """Payment object as returned by the YooKassa API."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    amount: GatewayAmount | None = None
    confirmation: GatewayConfirmation | None = None
    created_at: datetime | None = None
    paid_at: datetime | None = None
    description: str | None = None
    metadata: dict[str, str] | None = None

    @field_validator("created_at", "paid_at")
    @classmethod
    def timestamps_in_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class WebhookObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    status: str = ""
    paid_at: datetime | None = None
    metadata: dict[str, str] | None = None

    @field_validator("paid_at")
    @classmethod
    def paid_at_in_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class WebhookNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    event: str | None = None
    object: WebhookObject | None = None


class CreatePaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(serialization_alias="paymentId")
    confirmation_url: str | None = Field(default=None, serialization_alias="confirmationUrl")
    status: str


class PaymentStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(serialization_alias="paymentId")
    status: str
    amount: float
    currency: str
    created_at: datetime = Field(serialization_alias="createdAt")
    paid_at: datetime | None = Field(default=None, serialization_alias="paidAt")
