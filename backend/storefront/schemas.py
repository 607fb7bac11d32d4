"""
Request DTOs

Each model is a JSON body accepted by a route. Unknown fields are rejected
so typos and stale client fields surface as 400s instead of being ignored.
The storefront frontend posts camelCase; snake_case is accepted as well.
"""
from __future__ import annotations

from typing import Annotated, List, Literal, Optional

from pydantic import (
    AfterValidator,
    AnyHttpUrl,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

MAX_ITEM_QUANTITY = 1000
MAX_PRICE_CENTS = 999_999_999
MAX_URL_LENGTH = 512


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value.strip() if isinstance(value, str) else value


def _url_text(value: AnyHttpUrl | None) -> str | None:
    if value is None:
        return None
    text = str(value)
    if len(text) > MAX_URL_LENGTH:
        raise ValueError(f"URL exceeds max length {MAX_URL_LENGTH}")
    return text


# http(s) URL stored as text; "" clears the field
WebhookUrl = Annotated[Optional[AnyHttpUrl], BeforeValidator(_blank_to_none), AfterValidator(_url_text)]


class StrictModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class OrderItemIn(StrictModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=MAX_ITEM_QUANTITY)
    unit_price_cents: int = Field(..., ge=0, le=MAX_PRICE_CENTS)
    size: Optional[str] = Field(None, max_length=32)
    color: Optional[str] = Field(None, max_length=64)


class OrderCreate(StrictModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=3, max_length=32)
    customer_address: Optional[str] = Field(None, max_length=2000)
    items: List[OrderItemIn] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=2000)


class ContactMessage(StrictModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    subject: str = Field(..., min_length=5, max_length=255)
    message: str = Field(..., min_length=10, max_length=5000)


class LoginRequest(StrictModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(StrictModel):
    refresh_token: str = Field(..., min_length=1)


class UserCreate(StrictModel):
    username: str = Field(..., min_length=3, max_length=64)
    email: EmailStr
    password: str
    role: Literal["admin", "manager"] = "manager"
    full_name: Optional[str] = Field(None, max_length=255)


class ChangePasswordRequest(StrictModel):
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info):
        if info.data.get("new_password") is not None and value != info.data["new_password"]:
            raise ValueError("Passwords do not match")
        return value


class ProfileUpdate(StrictModel):
    full_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = Field(None, max_length=2000)


class OrderStatusUpdate(StrictModel):
    status: Literal["Pending", "Confirmed", "Sold", "Cancelled"]


class PaymentUpdate(StrictModel):
    payment_status: Literal["Pending", "Paid", "Failed", "Refunded"]
    payment_method: Optional[str] = Field(None, max_length=32)


class AdminNotesUpdate(StrictModel):
    admin_notes: Optional[str] = Field(None, max_length=5000)


class NotificationSettingsUpdate(StrictModel):
    low_stock_threshold: int = Field(..., ge=0, le=1000)
    email_notifications_enabled: bool = True
    admin_email: Optional[EmailStr] = None
    webhook_notifications_enabled: bool = False
    webhook_url: WebhookUrl = None
    sms_notifications_enabled: bool = False
    admin_phone: Optional[str] = Field(None, max_length=32)


class WebhookSettingsUpdate(StrictModel):
    webhook_notifications_enabled: bool
    slack_webhook_url: WebhookUrl = None
    discord_webhook_url: WebhookUrl = None
    custom_webhook_url: WebhookUrl = None


class TestEmailRequest(StrictModel):
    admin_email: Optional[EmailStr] = None


class TestWebhookRequest(StrictModel):
    platform: Literal["generic", "slack", "discord", "custom"] = "generic"
    webhook_url: WebhookUrl = None


class OrderWebhookTrigger(StrictModel):
    order_id: int = Field(..., gt=0)


class OrderEmailRequest(StrictModel):
    order_id: int = Field(..., gt=0)
    email_type: Literal["confirmation", "status_update", "shipping", "delivery"]
    custom_message: Optional[str] = Field(None, max_length=5000)


class SmsSendRequest(StrictModel):
    phone_number: str = Field(..., min_length=3, max_length=32)
    message: str = Field(..., min_length=1, max_length=1600)
    order_id: Optional[int] = None


class SmsRecipient(StrictModel):
    phone_number: str = Field(..., min_length=3, max_length=32)
    customer_name: str = Field("", max_length=255)


class SmsBulkRequest(StrictModel):
    recipients: List[SmsRecipient] = Field(..., min_length=1, max_length=500)
    message_template: str = Field(..., min_length=1, max_length=1600)


def validation_errors(exc: ValidationError) -> list[dict]:
    """Flatten a pydantic error into field-level {loc, msg} entries."""
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
