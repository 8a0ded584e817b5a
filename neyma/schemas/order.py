import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

from neyma.core.alerts import Feedback

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


class ShippingInfo(SQLModel):
    """
    Contact & pickup details entered at checkout.

    Stored as-is in orders.shipping_address. Fulfilment and payment are
    arranged over WhatsApp after the order is placed.
    """

    model_config = ConfigDict(extra="forbid")

    full_name: str
    email: str
    phone_number: str | None = None
    whatsapp_number: str
    pickup_location: str
    city: str
    state: str
    country: str = "Nigeria"

    @field_validator(
        "full_name", "email", "whatsapp_number", "pickup_location", "city", "state"
    )
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("phone_number")
    @classmethod
    def normalize_phone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    user_id: uuid.UUID
    total_amount: float
    shipping_address: dict[str, Any]
    status: OrderStatus
    created_at: datetime


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    order_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    price: float
    size: str | None = None
    color: str | None = None
    line_total: float


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items.
    """

    items: list[OrderItemRead]


class PriceBreakdownRead(SQLModel):
    subtotal: float
    shipping: float
    tax: float
    total: float


class CheckoutResponse(SQLModel):
    """
    Result of a successful checkout.

    `notification_sent` tells the UI whether the admin was reached; the
    order is placed either way.
    """

    order: OrderWithItemsRead
    breakdown: PriceBreakdownRead
    notification_sent: bool
    notification_message: str | None = None
    alerts: list[Feedback] = []


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
