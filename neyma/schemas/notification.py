import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Wire models of the notify-admin function use camelCase keys.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderData(CamelModel):
    order_id: uuid.UUID
    total_amount: float
    status: str
    shipping_address: dict[str, Any] = {}
    created_at: datetime | None = None


class UserInfo(CamelModel):
    user_id: uuid.UUID
    full_name: str | None = None
    email: str | None = None


class NotificationItem(CamelModel):
    product_id: uuid.UUID
    product_name: str | None = None
    quantity: int
    price: float
    size: str | None = None
    color: str | None = None
    total_price: float


class AdminNotification(CamelModel):
    """
    Request body of the notify-admin function.
    """

    order_data: OrderData
    user_info: UserInfo
    cart_items: list[NotificationItem] = []


class NotifyAdminResponse(CamelModel):
    success: bool
    message: str
    order_id: uuid.UUID | None = None
    timestamp: datetime
    contact_method: str | None = None


class NotifyAdminError(CamelModel):
    success: bool = False
    error: str
    message: str
