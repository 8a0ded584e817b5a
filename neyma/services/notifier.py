# neyma/services/notifier.py
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from neyma.core.supabase_client import supabase_public
from neyma.models.order import Order, OrderItem
from neyma.models.user import Profile
from neyma.schemas.cart import CartSnapshot
from neyma.schemas.notification import (
    AdminNotification,
    NotificationItem,
    OrderData,
    UserInfo,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message: str | None = None


def build_admin_notification(
    order: Order,
    customer: Profile,
    snapshot: CartSnapshot,
    order_items: list[OrderItem],
) -> AdminNotification:
    """
    Assemble the order + customer + line items payload.

    `order_items` were derived 1:1 from `snapshot.items`, in order, so
    product names are taken from the matching cart line.
    """
    items: list[NotificationItem] = []
    for line, order_item in zip(snapshot.items, order_items):
        items.append(
            NotificationItem(
                product_id=order_item.product_id,
                product_name=line.product.name if line.product is not None else None,
                quantity=order_item.quantity,
                price=order_item.price,
                size=order_item.size,
                color=order_item.color,
                total_price=order_item.price * order_item.quantity,
            )
        )

    return AdminNotification(
        order_data=OrderData(
            order_id=order.id,
            total_amount=order.total_amount,
            status=order.status,
            shipping_address=order.shipping_address,
            created_at=order.created_at,
        ),
        user_info=UserInfo(
            user_id=customer.id,
            full_name=customer.full_name,
            email=customer.email,
        ),
        cart_items=items,
    )


class AdminNotifier:
    """
    Best-effort client of the notify-admin edge function.

    `notify()` never raises: transport errors, non-2xx responses and
    `success != true` bodies all come back as NotificationResult(False).
    """

    def __init__(
        self,
        client_factory: Callable[[], Any] = supabase_public,
        function_name: str = "notify-admin",
    ):
        self.client_factory = client_factory
        self.function_name = function_name

    def notify(self, notification: AdminNotification) -> NotificationResult:
        body = notification.model_dump(mode="json", by_alias=True)
        order_id = body["orderData"]["orderId"]

        try:
            client = self.client_factory()
            data = client.functions.invoke(
                self.function_name,
                invoke_options={"body": body, "responseType": "json"},
            )
        except Exception as exc:
            logger.error("Error notifying admin about order %s: %s", order_id, exc)
            return NotificationResult(success=False, message=str(exc))

        if isinstance(data, (bytes, str)):
            try:
                data = json.loads(data)
            except ValueError:
                logger.error("Admin notification for order %s returned a non-JSON body", order_id)
                return NotificationResult(success=False, message="Invalid response")

        if not isinstance(data, dict) or data.get("success") is not True:
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning("Admin notification for order %s was not accepted: %s", order_id, message)
            return NotificationResult(success=False, message=message)

        logger.info("Admin notified about order %s", order_id)
        return NotificationResult(success=True, message=data.get("message"))
