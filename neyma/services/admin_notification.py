# neyma/services/admin_notification.py
"""
Receiving side of the notify-admin function: records a new order for
the shop admin and answers the storefront with the contact method.
"""

import logging
from datetime import datetime, timezone

from neyma.core.email_client import is_email_configured, send_email
from neyma.schemas.notification import AdminNotification, NotifyAdminResponse

logger = logging.getLogger(__name__)


def _contact_info(notification: AdminNotification) -> dict[str, str | None]:
    address = notification.order_data.shipping_address or {}
    return {
        "whatsapp_number": address.get("whatsapp_number"),
        "pickup_location": address.get("pickup_location"),
        "city": address.get("city"),
        "state": address.get("state"),
    }


def format_order_summary(notification: AdminNotification) -> str:
    order = notification.order_data
    customer = notification.user_info
    contact = _contact_info(notification)

    lines = [
        "=== NEW ORDER NOTIFICATION ===",
        f"Order ID: {order.order_id}",
        f"Customer: {customer.full_name} ({customer.email})",
        f"WhatsApp: {contact['whatsapp_number']}",
        f"Pickup Location: {contact['pickup_location']}",
        f"City/State: {contact['city']}, {contact['state']}",
        f"Total Amount: {order.total_amount:,.2f}",
        f"Items: {len(notification.cart_items)}",
    ]
    for index, item in enumerate(notification.cart_items, start=1):
        variant = ", ".join(v for v in (item.size, item.color) if v)
        suffix = f" [{variant}]" if variant else ""
        lines.append(
            f"  {index}. {item.product_name}{suffix} (Qty: {item.quantity}) - NGN {item.total_price:,.2f}"
        )
    lines.append("==============================")
    return "\n".join(lines)


def notify_admin(
    notification: AdminNotification,
    admin_email: str | None = None,
) -> NotifyAdminResponse:
    """
    Log the order for the admin and, when SMTP and `admin_email` are
    configured, e-mail the same summary.

    Raises whatever the e-mail transport raises; the HTTP layer turns
    that into a `success: false` response.
    """
    summary = format_order_summary(notification)
    logger.info("\n%s", summary)

    if admin_email and is_email_configured():
        send_email(
            to_email=admin_email,
            subject=f"[Neyma] New order {notification.order_data.order_id}",
            text_body=summary,
        )
        logger.info("Order %s e-mailed to admin", notification.order_data.order_id)

    contact = _contact_info(notification)
    return NotifyAdminResponse(
        success=True,
        message=(
            "Order submitted successfully! Admin has been notified and "
            "will contact you via WhatsApp shortly."
        ),
        order_id=notification.order_data.order_id,
        timestamp=datetime.now(timezone.utc),
        contact_method=f"WhatsApp: {contact['whatsapp_number']}",
    )
