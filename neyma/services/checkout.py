# neyma/services/checkout.py
import enum
import logging
from dataclasses import dataclass
from typing import Any

from neyma.core.alerts import AlertChannel
from neyma.core.errors import CheckoutFailed, PersistenceError, backend_call
from neyma.core.session import KeyedLock, SessionContext
from neyma.database import session_scope
from neyma.models.order import Order, OrderItem
from neyma.models.user import Profile
from neyma.repositories.order_repo import OrderRepository
from neyma.schemas.cart import CartSnapshot
from neyma.services.cart_store import CartStore, SessionFactory
from neyma.services.notifier import (
    AdminNotifier,
    NotificationResult,
    build_admin_notification,
)
from neyma.services.pricing import OrderPricing, PriceBreakdown, SubtotalPricing

logger = logging.getLogger(__name__)


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass
class CheckoutResult:
    order: Order
    items: list[OrderItem]
    breakdown: PriceBreakdown
    notification_sent: bool
    notification_message: str | None = None


class CheckoutOrchestrator:
    """
    Turns the current cart into a persisted order.

    Steps:
      1. Price the cart snapshot (policy decides tax/shipping).
      2. Insert the Order (status='pending').
      3. Insert one OrderItem per cart line, price frozen from the
         current product snapshot.
         Steps 2-3 commit together; any failure leaves no order behind
         and the cart untouched.
      4. Notify the admin (best effort, result kept for messaging).
      5. Clear the cart.

    State per attempt: idle -> submitting -> submitted | failed -> idle.
    """

    def __init__(
        self,
        context: SessionContext,
        cart_store: CartStore,
        order_repo: OrderRepository,
        notifier: AdminNotifier,
        alerts: AlertChannel,
        session_factory: SessionFactory = session_scope,
        locks: KeyedLock | None = None,
        pricing: OrderPricing | None = None,
    ):
        self.context = context
        self.cart_store = cart_store
        self.order_repo = order_repo
        self.notifier = notifier
        self.alerts = alerts
        self.session_factory = session_factory
        self.locks = locks or cart_store.locks
        self.pricing = pricing or SubtotalPricing()
        self.state = CheckoutState.IDLE

    def submit(self, shipping_address: dict[str, Any]) -> CheckoutResult | None:
        """
        Run one checkout attempt.

        Returns None without touching anything when nobody is signed in.
        Raises CheckoutFailed if the order could not be persisted.
        A non-empty cart is the caller's precondition.
        """
        customer = self.context.identity
        if customer is None:
            logger.info("Checkout ignored: no authenticated user")
            return None

        with self.locks.hold(customer.id):
            self.state = CheckoutState.SUBMITTING
            try:
                return self._submit(customer, shipping_address)
            finally:
                # Any unexpected error returns the attempt to idle.
                if self.state == CheckoutState.SUBMITTING:
                    self.state = CheckoutState.IDLE

    def _submit(self, customer: Profile, shipping_address: dict[str, Any]) -> CheckoutResult:
        snapshot = self.cart_store.snapshot
        breakdown = self.pricing.breakdown(snapshot.total_price)

        try:
            order, items = self._persist_order(customer, snapshot, shipping_address, breakdown)
        except PersistenceError as exc:
            logger.exception("Error creating order for user %s", customer.id)
            self.state = CheckoutState.FAILED
            self.alerts.show_error("Failed to process order. Please try again.")
            self.state = CheckoutState.IDLE
            raise CheckoutFailed("Failed to process order") from exc

        logger.info(
            "Order %s created for user %s: %d items, total %.2f",
            order.id,
            customer.id,
            len(items),
            order.total_amount,
        )

        notification = self._notify(order, customer, snapshot, items)

        try:
            self.cart_store.clear()
        except PersistenceError:
            logger.warning("Order %s placed but the cart could not be cleared", order.id)
            self.alerts.show_warning(
                "Your order was placed, but your cart could not be cleared."
            )

        self.state = CheckoutState.SUBMITTED
        if notification.success:
            self.alerts.show_success(
                "Order submitted successfully! Our admin team has been notified "
                "and will contact you shortly."
            )
        else:
            self.alerts.show_info(
                "Order received. Our team will contact you soon to confirm the details."
            )

        return CheckoutResult(
            order=order,
            items=items,
            breakdown=breakdown,
            notification_sent=notification.success,
            notification_message=notification.message,
        )

    def _notify(
        self,
        order: Order,
        customer: Profile,
        snapshot: CartSnapshot,
        items: list[OrderItem],
    ) -> NotificationResult:
        """Best effort: the order is already durable, so nothing here may raise."""
        try:
            payload = build_admin_notification(order, customer, snapshot, items)
        except Exception as exc:
            logger.exception("Could not build the admin notification for order %s", order.id)
            return NotificationResult(success=False, message=str(exc))
        return self.notifier.notify(payload)

    def _persist_order(
        self,
        customer: Profile,
        snapshot: CartSnapshot,
        shipping_address: dict[str, Any],
        breakdown: PriceBreakdown,
    ) -> tuple[Order, list[OrderItem]]:
        with backend_call(self.context, "create order"), self.session_factory() as session:
            order = self.order_repo.create_order(
                session,
                Order(
                    user_id=customer.id,
                    total_amount=breakdown.total,
                    shipping_address=dict(shipping_address),
                    status="pending",
                ),
            )

            items = self.order_repo.create_items(
                session,
                [
                    OrderItem(
                        order_id=order.id,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        price=line.product.price if line.product is not None else 0.0,
                        size=line.size,
                        color=line.color,
                    )
                    for line in snapshot.items
                ],
            )

            # Closing the session without this commit rolls both inserts back.
            session.commit()
            session.refresh(order)
            for item in items:
                session.refresh(item)
            return order, items
