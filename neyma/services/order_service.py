# neyma/services/order_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from neyma.models.order import Order, OrderItem
from neyma.repositories.order_repo import OrderRepository
from neyma.schemas.order import (
    OrderItemRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
)

logger = logging.getLogger(__name__)


def build_order_with_items(
    order: Order,
    items: list[OrderItem],
) -> OrderWithItemsRead:
    """
    Compose OrderWithItemsRead from ORM models.

    `total_amount` is the amount committed at checkout; it is never
    recomputed from the items.
    """
    return OrderWithItemsRead(
        id=order.id,
        user_id=order.user_id,
        total_amount=order.total_amount,
        shipping_address=order.shipping_address,
        status=order.status,  # Literal
        created_at=order.created_at,
        items=[
            OrderItemRead(
                id=it.id,
                order_id=it.order_id,
                product_id=it.product_id,
                quantity=it.quantity,
                price=it.price,
                size=it.size,
                color=it.color,
                line_total=it.price * it.quantity,
            )
            for it in items
        ],
    )


class OrderService:
    """
    Order history and administration.

    Order creation belongs to the checkout orchestrator; this service
    only reads orders and lets admins move them through their statuses.
    """

    def __init__(self, order_repo: OrderRepository):
        self.order_repo = order_repo

    def _with_items(self, session: Session, orders: list[Order]) -> list[OrderWithItemsRead]:
        grouped = self.order_repo.list_items_for_orders(session, [o.id for o in orders])
        return [build_order_with_items(o, grouped.get(o.id, [])) for o in orders]

    # -------- User-facing operations --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderWithItemsRead]:
        """
        Order history of the given user, newest first, with items.
        """
        orders = self.order_repo.list_for_user(session, user_id, skip, limit)
        return self._with_items(session, orders)

    def get_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get a single order for the user, including items.

        - 404 if order not found or does not belong to this user.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.user_id != user_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )

        items = self.order_repo.list_items_for_order(session, order.id)
        return build_order_with_items(order, items)

    # -------- Admin operations --------

    def list_all_orders(
        self,
        session: Session,
        status_filter: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderWithItemsRead]:
        """
        List all orders (admin only), optionally filtered by status.
        """
        orders = self.order_repo.list_all(session, status_filter, skip, limit)
        return self._with_items(session, orders)

    def get_order_admin(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get any order with items (admin only).
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        items = self.order_repo.list_items_for_order(session, order.id)
        return build_order_with_items(order, items)

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
    ) -> OrderWithItemsRead:
        """
        Admin-only status update.

        Any of pending, processing, shipped, delivered, cancelled may be
        set; fulfilment is negotiated with the customer out-of-band, so
        no transition order is enforced. Same status is a no-op.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )

        if order.status != payload.status:
            logger.info("Order %s: %s -> %s", order.id, order.status, payload.status)
            order.status = payload.status
            order = self.order_repo.update_order(session, order)

        items = self.order_repo.list_items_for_order(session, order.id)
        return build_order_with_items(order, items)
