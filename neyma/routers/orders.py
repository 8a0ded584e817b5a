import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from neyma.core.auth import get_user_session, require_admin, require_auth
from neyma.core.errors import PersistenceError
from neyma.database import get_session
from neyma.models.user import Profile
from neyma.repositories.order_repo import OrderRepository
from neyma.schemas.order import (
    CheckoutResponse,
    OrderStatus,
    OrderStatusUpdate,
    OrderWithItemsRead,
    PriceBreakdownRead,
    ShippingInfo,
)
from neyma.services.order_service import OrderService, build_order_with_items
from neyma.sessions import SessionRegistry, UserSession, get_registry

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
service = OrderService(order_repo)


# -------- User-facing endpoints --------


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
)
def checkout(
    payload: ShippingInfo,
    current_user: Profile = Depends(require_auth),
    user_session: UserSession = Depends(get_user_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Place an order from the current user's cart.

    The admin is notified best-effort; `notification_sent` reports
    whether that worked. The cart is empty afterwards.
    """
    with registry.alerts.capture() as raised:
        # A failed fetch answers 502 (401 when the session expired).
        try:
            snapshot = user_session.cart.load(strict=True)
        except PersistenceError:
            registry.alerts.show_error("Could not load your cart. Please try again.")
            raise
        if snapshot.is_empty:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cart is empty",
            )

        result = user_session.checkout.submit(payload.model_dump())
        if result is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
            )

    breakdown = result.breakdown
    return CheckoutResponse(
        order=build_order_with_items(result.order, result.items),
        breakdown=PriceBreakdownRead(
            subtotal=breakdown.subtotal,
            shipping=breakdown.shipping,
            tax=breakdown.tax,
            total=breakdown.total,
        ),
        notification_sent=result.notification_sent,
        notification_message=result.notification_message,
        alerts=raised,
    )


@router.get(
    "/me",
    response_model=list[OrderWithItemsRead],
)
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: Profile = Depends(require_auth),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated user's orders, newest first.
    """
    return service.list_user_orders(session, current_user.id, skip, limit)


@router.get(
    "/me/{order_id}",
    response_model=OrderWithItemsRead,
)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: Profile = Depends(require_auth),
):
    """
    Get a single order (with items) belonging to the current user.
    """
    return service.get_user_order(session, current_user.id, order_id)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[OrderWithItemsRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    skip: int = 0,
    limit: int = 50,
):
    """
    List all orders (admin only), optionally by status.
    """
    return service.list_all_orders(session, status_filter, skip, limit)


@router.get(
    "/{order_id}",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_admin)],
)
def get_order_admin(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Get any order with items (admin only).
    """
    return service.get_order_admin(session, order_id)


@router.patch(
    "/{order_id}/status",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Update order status (admin only):
    pending, processing, shipped, delivered, cancelled.
    """
    return service.update_status(session, order_id, payload)
