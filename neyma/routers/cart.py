import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from neyma.core.auth import get_user_session
from neyma.core.errors import Unauthenticated
from neyma.schemas.cart import CartItemCreate, CartItemUpdate, CartResponse
from neyma.services.cart_store import SIGN_IN_REQUIRED
from neyma.sessions import SessionRegistry, UserSession, get_registry

router = APIRouter(prefix="/cart", tags=["Cart"])


@router.get("", response_model=CartResponse)
def get_my_cart(
    user_session: UserSession = Depends(get_user_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Get the current cart (re-fetched) with its totals.

    Guests get an empty cart.
    """
    with registry.alerts.capture() as raised:
        snapshot = user_session.cart.load()
    return CartResponse(cart=snapshot, alerts=raised)


@router.post("", response_model=CartResponse)
def add_to_cart(
    payload: CartItemCreate,
    user_session: UserSession = Depends(get_user_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Add a product variant to the cart. The same product/size/color
    merges into the existing line.

    Guests get 401 with a sign-in alert.
    """
    with registry.alerts.capture() as raised:
        snapshot = user_session.cart.add_item(
            payload.product_id,
            quantity=payload.quantity,
            size=payload.size,
            color=payload.color,
        )
        if snapshot is None:
            raise Unauthenticated(SIGN_IN_REQUIRED)
    return CartResponse(cart=snapshot, alerts=raised)


@router.patch("/{line_id}", response_model=CartResponse)
def update_cart_item(
    line_id: uuid.UUID,
    payload: CartItemUpdate,
    user_session: UserSession = Depends(get_user_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Set the quantity of a cart line.

    The requested value is clamped to [1, product stock] first.
    """
    cart = user_session.cart
    with registry.alerts.capture() as raised:
        if not user_session.context.is_authenticated:
            raise Unauthenticated(SIGN_IN_REQUIRED)

        line = cart.snapshot.get(line_id) or cart.load().get(line_id)
        if line is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cart item not found",
            )

        quantity = payload.quantity
        if line.product is not None:
            quantity = min(quantity, line.product.stock)
        quantity = max(1, quantity)

        snapshot = cart.update_quantity(line_id, quantity)
    return CartResponse(cart=snapshot, alerts=raised)


@router.delete("/{line_id}", response_model=CartResponse)
def remove_cart_item(
    line_id: uuid.UUID,
    user_session: UserSession = Depends(get_user_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Remove a line from the cart.
    """
    with registry.alerts.capture() as raised:
        snapshot = user_session.cart.remove_item(line_id)
        if snapshot is None:
            raise Unauthenticated(SIGN_IN_REQUIRED)
    return CartResponse(cart=snapshot, alerts=raised)


@router.delete("", response_model=CartResponse)
def clear_cart(
    user_session: UserSession = Depends(get_user_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Clear the entire cart. Returns an empty cart; no-op for guests.
    """
    with registry.alerts.capture() as raised:
        snapshot = user_session.cart.clear()
        if user_session.context.is_authenticated:
            registry.alerts.show_success("Cart cleared")
    return CartResponse(cart=snapshot, alerts=raised)
