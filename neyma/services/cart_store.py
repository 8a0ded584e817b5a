# neyma/services/cart_store.py
import logging
import uuid
from typing import Callable, ContextManager

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from neyma.core.alerts import AlertChannel
from neyma.core.errors import (
    CartItemNotFound,
    ExpiredCredential,
    InvalidQuantity,
    PersistenceError,
    backend_call,
)
from neyma.core.session import KeyedLock, SessionContext
from neyma.database import session_scope
from neyma.models.cart import CartItem
from neyma.models.user import Profile
from neyma.repositories.cart_repo import CartRepository
from neyma.schemas.cart import CartSnapshot

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]

SIGN_IN_REQUIRED = "Please sign in to add items to cart"


class CartStore:
    """
    Source of truth for "what is in the cart right now" for one session.

    Rules:
      - every successful mutation is followed by a full re-fetch (`load`),
        except `clear`, which empties the snapshot directly
      - the snapshot is only ever replaced wholesale, never patched
      - persistence failures are logged, surfaced on the alert channel
        and re-raised so multi-step callers (checkout) can abort
      - all writes of one user are serialized through `locks`
    """

    def __init__(
        self,
        context: SessionContext,
        cart_repo: CartRepository,
        alerts: AlertChannel,
        session_factory: SessionFactory = session_scope,
        locks: KeyedLock | None = None,
    ):
        self.context = context
        self.cart_repo = cart_repo
        self.alerts = alerts
        self.session_factory = session_factory
        self.locks = locks or KeyedLock()

        self._snapshot = CartSnapshot.empty(loading=True)
        self._loaded_for: uuid.UUID | None = None
        self._unsubscribe = context.subscribe(self._on_identity_change)

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    def close(self) -> None:
        """Stop following identity changes."""
        self._unsubscribe()

    # ---- internal helpers ----

    def _on_identity_change(self, identity: Profile | None) -> None:
        self.load()

    def _replace(self, snapshot: CartSnapshot) -> None:
        self._snapshot = snapshot

    def _insert_or_merge(
        self,
        session: Session,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
        size: str | None,
        color: str | None,
    ) -> CartItem | None:
        """
        Insert a new line. If another process inserted the same variant
        first, add to that row instead. Returns the merged row, or None
        when a new row was inserted.
        """
        try:
            self.cart_repo.insert(
                session,
                CartItem(
                    user_id=user_id,
                    product_id=product_id,
                    quantity=quantity,
                    size=size,
                    color=color,
                ),
            )
            return None
        except IntegrityError:
            session.rollback()
            row = self.cart_repo.find_variant(session, user_id, product_id, size, color)
            if row is None:
                raise
            logger.info("Cart line for product %s already existed, merging", product_id)
            return self.cart_repo.set_quantity(session, user_id, row.id, row.quantity + quantity)

    def _require_positive(self, quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            self.alerts.show_error("Quantity must be at least 1")
            raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}")

    # ---- public operations ----

    def load(self, strict: bool = False) -> CartSnapshot:
        """
        Replace the snapshot with the user's persisted cart lines.

        No identity => empty snapshot. An expired session signs the user
        out (which empties the cart); other failures keep the previous
        snapshot. With `strict`, both failures are re-raised so a caller
        about to act on the snapshot (checkout) never uses a stale one.
        """
        user_id = self.context.user_id
        if user_id is None:
            self._loaded_for = None
            self._replace(CartSnapshot.empty())
            return self._snapshot

        with self.locks.hold(user_id):
            try:
                with backend_call(self.context, "fetch cart"), self.session_factory() as session:
                    lines = self.cart_repo.list_for_user(session, user_id)
            except ExpiredCredential:
                # force_sign_out() already reset the snapshot
                if strict:
                    raise
                return self._snapshot
            except PersistenceError:
                logger.exception("Error fetching cart for user %s", user_id)
                self._replace(self._snapshot.model_copy(update={"loading": False}))
                if strict:
                    raise
                return self._snapshot

            # Identity may have changed while the fetch was in flight.
            if self.context.user_id != user_id:
                return self._snapshot

            self._replace(CartSnapshot.from_lines(lines))
            self._loaded_for = user_id
            return self._snapshot

    def add_item(
        self,
        product_id: uuid.UUID,
        quantity: int = 1,
        size: str | None = None,
        color: str | None = None,
    ) -> CartSnapshot | None:
        """
        Add a product variant to the cart.

        The same (product, size, color) already in the cart gets its
        quantity increased instead of a second row. Stock is not checked
        here. Returns None (after an error alert) when nobody is signed in.
        """
        user_id = self.context.user_id
        if user_id is None:
            self.alerts.show_error(SIGN_IN_REQUIRED)
            return None
        self._require_positive(quantity)

        with self.locks.hold(user_id):
            if self._loaded_for != user_id:
                self.load()
                if self._loaded_for != user_id:
                    self.alerts.show_error("Failed to add item to cart")
                    raise PersistenceError("Cart could not be loaded")

            existing = self._snapshot.find(product_id, size, color)
            try:
                with backend_call(self.context, "add to cart"), self.session_factory() as session:
                    updated = None
                    if existing is not None:
                        updated = self.cart_repo.set_quantity(
                            session, user_id, existing.id, existing.quantity + quantity
                        )
                    if updated is None:
                        # New variant, or the line vanished since the last fetch.
                        updated = self._insert_or_merge(
                            session, user_id, product_id, quantity, size, color
                        )
            except PersistenceError:
                logger.exception("Error adding product %s to cart", product_id)
                self.alerts.show_error("Failed to add item to cart")
                raise

            self.load()
            if updated is not None:
                self.alerts.show_success("🛒 Cart updated! Item quantity increased.")
            else:
                self.alerts.show_success("🛒 Great choice! Item added to your cart.")
            return self._snapshot

    def update_quantity(self, line_id: uuid.UUID, quantity: int) -> CartSnapshot | None:
        """
        Set a line's quantity.

        Non-positive values are rejected with InvalidQuantity before any
        write. The upper bound (product stock) is the caller's job.
        """
        user_id = self.context.user_id
        if user_id is None:
            self.alerts.show_error(SIGN_IN_REQUIRED)
            return None
        self._require_positive(quantity)

        with self.locks.hold(user_id):
            try:
                with backend_call(self.context, "update cart item"), self.session_factory() as session:
                    updated = self.cart_repo.set_quantity(session, user_id, line_id, quantity)
                if updated is None:
                    raise CartItemNotFound("Cart item not found")
            except PersistenceError:
                logger.exception("Error updating cart item %s", line_id)
                self.alerts.show_error("Failed to update cart item")
                raise

            self.load()
            self.alerts.show_success("Cart updated successfully")
            return self._snapshot

    def remove_item(self, line_id: uuid.UUID) -> CartSnapshot | None:
        user_id = self.context.user_id
        if user_id is None:
            self.alerts.show_error(SIGN_IN_REQUIRED)
            return None

        with self.locks.hold(user_id):
            try:
                with backend_call(self.context, "remove cart item"), self.session_factory() as session:
                    removed = self.cart_repo.delete(session, user_id, line_id)
                if not removed:
                    raise CartItemNotFound("Cart item not found")
            except PersistenceError:
                logger.exception("Error removing cart item %s", line_id)
                self.alerts.show_error("Failed to remove item from cart")
                raise

            self.load()
            self.alerts.show_success("Item removed from cart")
            return self._snapshot

    def clear(self) -> CartSnapshot:
        """
        Delete every cart line of the user and empty the snapshot
        without re-fetching. No-op without identity.
        """
        user_id = self.context.user_id
        if user_id is None:
            return self._snapshot

        with self.locks.hold(user_id):
            try:
                with backend_call(self.context, "clear cart"), self.session_factory() as session:
                    self.cart_repo.clear_user_cart(session, user_id)
            except PersistenceError:
                logger.exception("Error clearing cart for user %s", user_id)
                raise

            self._replace(CartSnapshot.empty())
            self._loaded_for = user_id
            return self._snapshot
