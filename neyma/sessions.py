# neyma/sessions.py
"""
Per-identity storefront sessions.

Each signed-in customer gets one SessionContext, one CartStore and one
CheckoutOrchestrator. A session is dropped when it is forced out or
after `idle_ttl` seconds without a request; the next request rebuilds
it from the database. Guests get a transient identity-less session.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from neyma.core.alerts import AlertChannel
from neyma.core.config import get_settings
from neyma.core.session import KeyedLock, SessionContext
from neyma.database import session_scope
from neyma.models.user import Profile
from neyma.repositories.cart_repo import CartRepository
from neyma.repositories.order_repo import OrderRepository
from neyma.services.cart_store import CartStore, SessionFactory
from neyma.services.checkout import CheckoutOrchestrator
from neyma.services.notifier import AdminNotifier
from neyma.services.pricing import OrderPricing, SubtotalPricing, pricing_from_settings

logger = logging.getLogger(__name__)


@dataclass
class UserSession:
    context: SessionContext
    cart: CartStore
    checkout: CheckoutOrchestrator


class SessionRegistry:
    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        notifier: AdminNotifier | None = None,
        pricing: OrderPricing | None = None,
        alerts: AlertChannel | None = None,
        idle_ttl: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or AdminNotifier()
        self.pricing = pricing or SubtotalPricing()
        self.alerts = alerts or AlertChannel()
        self.locks = KeyedLock()
        self.cart_repo = CartRepository()
        self.order_repo = OrderRepository()
        self.idle_ttl = idle_ttl
        self.clock = clock

        self._guard = threading.Lock()
        self._sessions: dict[uuid.UUID, UserSession] = {}
        self._last_seen: dict[uuid.UUID, float] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def _build(self, context: SessionContext) -> UserSession:
        cart = CartStore(
            context,
            self.cart_repo,
            self.alerts,
            session_factory=self.session_factory,
            locks=self.locks,
        )
        checkout = CheckoutOrchestrator(
            context,
            cart,
            self.order_repo,
            self.notifier,
            self.alerts,
            session_factory=self.session_factory,
            locks=self.locks,
            pricing=self.pricing,
        )
        return UserSession(context=context, cart=cart, checkout=checkout)

    def for_identity(self, profile: Profile) -> UserSession:
        """
        Return the customer's session, creating and signing it in on
        first use. Signing in triggers the initial cart load.

        Also evicts every other session idle for longer than `idle_ttl`.
        """
        now = self.clock()
        with self._guard:
            session = self._sessions.get(profile.id)
            created = session is None
            if created:
                session = self._build(SessionContext(on_revoke=self.drop))
                self._sessions[profile.id] = session
            self._last_seen[profile.id] = now
            idle = self._pop_idle(now)

        for user_id, stale in idle:
            logger.info("Evicting idle storefront session for %s", user_id)
            stale.cart.close()

        if created:
            logger.info("Opening storefront session for %s", profile.id)
        session.context.sign_in(profile)
        return session

    def guest(self) -> UserSession:
        """Transient session for requests without a token."""
        return self._build(SessionContext())

    def get(self, user_id: uuid.UUID) -> UserSession | None:
        with self._guard:
            return self._sessions.get(user_id)

    def _pop_idle(self, now: float) -> list[tuple[uuid.UUID, UserSession]]:
        # caller holds self._guard
        expired = [
            user_id
            for user_id, seen in self._last_seen.items()
            if now - seen > self.idle_ttl
        ]
        idle = []
        for user_id in expired:
            del self._last_seen[user_id]
            session = self._sessions.pop(user_id, None)
            if session is not None:
                idle.append((user_id, session))
        return idle

    def drop(self, user_id: uuid.UUID) -> None:
        with self._guard:
            session = self._sessions.pop(user_id, None)
            self._last_seen.pop(user_id, None)
        if session is not None:
            session.cart.close()

    def expire(self, user_id: uuid.UUID) -> None:
        """
        The user's token expired: force the session out (which resets
        its cart snapshot and drops it from the registry).
        """
        session = self.get(user_id)
        if session is not None:
            session.context.force_sign_out(reason="access token expired")


@lru_cache
def get_registry() -> SessionRegistry:
    """
    Process-wide registry (FastAPI dependency). Tests override it
    through `app.dependency_overrides`.
    """
    settings = get_settings()
    return SessionRegistry(
        notifier=AdminNotifier(function_name=settings.NOTIFY_ADMIN_FUNCTION),
        pricing=pricing_from_settings(settings),
        idle_ttl=settings.SESSION_IDLE_TTL,
    )
