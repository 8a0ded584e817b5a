# neyma/core/session.py
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Callable, Hashable, Iterator

from neyma.models.user import Profile

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Profile | None], None]


class SessionContext:
    """
    Current authenticated identity for one storefront session.

    Components receive the context explicitly and register for identity
    changes with `subscribe()` instead of looking the user up themselves.

    `on_revoke(user_id)` is called by `force_sign_out()`, after observers
    have seen the sign-out, so the owner of the context (the session
    registry) can forget the expired session.
    """

    def __init__(
        self,
        identity: Profile | None = None,
        on_revoke: Callable[[uuid.UUID], None] | None = None,
    ) -> None:
        self._identity = identity
        self._on_revoke = on_revoke
        self._listeners: list[IdentityListener] = []

    @property
    def identity(self) -> Profile | None:
        return self._identity

    @property
    def user_id(self) -> uuid.UUID | None:
        return self._identity.id if self._identity is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, identity: Profile) -> None:
        if self.user_id == identity.id:
            # Same user, refreshed profile: no identity change.
            self._identity = identity
            return
        self._identity = identity
        self._notify()

    def sign_out(self) -> None:
        if self._identity is None:
            return
        self._identity = None
        self._notify()

    def force_sign_out(self, reason: str = "expired credential") -> None:
        """
        Sign out because the backend no longer accepts the session.
        Safe to call repeatedly.
        """
        user_id = self.user_id
        if user_id is None:
            return
        logger.warning("Forcing sign-out of %s: %s", user_id, reason)
        self.sign_out()
        if self._on_revoke is not None:
            try:
                self._on_revoke(user_id)
            except Exception:
                logger.exception("Session revoke hook failed for %s", user_id)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._identity)


class KeyedLock:
    """
    One re-entrant lock per key (user id).

    Serializes every cart mutation and checkout of a user so that two
    rapid "add to cart" calls cannot both read the same snapshot.
    Re-entrant because checkout clears the cart while holding the lock.

    An entry lives only while some thread holds or waits for it, so the
    map does not grow with the number of users ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def __contains__(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._locks

    def _checkout(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)
