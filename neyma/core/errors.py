# neyma/core/errors.py
"""
Error taxonomy shared by the cart store and checkout.

  - Unauthenticated   : no identity; surfaced as feedback, never raised
                        out of the cart store.
  - InvalidQuantity   : non-positive quantity rejected before any write.
  - PersistenceError  : store/network failure on a CRUD call; logged,
                        surfaced as feedback and re-raised.
  - ExpiredCredential : the backend rejected the session token; forces
                        a sign-out wherever it is detected.
  - CheckoutFailed    : a checkout attempt failed before the order was
                        durable.
"""

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from jose import ExpiredSignatureError
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from neyma.core.session import SessionContext

logger = logging.getLogger(__name__)

# PostgREST code for "JWT expired"
EXPIRED_JWT_CODE = "PGRST301"
EXPIRED_JWT_MESSAGE = "JWT expired"


class StorefrontError(Exception):
    """Base class for domain errors; `alerts` is filled by AlertChannel.capture()."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.alerts: list = []


class Unauthenticated(StorefrontError):
    pass


class InvalidQuantity(StorefrontError):
    pass


class PersistenceError(StorefrontError):
    pass


class ExpiredCredential(PersistenceError):
    pass


class CartItemNotFound(PersistenceError):
    pass


class CheckoutFailed(StorefrontError):
    pass


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        # SQLAlchemy DBAPIError keeps the driver error on `.orig`
        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException) and id(orig) not in seen:
            yield orig
            seen.add(id(orig))
        current = current.__cause__ or current.__context__


def is_expired_credential(exc: BaseException) -> bool:
    """
    True if `exc` (or anything it wraps) means the session token expired.

    Checks the PostgREST error code, the "JWT expired" message and
    python-jose's ExpiredSignatureError.
    """
    for err in _error_chain(exc):
        if isinstance(err, ExpiredSignatureError):
            return True
        if getattr(err, "code", None) == EXPIRED_JWT_CODE:
            return True
        message = getattr(err, "message", None) or str(err)
        if EXPIRED_JWT_MESSAGE in str(message):
            return True
    return False


@contextmanager
def backend_call(context: "SessionContext | None", operation: str) -> Iterator[None]:
    """
    Interceptor around every persistence call.

      - expired credential -> context.force_sign_out(), ExpiredCredential
      - SQLAlchemy / connection errors -> PersistenceError
      - domain errors and programming errors pass through unchanged
    """
    try:
        yield
    except StorefrontError:
        raise
    except Exception as exc:
        if is_expired_credential(exc):
            logger.warning("%s: session token expired, signing out", operation)
            if context is not None:
                context.force_sign_out(reason=f"expired credential during {operation}")
            raise ExpiredCredential("Your session has expired. Please sign in again.") from exc
        if isinstance(exc, (SQLAlchemyError, ConnectionError, TimeoutError)):
            raise PersistenceError(f"{operation} failed") from exc
        raise
