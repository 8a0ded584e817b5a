"""Shared pytest fixtures for the storefront tests."""

import os

# Settings are read once at import time; point them at test values first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = "https://example.supabase.co"
os.environ["SUPABASE_KEY"] = "anon-test-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["CHECKOUT_PRICING"] = "subtotal"

import uuid  # noqa: E402
from contextlib import contextmanager  # noqa: E402

import pytest  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from neyma.core.alerts import AlertChannel  # noqa: E402
from neyma.core.session import KeyedLock, SessionContext  # noqa: E402
from neyma.database import build_engine  # noqa: E402
from neyma.models.cart import CartItem  # noqa: E402,F401
from neyma.models.order import Order, OrderItem  # noqa: E402,F401
from neyma.models.product import Category, Product, ProductImage  # noqa: E402
from neyma.models.user import Profile  # noqa: E402
from neyma.repositories.cart_repo import CartRepository  # noqa: E402
from neyma.repositories.order_repo import OrderRepository  # noqa: E402
from neyma.services.cart_store import CartStore  # noqa: E402
from neyma.services.checkout import CheckoutOrchestrator  # noqa: E402
from neyma.services.notifier import AdminNotifier  # noqa: E402


class FakeFunctions:
    """Stand-in for `client.functions` of the Supabase client."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def invoke(self, function_name, invoke_options=None):
        self.calls.append((function_name, invoke_options))
        if self.error is not None:
            raise self.error
        return self.response


class FakeSupabase:
    def __init__(self, functions):
        self.functions = functions


class FakeAPIError(Exception):
    """Shape of a PostgREST error: `code` + `message`."""

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    @contextmanager
    def factory():
        with Session(engine) as session:
            yield session

    return factory


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


def _save(session, obj):
    """Persist and detach, so later commits never expire the fixture."""
    session.add(obj)
    session.commit()
    session.refresh(obj)
    session.expunge(obj)
    return obj


@pytest.fixture
def customer(db):
    """A signed-up customer profile."""
    return _save(
        db,
        Profile(
            id=uuid.uuid4(),
            email="ada@example.com",
            full_name="Ada Obi",
            phone_number="+234 800 000 0000",
            role="user",
        ),
    )


@pytest.fixture
def admin(db):
    return _save(
        db,
        Profile(
            id=uuid.uuid4(),
            email="admin@neyma.ng",
            full_name="Shop Admin",
            role="admin",
        ),
    )


@pytest.fixture
def category(db):
    return _save(db, Category(name="Dresses", slug="dresses"))


@pytest.fixture
def product(db, category):
    """P1: price 10,000, stock 5, with a primary image."""
    p1 = _save(
        db,
        Product(name="Ankara Maxi Dress", price=10000, stock=5, category_id=category.id),
    )
    _save(db, ProductImage(product_id=p1.id, image_url="https://cdn.example/p1-side.jpg", sort_order=0))
    _save(
        db,
        ProductImage(
            product_id=p1.id,
            image_url="https://cdn.example/p1-front.jpg",
            is_primary=True,
            sort_order=1,
        ),
    )
    return p1


@pytest.fixture
def other_product(db):
    """P2: price 4,500, stock 10, no category, no images."""
    return _save(db, Product(name="Silk Headwrap", price=4500, stock=10))


@pytest.fixture
def alerts():
    return AlertChannel()


@pytest.fixture
def alert_log(alerts):
    """Every feedback event emitted during the test, in order."""
    events = []
    alerts.subscribe(events.append)
    return events


@pytest.fixture
def revoked():
    """User ids passed to the context's revoke hook."""
    return []


@pytest.fixture
def context(revoked):
    return SessionContext(on_revoke=revoked.append)


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def cart_repo():
    return CartRepository()


@pytest.fixture
def order_repo():
    return OrderRepository()


@pytest.fixture
def cart_store(context, cart_repo, alerts, session_factory, locks):
    store = CartStore(context, cart_repo, alerts, session_factory=session_factory, locks=locks)
    yield store
    store.close()


@pytest.fixture
def signed_in(context, cart_store, customer):
    """Customer signed in; the identity change triggers the first load."""
    context.sign_in(customer)
    return customer


@pytest.fixture
def gateway():
    return FakeFunctions(response={"success": True, "message": "Admin has been notified"})


@pytest.fixture
def notifier(gateway):
    return AdminNotifier(client_factory=lambda: FakeSupabase(gateway))


@pytest.fixture
def checkout(context, cart_store, order_repo, notifier, alerts, session_factory, locks):
    return CheckoutOrchestrator(
        context,
        cart_store,
        order_repo,
        notifier,
        alerts,
        session_factory=session_factory,
        locks=locks,
    )


@pytest.fixture
def shipping():
    return {
        "full_name": "Ada Obi",
        "email": "ada@example.com",
        "phone_number": "+234 800 000 0000",
        "whatsapp_number": "+234 801 111 1111",
        "pickup_location": "12 Allen Avenue",
        "city": "Ikeja",
        "state": "Lagos",
        "country": "Nigeria",
    }
