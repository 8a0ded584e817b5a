"""Tests for CartStore: merging, totals, clearing and failure handling."""

import threading
import uuid

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import select

from neyma.core.errors import (
    CartItemNotFound,
    ExpiredCredential,
    InvalidQuantity,
    PersistenceError,
)
from neyma.models.cart import CartItem
from neyma.models.product import Product

from conftest import FakeAPIError


def _db_lines(db, user_id):
    db.expire_all()
    return db.exec(select(CartItem).where(CartItem.user_id == user_id)).all()


def _boom(*args, **kwargs):
    raise OperationalError("INSERT INTO cart_items", {}, Exception("connection lost"))


class TestLoad:
    def test_starts_loading_and_empty(self, cart_store):
        assert cart_store.snapshot.loading is True
        assert cart_store.snapshot.items == []

    def test_no_identity_gives_empty_non_loading_snapshot(self, cart_store):
        snapshot = cart_store.load()

        assert snapshot.items == []
        assert snapshot.loading is False
        assert snapshot.total_items == 0
        assert snapshot.total_price == 0

    def test_sign_in_loads_persisted_lines(self, db, context, cart_store, customer, product):
        db.add(CartItem(user_id=customer.id, product_id=product.id, quantity=2, size="M"))
        db.commit()

        context.sign_in(customer)

        snapshot = cart_store.snapshot
        assert snapshot.loading is False
        assert len(snapshot.items) == 1
        line = snapshot.items[0]
        assert line.size == "M"
        assert line.product.name == "Ankara Maxi Dress"
        assert line.product.stock == 5
        assert line.product.category == "Dresses"
        assert line.product.primary_image_url == "https://cdn.example/p1-front.jpg"

    def test_sign_out_empties_snapshot(self, context, cart_store, signed_in, product):
        cart_store.add_item(product.id, quantity=2)

        context.sign_out()

        assert cart_store.snapshot.items == []
        assert cart_store.snapshot.total_items == 0

    def test_failed_fetch_keeps_previous_snapshot(
        self, cart_store, cart_repo, signed_in, product, monkeypatch
    ):
        cart_store.add_item(product.id, quantity=2)
        monkeypatch.setattr(cart_repo, "list_for_user", _boom)

        snapshot = cart_store.load()

        assert snapshot.total_items == 2
        assert snapshot.loading is False

    def test_expired_credential_forces_sign_out(
        self, context, cart_store, cart_repo, signed_in, product, revoked, monkeypatch
    ):
        cart_store.add_item(product.id, quantity=1)

        def expired(*args, **kwargs):
            raise FakeAPIError("PGRST301", "JWT expired")

        monkeypatch.setattr(cart_repo, "list_for_user", expired)

        snapshot = cart_store.load()

        assert context.identity is None
        assert revoked == [signed_in.id]
        assert snapshot.items == []


class TestAddItem:
    def test_requires_identity(self, cart_store, alert_log, db, product):
        result = cart_store.add_item(product.id)

        assert result is None
        assert alert_log[-1].kind == "error"
        assert alert_log[-1].message == "Please sign in to add items to cart"
        assert db.exec(select(CartItem)).all() == []

    def test_same_variant_merges_into_one_line(self, db, cart_store, signed_in, product):
        cart_store.add_item(product.id, quantity=2, size="M", color="red")
        snapshot = cart_store.add_item(product.id, quantity=1, size="M", color="red")

        assert len(snapshot.items) == 1
        assert snapshot.items[0].quantity == 3
        rows = _db_lines(db, signed_in.id)
        assert len(rows) == 1
        assert rows[0].quantity == 3

    @pytest.mark.parametrize(
        "second",
        [
            {"size": "L", "color": "red"},
            {"size": "M", "color": "blue"},
            {"size": None, "color": "red"},
        ],
    )
    def test_different_variant_gets_its_own_line(self, db, cart_store, signed_in, product, second):
        cart_store.add_item(product.id, quantity=1, size="M", color="red")
        snapshot = cart_store.add_item(product.id, quantity=1, **second)

        assert len(snapshot.items) == 2
        assert len(_db_lines(db, signed_in.id)) == 2

    def test_end_to_end_totals(self, cart_store, signed_in, product):
        snapshot = cart_store.add_item(product.id, quantity=2, size="M", color="red")
        assert len(snapshot.items) == 1
        assert snapshot.total_items == 2
        assert snapshot.total_price == 20000

        snapshot = cart_store.add_item(product.id, quantity=1, size="M", color="red")
        assert len(snapshot.items) == 1
        assert snapshot.items[0].quantity == 3
        assert snapshot.total_items == 3
        assert snapshot.total_price == 30000

    def test_merge_is_not_bounded_by_stock(self, cart_store, signed_in, product):
        cart_store.add_item(product.id, quantity=4)
        snapshot = cart_store.add_item(product.id, quantity=4)

        assert snapshot.items[0].quantity == 8

    def test_success_messages_depend_on_path(self, cart_store, signed_in, product, alert_log):
        cart_store.add_item(product.id)
        cart_store.add_item(product.id)

        messages = [e.message for e in alert_log if e.kind == "success"]
        assert messages == [
            "🛒 Great choice! Item added to your cart.",
            "🛒 Cart updated! Item quantity increased.",
        ]

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, db, cart_store, signed_in, product, quantity):
        with pytest.raises(InvalidQuantity):
            cart_store.add_item(product.id, quantity=quantity)

        assert _db_lines(db, signed_in.id) == []

    def test_persistence_failure_alerts_and_reraises(
        self, cart_store, cart_repo, signed_in, product, alert_log, monkeypatch
    ):
        monkeypatch.setattr(cart_repo, "insert", _boom)

        with pytest.raises(PersistenceError):
            cart_store.add_item(product.id)

        assert alert_log[-1].kind == "error"
        assert alert_log[-1].message == "Failed to add item to cart"
        assert cart_store.snapshot.items == []

    def test_expired_credential_on_write(
        self, context, cart_store, cart_repo, signed_in, product, alert_log, monkeypatch
    ):
        def expired(*args, **kwargs):
            raise FakeAPIError("401", "JWT expired")

        monkeypatch.setattr(cart_repo, "insert", expired)

        with pytest.raises(ExpiredCredential):
            cart_store.add_item(product.id)

        assert context.identity is None
        assert cart_store.snapshot.items == []
        assert alert_log[-1].message == "Failed to add item to cart"

    def test_concurrent_adds_of_same_variant_do_not_duplicate(
        self, db, cart_store, cart_repo, signed_in, product, monkeypatch
    ):
        # Widen the read-then-write window.
        original_insert = cart_repo.insert

        def slow_insert(session, item):
            threading.Event().wait(0.05)
            return original_insert(session, item)

        monkeypatch.setattr(cart_repo, "insert", slow_insert)

        threads = [
            threading.Thread(target=cart_store.add_item, args=(product.id,), kwargs={"quantity": 1})
            for _ in range(2)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        rows = _db_lines(db, signed_in.id)
        assert len(rows) == 1
        assert rows[0].quantity == 2
        assert cart_store.snapshot.total_items == 2


class TestUpdateQuantity:
    def test_sets_quantity_and_reloads(self, cart_store, signed_in, product, alert_log):
        line = cart_store.add_item(product.id, quantity=1).items[0]

        snapshot = cart_store.update_quantity(line.id, 4)

        assert snapshot.items[0].quantity == 4
        assert snapshot.total_items == 4
        assert snapshot.total_price == 40000
        assert alert_log[-1].message == "Cart updated successfully"

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_rejects_non_positive_quantity(self, cart_store, signed_in, product, quantity):
        line = cart_store.add_item(product.id, quantity=2).items[0]

        with pytest.raises(InvalidQuantity):
            cart_store.update_quantity(line.id, quantity)

        assert cart_store.snapshot.items[0].quantity == 2

    def test_unknown_line(self, cart_store, signed_in, alert_log):
        with pytest.raises(CartItemNotFound):
            cart_store.update_quantity(uuid.uuid4(), 2)

        assert alert_log[-1].message == "Failed to update cart item"

    def test_cannot_touch_another_users_line(self, db, cart_store, signed_in, admin, product):
        foreign = CartItem(user_id=admin.id, product_id=product.id, quantity=1)
        db.add(foreign)
        db.commit()
        db.refresh(foreign)

        with pytest.raises(CartItemNotFound):
            cart_store.update_quantity(foreign.id, 3)

        db.refresh(foreign)
        assert foreign.quantity == 1


class TestRemoveAndClear:
    def test_remove_item(self, cart_store, signed_in, product, other_product, alert_log):
        cart_store.add_item(product.id, quantity=1)
        snapshot = cart_store.add_item(other_product.id, quantity=2)
        line = snapshot.find(product.id, None, None)

        snapshot = cart_store.remove_item(line.id)

        assert [item.product_id for item in snapshot.items] == [other_product.id]
        assert snapshot.total_items == 2
        assert alert_log[-1].message == "Item removed from cart"

    def test_remove_unknown_line(self, cart_store, signed_in, alert_log):
        with pytest.raises(CartItemNotFound):
            cart_store.remove_item(uuid.uuid4())

        assert alert_log[-1].message == "Failed to remove item from cart"

    def test_clear_empties_cart_and_is_idempotent(
        self, db, cart_store, cart_repo, signed_in, product, other_product, monkeypatch
    ):
        cart_store.add_item(product.id, quantity=1)
        cart_store.add_item(other_product.id, quantity=1)

        # clear() must not re-fetch
        fetches = []
        original = cart_repo.list_for_user
        monkeypatch.setattr(
            cart_repo,
            "list_for_user",
            lambda session, user_id: fetches.append(user_id) or original(session, user_id),
        )

        snapshot = cart_store.clear()
        assert snapshot.items == []
        assert snapshot.total_items == 0
        assert _db_lines(db, signed_in.id) == []
        assert fetches == []

        again = cart_store.clear()
        assert again.items == []

    def test_clear_without_identity_is_noop(self, cart_store, alert_log):
        snapshot = cart_store.clear()

        assert snapshot is cart_store.snapshot
        assert alert_log == []

    def test_clear_failure_reraises(self, cart_store, cart_repo, signed_in, product, monkeypatch):
        cart_store.add_item(product.id)
        monkeypatch.setattr(cart_repo, "clear_user_cart", _boom)

        with pytest.raises(PersistenceError):
            cart_store.clear()

        assert cart_store.snapshot.total_items == 1


class TestTotals:
    def test_inactive_product_excluded_from_price_only(
        self, db, cart_store, signed_in, product, other_product
    ):
        cart_store.add_item(product.id, quantity=2)
        cart_store.add_item(other_product.id, quantity=3)

        hidden = db.get(Product, other_product.id)
        hidden.is_active = False
        db.add(hidden)
        db.commit()

        snapshot = cart_store.load()

        assert len(snapshot.items) == 2
        missing = snapshot.find(other_product.id, None, None)
        assert missing.product is None
        assert missing.line_total == 0
        assert snapshot.total_items == 5
        assert snapshot.total_price == 20000

    def test_totals_follow_every_mutation(self, cart_store, signed_in, product, other_product):
        cart_store.add_item(product.id, quantity=1)
        snapshot = cart_store.add_item(other_product.id, quantity=2)
        line = snapshot.find(other_product.id, None, None)
        snapshot = cart_store.update_quantity(line.id, 5)

        assert snapshot.total_items == sum(item.quantity for item in snapshot.items) == 6
        assert snapshot.total_price == 10000 + 5 * 4500

        first = cart_store.load()
        second = cart_store.load()
        assert (first.total_items, first.total_price) == (second.total_items, second.total_price)


class TestStaleSnapshot:
    def test_strict_load_reraises_and_keeps_snapshot(
        self, cart_store, cart_repo, signed_in, product, monkeypatch
    ):
        cart_store.add_item(product.id, quantity=2)
        monkeypatch.setattr(cart_repo, "list_for_user", _boom)

        with pytest.raises(PersistenceError):
            cart_store.load(strict=True)

        assert cart_store.snapshot.total_items == 2
        assert cart_store.snapshot.loading is False

    def test_strict_load_reraises_expired_credential(
        self, context, cart_store, cart_repo, signed_in, monkeypatch
    ):
        def expired(*args, **kwargs):
            raise FakeAPIError("PGRST301", "JWT expired")

        monkeypatch.setattr(cart_repo, "list_for_user", expired)

        with pytest.raises(ExpiredCredential):
            cart_store.load(strict=True)

        assert context.identity is None

    def test_variant_added_by_another_worker_is_merged(
        self, db, cart_store, signed_in, product, alert_log
    ):
        # Row written behind this store's back, so its snapshot misses it.
        db.add(CartItem(user_id=signed_in.id, product_id=product.id, quantity=2, size="M", color="red"))
        db.commit()
        assert cart_store.snapshot.items == []

        snapshot = cart_store.add_item(product.id, quantity=1, size="M", color="red")

        assert len(snapshot.items) == 1
        assert snapshot.items[0].quantity == 3
        rows = _db_lines(db, signed_in.id)
        assert [row.quantity for row in rows] == [3]
        assert alert_log[-1].message == "🛒 Cart updated! Item quantity increased."

    def test_database_rejects_duplicate_variant(self, db, signed_in, product):
        db.add(CartItem(user_id=signed_in.id, product_id=product.id, quantity=1, size="M", color="red"))
        db.commit()

        db.add(CartItem(user_id=signed_in.id, product_id=product.id, quantity=1, size="M", color="red"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
