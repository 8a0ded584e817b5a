import uuid
from datetime import datetime

from sqlmodel import SQLModel, Field

from neyma.core.alerts import Feedback


class CartItemCreate(SQLModel):
    """
    Payload for adding to cart.
    """

    product_id: uuid.UUID
    quantity: int = Field(default=1, gt=0)
    size: str | None = None
    color: str | None = None


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart item.

    Values are clamped to [1, product stock] before reaching the store.
    """

    quantity: int


class ProductSnapshot(SQLModel):
    """
    Product data joined onto a cart line at read time.
    """

    id: uuid.UUID
    name: str
    price: float
    stock: int
    primary_image_url: str | None = None
    category: str | None = None


class CartLine(SQLModel):
    """
    Read model for a single cart line.

    `product` is None when the product was deleted or deactivated;
    such lines stay in the cart but do not count toward the price.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    size: str | None = None
    color: str | None = None
    product: ProductSnapshot | None = None
    created_at: datetime | None = None

    @property
    def line_total(self) -> float:
        if self.product is None:
            return 0.0
        return self.product.price * self.quantity

    def matches(
        self,
        product_id: uuid.UUID,
        size: str | None,
        color: str | None,
    ) -> bool:
        return (
            self.product_id == product_id
            and self.size == size
            and self.color == color
        )


class CartSnapshot(SQLModel):
    """
    Derived, read-only view of the cart with its totals.

    Built only through `from_lines`, so totals always match `items`.
    """

    items: list[CartLine] = []
    total_items: int = 0
    total_price: float = 0.0
    loading: bool = False

    @classmethod
    def from_lines(
        cls,
        lines: list[CartLine],
        loading: bool = False,
    ) -> "CartSnapshot":
        total_items = sum(line.quantity for line in lines)
        total_price = sum(
            line.product.price * line.quantity
            for line in lines
            if line.product is not None
        )
        return cls(
            items=list(lines),
            total_items=total_items,
            total_price=float(total_price),
            loading=loading,
        )

    @classmethod
    def empty(cls, loading: bool = False) -> "CartSnapshot":
        return cls.from_lines([], loading=loading)

    def find(
        self,
        product_id: uuid.UUID,
        size: str | None,
        color: str | None,
    ) -> CartLine | None:
        for line in self.items:
            if line.matches(product_id, size, color):
                return line
        return None

    def get(self, line_id: uuid.UUID) -> CartLine | None:
        for line in self.items:
            if line.id == line_id:
                return line
        return None

    @property
    def is_empty(self) -> bool:
        return not self.items


class CartResponse(SQLModel):
    """
    Cart state plus the feedback raised while producing it.
    """

    cart: CartSnapshot
    alerts: list[Feedback] = []
