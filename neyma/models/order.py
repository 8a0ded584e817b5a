import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    Customer order, created from the cart at checkout.

    `total_amount` is computed once at submission and never
    recomputed from the order items afterwards.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="profiles.id",
        index=True,
    )

    total_amount: float = Field(
        ge=0,
        description="Amount committed at submission time",
    )

    # Contact + pickup details exactly as entered at checkout
    shipping_address: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )

    status: str = Field(
        default="pending",
        index=True,
        description="pending | processing | shipped | delivered | cancelled",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order, with the unit price frozen at order time.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    price: float = Field(
        ge=0,
        description="Unit price at time of order",
    )

    size: str | None = None
    color: str | None = None
