import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Category(SQLModel, table=True):
    """
    Catalog category. Only read here, as part of the cart product join.
    """

    __tablename__ = "categories"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(max_length=100)

    slug: str = Field(
        max_length=255,
        unique=True,
        index=True,
    )


class Product(SQLModel, table=True):
    """
    Product catalog entry.

    Catalog management lives elsewhere; the cart only reads
    name, price, stock, category and images through a join.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=255,
        index=True,
        description="Display name of the product",
    )

    description: str | None = Field(
        default=None,
        description="Optional long description",
    )

    price: float = Field(
        ge=0,
        description="Unit price (NGN)",
    )

    stock: int = Field(
        default=0,
        ge=0,
        description="How many units currently in stock",
    )

    category_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="categories.id",
        index=True,
    )

    is_active: bool = Field(
        default=True,
        index=True,
        description="Whether this product is visible on the storefront",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class ProductImage(SQLModel, table=True):
    """
    Gallery images for a product.
    """

    __tablename__ = "product_images"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
        description="FK to products.id",
    )

    image_url: str = Field(
        description="Public URL stored in Supabase Storage",
    )

    is_primary: bool = Field(default=False)

    sort_order: int = Field(
        default=0,
        ge=0,
        description="Ordering index within the gallery",
    )
