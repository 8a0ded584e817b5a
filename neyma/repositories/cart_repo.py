import uuid

from sqlalchemy import and_
from sqlmodel import Session, col, select

from neyma.models.cart import CartItem
from neyma.models.product import Category, Product, ProductImage
from neyma.schemas.cart import CartLine, ProductSnapshot


def _primary_image(images: list[ProductImage]) -> str | None:
    """First image flagged primary, else the first by sort order."""
    for image in images:
        if image.is_primary:
            return image.image_url
    return images[0].image_url if images else None


class CartRepository:
    """
    Data access layer for cart_items.

    - Reads join the active product, its category and its images.
    - Writes are scoped to the owning user and commit immediately.
    """

    # Get items for a user
    def list_for_user(self, session: Session, user_id: uuid.UUID) -> list[CartLine]:
        stmt = (
            select(CartItem, Product, Category)
            .join(
                Product,
                and_(
                    Product.id == CartItem.product_id,
                    Product.is_active == True,  # noqa: E712
                ),
                isouter=True,
            )
            .join(Category, Category.id == Product.category_id, isouter=True)
            .where(CartItem.user_id == user_id)
            .order_by(col(CartItem.created_at), col(CartItem.id))
        )
        rows = session.exec(stmt).all()

        product_ids = [product.id for _, product, _ in rows if product is not None]
        images_by_product: dict[uuid.UUID, list[ProductImage]] = {}
        if product_ids:
            image_stmt = (
                select(ProductImage)
                .where(col(ProductImage.product_id).in_(product_ids))
                .order_by(col(ProductImage.sort_order))
            )
            for image in session.exec(image_stmt).all():
                images_by_product.setdefault(image.product_id, []).append(image)

        lines: list[CartLine] = []
        for item, product, category in rows:
            snapshot = None
            if product is not None:
                snapshot = ProductSnapshot(
                    id=product.id,
                    name=product.name,
                    price=product.price,
                    stock=product.stock,
                    primary_image_url=_primary_image(
                        images_by_product.get(product.id, [])
                    ),
                    category=category.name if category is not None else None,
                )
            lines.append(
                CartLine(
                    id=item.id,
                    user_id=item.user_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    size=item.size,
                    color=item.color,
                    product=snapshot,
                    created_at=item.created_at,
                )
            )
        return lines

    def get_by_id(
        self, session: Session, user_id: uuid.UUID, item_id: uuid.UUID
    ) -> CartItem | None:
        item = session.get(CartItem, item_id)
        if item is None or item.user_id != user_id:
            return None
        return item

    def find_variant(
        self,
        session: Session,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        size: str | None,
        color: str | None,
    ) -> CartItem | None:
        # `== None` renders as IS NULL
        stmt = select(CartItem).where(
            CartItem.user_id == user_id,
            CartItem.product_id == product_id,
            CartItem.size == size,
            CartItem.color == color,
        )
        return session.exec(stmt).first()

    # CRUD
    def insert(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def set_quantity(
        self,
        session: Session,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        quantity: int,
    ) -> CartItem | None:
        item = self.get_by_id(session, user_id, item_id)
        if item is None:
            return None
        item.quantity = quantity
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def delete(self, session: Session, user_id: uuid.UUID, item_id: uuid.UUID) -> bool:
        item = self.get_by_id(session, user_id, item_id)
        if item is None:
            return False
        session.delete(item)
        session.commit()
        return True

    def clear_user_cart(self, session: Session, user_id: uuid.UUID) -> int:
        rows = session.exec(select(CartItem).where(CartItem.user_id == user_id)).all()
        for row in rows:
            session.delete(row)
        session.commit()
        return len(rows)
