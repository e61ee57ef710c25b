"""Product catalog lookups"""
from sqlmodel import Session, select

from app.models import Product


def get_published_product(*, session: Session, product_id: int) -> Product | None:
    """Return the product if it is published and not soft-deleted"""
    stmt = select(Product).where(
        Product.id == product_id,
        Product.is_published == True,  # noqa: E712
        Product.deleted_at.is_(None),  # type: ignore[union-attr]
    )
    return session.exec(stmt).first()


def get_products(*, session: Session, product_ids: list[int]) -> dict[int, Product]:
    """Load products by id, including unpublished or deleted ones"""
    if not product_ids:
        return {}
    rows = session.exec(select(Product).where(Product.id.in_(product_ids))).all()  # type: ignore[union-attr]
    return {p.id: p for p in rows}
