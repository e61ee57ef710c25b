"""Cart CRUD"""
from sqlalchemy import delete
from sqlmodel import Session, col, select

from app.models import Cart, CartItem, Product, utc_now


def get_cart(*, session: Session, user_id: int, for_update: bool = False) -> Cart | None:
    """Return the user's cart. ``for_update`` locks the row until commit."""
    stmt = select(Cart).where(Cart.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.exec(stmt).first()


def get_or_create_cart(*, session: Session, user_id: int) -> Cart:
    """Return the user's cart, creating it on first use"""
    cart = get_cart(session=session, user_id=user_id)
    if not cart:
        cart = Cart(user_id=user_id)
        session.add(cart)
        session.commit()
        session.refresh(cart)
    return cart


def get_cart_items(*, session: Session, cart_id: int) -> list[CartItem]:
    stmt = (
        select(CartItem)
        .where(CartItem.cart_id == cart_id)
        .order_by(col(CartItem.created_at), col(CartItem.id))
    )
    return list(session.exec(stmt).all())


def get_cart_item(*, session: Session, cart_id: int, product_id: int) -> CartItem | None:
    stmt = select(CartItem).where(
        CartItem.cart_id == cart_id, CartItem.product_id == product_id
    )
    return session.exec(stmt).first()


def add_cart_item(*, session: Session, cart: Cart, product: Product) -> CartItem:
    """Add a product with its current price locked in"""
    item = CartItem(cart_id=cart.id, product_id=product.id, price_at_add=product.price)
    cart.updated_at = utc_now()
    session.add(item)
    session.add(cart)
    session.commit()
    session.refresh(item)
    return item


def remove_cart_item(*, session: Session, cart: Cart, item: CartItem) -> None:
    cart.updated_at = utc_now()
    session.delete(item)
    session.add(cart)
    session.commit()


def clear_cart_items(*, session: Session, cart_id: int) -> int:
    """
    Delete every item of a cart without committing.

    Checkout calls this inside its own transaction; the cart row survives.
    """
    result = session.exec(delete(CartItem).where(CartItem.cart_id == cart_id))  # type: ignore[call-overload]
    return result.rowcount
