"""
Cart routes.

- GET    /cart                   items, item count, subtotal and the applied code
- POST   /cart/items             add a published product at its current price
- DELETE /cart/items/{product_id}
- DELETE /cart                   remove every item and the applied code (the cart row stays)
- POST   /cart/discount          apply a code to the cart (validated, not redeemed)
- DELETE /cart/discount          remove the applied code
- POST   /cart/discount/preview  evaluate a code against the current subtotal
"""
from __future__ import annotations

from fastapi import APIRouter
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentUser, DiscountStoreDep, SessionDep
from app.api.errors import AppError, DiscountRejectedError, EmptyCartError
from app.api.schemas import (
    ApiEnvelope,
    CartData,
    CartItemAddRequest,
    CartItemPublic,
    DiscountPreviewData,
    DiscountPreviewRequest,
)
from app.models import Cart
from app.services.cart_discount_store import AppliedDiscountStore
from app.services.discount_service import discount_amount_for, validate_discount
from app.services.pricing import ZERO, quantize

router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_data(session: Session, cart: Cart | None) -> CartData:
    items = crud.get_cart_items(session=session, cart_id=cart.id) if cart else []
    products = crud.get_products(session=session, product_ids=[i.product_id for i in items])
    public: list[CartItemPublic] = []
    for item in items:
        product = products.get(item.product_id)
        public.append(
            CartItemPublic(
                product_id=item.product_id,
                title=product.title if product else None,
                author_name=product.author_name if product else None,
                price_at_add=item.price_at_add,
                current_price=product.price if product else None,
                added_at=item.created_at,
            )
        )
    subtotal = quantize(sum((i.price_at_add for i in items), ZERO))
    return CartData(items=public, item_count=len(public), subtotal=subtotal)


def _evaluate(session: Session, user_id: int, code: str, data: CartData) -> DiscountPreviewData:
    code = crud.normalize_discount_code(code)
    if not data.items:
        return DiscountPreviewData(
            valid=False,
            message="Your cart is empty",
            code=code,
            discount_amount=ZERO,
            subtotal=ZERO,
            total=ZERO,
        )

    try:
        discount = validate_discount(
            session=session, code=code, user_id=user_id, subtotal=data.subtotal
        )
    except DiscountRejectedError as e:
        return DiscountPreviewData(
            valid=False,
            message=e.message,
            code=code,
            discount_amount=ZERO,
            subtotal=data.subtotal,
            total=data.subtotal,
        )

    amount = discount_amount_for(discount, data.subtotal)
    return DiscountPreviewData(
        valid=True,
        message="Discount code applied",
        code=discount.code,
        discount_amount=amount,
        subtotal=data.subtotal,
        total=data.subtotal - amount,
    )


def _cart_view(
    session: Session, user_id: int, cart: Cart | None, store: AppliedDiscountStore
) -> CartData:
    data = _cart_data(session, cart)
    code = store.get(user_id)
    if code:
        data.applied_discount = _evaluate(session, user_id, code, data)
    return data


@router.get("", response_model=ApiEnvelope)
def get_cart(
    session: SessionDep, current_user: CurrentUser, store: DiscountStoreDep
) -> ApiEnvelope:
    cart = crud.get_cart(session=session, user_id=current_user.id)
    return ApiEnvelope(data=_cart_view(session, current_user.id, cart, store))


@router.post("/items", response_model=ApiEnvelope)
def add_item(
    session: SessionDep,
    current_user: CurrentUser,
    store: DiscountStoreDep,
    body: CartItemAddRequest,
) -> ApiEnvelope:
    """
    Add a product. The price is locked in at this moment.

    Errors: 404 unknown or unpublished product, 409 already in cart.
    """
    product = crud.get_published_product(session=session, product_id=body.product_id)
    if not product:
        raise AppError(code=404311, message="Product not found", status_code=404)

    cart = crud.get_or_create_cart(session=session, user_id=current_user.id)
    if crud.get_cart_item(session=session, cart_id=cart.id, product_id=product.id):
        raise AppError(code=409311, message="Product already in cart", status_code=409)

    crud.add_cart_item(session=session, cart=cart, product=product)
    return ApiEnvelope(data=_cart_view(session, current_user.id, cart, store))


@router.delete("/items/{product_id}", response_model=ApiEnvelope)
def remove_item(
    session: SessionDep, current_user: CurrentUser, store: DiscountStoreDep, product_id: int
) -> ApiEnvelope:
    cart = crud.get_cart(session=session, user_id=current_user.id)
    item = (
        crud.get_cart_item(session=session, cart_id=cart.id, product_id=product_id)
        if cart
        else None
    )
    if not cart or not item:
        raise AppError(code=404312, message="Item not in cart", status_code=404)
    crud.remove_cart_item(session=session, cart=cart, item=item)
    return ApiEnvelope(data=_cart_view(session, current_user.id, cart, store))


@router.delete("", response_model=ApiEnvelope)
def clear_cart(
    session: SessionDep, current_user: CurrentUser, store: DiscountStoreDep
) -> ApiEnvelope:
    cart = crud.get_cart(session=session, user_id=current_user.id)
    if cart:
        crud.clear_cart_items(session=session, cart_id=cart.id)
        session.commit()
    store.clear(current_user.id)
    return ApiEnvelope(data=_cart_data(session, cart))


@router.post("/discount", response_model=ApiEnvelope)
def apply_discount(
    session: SessionDep,
    current_user: CurrentUser,
    store: DiscountStoreDep,
    body: DiscountPreviewRequest,
) -> ApiEnvelope:
    """
    Apply a code to the cart. Checkout uses it when no code is sent.

    Errors: 400301 empty cart, 4003xx code rejected, 503311 store unavailable.
    """
    cart = crud.get_cart(session=session, user_id=current_user.id)
    data = _cart_data(session, cart)
    if not data.items:
        raise EmptyCartError()
    discount = validate_discount(
        session=session, code=body.code, user_id=current_user.id, subtotal=data.subtotal
    )
    if not store.save(current_user.id, discount.code):
        raise AppError(
            code=503311, message="Could not apply discount code, try again", status_code=503
        )
    data.applied_discount = _evaluate(session, current_user.id, discount.code, data)
    return ApiEnvelope(data=data)


@router.delete("/discount", response_model=ApiEnvelope)
def remove_discount(
    session: SessionDep, current_user: CurrentUser, store: DiscountStoreDep
) -> ApiEnvelope:
    store.clear(current_user.id)
    cart = crud.get_cart(session=session, user_id=current_user.id)
    return ApiEnvelope(data=_cart_data(session, cart))


@router.post("/discount/preview", response_model=ApiEnvelope)
def preview_discount(
    session: SessionDep, current_user: CurrentUser, body: DiscountPreviewRequest
) -> ApiEnvelope:
    """Validate a code against the cart without recording a redemption."""
    cart = crud.get_cart(session=session, user_id=current_user.id)
    data = _cart_data(session, cart)
    return ApiEnvelope(data=_evaluate(session, current_user.id, body.code, data))
