"""
Order routes.

- POST /orders                  checkout: cart -> order + payment URL
- GET  /orders                  the caller's orders, newest first
- GET  /orders/{order_id}
- POST /orders/{order_id}/payment  mint a new payment URL for a PENDING order

A checkout whose order was committed but whose payment URL could not be
minted answers 502 with ``data.order_id``; the client then calls the
payment endpoint instead of checking out again.
"""
from __future__ import annotations

from fastapi import APIRouter, Query
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentUser, DiscountStoreDep, GatewayDep, SessionDep
from app.api.errors import OrderCreatedPaymentInitFailedError, OrderNotFoundError
from app.api.schemas import (
    ApiEnvelope,
    CheckoutData,
    CheckoutRequest,
    OrderItemPublic,
    OrderPublic,
    OrdersData,
    PaymentPublic,
)
from app.models import Order, OrderItem, Payment
from app.services.checkout_service import CheckoutService

router = APIRouter(prefix="/orders", tags=["orders"])


def _to_order_public(
    order: Order, items: list[OrderItem], payment: Payment | None
) -> OrderPublic:
    return OrderPublic(
        id=order.id,
        status=order.status,
        subtotal=order.subtotal,
        discount_amount=order.discount_amount,
        total=order.total,
        discount_code_used=order.discount_code_used,
        created_at=order.created_at,
        paid_at=order.paid_at,
        items=[
            OrderItemPublic(
                product_id=i.product_id,
                title=i.title,
                author_name=i.author_name,
                price=i.price,
                pdf_file=i.pdf_file,
            )
            for i in items
        ],
        payment=PaymentPublic(
            status=payment.status,
            amount=payment.amount,
            currency=payment.currency,
            payment_method=payment.payment_method,
            payment_attempts=payment.payment_attempts,
            paid_at=payment.paid_at,
            failure_reason=payment.failure_reason,
        )
        if payment
        else None,
    )


def _load_order_public(session: Session, order: Order) -> OrderPublic:
    items = crud.get_order_items(session=session, order_id=order.id)
    payment = crud.get_payment_for_order(session=session, order_id=order.id)
    return _to_order_public(order, items, payment)


@router.post("", response_model=ApiEnvelope)
def checkout(
    session: SessionDep,
    current_user: CurrentUser,
    gateway: GatewayDep,
    store: DiscountStoreDep,
    body: CheckoutRequest | None = None,
) -> ApiEnvelope:
    """
    Turn the caller's cart into an order and return the payment URL.

    Without a ``discount_code`` in the body the code applied to the cart is
    used. The applied code is dropped once an order exists.

    Errors:
    - 400301 empty cart, 400302 non-positive total, 4003xx discount rejected
    - 502302 order created but payment initialization failed (``data.order_id``)
    """
    code = body.discount_code if body and body.discount_code else store.get(current_user.id)
    try:
        result = CheckoutService(session, gateway).create_order(
            user_id=current_user.id, discount_code=code
        )
    except OrderCreatedPaymentInitFailedError:
        store.clear(current_user.id)
        raise
    store.clear(current_user.id)
    return ApiEnvelope(
        data=CheckoutData(
            order=_to_order_public(result.order, result.items, result.payment),
            payment_url=result.payment_url,
        )
    )


@router.get("", response_model=ApiEnvelope)
def list_orders(
    session: SessionDep,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    orders, count = crud.list_orders_for_user(
        session=session,
        user_id=current_user.id,
        skip=(page - 1) * page_size,
        limit=page_size,
    )
    data = [_load_order_public(session, o) for o in orders]
    return ApiEnvelope(data=OrdersData(data=data, count=count))


@router.get("/{order_id}", response_model=ApiEnvelope)
def get_order(session: SessionDep, current_user: CurrentUser, order_id: int) -> ApiEnvelope:
    order = crud.get_order_for_user(session=session, order_id=order_id, user_id=current_user.id)
    if not order:
        raise OrderNotFoundError()
    return ApiEnvelope(data=_load_order_public(session, order))


@router.post("/{order_id}/payment", response_model=ApiEnvelope)
def retry_payment(
    session: SessionDep, current_user: CurrentUser, gateway: GatewayDep, order_id: int
) -> ApiEnvelope:
    """
    Mint a new payment URL for an order still awaiting payment.

    Errors: 404 not the caller's order, 409 already paid/failed or webhook
    received, 502301 the gateway failed again.
    """
    result = CheckoutService(session, gateway).retry_payment(
        user_id=current_user.id, order_id=order_id
    )
    return ApiEnvelope(
        data=CheckoutData(
            order=_to_order_public(result.order, result.items, result.payment),
            payment_url=result.payment_url,
        )
    )
