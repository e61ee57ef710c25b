"""
Checkout.

Turns the user's cart into an order in one transaction, then asks the
payment gateway for a hosted payment URL. The gateway call happens after
commit: if it fails the order stays PENDING and the client retries only the
URL step through ``retry_payment``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlmodel import Session

from app import crud
from app.api.errors import (
    DiscountRejectedError,
    InvalidOrderTotalError,
    OrderCreatedPaymentInitFailedError,
    OrderNotFoundError,
    PaymentInitializationError,
    payment_not_retryable,
)
from app.core.config import settings
from app.enums import DiscountRejectionReason, OrderStatus, PaymentStatus
from app.integrations.paymob import PaymentSession
from app.models import DiscountCode, DiscountUsage, Order, OrderItem, Payment, utc_now
from app.services.discount_service import discount_amount_for, validate_discount
from app.services.pricing import ZERO, compute_subtotal

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_payment(
        self,
        *,
        order_id: int,
        amount: Decimal,
        email: str,
        full_name: str | None,
        attempt: int = 1,
    ) -> PaymentSession: ...


@dataclass
class CheckoutResult:
    order: Order
    items: list[OrderItem]
    payment: Payment
    payment_url: str


class CheckoutService:
    def __init__(self, session: Session, gateway: PaymentGateway) -> None:
        self.session = session
        self.gateway = gateway

    def create_order(self, *, user_id: int, discount_code: str | None = None) -> CheckoutResult:
        """
        Create an order from the user's cart and mint its payment URL.

        Raises:
            EmptyCartError: no cart or no items
            DiscountRejectedError: the code failed validation or ran out
            InvalidOrderTotalError: the discount leaves nothing to pay
            OrderCreatedPaymentInitFailedError: order committed, URL minting failed
        """
        session = self.session
        try:
            order, items, payment = self._persist_order(user_id, discount_code)
        except Exception:
            session.rollback()
            raise

        order_id = order.id
        logger.info(
            f"Order {order_id} created for user {user_id}: subtotal={order.subtotal} "
            f"discount={order.discount_amount} total={order.total}"
        )

        # the order is committed from here on; every failure must name it
        try:
            payment_url = self._mint_payment_url(order, payment)
        except PaymentInitializationError:
            logger.error(f"Payment initialization failed for committed order {order_id}")
            raise OrderCreatedPaymentInitFailedError(order_id)
        except Exception:
            session.rollback()
            logger.exception(f"Payment URL step crashed for committed order {order_id}")
            raise OrderCreatedPaymentInitFailedError(order_id)

        return CheckoutResult(order=order, items=items, payment=payment, payment_url=payment_url)

    def retry_payment(self, *, user_id: int, order_id: int) -> CheckoutResult:
        """
        Mint a fresh payment URL for an order still awaiting payment.

        Only the gateway step runs again; totals, cart and discount usage are
        left untouched.

        Raises:
            OrderNotFoundError: unknown order or not the caller's
            AppError: 409 when the order is no longer awaiting payment
            PaymentInitializationError: the gateway failed again
        """
        session = self.session
        order = crud.get_order_for_user(session=session, order_id=order_id, user_id=user_id)
        if not order:
            raise OrderNotFoundError()
        payment = crud.get_payment_for_order(session=session, order_id=order.id)
        if (
            not payment
            or order.status != OrderStatus.pending
            or payment.status != PaymentStatus.pending
            or payment.webhook_received
        ):
            raise payment_not_retryable()

        payment_url = self._mint_payment_url(order, payment)
        items = crud.get_order_items(session=session, order_id=order.id)
        return CheckoutResult(order=order, items=items, payment=payment, payment_url=payment_url)

    def _persist_order(
        self, user_id: int, discount_code: str | None
    ) -> tuple[Order, list[OrderItem], Payment]:
        session = self.session
        cart = crud.get_cart(session=session, user_id=user_id, for_update=True)
        cart_items = crud.get_cart_items(session=session, cart_id=cart.id) if cart else []
        subtotal = compute_subtotal(cart_items)

        discount: DiscountCode | None = None
        discount_amount = ZERO
        if discount_code and discount_code.strip():
            discount = validate_discount(
                session=session, code=discount_code, user_id=user_id, subtotal=subtotal
            )
            discount_amount = discount_amount_for(discount, subtotal)

        total = subtotal - discount_amount
        if total <= ZERO:
            raise InvalidOrderTotalError()

        products = crud.get_products(
            session=session, product_ids=[i.product_id for i in cart_items]
        )

        order = Order(
            user_id=user_id,
            subtotal=subtotal,
            discount_amount=discount_amount,
            total=total,
            discount_code_id=discount.id if discount else None,
            discount_code_used=discount.code if discount else None,
            status=OrderStatus.pending,
        )
        session.add(order)

        items: list[OrderItem] = []
        for cart_item in cart_items:
            product = products.get(cart_item.product_id)
            if product is None:
                # FK cascade removes cart items with their product
                raise RuntimeError(f"Cart item {cart_item.id} references a missing product")
            item = OrderItem(
                order_id=order.id,
                product_id=product.id,
                title=product.title,
                author_name=product.author_name,
                price=cart_item.price_at_add,
                pdf_file=product.pdf_file,
            )
            session.add(item)
            items.append(item)

        payment = Payment(
            order_id=order.id,
            amount=total,
            currency=settings.PAYMOB_CURRENCY,
            status=PaymentStatus.pending,
        )
        session.add(payment)

        if discount:
            session.add(
                DiscountUsage(discount_code_id=discount.id, user_id=user_id, order_id=order.id)
            )
            session.flush()
            if not crud.increment_discount_usage(session=session, discount_code_id=discount.id):
                raise DiscountRejectedError(
                    DiscountRejectionReason.usage_limit_reached,
                    "This discount code has reached its usage limit",
                )

        crud.clear_cart_items(session=session, cart_id=cart.id)  # type: ignore[union-attr]
        cart.updated_at = utc_now()  # type: ignore[union-attr]
        session.add(cart)
        session.commit()

        session.refresh(order)
        session.refresh(payment)
        for item in items:
            session.refresh(item)
        return order, items, payment

    def _mint_payment_url(self, order: Order, payment: Payment) -> str:
        """
        Claim the next attempt number, then call the gateway.

        Raises:
            AppError: 409 when the payment stopped awaiting payment meanwhile
            PaymentInitializationError: no contact or the gateway failed
        """
        session = self.session
        attempt = crud.claim_payment_attempt(session=session, payment_id=payment.id)
        if attempt is None:
            session.rollback()
            raise payment_not_retryable()
        session.commit()
        session.refresh(payment)

        contact = crud.get_user_contact(session=session, user_id=order.user_id)
        if not contact:
            logger.error(f"No contact for user {order.user_id}, order {order.id}")
            raise PaymentInitializationError()
        email, name = contact

        result = self.gateway.create_payment(
            order_id=order.id,
            amount=order.total,
            email=email,
            full_name=name,
            attempt=attempt,
        )
        logger.info(f"Payment URL minted for order {order.id} (attempt {attempt})")
        return result.payment_url
