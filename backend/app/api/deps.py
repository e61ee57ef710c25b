"""
FastAPI dependencies.

- SessionDep: one database session per request
- CurrentUser / CurrentAdmin: user resolved from the Bearer JWT (``sub`` = user id)
- GatewayDep / NotifierDep: payment gateway and receipt notifier, overridable in tests
- DiscountStoreDep: the discount code applied to the caller's cart
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from app.api.schemas import TokenPayload
from app.core import security
from app.core.config import settings
from app.core.db import engine
from app.integrations.paymob import PaymobClient
from app.models import User
from app.services.cart_discount_store import AppliedDiscountStore
from app.services.checkout_service import PaymentGateway
from app.services.notification_service import ReceiptNotifier
from app.services.payment_reconciler import PaymentNotifier

reusable_oauth2 = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )


def get_current_user(session: SessionDep, token: TokenDep) -> User:
    """
    Resolve the caller from the access token.

    Raises:
        HTTPException: 401 for a bad token or an unknown user
    """
    try:
        payload = jwt.decode(
            token.credentials, settings.SECRET_KEY, algorithms=[security.ALGORITHM]
        )
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise _credentials_error()
    if not token_data.sub:
        raise _credentials_error()
    try:
        user_id = int(token_data.sub)
    except ValueError:
        raise _credentials_error()
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_current_admin(current_user: CurrentUser) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user doesn't have enough privileges",
        )
    return current_user


CurrentAdmin = Annotated[User, Depends(get_current_admin)]


def get_payment_gateway() -> PaymentGateway:
    return PaymobClient()


def get_notifier() -> PaymentNotifier:
    return ReceiptNotifier()


def get_discount_store() -> AppliedDiscountStore:
    return AppliedDiscountStore()


GatewayDep = Annotated[PaymentGateway, Depends(get_payment_gateway)]
NotifierDep = Annotated[PaymentNotifier, Depends(get_notifier)]
DiscountStoreDep = Annotated[AppliedDiscountStore, Depends(get_discount_store)]
