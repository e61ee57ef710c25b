"""
Discount code administration (admin only).

``usage_count`` is read-only here; it only moves inside checkout.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentAdmin, SessionDep
from app.api.errors import AppError
from app.api.schemas import (
    ApiEnvelope,
    DiscountCodeCreate,
    DiscountCodePublic,
    DiscountCodesData,
    DiscountCodeUpdate,
    DiscountUsagePublic,
    Message,
)
from app.enums import DiscountType
from app.models import DiscountCode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discounts", tags=["discounts"])


def _to_public(
    code: DiscountCode, *, with_usages: bool = False, session: Session | None = None
) -> DiscountCodePublic:
    public = DiscountCodePublic.model_validate(code, from_attributes=True)
    if with_usages and session is not None:
        public.usages = [
            DiscountUsagePublic(user_id=u.user_id, order_id=u.order_id, used_at=u.used_at)
            for u in crud.list_discount_usages(session=session, discount_code_id=code.id)
        ]
    return public


def _check_percentage(values: dict[str, Any]) -> None:
    if (
        values.get("discount_type") == DiscountType.percentage
        and values.get("discount_value") is not None
        and values["discount_value"] > 100
    ):
        raise AppError(
            code=400321, message="Percentage discount cannot exceed 100", status_code=400
        )


def _get_or_404(session: Session, discount_id: int) -> DiscountCode:
    code = crud.get_discount_code(session=session, discount_code_id=discount_id)
    if not code:
        raise AppError(code=404321, message="Discount code not found", status_code=404)
    return code


def _duplicate_code() -> AppError:
    return AppError(code=409321, message="Discount code already exists", status_code=409)


@router.post("", response_model=ApiEnvelope)
def create_discount(
    session: SessionDep, _admin: CurrentAdmin, body: DiscountCodeCreate
) -> ApiEnvelope:
    data = body.model_dump()
    _check_percentage(data)
    if crud.get_discount_by_code(session=session, code=body.code):
        raise _duplicate_code()
    try:
        code = crud.create_discount_code(session=session, data=data)
    except IntegrityError:
        session.rollback()
        raise _duplicate_code()
    logger.info(f"Discount code {code.code} created")
    return ApiEnvelope(data=_to_public(code))


@router.get("", response_model=ApiEnvelope)
def list_discounts(
    session: SessionDep,
    _admin: CurrentAdmin,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
) -> ApiEnvelope:
    codes, count = crud.list_discount_codes(
        session=session, skip=(page - 1) * page_size, limit=page_size
    )
    return ApiEnvelope(data=DiscountCodesData(data=[_to_public(c) for c in codes], count=count))


@router.get("/{discount_id}", response_model=ApiEnvelope)
def get_discount(session: SessionDep, _admin: CurrentAdmin, discount_id: int) -> ApiEnvelope:
    code = _get_or_404(session, discount_id)
    return ApiEnvelope(data=_to_public(code, with_usages=True, session=session))


@router.patch("/{discount_id}", response_model=ApiEnvelope)
def update_discount(
    session: SessionDep, _admin: CurrentAdmin, discount_id: int, body: DiscountCodeUpdate
) -> ApiEnvelope:
    code = _get_or_404(session, discount_id)
    data = body.model_dump(exclude_unset=True)
    _check_percentage(
        {
            "discount_type": data.get("discount_type", code.discount_type),
            "discount_value": data.get("discount_value", code.discount_value),
        }
    )
    new_code = data.get("code")
    if new_code is not None:
        existing = crud.get_discount_by_code(session=session, code=new_code)
        if existing and existing.id != code.id:
            raise _duplicate_code()
    try:
        code = crud.update_discount_code(session=session, code=code, data=data)
    except IntegrityError:
        session.rollback()
        raise _duplicate_code()
    return ApiEnvelope(data=_to_public(code))


@router.post("/{discount_id}/activate", response_model=ApiEnvelope)
def activate_discount(session: SessionDep, _admin: CurrentAdmin, discount_id: int) -> ApiEnvelope:
    code = crud.activate_discount_code(session=session, code=_get_or_404(session, discount_id))
    return ApiEnvelope(data=_to_public(code))


@router.post("/{discount_id}/deactivate", response_model=ApiEnvelope)
def deactivate_discount(
    session: SessionDep, _admin: CurrentAdmin, discount_id: int
) -> ApiEnvelope:
    code = crud.deactivate_discount_code(session=session, code=_get_or_404(session, discount_id))
    return ApiEnvelope(data=_to_public(code))


@router.delete("/{discount_id}", response_model=ApiEnvelope)
def delete_discount(session: SessionDep, _admin: CurrentAdmin, discount_id: int) -> ApiEnvelope:
    code = _get_or_404(session, discount_id)
    if code.usage_count > 0:
        logger.warning(f"Deleting discount code {code.code} with {code.usage_count} redemptions")
    crud.delete_discount_code(session=session, code=code)
    return ApiEnvelope(data=Message(message="Discount code deleted"))
