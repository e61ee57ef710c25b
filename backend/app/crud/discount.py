"""Discount code CRUD"""
from typing import Any

from sqlalchemy import func, or_, update
from sqlmodel import Session, col, select

from app.models import DiscountCode, DiscountUsage, utc_now


def normalize_code(code: str) -> str:
    return code.strip().upper()


def get_by_code(*, session: Session, code: str) -> DiscountCode | None:
    stmt = select(DiscountCode).where(DiscountCode.code == normalize_code(code))
    return session.exec(stmt).first()


def count_user_usages(*, session: Session, discount_code_id: int, user_id: int) -> int:
    """Number of recorded redemptions of a code by one user"""
    stmt = select(func.count()).select_from(DiscountUsage).where(
        DiscountUsage.discount_code_id == discount_code_id,
        DiscountUsage.user_id == user_id,
    )
    return session.exec(stmt).one()


def increment_usage(*, session: Session, discount_code_id: int) -> bool:
    """
    Atomically consume one global redemption.

    The row is only updated while it is still under its usage limit, so two
    concurrent checkouts cannot both take the last slot. Returns False when
    the limit was already reached. Does not commit.
    """
    stmt = (
        update(DiscountCode)
        .where(
            DiscountCode.id == discount_code_id,
            or_(
                col(DiscountCode.usage_limit).is_(None),
                col(DiscountCode.usage_count) < col(DiscountCode.usage_limit),
            ),
        )
        .values(usage_count=DiscountCode.usage_count + 1, updated_at=utc_now())
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


def list_codes(*, session: Session, skip: int = 0, limit: int = 50) -> tuple[list[DiscountCode], int]:
    total = session.exec(select(func.count()).select_from(DiscountCode)).one()
    stmt = (
        select(DiscountCode)
        .order_by(col(DiscountCode.created_at).desc())
        .offset(skip)
        .limit(limit)
    )
    return list(session.exec(stmt).all()), total


def create_code(*, session: Session, data: dict[str, Any]) -> DiscountCode:
    data = dict(data)
    data["code"] = normalize_code(data["code"])
    code = DiscountCode(**data)
    session.add(code)
    session.commit()
    session.refresh(code)
    return code


def update_code(*, session: Session, code: DiscountCode, data: dict[str, Any]) -> DiscountCode:
    """Apply a partial update. ``usage_count`` is never writable here."""
    data.pop("usage_count", None)
    if "code" in data and data["code"] is not None:
        data["code"] = normalize_code(data["code"])
    for key, value in data.items():
        setattr(code, key, value)
    code.updated_at = utc_now()
    session.add(code)
    session.commit()
    session.refresh(code)
    return code


def deactivate_code(*, session: Session, code: DiscountCode) -> DiscountCode:
    """Soft delete: redemption history keeps pointing at the row"""
    code.is_active = False
    code.updated_at = utc_now()
    session.add(code)
    session.commit()
    session.refresh(code)
    return code


def get_code(*, session: Session, discount_code_id: int) -> DiscountCode | None:
    return session.get(DiscountCode, discount_code_id)


def list_usages(*, session: Session, discount_code_id: int) -> list[DiscountUsage]:
    stmt = (
        select(DiscountUsage)
        .where(DiscountUsage.discount_code_id == discount_code_id)
        .order_by(col(DiscountUsage.used_at).desc())
    )
    return list(session.exec(stmt).all())


def activate_code(*, session: Session, code: DiscountCode) -> DiscountCode:
    code.is_active = True
    code.updated_at = utc_now()
    session.add(code)
    session.commit()
    session.refresh(code)
    return code


def delete_code(*, session: Session, code: DiscountCode) -> None:
    session.delete(code)
    session.commit()
