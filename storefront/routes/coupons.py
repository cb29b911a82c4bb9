import uuid

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.errors import NotFoundError, ValidationError
from storefront.models import Coupon, Role
from storefront.security import require_roles

router = APIRouter(tags=["coupons"], dependencies=[Depends(require_roles(Role.manager, Role.admin))])


class CouponPayload(BaseModel):
    code: str = Field(..., min_length=6, max_length=10, pattern=r"^[0-9A-Z]+$")
    discount: int = Field(..., ge=0, le=100)

    @field_validator("code", mode="before")
    @classmethod
    def strip_code(cls, value):
        return value.strip() if isinstance(value, str) else value


def serialize_coupon(c: Coupon) -> dict:
    return {
        "id": str(c.id),
        "code": c.code,
        "discount": c.discount,
        "is_active": c.is_active,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


def _get_coupon_or_404(db: Session, coupon_id: uuid.UUID) -> Coupon:
    coupon = db.query(Coupon).filter(Coupon.id == coupon_id).first()
    if not coupon:
        raise NotFoundError("Coupon not found")
    return coupon


@router.post("/coupon", status_code=status.HTTP_201_CREATED)
def create_coupon(payload: CouponPayload, db: Session = Depends(get_db)):
    if db.query(Coupon).filter(Coupon.code == payload.code).first():
        raise ValidationError(f"Coupon '{payload.code}' already exists")

    coupon = Coupon(code=payload.code, discount=payload.discount, is_active=True)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)

    return {
        "success": True,
        "message": "Coupon successfully created",
        "coupon": serialize_coupon(coupon),
    }


@router.get("/coupons")
def get_all_coupons(db: Session = Depends(get_db)):
    coupons = db.query(Coupon).order_by(Coupon.created_at.desc()).all()
    if not coupons:
        raise NotFoundError("Coupons not found")

    return {
        "success": True,
        "message": "Coupons successfully fetched",
        "coupons": [serialize_coupon(c) for c in coupons],
    }


@router.put("/coupon/{coupon_id}/deactivate")
def deactivate_coupon(coupon_id: uuid.UUID, db: Session = Depends(get_db)):
    coupon = _get_coupon_or_404(db, coupon_id)
    coupon.is_active = False
    db.commit()

    return {
        "success": True,
        "message": "Coupon successfully deactivated",
        "coupon": serialize_coupon(coupon),
    }


@router.delete("/coupon/{coupon_id}")
def delete_coupon(coupon_id: uuid.UUID, db: Session = Depends(get_db)):
    coupon = _get_coupon_or_404(db, coupon_id)
    db.delete(coupon)
    db.commit()

    return {"success": True, "message": "Coupon successfully deleted"}
