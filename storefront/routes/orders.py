import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session, joinedload

from storefront.config import Settings, get_settings
from storefront.database import get_db
from storefront.errors import NotFoundError, ValidationError
from storefront.models import Order, OrderStatus, PaymentMode, Role, User
from storefront.razorpay_client import RazorpayGateway, get_payment_gateway
from storefront.security import get_current_user, require_roles
from storefront.services import orders as order_service
from storefront.utils.validators import check_phone

router = APIRouter(tags=["orders"])

admin_only = require_roles(Role.admin)


# =====================================================
# PYDANTIC SCHEMAS
# =====================================================

class PaymentOrderPayload(BaseModel):
    amount: float = Field(..., gt=0)
    coupon_code: Optional[str] = None


class AddressInput(BaseModel):
    house_no: str = Field(..., min_length=1)
    area: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., pattern=r"^[A-Za-z0-9][A-Za-z0-9 \-]{2,9}$")
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    country: str = "India"


class ShippingInfo(BaseModel):
    address: AddressInput
    phone_no: str

    @field_validator("phone_no")
    @classmethod
    def validate_phone(cls, value):
        return check_phone(value)


class OrderItemInput(BaseModel):
    product: uuid.UUID
    quantity: int = Field(1, ge=1)


class CreateOrderPayload(BaseModel):
    payment_id: str = Field(..., min_length=1)
    order_items: List[OrderItemInput] = Field(..., min_length=1)
    shipping_info: ShippingInfo
    payment_mode: PaymentMode


class StatusPayload(BaseModel):
    status: OrderStatus


# =====================================================
# HELPERS
# =====================================================

def serialize_order(o: Order) -> dict:
    return {
        "id": str(o.id),
        "user_id": str(o.user_id) if o.user_id else None,
        "order_items": [
            {
                "product": str(i.product_id) if i.product_id else None,
                "name": i.name,
                "quantity": i.quantity,
                "price": i.price,
            }
            for i in o.items
        ],
        "order_info": {
            "order_amount": o.order_amount,
            "shipping_charges": o.shipping_charges,
            "discount": o.discount,
            "tax": o.tax,
            "total_amount": o.total_amount,
        },
        "shipping_info": {
            "address": o.shipping_address,
            "phone_no": o.phone_no,
        },
        "payment_info": {
            "transaction_id": o.transaction_id,
            "amount_paid": o.amount_paid,
            "payment_mode": o.payment_mode,
            "payment_refunded": o.payment_refunded,
            "refund_amount": o.refund_amount,
        },
        "status": o.status,
        "estimated_delivery_date": o.estimated_delivery_date,
        "shipped_on": o.shipped_on,
        "delivered_on": o.delivered_on,
        "cancelled_on": o.cancelled_on,
        "created_at": o.created_at,
        "updated_at": o.updated_at,
    }


def _get_order_or_404(db: Session, order_id: uuid.UUID) -> Order:
    order = (
        db.query(Order)
        .options(joinedload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFoundError("Order not found")
    return order


def _get_own_order_or_404(db: Session, order_id: uuid.UUID, user: User) -> Order:
    order = _get_order_or_404(db, order_id)
    if order.user_id != user.id:
        raise NotFoundError("Order not found")
    return order


# =====================================================
# USER: PAYMENT ORDER + PLACE ORDER
# =====================================================

@router.post(
    "/order/razorpay",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_user)],
)
def create_razorpay_order(
    payload: PaymentOrderPayload,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    gateway_order = order_service.create_payment_order(
        db, gateway, payload.amount, payload.coupon_code
    )
    return {
        "success": True,
        "message": "Razorpay order successfully created",
        "order": gateway_order,
    }


@router.post("/order", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderPayload,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
    user: User = Depends(get_current_user),
):
    order = order_service.place_order(
        db,
        gateway,
        settings,
        user,
        payment_id=payload.payment_id,
        items=[(item.product, item.quantity) for item in payload.order_items],
        shipping_address=payload.shipping_info.address.model_dump(),
        phone_no=payload.shipping_info.phone_no,
        payment_mode=payload.payment_mode,
    )
    return {
        "success": True,
        "message": "Order successfully placed",
        "order": serialize_order(order),
    }


# =====================================================
# USER: OWN ORDERS
# =====================================================

@router.get("/orders")
def get_user_orders(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    orders = (
        db.query(Order)
        .options(joinedload(Order.items))
        .filter(Order.user_id == user.id)
        .order_by(Order.created_at.desc())
        .all()
    )
    return {
        "success": True,
        "message": "Orders successfully fetched",
        "orders": [serialize_order(o) for o in orders],
    }


@router.get("/order/{order_id}")
def get_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if user.is_admin:
        order = _get_order_or_404(db, order_id)
    else:
        order = _get_own_order_or_404(db, order_id, user)

    return {
        "success": True,
        "message": "Order successfully fetched",
        "order": serialize_order(order),
    }


@router.put("/order/{order_id}/cancel")
def cancel_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    user: User = Depends(get_current_user),
):
    order = _get_own_order_or_404(db, order_id, user)
    order = order_service.cancel_order(db, gateway, order)

    return {
        "success": True,
        "message": "Order successfully cancelled",
        "order": serialize_order(order),
    }


@router.put("/order/{order_id}/shipping")
def update_shipping_info(
    order_id: uuid.UUID,
    payload: ShippingInfo,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    order = _get_own_order_or_404(db, order_id, user)
    if order.status != OrderStatus.ordered:
        raise ValidationError("Shipping details can only change before the order ships")

    order.shipping_address = payload.address.model_dump()
    order.phone_no = payload.phone_no
    db.commit()

    return {
        "success": True,
        "message": "Shipping details successfully updated",
        "order": serialize_order(order),
    }


# =====================================================
# ADMIN
# =====================================================

@router.get("/admin/orders", dependencies=[Depends(admin_only)])
def admin_get_all_orders(
    db: Session = Depends(get_db),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    query = db.query(Order).options(joinedload(Order.items))
    if status_filter:
        query = query.filter(Order.status == status_filter)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "success": True,
        "message": "All orders successfully fetched",
        "total": total,
        "page": page,
        "per_page": per_page,
        "orders": [serialize_order(o) for o in orders],
    }


@router.put("/admin/order/{order_id}", dependencies=[Depends(admin_only)])
def admin_update_order(
    order_id: uuid.UUID,
    payload: StatusPayload,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    order = _get_order_or_404(db, order_id)
    order = order_service.update_status(db, gateway, order, payload.status)

    return {
        "success": True,
        "message": f"Order status successfully updated to '{order.status.value}'",
        "order": serialize_order(order),
    }


@router.delete("/admin/order/{order_id}", dependencies=[Depends(admin_only)])
def admin_delete_order(order_id: uuid.UUID, db: Session = Depends(get_db)):
    order = _get_order_or_404(db, order_id)
    db.delete(order)
    db.commit()

    return {"success": True, "message": "Order successfully deleted"}
