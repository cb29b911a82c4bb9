"""
Order lifecycle: pricing, payment capture, inventory adjustment, status
transitions and cancellation.

Each step is its own database or gateway call. Nothing here runs inside a
shared transaction:

- if the order row commits and a later stock update fails, the order
  stays and stock is left partially adjusted;
- replaying ``place_order`` with the same payment id creates another
  order (a payment that is already captured is accepted as-is);
- two orders for the same product can interleave their stock updates.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from storefront.config import Settings
from storefront.errors import ExternalServiceError, NotFoundError, ValidationError
from storefront.models import Coupon, Order, OrderItem, OrderStatus, Product, User
from storefront.razorpay_client import RazorpayGateway, to_paise, to_rupees

logger = logging.getLogger(__name__)


# Allowed next statuses, keyed on the current one
STATUS_TRANSITIONS: dict[OrderStatus, tuple[OrderStatus, ...]] = {
    OrderStatus.ordered: (OrderStatus.shipped, OrderStatus.cancelled),
    OrderStatus.shipped: (OrderStatus.delivered, OrderStatus.cancelled),
    OrderStatus.delivered: (),
    OrderStatus.cancelled: (),
}


@dataclass(frozen=True)
class OrderAmounts:
    order_amount: float
    shipping_charges: float
    tax: float
    total_amount: float


# =====================================================
# PRICING
# =====================================================

def compute_amounts(lines: list[tuple[Product, int]], settings: Settings) -> OrderAmounts:
    subtotal = float(sum(product.price * quantity for product, quantity in lines))
    shipping = float(settings.shipping_charges)
    tax = round(subtotal * settings.tax_rate / 100, 2)
    return OrderAmounts(
        order_amount=subtotal,
        shipping_charges=shipping,
        tax=tax,
        total_amount=round(subtotal + shipping + tax, 2),
    )


def apply_coupon(db: Session, code: str, amount: float) -> tuple[float, Coupon]:
    """
    Discount ``amount`` by an active coupon and deactivate the coupon.
    The deactivation commits immediately.
    """
    coupon = (
        db.query(Coupon)
        .filter(Coupon.code == code.strip().upper(), Coupon.is_active == True)  # noqa: E712
        .first()
    )
    if not coupon:
        raise ValidationError("Coupon invalid")

    discounted = round((100 - coupon.discount) / 100 * amount, 2)
    coupon.is_active = False
    db.commit()
    return discounted, coupon


# =====================================================
# STEP 1: PAYMENT ORDER
# =====================================================

def create_payment_order(
    db: Session,
    gateway: RazorpayGateway,
    amount: float,
    coupon_code: str | None = None,
) -> dict:
    if coupon_code:
        amount, coupon = apply_coupon(db, coupon_code, amount)
        logger.info("Coupon redeemed | code=%s | amount=%s", coupon.code, amount)

    return gateway.create_order(amount=to_paise(amount), receipt=uuid.uuid4().hex)


# =====================================================
# STEPS 2-4: CAPTURE, PERSIST, ADJUST STOCK
# =====================================================

def load_order_lines(db: Session, items: list[tuple[uuid.UUID, int]]) -> list[tuple[Product, int]]:
    """One line per product: repeated product ids are merged before the stock check."""
    quantities: dict[uuid.UUID, int] = {}
    for product_id, quantity in items:
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    lines = []
    for product_id, quantity in quantities.items():
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        if product.stock < quantity:
            raise ValidationError(
                f"Not enough stock for '{product.name}'. Available: {product.stock}"
            )
        lines.append((product, quantity))
    return lines


def capture_payment(gateway: RazorpayGateway, payment_id: str) -> float:
    """Capture an authorized payment; returns the amount paid in rupees."""
    payment = gateway.fetch_payment(payment_id)
    payment_status = payment.get("status")

    if payment_status == "authorized":
        payment = gateway.capture_payment(payment_id, payment["amount"])
    elif payment_status != "captured":
        raise ExternalServiceError(
            "payment",
            f"Payment {payment_id} cannot be captured (status: {payment_status})",
            status_code=400,
        )

    return to_rupees(payment["amount"])


def apply_inventory(db: Session, order: Order) -> None:
    """Per item: load the product, bump sold units, take stock. One commit each."""
    for item in order.items:
        product = db.query(Product).filter(Product.id == item.product_id).first()
        if not product:
            logger.warning(
                "Product vanished before stock update | order_id=%s | product_id=%s",
                order.id,
                item.product_id,
            )
            continue
        product.sold_units += item.quantity
        product.stock -= item.quantity
        db.commit()


def reverse_inventory(db: Session, order: Order) -> None:
    """Stage the stock restore in the session. The caller commits."""
    for item in order.items:
        product = db.query(Product).filter(Product.id == item.product_id).first()
        if not product:
            continue
        product.stock += item.quantity
        product.sold_units = max(product.sold_units - item.quantity, 0)


def place_order(
    db: Session,
    gateway: RazorpayGateway,
    settings: Settings,
    user: User,
    payment_id: str,
    items: list[tuple[uuid.UUID, int]],
    shipping_address: dict,
    phone_no: str,
    payment_mode: str,
) -> Order:
    if not items:
        raise ValidationError("Please provide the products to order")

    lines = load_order_lines(db, items)
    amounts = compute_amounts(lines, settings)
    amount_paid = capture_payment(gateway, payment_id)

    order = Order(
        user_id=user.id,
        order_amount=amounts.order_amount,
        shipping_charges=amounts.shipping_charges,
        tax=amounts.tax,
        total_amount=amounts.total_amount,
        discount=round(max(amounts.total_amount - amount_paid, 0), 2),
        shipping_address=shipping_address,
        phone_no=phone_no,
        transaction_id=payment_id,
        amount_paid=amount_paid,
        payment_mode=payment_mode,
        status=OrderStatus.ordered,
        items=[
            OrderItem(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                price=product.price,
            )
            for product, quantity in lines
        ],
    )
    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info(
        "Order placed | order_id=%s | user_id=%s | payment_id=%s | amount_paid=%s",
        order.id,
        user.id,
        payment_id,
        amount_paid,
    )

    apply_inventory(db, order)
    return order


# =====================================================
# STATUS TRANSITIONS
# =====================================================

def cancel_order(db: Session, gateway: RazorpayGateway, order: Order) -> Order:
    check_transition(order, OrderStatus.cancelled)

    # Stock restore, refund record and status land in one commit
    reverse_inventory(db, order)
    try:
        refund = gateway.refund_payment(order.transaction_id, to_paise(order.amount_paid))
    except ExternalServiceError:
        logger.error("Refund failed, order left as is | order_id=%s", order.id)
        db.rollback()
        raise

    order.payment_refunded = True
    order.refund_amount = to_rupees(refund.get("amount", to_paise(order.amount_paid)))
    order.status = OrderStatus.cancelled
    order.cancelled_on = datetime.now(timezone.utc)
    db.commit()

    logger.info(
        "Order cancelled | order_id=%s | refund_amount=%s", order.id, order.refund_amount
    )
    return order


def check_transition(order: Order, new_status: OrderStatus) -> None:
    current = OrderStatus(order.status)
    if new_status not in STATUS_TRANSITIONS[current]:
        raise ValidationError(
            f"Cannot change order status from '{current.value}' to '{new_status.value}'"
        )


def update_status(
    db: Session,
    gateway: RazorpayGateway,
    order: Order,
    new_status: OrderStatus,
) -> Order:
    if new_status == OrderStatus.cancelled:
        return cancel_order(db, gateway, order)

    check_transition(order, new_status)

    now = datetime.now(timezone.utc)
    if new_status == OrderStatus.shipped:
        order.shipped_on = now
    elif new_status == OrderStatus.delivered:
        order.delivered_on = now

    order.status = new_status
    db.commit()
    return order
