import uuid
import enum
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    JSON,
    Enum,
    ForeignKey,
    Index,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from storefront.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# ENUMS
# =========================

class Role(str, enum.Enum):
    user = "user"
    manager = "manager"
    admin = "admin"


class OrderStatus(str, enum.Enum):
    ordered = "ordered"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentMode(str, enum.Enum):
    card = "card"
    upi = "upi"
    netbanking = "netbanking"
    wallet = "wallet"
    emi = "emi"


# =========================
# USER
# =========================

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    firstname = Column(String, nullable=False)
    lastname = Column(String, nullable=False)

    email = Column(String, nullable=False, unique=True, index=True)
    phone_no = Column(String, nullable=False, unique=True, index=True)
    hashed_password = Column(String, nullable=False)

    role = Column(String, default=Role.user.value, nullable=False)

    photo_id = Column(String)
    photo_url = Column(String)

    forgot_password_token = Column(String, index=True)
    forgot_password_expiry = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    orders = relationship("Order", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin


# =========================
# CATEGORY
# =========================

class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    name = Column(String(100), nullable=False, unique=True, index=True)

    added_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    added_by_role = Column(String, nullable=False)
    last_updated_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    last_updated_by_role = Column(String)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    products = relationship("Product", back_populates="category")


# =========================
# PRODUCT
# =========================

class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    name = Column(String(100), nullable=False, index=True)
    price = Column(Integer, nullable=False)
    description = Column(String(250), nullable=False)
    brand = Column(String(50), nullable=False, index=True)

    stock = Column(Integer, nullable=False, default=0)
    sold_units = Column(Integer, nullable=False, default=0)

    # Average of review ratings, one decimal
    ratings = Column(Float, nullable=False, default=0)

    category_id = Column(
        Uuid,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    added_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    added_by_role = Column(String, nullable=False)
    last_updated_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    last_updated_by_role = Column(String)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    category = relationship("Category", back_populates="products")
    photos = relationship(
        "ProductPhoto",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductPhoto.position",
    )
    reviews = relationship(
        "Review",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="Review.created_at",
    )


Index("idx_products_price", Product.price)
Index("idx_products_created_at", Product.created_at)


# =========================
# PRODUCT PHOTOS
# =========================

class ProductPhoto(Base):
    __tablename__ = "product_photos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id = Column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Cloudinary public id, needed to delete the asset later
    public_id = Column(String, nullable=False)
    url = Column(String, nullable=False)
    position = Column(Integer, default=0)

    product = relationship("Product", back_populates="photos")


# =========================
# REVIEWS
# =========================

class Review(Base):
    __tablename__ = "reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id = Column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)

    name = Column(String)
    comment = Column(String(500))
    rating = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    product = relationship("Product", back_populates="reviews")


# =========================
# COUPON
# =========================

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    code = Column(String(10), nullable=False, unique=True, index=True)
    discount = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


# =========================
# ORDER
# =========================

def _estimated_delivery() -> datetime:
    return utcnow() + timedelta(days=7)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
    )

    # Amounts in rupees
    order_amount = Column(Float, nullable=False)
    shipping_charges = Column(Float, nullable=False)
    discount = Column(Float, nullable=False, default=0)
    tax = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)

    shipping_address = Column(JSON, nullable=False)
    phone_no = Column(String, nullable=False)

    status = Column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.ordered,
        nullable=False,
    )
    estimated_delivery_date = Column(DateTime(timezone=True), default=_estimated_delivery)
    shipped_on = Column(DateTime(timezone=True))
    delivered_on = Column(DateTime(timezone=True))
    cancelled_on = Column(DateTime(timezone=True))

    transaction_id = Column(String, nullable=False, index=True)
    amount_paid = Column(Float, nullable=False)
    payment_mode = Column(Enum(PaymentMode, name="payment_mode"), nullable=False)
    payment_refunded = Column(Boolean, nullable=False, default=False)
    refund_amount = Column(Float)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
    )


Index("idx_orders_status", Order.status)
Index("idx_orders_created_at", Order.created_at)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    order_id = Column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"))

    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
