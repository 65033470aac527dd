import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.USER)
    is_verified = Column(Boolean, nullable=False, default=False)

    # At most one outstanding token of each kind
    verification_token = Column(String(64), index=True)
    verification_token_expires_at = Column(DateTime(timezone=True))
    password_reset_token = Column(String(64), index=True)
    password_reset_token_expires_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    shipping_address = relationship(
        "ShippingAddress", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    orders = relationship("Order", back_populates="user", cascade="all, delete-orphan")


class ShippingAddress(Base):
    __tablename__ = "shipping_addresses"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    address = Column(String(255), nullable=False)
    state = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)

    user = relationship("User", back_populates="shipping_address")


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_published = Column(Boolean, nullable=False, default=False)
    category_id = Column(String(32), ForeignKey("categories.id", ondelete="SET NULL"))
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    category = relationship("Category", back_populates="products")
    # Insertion order is id order
    media = relationship(
        "Media", back_populates="product", order_by="Media.id", cascade="all, delete-orphan"
    )


class Media(Base):
    __tablename__ = "media"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(32), ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    url = Column(String(1024), nullable=False)
    public_id = Column(String(255))            # CDN identifier used for purging
    is_default = Column(Boolean, nullable=False, default=False)
    uploaded_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    product = relationship("Product", back_populates="media")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    shipping_address_id = Column(String(32), ForeignKey("shipping_addresses.id", ondelete="SET NULL"))
    total_amount = Column(Numeric(10, 2))      # set from the gateway once paid
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user = relationship("User", back_populates="orders")
    shipping_address = relationship("ShippingAddress")
    cart_items = relationship(
        "CartItem", back_populates="order", order_by="CartItem.id", cascade="all, delete-orphan"
    )


class CartItem(Base):
    """Line item snapshot taken at checkout. Price is not stored here."""

    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(32), ForeignKey("products.id", ondelete="SET NULL"))
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="cart_items")
    product = relationship("Product")
