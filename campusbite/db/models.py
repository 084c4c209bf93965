"""Database models."""
import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def generate_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Customer, vendor or admin account."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    role = Column(String, default="student", nullable=False)  # student, vendor, admin
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class VendorProfile(Base):
    """Vendor storefront. Shares its primary key with the owning user."""

    __tablename__ = "vendor_profiles"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    business_name = Column(String, nullable=False)
    business_phone = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)
    address = Column(String, nullable=False, default="")
    delivery_fee = Column(Numeric(10, 2), default=0, nullable=False)
    minimum_order_amount = Column(Numeric(10, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_accepting_orders = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    menu_items = relationship("MenuItem", back_populates="vendor")


class MenuItem(Base):
    """Menu item offered by a vendor."""

    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    vendor_id = Column(String(36), ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String, nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    vendor = relationship("VendorProfile", back_populates="menu_items")


class Order(Base):
    """Placed order."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_id)
    order_number = Column(String, unique=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(String(36), ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    # pending, confirmed, preparing, ready, out_for_delivery, delivered, cancelled
    status = Column(String, default="pending", nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String, nullable=True)  # cash, mobile_money, card
    payment_status = Column(String, default="pending", nullable=False)
    special_instructions = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    prepared_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    # Bumped on every status change; guards against lost updates
    version = Column(Integer, default=1, nullable=False)

    # Relationships
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", cascade="all, delete-orphan"
    )


class OrderItem(Base):
    """Order line with a point-in-time price snapshot."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(String(36), ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    special_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Append-only log of order status changes."""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=False)
    changed_by = Column(String(36), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="status_history")


class CartSnapshot(Base):
    """Persisted cart, one row per user."""

    __tablename__ = "cart_snapshots"

    owner_id = Column(String(36), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
