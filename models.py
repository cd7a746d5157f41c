import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


def new_id():
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    address = Column(Text)
    latitude = Column(Numeric(10, 8))
    longitude = Column(Numeric(11, 8))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    orders = relationship("Order", foreign_keys="Order.customer_id", back_populates="customer")
    deliveries = relationship("Order", foreign_keys="Order.driver_id", back_populates="driver")


class Supplier(Base):
    __tablename__ = "suppliers"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(150), nullable=False)
    contact_person = Column(String(150), nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(255))
    address = Column(Text, nullable=False)
    latitude = Column(Numeric(10, 8))
    longitude = Column(Numeric(11, 8))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    gas_cylinders = relationship("GasCylinder", back_populates="supplier")


class GasCylinder(Base):
    __tablename__ = "gas_cylinders"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(150), nullable=False)
    # kilograms, e.g. 6.00, 12.50, 14.20
    weight = Column(Numeric(5, 2), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    description = Column(Text)
    brand = Column(String(100))
    is_available = Column(Boolean, nullable=False, default=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    image_url = Column(String(500))
    supplier_id = Column(String(36), ForeignKey("suppliers.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    supplier = relationship("Supplier", back_populates="gas_cylinders")
    order_items = relationship("OrderItem", back_populates="gas_cylinder")


class Order(Base):
    __tablename__ = "orders"
    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(String(32), unique=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"))
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    total_amount = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(8, 2), nullable=False, default=0)
    delivery_address = Column(Text, nullable=False)
    delivery_latitude = Column(Numeric(10, 8))
    delivery_longitude = Column(Numeric(11, 8))
    special_instructions = Column(Text)
    cancellation_reason = Column(Text)
    estimated_delivery_time = Column(DateTime(timezone=True))
    actual_delivery_time = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    customer = relationship("User", foreign_keys=[customer_id], back_populates="orders")
    driver = relationship("User", foreign_keys=[driver_id], back_populates="deliveries")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    gas_cylinder_id = Column(String(36), ForeignKey("gas_cylinders.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    order = relationship("Order", back_populates="items")
    gas_cylinder = relationship("GasCylinder", back_populates="order_items")


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"
    jti = Column(String(36), primary_key=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), server_default=func.now())
