from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from models import OrderStatus, PaymentStatus, UserRole


class ApiModel(BaseModel):
    """Base for every schema: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(ApiModel):
    message: str


# --- User ---
class UserBase(ApiModel):
    email: EmailStr
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    role: Optional[UserRole] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class UserCreate(UserBase):
    password: str = Field(min_length=6)


class UserUpdate(ApiModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: Optional[bool] = None

    @field_validator("email", "first_name", "last_name", "phone", "role", "is_active")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class UserOut(ApiModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: str
    role: UserRole
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool
    created_at: Optional[datetime] = None


class PasswordChange(ApiModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


# --- Auth ---
class LoginRequest(ApiModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuthResponse(ApiModel):
    message: str
    token: str
    user: UserOut


class VerifyResponse(ApiModel):
    message: str
    user: UserOut


class LogoutResponse(ApiModel):
    message: str
    success: bool


class ForgotPasswordRequest(ApiModel):
    email: str = Field(min_length=1)


class ResetPasswordRequest(ApiModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


# --- Supplier ---
class SupplierCreate(ApiModel):
    name: str = Field(min_length=1)
    contact_person: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    address: str = Field(min_length=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class SupplierOut(ApiModel):
    id: str
    name: str
    contact_person: str
    phone: str
    email: Optional[str] = None
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool
    created_at: Optional[datetime] = None


# --- Gas cylinder ---
class GasCylinderCreate(ApiModel):
    name: str = Field(min_length=1)
    weight: float = Field(gt=0)
    price: float = Field(ge=0)
    description: Optional[str] = None
    brand: Optional[str] = None
    supplier_id: str = Field(min_length=1)
    stock_quantity: int = Field(default=0, ge=0)
    image_url: Optional[str] = None


class GasCylinderUpdate(ApiModel):
    name: Optional[str] = None
    weight: Optional[float] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    brand: Optional[str] = None
    is_available: Optional[bool] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[str] = None

    @field_validator("name", "weight", "price", "is_available", "stock_quantity")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class GasCylinderSummary(ApiModel):
    id: str
    name: str
    weight: float
    price: float
    stock_quantity: int
    is_available: bool
    image_url: Optional[str] = None


class GasCylinderOut(GasCylinderSummary):
    description: Optional[str] = None
    brand: Optional[str] = None
    supplier: Optional[SupplierOut] = None
    created_at: Optional[datetime] = None


class SupplierDetail(SupplierOut):
    gas_cylinders: List[GasCylinderSummary] = []


# --- Order ---
class OrderItemRequest(ApiModel):
    cylinder_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class OrderCreate(ApiModel):
    customer_id: str = Field(min_length=1)
    items: List[OrderItemRequest] = Field(min_length=1)
    delivery_address: str = Field(min_length=1)
    delivery_latitude: float
    delivery_longitude: float
    special_instructions: Optional[str] = None


class OrderItemOut(ApiModel):
    id: str
    quantity: int
    unit_price: float
    total_price: float
    gas_cylinder: GasCylinderOut


class OrderOut(ApiModel):
    id: str
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: float
    delivery_fee: float
    delivery_address: str
    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    special_instructions: Optional[str] = None
    cancellation_reason: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer: UserOut
    driver: Optional[UserOut] = None
    items: List[OrderItemOut] = []


class OrderCreated(ApiModel):
    message: str
    order: OrderOut
    order_number: str
    total_amount: float


class OrderEnvelope(ApiModel):
    message: str
    order: OrderOut


class OrderStatusUpdate(ApiModel):
    status: OrderStatus
    driver_id: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None


class PaymentStatusUpdate(ApiModel):
    payment_status: PaymentStatus


class OrderCancel(ApiModel):
    reason: Optional[str] = None


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderPage(ApiModel):
    data: List[OrderOut]
    pagination: Pagination
