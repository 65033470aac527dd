import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator

from app.models import OrderStatus, PaymentStatus, Role


def envelope(message: str, **data) -> dict:
    body = {"success": True, "message": message}
    if data:
        body["data"] = data
    return body


def empty_result(message: str, **data) -> JSONResponse:
    """404 envelope for a listing with nothing to show."""
    return JSONResponse(status_code=404, content={"success": False, "message": message, "data": data})


def _strong_password(value: str) -> str:
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one number")
    return value


# bcrypt only looks at the first 72 bytes
Password = Annotated[str, Field(min_length=8, max_length=72)]
StrongPassword = Annotated[Password, AfterValidator(_strong_password)]


# --- auth / users ---

class SignupRequest(BaseModel):
    email: EmailStr
    password: StrongPassword
    name: str = Field(min_length=2, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: Password


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    new_password: StrongPassword


class ChangePasswordRequest(BaseModel):
    current_password: Password
    new_password: StrongPassword


class ShippingAddressRequest(BaseModel):
    address: str = Field(min_length=5)
    state: str = Field(min_length=2)
    postal_code: str = Field(min_length=3)
    country: str = Field(min_length=2)


class UserUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    role: Optional[Role] = None


class ShippingAddressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    address: str
    state: str
    country: str
    postal_code: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: Role
    is_verified: bool
    created_at: datetime


class UserDetailOut(UserOut):
    shipping_address: Optional[ShippingAddressOut] = None


class UserQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)
    search_query: Optional[str] = None


# --- catalog ---

class CategoryRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class ProductRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: str
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    is_published: bool = False
    category_id: Optional[str] = None


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    is_published: Optional[bool] = None
    category_id: Optional[str] = None


class MediaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    product_id: str
    is_default: bool


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    price: float
    is_published: bool
    category_id: Optional[str] = None
    created_at: datetime
    media: List[MediaOut] = []


class ProductQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)
    sort_by: Literal["created_at", "price", "name"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    category: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    search_query: Optional[str] = None
    is_published: Optional[bool] = None


# --- orders ---

class CartItemRequest(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class CartRequest(BaseModel):
    cart_items: List[CartItemRequest] = Field(min_length=1)


class OrderUpdateRequest(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None

    @model_validator(mode="after")
    def one_field_required(self):
        if self.status is None and self.payment_status is None:
            raise ValueError("At least one of status or payment_status must be provided")
        return self


class ProductSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price: float


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: Optional[str] = None
    quantity: int
    product: Optional[ProductSummaryOut] = None


class OrderUserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: Optional[float] = None
    created_at: datetime
    shipping_address: Optional[ShippingAddressOut] = None
    cart_items: List[CartItemOut] = []


class OrderDetailOut(OrderOut):
    user: Optional[OrderUserOut] = None


class OrderQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)
    sort_by: Literal["created_at", "total_amount", "status"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    search_query: Optional[str] = None


class CursorQuery(BaseModel):
    page_size: int = Field(default=10, ge=1, le=100)
    cursor: Optional[str] = None
