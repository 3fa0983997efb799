"""
Wholesale E-commerce API Schemas

Pydantic models for everything that crosses the HTTP boundary: request bodies,
search parameters and response DTOs. Response models read straight from the
ORM entities (`from_attributes`), so derived properties such as
`Product.min_price` or `User.full_name` show up without extra mapping.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

UserRole = Literal["wholesale", "retail", "admin"]
ProductStatus = Literal["active", "draft", "archived"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -----------------------
# Paging
# -----------------------

class SearchParams(BaseModel):
    search: Optional[str] = None
    sort_by: Optional[str] = "createdat"
    sort_descending: bool = True
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)


class Page(BaseModel):
    total_count: int
    page: int
    page_size: int
    total_pages: int


class CountResponse(BaseModel):
    count: int


class NameCount(BaseModel):
    name: str
    count: int


# -----------------------
# Users & auth
# -----------------------

class UserOut(ORMModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: str
    status: str
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None
    full_name: str
    is_admin: bool
    is_active: bool


class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    role: UserRole = "wholesale"


class UpdateUserRequest(BaseModel):
    # Empty strings are treated as "not provided".
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    role: Optional[str] = None
    status: Optional[str] = None


class UserSearchParams(SearchParams):
    role: Optional[str] = None
    status: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class UserSearchResponse(Page):
    items: List[UserOut]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class PasswordValidationRequest(BaseModel):
    password: str


class PasswordValidationResponse(BaseModel):
    is_valid: bool


# -----------------------
# Products
# -----------------------

class VariantIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    sku: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    inventory_quantity: int = Field(0, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    weight_unit: Optional[str] = Field(None, max_length=10)
    option1: Optional[str] = Field(None, max_length=100)
    option2: Optional[str] = Field(None, max_length=100)
    option3: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = Field(None, max_length=500)


class ImageIn(BaseModel):
    url: str = Field(..., min_length=1, max_length=500)
    alt_text: Optional[str] = Field(None, max_length=255)
    position: int = 0
    width: int = 0
    height: int = 0


class OptionIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    position: int = 0
    values: List[str] = []


class CreateProductRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = ""
    handle: str = Field(..., min_length=3, max_length=100, pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
    vendor: str = Field(..., min_length=2, max_length=100)
    product_type: str = Field(..., min_length=2, max_length=100)
    tags: List[str] = []
    status: ProductStatus = "active"
    seo_title: Optional[str] = Field(None, max_length=255)
    seo_description: Optional[str] = Field(None, max_length=500)
    variants: List[VariantIn] = []
    images: List[ImageIn] = []
    options: List[OptionIn] = []


class UpdateProductRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    handle: Optional[str] = Field(None, max_length=100)
    vendor: Optional[str] = Field(None, max_length=100)
    product_type: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    status: Optional[str] = None
    seo_title: Optional[str] = Field(None, max_length=255)
    seo_description: Optional[str] = Field(None, max_length=500)


class VariantOut(ORMModel):
    id: uuid.UUID
    product_id: uuid.UUID
    title: str
    sku: str
    price: float
    compare_at_price: Optional[float] = None
    inventory_quantity: int
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    image_url: Optional[str] = None
    is_available: bool


class ImageOut(ORMModel):
    id: uuid.UUID
    url: str
    alt_text: Optional[str] = None
    position: int
    width: int
    height: int


class OptionOut(ORMModel):
    id: uuid.UUID
    product_id: uuid.UUID
    name: str
    position: int
    values: List[str]


class ProductOut(ORMModel):
    id: uuid.UUID
    title: str
    description: str
    vendor: str
    product_type: str
    tags: List[str]
    status: str
    handle: str
    published_at: Optional[datetime] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    variants: List[VariantOut]
    images: List[ImageOut]
    options: List[OptionOut]
    main_image: Optional[ImageOut] = None
    is_available: bool
    min_price: float
    max_price: float
    total_inventory: int


class ProductSearchParams(SearchParams):
    category: Optional[str] = None
    vendor: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    in_stock: Optional[bool] = None
    status: Optional[str] = None
    tags: Optional[str] = Field(None, description="comma separated, any tag matches")

    def tag_list(self) -> List[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]


class ProductSearchResponse(Page):
    items: List[ProductOut]


class InventoryUpdateRequest(BaseModel):
    sku: str = Field(..., min_length=1)
    quantity: int


class InventoryOut(BaseModel):
    product_id: uuid.UUID
    sku: str
    inventory_quantity: int


# -----------------------
# Orders
# -----------------------

class Address(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    address1: str = Field(..., min_length=1, max_length=255)
    address2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=3, max_length=20)


class OrderItemIn(BaseModel):
    product_id: uuid.UUID
    sku: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class CreateOrderRequest(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    shipping_method: Literal["standard", "express"] = "standard"
    customer_notes: Optional[str] = Field(None, max_length=1000)


class OrderItemOut(ORMModel):
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID
    product_title: str
    sku: str
    quantity: int
    unit_price: float
    total_price: float
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None


class OrderOut(BaseModel):
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    user_email: Optional[str] = None
    status: str
    subtotal: float
    tax_amount: float
    shipping_amount: float
    total_amount: float
    currency: str
    shipping_address: Address
    billing_address: Address
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    transaction_id: Optional[str] = None
    shipping_method: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    customer_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut]
    total_items: int
    can_be_cancelled: bool
    is_shipped: bool


class OrderSearchParams(SearchParams):
    status: Optional[str] = None
    payment_status: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    min_total: Optional[float] = None
    max_total: Optional[float] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class OrderSearchResponse(Page):
    items: List[OrderOut]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class ShippingInfoUpdate(BaseModel):
    tracking_number: str = Field(..., min_length=1, max_length=255)
    tracking_url: Optional[str] = Field(None, max_length=255)


class PaymentInfoUpdate(BaseModel):
    payment_status: str = Field(..., min_length=1, max_length=100)
    transaction_id: Optional[str] = Field(None, max_length=255)


class OrderStats(BaseModel):
    total_orders: int
    revenue: float
    by_status: Dict[str, int]
