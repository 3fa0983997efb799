"""
Wholesale E-commerce ORM models

Tables:
- users: customers (wholesale / retail) and admins
- products, product_variants, product_images, product_options: the catalog
- orders, order_items: placed orders with price snapshots

Derived values (prices, availability, inventory totals) are plain properties
computed from the loaded variants, never stored.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

USER_ROLES = ("wholesale", "retail", "admin")
USER_STATUSES = ("active", "inactive", "suspended")
PRODUCT_STATUSES = ("active", "draft", "archived")
ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")

Money = Numeric(18, 2, asdecimal=False)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StringList(TypeDecorator):
    """A list of strings kept in one comma separated text column."""

    impl = String(1000)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return ""
        if isinstance(value, str):
            # LIKE patterns and raw comparisons pass through untouched
            return value
        return ",".join(v.strip() for v in value if v and v.strip())

    def process_result_value(self, value, dialect):
        if not value:
            return []
        return [v for v in value.split(",") if v]


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="wholesale", index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, index=True)
    refresh_token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    orders: Mapped[List["Order"]] = relationship(back_populates="user", passive_deletes="all")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def is_wholesale(self) -> bool:
        return self.role == "wholesale"

    @property
    def is_retail(self) -> bool:
        return self.role == "retail"

    def __repr__(self):
        return f"<User {self.email}>"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    vendor: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    product_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    tags: Mapped[List[str]] = mapped_column(StringList, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft", index=True)
    handle: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    seo_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    seo_description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    variants: Mapped[List["ProductVariant"]] = relationship(
        back_populates="product", cascade="all, delete-orphan", lazy="selectin"
    )
    images: Mapped[List["ProductImage"]] = relationship(
        back_populates="product", cascade="all, delete-orphan", lazy="selectin",
        order_by="ProductImage.position",
    )
    options: Mapped[List["ProductOption"]] = relationship(
        back_populates="product", cascade="all, delete-orphan", lazy="selectin",
        order_by="ProductOption.position",
    )

    @property
    def main_image(self) -> Optional["ProductImage"]:
        for image in self.images:
            if image.position == 1:
                return image
        return self.images[0] if self.images else None

    @property
    def is_available(self) -> bool:
        return any(v.is_available for v in self.variants)

    @property
    def min_price(self) -> float:
        return min((v.price for v in self.variants), default=0.0)

    @property
    def max_price(self) -> float:
        return max((v.price for v in self.variants), default=0.0)

    @property
    def total_inventory(self) -> int:
        return sum(v.inventory_quantity for v in self.variants)

    def get_variant(self, sku: str) -> Optional["ProductVariant"]:
        return next((v for v in self.variants if v.sku == sku), None)

    def has_variant(self, sku: str) -> bool:
        return self.get_variant(sku) is not None

    def is_in_stock(self, sku: str) -> bool:
        variant = self.get_variant(sku)
        return variant is not None and variant.inventory_quantity > 0

    def __repr__(self):
        return f"<Product {self.handle}>"


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (Index("ix_product_variants_product_sku", "product_id", "sku"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    price: Mapped[float] = mapped_column(Money, nullable=False)
    compare_at_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    inventory_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weight: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    weight_unit: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    option1: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    option2: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    option3: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    product: Mapped["Product"] = relationship(back_populates="variants")

    @property
    def is_available(self) -> bool:
        return self.inventory_quantity > 0

    def adjust_inventory(self, delta: int) -> int:
        self.inventory_quantity = max(0, self.inventory_quantity + delta)
        return self.inventory_quantity


class ProductImage(Base):
    __tablename__ = "product_images"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    alt_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    width: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    height: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped["Product"] = relationship(back_populates="images")


class ProductOption(Base):
    __tablename__ = "product_options"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    values: Mapped[List[str]] = mapped_column(StringList, nullable=False, default=list)

    product: Mapped["Product"] = relationship(back_populates="options")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending", index=True)

    subtotal: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    tax_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    shipping_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    shipping_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_address1: Mapped[str] = mapped_column(String(255), nullable=False)
    shipping_address2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_city: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_state: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    shipping_country: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    billing_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    billing_last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    billing_address1: Mapped[str] = mapped_column(String(255), nullable=False)
    billing_address2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_city: Mapped[str] = mapped_column(String(100), nullable=False)
    billing_state: Mapped[str] = mapped_column(String(100), nullable=False)
    billing_zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    billing_country: Mapped[str] = mapped_column(String(100), nullable=False)
    billing_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    shipping_method: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tracking_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    customer_notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    user: Mapped["User"] = relationship(back_populates="orders", lazy="joined")
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_shipped(self) -> bool:
        return bool(self.tracking_number)

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at is not None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def can_be_cancelled(self) -> bool:
        return self.status in ("pending", "confirmed")

    @property
    def can_be_shipped(self) -> bool:
        return self.status in ("confirmed", "processing")

    def __repr__(self):
        return f"<Order {self.order_number}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    variant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[float] = mapped_column(Money, nullable=False)
    total_price: Mapped[float] = mapped_column(Money, nullable=False)
    option1: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    option2: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    option3: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    order: Mapped["Order"] = relationship(back_populates="items")
