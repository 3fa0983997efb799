"""
Business rules for users, products and orders.

Services own authorization (admin vs. everyone else), visibility filtering
(non-admins only ever see active products and their own records), partial
updates and DTO mapping. They raise the exceptions from `errors.py`; the API
layer turns those into HTTP responses.
"""
import logging
import math
import re
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from config import (
    DEFAULT_TAX_RATE,
    FREE_SHIPPING_THRESHOLD,
    PRIMARY_CURRENCY,
    SHIPPING_EXPRESS,
    SHIPPING_STANDARD,
)
from errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from models import (
    ORDER_STATUSES,
    PRODUCT_STATUSES,
    USER_ROLES,
    USER_STATUSES,
    Order,
    OrderItem,
    Product,
    ProductImage,
    ProductOption,
    ProductVariant,
    User,
)
from repositories import (
    OrderRepository,
    OrderSearchCriteria,
    ProductRepository,
    ProductSearchCriteria,
    UserRepository,
    UserSearchCriteria,
)
from schemas import (
    Address,
    CreateOrderRequest,
    CreateProductRequest,
    CreateUserRequest,
    InventoryOut,
    LoginRequest,
    LoginResponse,
    NameCount,
    OrderItemOut,
    OrderOut,
    OrderSearchParams,
    OrderSearchResponse,
    OrderStats,
    ProductOut,
    ProductSearchParams,
    ProductSearchResponse,
    RefreshTokenRequest,
    UpdateProductRequest,
    UpdateUserRequest,
    UserOut,
    UserSearchParams,
    UserSearchResponse,
)
from security import (
    access_token_expiry,
    create_access_token,
    generate_refresh_token,
    hash_password,
    refresh_token_expiry,
    verify_password,
)

logger = logging.getLogger("wholesale.services")

HANDLE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
# These would be shadowed by the static /api/products/<name> routes.
RESERVED_HANDLES = ("count", "featured", "categories", "vendors")


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if page_size > 0 else 0


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.is_admin


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back without tzinfo; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _filled(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


# -----------------------
# Users & authentication
# -----------------------

class UserService:
    def __init__(self, db: Session):
        self.users = UserRepository(db)

    @staticmethod
    def to_dto(user: User) -> UserOut:
        return UserOut.model_validate(user)

    def get_by_id(self, user_id: uuid.UUID, current_user: Optional[User]) -> UserOut:
        user = self.users.get_by_id(user_id)
        # Users can only see their own profile unless they are admin.
        if user is None or current_user is None or (not current_user.is_admin and current_user.id != user_id):
            raise NotFoundError("User not found in system", title="User not found")
        return self.to_dto(user)

    @staticmethod
    def _criteria(params: UserSearchParams) -> UserSearchCriteria:
        return UserSearchCriteria(
            search=params.search,
            role=params.role,
            status=params.status,
            created_from=params.created_from,
            created_to=params.created_to,
            sort_by=params.sort_by,
            sort_descending=params.sort_descending,
        )

    def search(self, params: UserSearchParams, current_user: Optional[User]) -> UserSearchResponse:
        if not is_admin(current_user):
            raise ForbiddenError("Only admins can search users")
        users, total = self.users.search(self._criteria(params), params.page, params.page_size)
        return UserSearchResponse(
            items=[self.to_dto(u) for u in users],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages(total, params.page_size),
        )

    def count(self, params: Optional[UserSearchParams], current_user: Optional[User]) -> int:
        if not is_admin(current_user):
            raise ForbiddenError("Only admins can get user count")
        return self.users.get_count(self._criteria(params) if params else None)

    def create(self, request: CreateUserRequest, allow_admin: bool = False) -> UserOut:
        email = request.email.strip().lower()
        if request.role == "admin" and not allow_admin:
            raise BadRequestError("Only admins can create admin accounts", title="Registration failed")
        if self.users.exists_by_email(email):
            raise ConflictError(f"User with email '{email}' already exists", title="Registration failed")
        user = User(
            email=email,
            password_hash=hash_password(request.password),
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            role=request.role,
            status="active",
        )
        user = self.users.add(user)
        logger.info("Created user %s (%s)", user.email, user.role)
        return self.to_dto(user)

    def create_user(self, request: CreateUserRequest, current_user: User) -> UserOut:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can create users")
        return self.create(request, allow_admin=True)

    def update(self, user_id: uuid.UUID, request: UpdateUserRequest, current_user: User) -> UserOut:
        if not current_user.is_admin and current_user.id != user_id:
            raise ForbiddenError("You can only update your own profile")
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found in system", title="User not found")

        for name in ("first_name", "last_name"):
            value = getattr(request, name)
            if _filled(value):
                if len(value.strip()) < 2:
                    raise BadRequestError(f"{name} must be at least 2 characters", title="Update failed")
                setattr(user, name, value.strip())

        if _filled(request.role):
            if not current_user.is_admin:
                raise ForbiddenError("Only admins can change user roles")
            if request.role not in USER_ROLES:
                raise BadRequestError(f"Unknown role '{request.role}'", title="Update failed")
            user.role = request.role

        if _filled(request.status):
            if not current_user.is_admin:
                raise ForbiddenError("Only admins can change user status")
            if request.status not in USER_STATUSES:
                raise BadRequestError(f"Unknown status '{request.status}'", title="Update failed")
            user.status = request.status

        user.updated_at = datetime.now(timezone.utc)
        return self.to_dto(self.users.update(user))

    def delete(self, user_id: uuid.UUID, current_user: User) -> None:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can delete users")
        if not self.users.exists(user_id):
            raise NotFoundError("User not found in system", title="User not found")
        if self.users.has_orders(user_id):
            raise ConflictError("User has orders and cannot be deleted", title="User deletion failed")
        self.users.delete(user_id)
        logger.info("Deleted user %s", user_id)

    def _issue_tokens(self, user: User) -> LoginResponse:
        expires_at = access_token_expiry()
        access_token = create_access_token(user, expires_at)
        refresh_token = generate_refresh_token()
        self.users.update_refresh_token(user, refresh_token, refresh_token_expiry())
        return LoginResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user=self.to_dto(user),
        )

    def login(self, request: LoginRequest) -> LoginResponse:
        user = self.users.get_by_email(request.email)
        if user is None or not verify_password(request.password, user.password_hash):
            raise UnauthorizedError("Invalid email or password")
        if not user.is_active:
            raise UnauthorizedError("Account is not active")
        self.users.update_last_login(user)
        logger.info("User %s logged in", user.email)
        return self._issue_tokens(user)

    def refresh_token(self, request: RefreshTokenRequest) -> LoginResponse:
        user = self.users.get_by_refresh_token(request.refresh_token)
        expires_at = _aware(user.refresh_token_expires_at) if user else None
        if user is None or expires_at is None or expires_at <= datetime.now(timezone.utc):
            raise UnauthorizedError("Invalid refresh token", title="Token refresh failed")
        if not user.is_active:
            raise UnauthorizedError("Account is not active", title="Token refresh failed")
        return self._issue_tokens(user)

    def logout(self, current_user: User) -> None:
        self.users.update_refresh_token(current_user, None, None)
        logger.info("User %s logged out", current_user.email)

    def validate_password(self, email: str, password: str) -> bool:
        user = self.users.get_by_email(email)
        if user is None:
            return False
        return verify_password(password, user.password_hash)


# -----------------------
# Products
# -----------------------

class ProductService:
    def __init__(self, db: Session):
        self.products = ProductRepository(db)

    @staticmethod
    def to_dto(product: Product) -> ProductOut:
        return ProductOut.model_validate(product)

    @staticmethod
    def _visible(product: Product, current_user: Optional[User]) -> bool:
        return product.status == "active" or is_admin(current_user)

    def _get_visible(self, product: Optional[Product], current_user: Optional[User]) -> Product:
        if product is None or not self._visible(product, current_user):
            raise NotFoundError("Product not found", title="Product not found")
        return product

    def _get_existing(self, product_id: uuid.UUID) -> Product:
        product = self.products.get_by_id(product_id)
        if product is None:
            raise NotFoundError("Product not found", title="Product not found")
        return product

    def get_by_id(self, product_id: uuid.UUID, current_user: Optional[User] = None) -> ProductOut:
        return self.to_dto(self._get_visible(self.products.get_by_id(product_id), current_user))

    def get_by_handle(self, handle: str, current_user: Optional[User] = None) -> ProductOut:
        return self.to_dto(self._get_visible(self.products.get_by_handle(handle), current_user))

    @staticmethod
    def _criteria(params: ProductSearchParams, current_user: Optional[User]) -> ProductSearchCriteria:
        criteria = ProductSearchCriteria(
            search=params.search,
            category=params.category,
            vendor=params.vendor,
            min_price=params.min_price,
            max_price=params.max_price,
            in_stock=params.in_stock,
            status=params.status,
            tags=params.tag_list(),
            sort_by=params.sort_by,
            sort_descending=params.sort_descending,
        )
        if not is_admin(current_user):
            criteria.status = "active"
        return criteria

    def search(self, params: ProductSearchParams, current_user: Optional[User] = None) -> ProductSearchResponse:
        criteria = self._criteria(params, current_user)
        products, total = self.products.search(criteria, params.page, params.page_size)
        return ProductSearchResponse(
            items=[self.to_dto(p) for p in products],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages(total, params.page_size),
        )

    def count(self, params: Optional[ProductSearchParams], current_user: Optional[User] = None) -> int:
        if params is None:
            params = ProductSearchParams()
        return self.products.get_count(self._criteria(params, current_user))

    def _status_filter(self, current_user: Optional[User]) -> Optional[str]:
        return None if is_admin(current_user) else "active"

    def get_by_category(self, category: str, page: int = 1, page_size: int = 20,
                        current_user: Optional[User] = None) -> List[ProductOut]:
        products = self.products.get_by_category(category, page, page_size, self._status_filter(current_user))
        return [self.to_dto(p) for p in products]

    def get_by_vendor(self, vendor: str, page: int = 1, page_size: int = 20,
                      current_user: Optional[User] = None) -> List[ProductOut]:
        products = self.products.get_by_vendor(vendor, page, page_size, self._status_filter(current_user))
        return [self.to_dto(p) for p in products]

    def get_featured(self, limit: int = 10) -> List[ProductOut]:
        return [self.to_dto(p) for p in self.products.get_featured(limit)]

    def get_related(self, product_id: uuid.UUID, limit: int = 5,
                    current_user: Optional[User] = None) -> List[ProductOut]:
        product = self.products.get_by_id(product_id)
        if product is None:
            return []
        return [self.to_dto(p) for p in self.products.get_related(product, limit)]

    def categories(self, current_user: Optional[User] = None) -> List[NameCount]:
        rows = self.products.category_counts(self._status_filter(current_user))
        return [NameCount(name=name, count=count) for name, count in rows]

    def vendors(self, current_user: Optional[User] = None) -> List[NameCount]:
        rows = self.products.vendor_counts(self._status_filter(current_user))
        return [NameCount(name=name, count=count) for name, count in rows]

    def create(self, request: CreateProductRequest, current_user: User) -> ProductOut:
        if request.handle.lower() in RESERVED_HANDLES:
            raise BadRequestError(f"Handle '{request.handle}' is reserved", title="Product creation failed")
        if self.products.exists_by_handle(request.handle):
            raise ConflictError(
                f"Product with handle '{request.handle}' already exists",
                title="Product creation failed",
            )
        now = datetime.now(timezone.utc)
        product = Product(
            title=request.title,
            description=request.description,
            vendor=request.vendor,
            product_type=request.product_type,
            tags=[t.strip() for t in request.tags if t.strip()],
            status=request.status,
            handle=request.handle,
            seo_title=request.seo_title,
            seo_description=request.seo_description,
            published_at=now if request.status == "active" else None,
        )
        product.variants = [ProductVariant(**v.model_dump()) for v in request.variants]
        product.images = [ProductImage(**i.model_dump()) for i in request.images]
        product.options = [ProductOption(**o.model_dump()) for o in request.options]
        product = self.products.add(product)
        logger.info("Product %s (%s) created by %s", product.handle, product.id, current_user.email)
        return self.to_dto(product)

    def update(self, product_id: uuid.UUID, request: UpdateProductRequest, current_user: User) -> ProductOut:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can update products")
        product = self._get_existing(product_id)

        for name in ("title", "description", "vendor", "product_type"):
            value = getattr(request, name)
            if _filled(value):
                setattr(product, name, value)

        if _filled(request.handle) and request.handle != product.handle:
            if len(request.handle) < 3 or not HANDLE_RE.match(request.handle):
                raise BadRequestError(f"Invalid handle '{request.handle}'", title="Update failed")
            if request.handle.lower() in RESERVED_HANDLES:
                raise BadRequestError(f"Handle '{request.handle}' is reserved", title="Update failed")
            if self.products.exists_by_handle(request.handle, exclude_id=product.id):
                raise ConflictError(
                    f"Product with handle '{request.handle}' already exists",
                    title="Update failed",
                )
            product.handle = request.handle

        if request.tags is not None:
            product.tags = [t.strip() for t in request.tags if t.strip()]

        if _filled(request.status):
            if request.status not in PRODUCT_STATUSES:
                raise BadRequestError(f"Unknown status '{request.status}'", title="Update failed")
            product.status = request.status
            if request.status == "active" and product.published_at is None:
                product.published_at = datetime.now(timezone.utc)

        if request.seo_title is not None:
            product.seo_title = request.seo_title
        if request.seo_description is not None:
            product.seo_description = request.seo_description

        product.updated_at = datetime.now(timezone.utc)
        return self.to_dto(self.products.update(product))

    def delete(self, product_id: uuid.UUID, current_user: User) -> None:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can delete products")
        self._get_existing(product_id)
        if self.products.is_referenced_by_orders(product_id):
            raise ConflictError("Product is referenced by existing orders", title="Product deletion failed")
        self.products.delete(product_id)
        logger.info("Product %s deleted by %s", product_id, current_user.email)

    def update_inventory(self, product_id: uuid.UUID, sku: str, quantity: int, current_user: User) -> InventoryOut:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can update inventory")
        product = self._get_existing(product_id)
        if not product.has_variant(sku):
            raise NotFoundError(f"Product variant '{sku}' not found", title="Variant not found")
        new_quantity = self.products.update_inventory(product_id, sku, quantity)
        logger.info("Inventory for %s/%s adjusted by %s to %s", product_id, sku, quantity, new_quantity)
        return InventoryOut(product_id=product_id, sku=sku, inventory_quantity=new_quantity)

    def get_inventory(self, product_id: uuid.UUID, sku: str, current_user: Optional[User] = None) -> InventoryOut:
        self._get_visible(self.products.get_by_id(product_id), current_user)
        return InventoryOut(
            product_id=product_id, sku=sku, inventory_quantity=self.products.get_inventory(product_id, sku)
        )


# -----------------------
# Orders
# -----------------------

def _address(order: Order, prefix: str) -> Address:
    return Address(**{
        name: getattr(order, f"{prefix}_{name}")
        for name in ("first_name", "last_name", "address1", "address2", "city", "state", "zip_code", "country", "phone")
    })


def order_to_dto(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        user_email=order.user.email if order.user else None,
        status=order.status,
        subtotal=order.subtotal,
        tax_amount=order.tax_amount,
        shipping_amount=order.shipping_amount,
        total_amount=order.total_amount,
        currency=order.currency,
        shipping_address=_address(order, "shipping"),
        billing_address=_address(order, "billing"),
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        transaction_id=order.transaction_id,
        shipping_method=order.shipping_method,
        tracking_number=order.tracking_number,
        tracking_url=order.tracking_url,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        customer_notes=order.customer_notes,
        internal_notes=order.internal_notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[OrderItemOut.model_validate(item) for item in order.items],
        total_items=order.total_items,
        can_be_cancelled=order.can_be_cancelled,
        is_shipped=order.is_shipped,
    )


def compute_totals(subtotal: float, shipping_method: str = "standard") -> Dict[str, float]:
    shipping = SHIPPING_EXPRESS if shipping_method == "express" else SHIPPING_STANDARD
    if FREE_SHIPPING_THRESHOLD > 0 and subtotal >= FREE_SHIPPING_THRESHOLD:
        shipping = 0.0
    tax = round(subtotal * DEFAULT_TAX_RATE, 2)
    total = round(subtotal + tax + shipping, 2)
    return {"subtotal": round(subtotal, 2), "tax": tax, "shipping": round(shipping, 2), "total": total}


class OrderService:
    def __init__(self, db: Session):
        self.orders = OrderRepository(db)
        self.products = ProductRepository(db)

    def _get_owned(self, order: Optional[Order], current_user: User) -> Order:
        # Other users' orders are reported as missing rather than forbidden.
        if order is None or (not current_user.is_admin and order.user_id != current_user.id):
            raise NotFoundError("Order not found", title="Order not found")
        return order

    def _get_existing(self, order_id: uuid.UUID) -> Order:
        order = self.orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", title="Order not found")
        return order

    def create(self, request: CreateOrderRequest, current_user: User) -> OrderOut:
        requested: Dict[uuid.UUID, int] = {}
        lines = []
        for item in request.items:
            product = self.products.get_by_id(item.product_id)
            if product is None or product.status != "active":
                raise BadRequestError(f"Product {item.product_id} is not available", title="Order creation failed")
            variant = product.get_variant(item.sku)
            if variant is None:
                raise BadRequestError(f"Product variant '{item.sku}' not found", title="Order creation failed")
            requested[variant.id] = requested.get(variant.id, 0) + item.quantity
            if requested[variant.id] > variant.inventory_quantity:
                raise BadRequestError(f"Insufficient inventory for SKU '{item.sku}'", title="Order creation failed")
            lines.append((product, variant, item.quantity))

        order_items = []
        for product, variant, quantity in lines:
            order_items.append(OrderItem(
                product_id=product.id,
                variant_id=variant.id,
                product_title=product.title,
                sku=variant.sku,
                quantity=quantity,
                unit_price=variant.price,
                total_price=round(variant.price * quantity, 2),
                option1=variant.option1,
                option2=variant.option2,
                option3=variant.option3,
            ))
            variant.adjust_inventory(-quantity)

        totals = compute_totals(sum(i.total_price for i in order_items), request.shipping_method)
        shipping = request.shipping_address
        billing = request.billing_address or request.shipping_address
        order = Order(
            order_number=self.orders.generate_order_number(),
            user_id=current_user.id,
            status="pending",
            subtotal=totals["subtotal"],
            tax_amount=totals["tax"],
            shipping_amount=totals["shipping"],
            total_amount=totals["total"],
            currency=PRIMARY_CURRENCY,
            payment_method=request.payment_method,
            payment_status="pending",
            shipping_method=request.shipping_method,
            customer_notes=request.customer_notes,
            items=order_items,
            **{f"shipping_{k}": v for k, v in shipping.model_dump().items()},
            **{f"billing_{k}": v for k, v in billing.model_dump().items()},
        )
        order = self.orders.add(order)
        logger.info("Order %s placed by %s, total %.2f", order.order_number, current_user.email, order.total_amount)
        return order_to_dto(order)

    def get_by_id(self, order_id: uuid.UUID, current_user: User) -> OrderOut:
        return order_to_dto(self._get_owned(self.orders.get_by_id(order_id), current_user))

    def get_by_order_number(self, order_number: str, current_user: User) -> OrderOut:
        return order_to_dto(self._get_owned(self.orders.get_by_order_number(order_number), current_user))

    @staticmethod
    def _criteria(params: OrderSearchParams, current_user: User) -> OrderSearchCriteria:
        criteria = OrderSearchCriteria(
            search=params.search,
            status=params.status,
            payment_status=params.payment_status,
            user_id=params.user_id,
            min_total=params.min_total,
            max_total=params.max_total,
            created_from=params.created_from,
            created_to=params.created_to,
            sort_by=params.sort_by,
            sort_descending=params.sort_descending,
        )
        if not current_user.is_admin:
            criteria.user_id = current_user.id
        return criteria

    def search(self, params: OrderSearchParams, current_user: User) -> OrderSearchResponse:
        orders, total = self.orders.search(self._criteria(params, current_user), params.page, params.page_size)
        return OrderSearchResponse(
            items=[order_to_dto(o) for o in orders],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages(total, params.page_size),
        )

    def count(self, params: Optional[OrderSearchParams], current_user: User) -> int:
        return self.orders.get_count(self._criteria(params or OrderSearchParams(), current_user))

    def update_status(self, order_id: uuid.UUID, status: str, current_user: User) -> OrderOut:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can change order status")
        if status not in ORDER_STATUSES:
            raise BadRequestError(f"Unknown status '{status}'", title="Update failed")
        order = self._get_existing(order_id)
        return order_to_dto(self.orders.update_status(order, status))

    def cancel(self, order_id: uuid.UUID, current_user: User) -> OrderOut:
        order = self._get_owned(self.orders.get_by_id(order_id), current_user)
        if not order.can_be_cancelled:
            raise BadRequestError(
                f"Order {order.order_number} cannot be cancelled in status '{order.status}'",
                title="Cancellation failed",
            )
        for item in order.items:
            variant = self.products.get_variant(item.product_id, item.sku)
            if variant is not None:
                variant.adjust_inventory(item.quantity)
        order = self.orders.update_status(order, "cancelled")
        logger.info("Order %s cancelled by %s", order.order_number, current_user.email)
        return order_to_dto(order)

    def update_shipping_info(self, order_id: uuid.UUID, tracking_number: str, tracking_url: Optional[str],
                             current_user: User) -> OrderOut:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can update shipping information")
        order = self._get_existing(order_id)
        return order_to_dto(self.orders.update_shipping_info(order, tracking_number, tracking_url))

    def update_payment_info(self, order_id: uuid.UUID, payment_status: str, transaction_id: Optional[str],
                            current_user: User) -> OrderOut:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can update payment information")
        order = self._get_existing(order_id)
        return order_to_dto(self.orders.update_payment_info(order, payment_status, transaction_id))

    def delete(self, order_id: uuid.UUID, current_user: User) -> None:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can delete orders")
        if not self.orders.delete(order_id):
            raise NotFoundError("Order not found", title="Order not found")
        logger.info("Order %s deleted by %s", order_id, current_user.email)

    def stats(self, current_user: User, from_date: Optional[datetime] = None,
              to_date: Optional[datetime] = None) -> OrderStats:
        if not current_user.is_admin:
            raise ForbiddenError("Only admins can view order statistics")
        return OrderStats(
            total_orders=self.orders.get_count(),
            revenue=self.orders.get_total_revenue(from_date, to_date),
            by_status=self.orders.count_by_status(),
        )
