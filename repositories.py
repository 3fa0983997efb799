"""
Repositories: one per aggregate root (User, Product, Order).

Each repository wraps the request-scoped SQLAlchemy session. Reads return ORM
entities; writes commit immediately. Search methods share their filter logic
with the matching count method so totals and pages never disagree.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from models import Order, OrderItem, Product, ProductVariant, User

logger = logging.getLogger("wholesale.repositories")


@dataclass
class ProductSearchCriteria:
    search: Optional[str] = None
    category: Optional[str] = None
    vendor: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock: Optional[bool] = None
    status: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    sort_by: Optional[str] = None
    sort_descending: bool = True


@dataclass
class UserSearchCriteria:
    search: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    sort_by: Optional[str] = None
    sort_descending: bool = True


@dataclass
class OrderSearchCriteria:
    search: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    min_total: Optional[float] = None
    max_total: Optional[float] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    sort_by: Optional[str] = None
    sort_descending: bool = True


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _like(term: str) -> str:
    return f"%{_escape_like(term)}%"


def _utc(value: datetime) -> datetime:
    # Stored timestamps are UTC; naive input is taken as UTC already.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def _ci_contains(column, term: str):
    return column.ilike(_like(term), escape="\\")


def _ci_equals(column, value: str):
    return func.lower(column) == value.lower()


def _order_by(stmt, sort_columns: Dict[str, Any], default, sort_by: Optional[str], descending: bool):
    column = sort_columns.get((sort_by or "").lower(), default)
    return stmt.order_by(column.desc() if descending else column.asc())


def _paginate(stmt, page: int, page_size: int):
    return stmt.offset((page - 1) * page_size).limit(page_size)


class BaseRepository:
    model = None

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, entity_id: uuid.UUID):
        return self.db.get(self.model, entity_id)

    def exists(self, entity_id: uuid.UUID) -> bool:
        return self.db.scalar(select(func.count()).select_from(self.model).where(self.model.id == entity_id)) > 0

    def add(self, entity):
        self.db.add(entity)
        self.db.commit()
        self.db.refresh(entity)
        return entity

    def update(self, entity):
        self.db.commit()
        self.db.refresh(entity)
        return entity

    def delete(self, entity_id: uuid.UUID) -> bool:
        entity = self.db.get(self.model, entity_id)
        if entity is None:
            return False
        self.db.delete(entity)
        self.db.commit()
        return True


class UserRepository(BaseRepository):
    model = User

    SORT_COLUMNS = {
        "email": User.email,
        "firstname": User.first_name,
        "lastname": User.last_name,
        "role": User.role,
        "status": User.status,
        "createdat": User.created_at,
        "updatedat": User.updated_at,
        "lastloginat": User.last_login_at,
    }

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.scalar(select(User).where(_ci_equals(User.email, email)))

    def exists_by_email(self, email: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        stmt = select(func.count(User.id)).where(_ci_equals(User.email, email))
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return self.db.scalar(stmt) > 0

    def get_by_refresh_token(self, refresh_token: str) -> Optional[User]:
        return self.db.scalar(select(User).where(User.refresh_token == refresh_token))

    def update_last_login(self, user: User) -> None:
        user.last_login_at = datetime.now(timezone.utc)
        self.db.commit()

    def update_refresh_token(self, user: User, refresh_token: Optional[str], expires_at: Optional[datetime]) -> None:
        user.refresh_token = refresh_token
        user.refresh_token_expires_at = expires_at
        self.db.commit()

    def _conditions(self, criteria: Optional[UserSearchCriteria]) -> list:
        if criteria is None:
            return []
        conditions = []
        if criteria.search:
            term = criteria.search.strip()
            conditions.append(or_(
                _ci_contains(User.email, term),
                _ci_contains(User.first_name, term),
                _ci_contains(User.last_name, term),
                _ci_contains(User.first_name + " " + User.last_name, term),
            ))
        if criteria.role:
            conditions.append(_ci_equals(User.role, criteria.role))
        if criteria.status:
            conditions.append(_ci_equals(User.status, criteria.status))
        if criteria.created_from:
            conditions.append(User.created_at >= _utc(criteria.created_from))
        if criteria.created_to:
            conditions.append(User.created_at <= _utc(criteria.created_to))
        return conditions

    def search(self, criteria: UserSearchCriteria, page: int = 1, page_size: int = 20) -> Tuple[List[User], int]:
        conditions = self._conditions(criteria)
        total = self.get_count(criteria)
        stmt = select(User).where(*conditions)
        stmt = _order_by(stmt, self.SORT_COLUMNS, User.created_at, criteria.sort_by, criteria.sort_descending)
        users = self.db.scalars(_paginate(stmt, page, page_size)).all()
        return list(users), total

    def get_count(self, criteria: Optional[UserSearchCriteria] = None) -> int:
        return self.db.scalar(select(func.count(User.id)).where(*self._conditions(criteria)))

    def has_orders(self, user_id: uuid.UUID) -> bool:
        return self.db.scalar(select(func.count(Order.id)).where(Order.user_id == user_id)) > 0


class ProductRepository(BaseRepository):
    model = Product

    SORT_COLUMNS = {
        "title": Product.title,
        "price": (
            select(func.min(ProductVariant.price))
            .where(ProductVariant.product_id == Product.id)
            .correlate(Product)
            .scalar_subquery()
        ),
        "createdat": Product.created_at,
        "updatedat": Product.updated_at,
    }

    def get_by_handle(self, handle: str) -> Optional[Product]:
        return self.db.scalar(select(Product).where(Product.handle == handle))

    def exists_by_handle(self, handle: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        stmt = select(func.count(Product.id)).where(Product.handle == handle)
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        return self.db.scalar(stmt) > 0

    @staticmethod
    def _has_tag(tag: str):
        escaped = _escape_like(tag)
        return or_(
            Product.tags == tag,
            Product.tags.like(f"{escaped},%", escape="\\"),
            Product.tags.like(f"%,{escaped}", escape="\\"),
            Product.tags.like(f"%,{escaped},%", escape="\\"),
        )

    def _conditions(self, criteria: Optional[ProductSearchCriteria]) -> list:
        if criteria is None:
            return []
        conditions = []
        if criteria.search:
            term = criteria.search.strip()
            conditions.append(or_(
                _ci_contains(Product.title, term),
                _ci_contains(Product.description, term),
                _ci_contains(Product.vendor, term),
                _ci_contains(Product.product_type, term),
                _ci_contains(Product.tags, term),
            ))
        if criteria.category:
            conditions.append(_ci_equals(Product.product_type, criteria.category))
        if criteria.vendor:
            conditions.append(_ci_equals(Product.vendor, criteria.vendor))
        if criteria.min_price is not None:
            conditions.append(Product.variants.any(ProductVariant.price >= criteria.min_price))
        if criteria.max_price is not None:
            conditions.append(Product.variants.any(ProductVariant.price <= criteria.max_price))
        if criteria.in_stock is not None:
            in_stock = Product.variants.any(ProductVariant.inventory_quantity > 0)
            conditions.append(in_stock if criteria.in_stock else ~in_stock)
        if criteria.status:
            conditions.append(Product.status == criteria.status)
        if criteria.tags:
            conditions.append(or_(*[self._has_tag(tag) for tag in criteria.tags]))
        return conditions

    def search(self, criteria: ProductSearchCriteria, page: int = 1, page_size: int = 20) -> Tuple[List[Product], int]:
        conditions = self._conditions(criteria)
        total = self.get_count(criteria)
        stmt = select(Product).where(*conditions)
        stmt = _order_by(stmt, self.SORT_COLUMNS, Product.created_at, criteria.sort_by, criteria.sort_descending)
        products = self.db.scalars(_paginate(stmt, page, page_size)).all()
        return list(products), total

    def get_count(self, criteria: Optional[ProductSearchCriteria] = None) -> int:
        return self.db.scalar(select(func.count(Product.id)).where(*self._conditions(criteria)))

    def _newest(self, *conditions, page: int = 1, page_size: int = 20) -> List[Product]:
        stmt = select(Product).where(*conditions).order_by(Product.created_at.desc())
        return list(self.db.scalars(_paginate(stmt, page, page_size)).all())

    def get_by_category(self, category: str, page: int = 1, page_size: int = 20,
                        status: Optional[str] = None) -> List[Product]:
        conditions = [_ci_equals(Product.product_type, category)]
        if status:
            conditions.append(Product.status == status)
        return self._newest(*conditions, page=page, page_size=page_size)

    def get_by_vendor(self, vendor: str, page: int = 1, page_size: int = 20,
                      status: Optional[str] = None) -> List[Product]:
        conditions = [_ci_equals(Product.vendor, vendor)]
        if status:
            conditions.append(Product.status == status)
        return self._newest(*conditions, page=page, page_size=page_size)

    def get_featured(self, limit: int = 10) -> List[Product]:
        # No featured flag: the most recent active products stand in for it.
        return self._newest(Product.status == "active", page_size=limit)

    def get_related(self, product: Product, limit: int = 5) -> List[Product]:
        return self._newest(
            Product.id != product.id,
            Product.status == "active",
            or_(Product.product_type == product.product_type, Product.vendor == product.vendor),
            page_size=limit,
        )

    def _grouped_counts(self, column, status: Optional[str]) -> List[Tuple[str, int]]:
        stmt = select(column, func.count(Product.id)).group_by(column).order_by(column)
        if status:
            stmt = stmt.where(Product.status == status)
        return [(name, count) for name, count in self.db.execute(stmt).all()]

    def category_counts(self, status: Optional[str] = None) -> List[Tuple[str, int]]:
        return self._grouped_counts(Product.product_type, status)

    def vendor_counts(self, status: Optional[str] = None) -> List[Tuple[str, int]]:
        return self._grouped_counts(Product.vendor, status)

    def get_variant(self, product_id: uuid.UUID, sku: str) -> Optional[ProductVariant]:
        return self.db.scalar(
            select(ProductVariant).where(ProductVariant.product_id == product_id, ProductVariant.sku == sku)
        )

    def update_inventory(self, product_id: uuid.UUID, sku: str, delta: int) -> Optional[int]:
        variant = self.get_variant(product_id, sku)
        if variant is None:
            return None
        before = variant.inventory_quantity
        after = variant.adjust_inventory(delta)
        self.db.commit()
        logger.debug("Inventory %s/%s: %s -> %s (delta %s)", product_id, sku, before, after, delta)
        return after

    def get_inventory(self, product_id: uuid.UUID, sku: str) -> int:
        variant = self.get_variant(product_id, sku)
        return variant.inventory_quantity if variant else 0

    def is_referenced_by_orders(self, product_id: uuid.UUID) -> bool:
        return self.db.scalar(select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)) > 0


class OrderRepository(BaseRepository):
    model = Order

    SORT_COLUMNS = {
        "ordernumber": Order.order_number,
        "total": Order.total_amount,
        "status": Order.status,
        "paymentstatus": Order.payment_status,
        "createdat": Order.created_at,
        "updatedat": Order.updated_at,
    }

    def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return self.db.scalar(select(Order).where(Order.order_number == order_number))

    def _conditions(self, criteria: Optional[OrderSearchCriteria]) -> list:
        if criteria is None:
            return []
        conditions = []
        if criteria.search:
            term = criteria.search.strip()
            conditions.append(or_(
                _ci_contains(Order.order_number, term),
                _ci_contains(User.email, term),
                _ci_contains(User.first_name + " " + User.last_name, term),
                _ci_contains(Order.shipping_first_name, term),
                _ci_contains(Order.shipping_last_name, term),
            ))
        if criteria.status:
            conditions.append(_ci_equals(Order.status, criteria.status))
        if criteria.payment_status:
            conditions.append(and_(
                Order.payment_status.is_not(None),
                _ci_equals(Order.payment_status, criteria.payment_status),
            ))
        if criteria.user_id is not None:
            conditions.append(Order.user_id == criteria.user_id)
        if criteria.min_total is not None:
            conditions.append(Order.total_amount >= criteria.min_total)
        if criteria.max_total is not None:
            conditions.append(Order.total_amount <= criteria.max_total)
        if criteria.created_from:
            conditions.append(Order.created_at >= _utc(criteria.created_from))
        if criteria.created_to:
            conditions.append(Order.created_at <= _utc(criteria.created_to))
        return conditions

    def search(self, criteria: OrderSearchCriteria, page: int = 1, page_size: int = 20) -> Tuple[List[Order], int]:
        conditions = self._conditions(criteria)
        total = self.get_count(criteria)
        stmt = select(Order).join(User, Order.user_id == User.id).where(*conditions)
        stmt = _order_by(stmt, self.SORT_COLUMNS, Order.created_at, criteria.sort_by, criteria.sort_descending)
        orders = self.db.scalars(_paginate(stmt, page, page_size)).all()
        return list(orders), total

    def get_count(self, criteria: Optional[OrderSearchCriteria] = None) -> int:
        stmt = (
            select(func.count(Order.id))
            .select_from(Order)
            .join(User, Order.user_id == User.id)
            .where(*self._conditions(criteria))
        )
        return self.db.scalar(stmt)

    def count_by_status(self) -> Dict[str, int]:
        rows = self.db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status)).all()
        return {status: count for status, count in rows}

    def get_total_revenue(self, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None) -> float:
        stmt = select(func.coalesce(func.sum(Order.total_amount), 0))
        if from_date:
            stmt = stmt.where(Order.created_at >= _utc(from_date))
        if to_date:
            stmt = stmt.where(Order.created_at <= _utc(to_date))
        return round(float(self.db.scalar(stmt) or 0), 2)

    def update_status(self, order: Order, status: str) -> Order:
        now = datetime.now(timezone.utc)
        order.status = status
        if status == "shipped" and order.shipped_at is None:
            order.shipped_at = now
        if status == "delivered" and order.delivered_at is None:
            order.delivered_at = now
        return self.update(order)

    def update_shipping_info(self, order: Order, tracking_number: str, tracking_url: Optional[str]) -> Order:
        order.tracking_number = tracking_number
        order.tracking_url = tracking_url
        return self.update(order)

    def update_payment_info(self, order: Order, payment_status: str, transaction_id: Optional[str]) -> Order:
        order.payment_status = payment_status
        order.transaction_id = transaction_id
        return self.update(order)

    def generate_order_number(self) -> str:
        prefix = datetime.now(timezone.utc).strftime("%Y%m%d")
        last = self.db.scalar(
            select(Order.order_number)
            .where(Order.order_number.like(f"{prefix}%"))
            .order_by(func.length(Order.order_number).desc(), Order.order_number.desc())
            .limit(1)
        )
        sequence = 1
        if last:
            suffix = last[len(prefix):]
            if suffix.isdigit():
                sequence = int(suffix) + 1
        return f"{prefix}{sequence:04d}"
