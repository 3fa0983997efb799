import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import (
    ALLOWED_ORIGINS,
    API_VERSION,
    ENABLE_DEV_ENDPOINTS,
    LOG_LEVEL,
    PORT,
    SEED_ON_STARTUP,
    STORE_NAME,
)
from database import SessionLocal, get_db, init_db
from errors import ApiException, NotFoundError, UnauthorizedError, problem
from models import User
from schemas import (
    CountResponse,
    CreateOrderRequest,
    CreateProductRequest,
    CreateUserRequest,
    InventoryOut,
    InventoryUpdateRequest,
    LoginRequest,
    LoginResponse,
    NameCount,
    OrderOut,
    OrderSearchParams,
    OrderSearchResponse,
    OrderStats,
    OrderStatusUpdate,
    PasswordValidationRequest,
    PasswordValidationResponse,
    PaymentInfoUpdate,
    ProductOut,
    ProductSearchParams,
    ProductSearchResponse,
    RefreshTokenRequest,
    ShippingInfoUpdate,
    UpdateProductRequest,
    UpdateUserRequest,
    UserOut,
    UserSearchParams,
    UserSearchResponse,
)
from security import decode_access_token
from seed import seed_demo_data
from services import OrderService, ProductService, UserService

# Logging
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("wholesale")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if SEED_ON_STARTUP:
        with SessionLocal() as db:
            seed_demo_data(db)
    logger.info("%s v%s started", STORE_NAME, API_VERSION)
    yield


app = FastAPI(title=STORE_NAME, version=API_VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in ALLOWED_ORIGINS] if ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies
def get_optional_user(authorization: Optional[str] = Header(default=None),
                      db: Session = Depends(get_db)) -> Optional[User]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Invalid authorization header")
    token_data = decode_access_token(token)
    try:
        user_id = uuid.UUID(token_data.user_id)
    except ValueError:
        raise UnauthorizedError("Invalid user ID in token", title="Invalid token")
    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("Account is not active")
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise UnauthorizedError("Authorization required")
    return user


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_product_service(db: Session = Depends(get_db)) -> ProductService:
    return ProductService(db)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


# Error handlers
def _problem_response(title: str, detail: str, status: int) -> JSONResponse:
    return JSONResponse(status_code=status, content=problem(title, detail, status))


def _validation_detail(errors) -> str:
    messages = []
    for err in errors:
        loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(messages)


@app.exception_handler(ApiException)
async def api_exception_handler(request: Request, exc: ApiException):
    logger.warning("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, exc.title, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_problem())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    title = HTTPStatus(exc.status_code).phrase
    return _problem_response(title, str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    detail = _validation_detail(exc.errors())
    logger.warning("%s %s -> 400 validation: %s", request.method, request.url.path, detail)
    return _problem_response("Validation failed", detail, 400)


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    # search parameter models are built inside dependencies
    detail = _validation_detail(exc.errors())
    logger.warning("%s %s -> 400 validation: %s", request.method, request.url.path, detail)
    return _problem_response("Validation failed", detail, 400)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("%s %s -> 409 integrity error: %s", request.method, request.url.path, exc.orig)
    return _problem_response("Conflict", "The request conflicts with existing data", 409)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return _problem_response("Internal server error", "An unexpected error occurred", 500)


# Health and service info
@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api")
def api_info():
    return {
        "name": STORE_NAME,
        "version": API_VERSION,
        "endpoints": {
            "auth": "/api/auth",
            "users": "/api/users",
            "products": "/api/products",
            "orders": "/api/orders",
            "health": "/health",
        },
    }


# Auth
@app.post("/api/auth/login", response_model=LoginResponse)
def login(data: LoginRequest, users: UserService = Depends(get_user_service)):
    return users.login(data)


@app.post("/api/auth/register", response_model=UserOut, status_code=201)
def register(data: CreateUserRequest, users: UserService = Depends(get_user_service)):
    return users.create(data)


@app.post("/api/auth/refresh", response_model=LoginResponse)
def refresh(data: RefreshTokenRequest, users: UserService = Depends(get_user_service)):
    return users.refresh_token(data)


@app.post("/api/auth/logout", status_code=204)
def logout(user: User = Depends(get_current_user), users: UserService = Depends(get_user_service)):
    users.logout(user)
    return Response(status_code=204)


@app.get("/api/auth/profile", response_model=UserOut)
def get_profile(user: User = Depends(get_current_user)):
    return UserService.to_dto(user)


@app.put("/api/auth/profile", response_model=UserOut)
def update_profile(data: UpdateUserRequest, user: User = Depends(get_current_user),
                   users: UserService = Depends(get_user_service)):
    return users.update(user.id, data, user)


@app.post("/api/auth/validate-password", response_model=PasswordValidationResponse)
def validate_password(data: PasswordValidationRequest, user: User = Depends(get_current_user),
                      users: UserService = Depends(get_user_service)):
    return PasswordValidationResponse(is_valid=users.validate_password(user.email, data.password))


# Users
@app.get("/api/users", response_model=UserSearchResponse)
def search_users(params: UserSearchParams = Depends(), user: User = Depends(get_current_user),
                 users: UserService = Depends(get_user_service)):
    return users.search(params, user)


@app.get("/api/users/count", response_model=CountResponse)
def count_users(params: UserSearchParams = Depends(), user: User = Depends(get_current_user),
                users: UserService = Depends(get_user_service)):
    return CountResponse(count=users.count(params, user))


@app.get("/api/users/{user_id}", response_model=UserOut)
def get_user(user_id: uuid.UUID, user: User = Depends(get_current_user),
             users: UserService = Depends(get_user_service)):
    return users.get_by_id(user_id, user)


@app.post("/api/users", response_model=UserOut, status_code=201)
def create_user(data: CreateUserRequest, user: User = Depends(get_current_user),
                users: UserService = Depends(get_user_service)):
    return users.create_user(data, user)


@app.put("/api/users/{user_id}", response_model=UserOut)
def update_user(user_id: uuid.UUID, data: UpdateUserRequest, user: User = Depends(get_current_user),
                users: UserService = Depends(get_user_service)):
    return users.update(user_id, data, user)


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(user_id: uuid.UUID, user: User = Depends(get_current_user),
                users: UserService = Depends(get_user_service)):
    users.delete(user_id, user)
    return Response(status_code=204)


# Products
@app.get("/api/products", response_model=ProductSearchResponse)
def search_products(params: ProductSearchParams = Depends(), user: Optional[User] = Depends(get_optional_user),
                    products: ProductService = Depends(get_product_service)):
    return products.search(params, user)


@app.get("/api/products/count", response_model=CountResponse)
def count_products(params: ProductSearchParams = Depends(), user: Optional[User] = Depends(get_optional_user),
                   products: ProductService = Depends(get_product_service)):
    return CountResponse(count=products.count(params, user))


@app.get("/api/products/featured", response_model=List[ProductOut])
def featured_products(limit: int = Query(10, ge=1, le=100),
                      products: ProductService = Depends(get_product_service)):
    return products.get_featured(limit)


@app.get("/api/products/categories", response_model=List[NameCount])
def product_categories(user: Optional[User] = Depends(get_optional_user),
                       products: ProductService = Depends(get_product_service)):
    return products.categories(user)


@app.get("/api/products/vendors", response_model=List[NameCount])
def product_vendors(user: Optional[User] = Depends(get_optional_user),
                    products: ProductService = Depends(get_product_service)):
    return products.vendors(user)


@app.get("/api/products/handle/{handle}", response_model=ProductOut)
def get_product_by_handle(handle: str, user: Optional[User] = Depends(get_optional_user),
                          products: ProductService = Depends(get_product_service)):
    return products.get_by_handle(handle, user)


@app.get("/api/products/category/{category}", response_model=List[ProductOut])
def products_by_category(category: str, page: int = Query(1, ge=1), page_size: int = Query(20, ge=1, le=100),
                         user: Optional[User] = Depends(get_optional_user),
                         products: ProductService = Depends(get_product_service)):
    return products.get_by_category(category, page, page_size, user)


@app.get("/api/products/vendor/{vendor}", response_model=List[ProductOut])
def products_by_vendor(vendor: str, page: int = Query(1, ge=1), page_size: int = Query(20, ge=1, le=100),
                       user: Optional[User] = Depends(get_optional_user),
                       products: ProductService = Depends(get_product_service)):
    return products.get_by_vendor(vendor, page, page_size, user)


@app.get("/api/products/{id_or_handle}", response_model=ProductOut)
def get_product(id_or_handle: str, user: Optional[User] = Depends(get_optional_user),
                products: ProductService = Depends(get_product_service)):
    try:
        product_id = uuid.UUID(id_or_handle)
    except ValueError:
        return products.get_by_handle(id_or_handle, user)
    return products.get_by_id(product_id, user)


@app.get("/api/products/{product_id}/related", response_model=List[ProductOut])
def related_products(product_id: uuid.UUID, limit: int = Query(5, ge=1, le=50),
                     user: Optional[User] = Depends(get_optional_user),
                     products: ProductService = Depends(get_product_service)):
    return products.get_related(product_id, limit, user)


@app.post("/api/products", response_model=ProductOut, status_code=201)
def create_product(data: CreateProductRequest, user: User = Depends(get_current_user),
                   products: ProductService = Depends(get_product_service)):
    return products.create(data, user)


@app.put("/api/products/{product_id}", response_model=ProductOut)
def update_product(product_id: uuid.UUID, data: UpdateProductRequest, user: User = Depends(get_current_user),
                   products: ProductService = Depends(get_product_service)):
    return products.update(product_id, data, user)


@app.delete("/api/products/{product_id}", status_code=204)
def delete_product(product_id: uuid.UUID, user: User = Depends(get_current_user),
                   products: ProductService = Depends(get_product_service)):
    products.delete(product_id, user)
    return Response(status_code=204)


@app.put("/api/products/{product_id}/inventory", response_model=InventoryOut)
def update_inventory(product_id: uuid.UUID, data: InventoryUpdateRequest, user: User = Depends(get_current_user),
                     products: ProductService = Depends(get_product_service)):
    return products.update_inventory(product_id, data.sku, data.quantity, user)


@app.get("/api/products/{product_id}/inventory", response_model=InventoryOut)
def get_inventory(product_id: uuid.UUID, sku: str = Query(..., min_length=1),
                  user: Optional[User] = Depends(get_optional_user),
                  products: ProductService = Depends(get_product_service)):
    return products.get_inventory(product_id, sku, user)


# Orders
@app.post("/api/orders", response_model=OrderOut, status_code=201)
def create_order(data: CreateOrderRequest, user: User = Depends(get_current_user),
                 orders: OrderService = Depends(get_order_service)):
    return orders.create(data, user)


@app.get("/api/orders", response_model=OrderSearchResponse)
def search_orders(params: OrderSearchParams = Depends(), user: User = Depends(get_current_user),
                  orders: OrderService = Depends(get_order_service)):
    return orders.search(params, user)


@app.get("/api/orders/count", response_model=CountResponse)
def count_orders(params: OrderSearchParams = Depends(), user: User = Depends(get_current_user),
                 orders: OrderService = Depends(get_order_service)):
    return CountResponse(count=orders.count(params, user))


@app.get("/api/orders/stats", response_model=OrderStats)
def order_stats(from_date: Optional[datetime] = None, to_date: Optional[datetime] = None,
                user: User = Depends(get_current_user), orders: OrderService = Depends(get_order_service)):
    return orders.stats(user, from_date, to_date)


@app.get("/api/orders/number/{order_number}", response_model=OrderOut)
def get_order_by_number(order_number: str, user: User = Depends(get_current_user),
                        orders: OrderService = Depends(get_order_service)):
    return orders.get_by_order_number(order_number, user)


@app.get("/api/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: uuid.UUID, user: User = Depends(get_current_user),
              orders: OrderService = Depends(get_order_service)):
    return orders.get_by_id(order_id, user)


@app.put("/api/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: uuid.UUID, data: OrderStatusUpdate, user: User = Depends(get_current_user),
                        orders: OrderService = Depends(get_order_service)):
    return orders.update_status(order_id, data.status, user)


@app.post("/api/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: uuid.UUID, user: User = Depends(get_current_user),
                 orders: OrderService = Depends(get_order_service)):
    return orders.cancel(order_id, user)


@app.put("/api/orders/{order_id}/shipping", response_model=OrderOut)
def update_order_shipping(order_id: uuid.UUID, data: ShippingInfoUpdate, user: User = Depends(get_current_user),
                          orders: OrderService = Depends(get_order_service)):
    return orders.update_shipping_info(order_id, data.tracking_number, data.tracking_url, user)


@app.put("/api/orders/{order_id}/payment", response_model=OrderOut)
def update_order_payment(order_id: uuid.UUID, data: PaymentInfoUpdate, user: User = Depends(get_current_user),
                         orders: OrderService = Depends(get_order_service)):
    return orders.update_payment_info(order_id, data.payment_status, data.transaction_id, user)


@app.delete("/api/orders/{order_id}", status_code=204)
def delete_order(order_id: uuid.UUID, user: User = Depends(get_current_user),
                 orders: OrderService = Depends(get_order_service)):
    orders.delete(order_id, user)
    return Response(status_code=204)


# Sample seed endpoint (dev only)
@app.post("/dev/seed")
def seed(db: Session = Depends(get_db)):
    if not ENABLE_DEV_ENDPOINTS:
        raise NotFoundError("Not found")
    return seed_demo_data(db)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
