"""
Python client for the Wholesale E-commerce API.

Plays the role of the web frontend's API service and auth store: it keeps the
current tokens, attaches the bearer header, refreshes once on a 401 and turns
problem-details responses into `ApiError`.

    client = WholesaleClient("http://localhost:8000")
    client.login("admin@wholesale.com", "admin123")
    page = client.search_products(search="drill", page_size=10)

Any object with a `requests.Session`-style `request()` method can be passed
as `session` (FastAPI's `TestClient` works).
"""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger("wholesale.client")

NO_REFRESH_PATHS = ("/api/auth/login", "/api/auth/register", "/api/auth/refresh")


class ApiError(Exception):
    def __init__(self, status: int, title: str, detail: str = ""):
        super().__init__(f"{status} {title}: {detail}" if detail else f"{status} {title}")
        self.status = status
        self.title = title
        self.detail = detail

    @classmethod
    def from_response(cls, response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            return cls(response.status_code, body.get("title") or "Request failed", body.get("detail") or "")
        return cls(response.status_code, "Request failed", response.text or "")


class TokenStore:
    """In-memory auth state: tokens plus the logged-in user."""

    def __init__(self):
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None

    def set(self, login_response: Dict[str, Any]) -> None:
        self.access_token = login_response.get("access_token")
        self.refresh_token = login_response.get("refresh_token")
        self.user = login_response.get("user")

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"


class WholesaleClient:
    def __init__(self, base_url: str = "http://localhost:8000", session=None,
                 tokens: Optional[TokenStore] = None, timeout: Optional[float] = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.tokens = tokens if tokens is not None else TokenStore()
        self.timeout = timeout

    # --- transport ---

    def _send(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None):
        headers = {"Accept": "application/json"}
        if self.tokens.access_token:
            headers["Authorization"] = f"Bearer {self.tokens.access_token}"
        kwargs: Dict[str, Any] = {"headers": headers}
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if json is not None:
            kwargs["json"] = json
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return self.session.request(method, f"{self.base_url}{path}", **kwargs)

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None):
        response = self._send(method, path, params=params, json=json)
        if response.status_code == 401 and self.tokens.refresh_token and path not in NO_REFRESH_PATHS:
            logger.info("Access token rejected, refreshing")
            if self._try_refresh():
                response = self._send(method, path, params=params, json=json)
        if response.status_code >= 400:
            raise ApiError.from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _try_refresh(self) -> bool:
        refresh_token = self.tokens.refresh_token
        self.tokens.access_token = None
        response = self._send("POST", "/api/auth/refresh", json={"refresh_token": refresh_token})
        if response.status_code != 200:
            logger.warning("Token refresh failed with status %s", response.status_code)
            self.tokens.clear()
            return False
        self.tokens.set(response.json())
        return True

    def get(self, path: str, **params):
        return self._request("GET", path, params=params)

    def post(self, path: str, data: Any = None):
        return self._request("POST", path, json=data)

    def put(self, path: str, data: Any = None):
        return self._request("PUT", path, json=data)

    def delete(self, path: str):
        return self._request("DELETE", path)

    # --- auth ---

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self.post("/api/auth/login", {"email": email, "password": password})
        self.tokens.set(data)
        return data

    def register(self, email: str, password: str, first_name: str, last_name: str,
                 role: str = "wholesale") -> Dict[str, Any]:
        return self.post("/api/auth/register", {
            "email": email,
            "password": password,
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
        })

    def refresh(self) -> Dict[str, Any]:
        data = self.post("/api/auth/refresh", {"refresh_token": self.tokens.refresh_token})
        self.tokens.set(data)
        return data

    def logout(self) -> None:
        try:
            if self.tokens.access_token:
                self.post("/api/auth/logout")
        finally:
            self.tokens.clear()

    def profile(self) -> Dict[str, Any]:
        user = self.get("/api/auth/profile")
        self.tokens.user = user
        return user

    def update_profile(self, **fields) -> Dict[str, Any]:
        user = self.put("/api/auth/profile", fields)
        self.tokens.user = user
        return user

    def validate_password(self, password: str) -> bool:
        return self.post("/api/auth/validate-password", {"password": password})["is_valid"]

    # --- products ---

    def search_products(self, **params) -> Dict[str, Any]:
        return self.get("/api/products", **params)

    def count_products(self, **params) -> int:
        return self.get("/api/products/count", **params)["count"]

    def get_product(self, id_or_handle: str) -> Dict[str, Any]:
        return self.get(f"/api/products/{id_or_handle}")

    def get_product_by_handle(self, handle: str) -> Dict[str, Any]:
        return self.get(f"/api/products/handle/{handle}")

    def products_by_category(self, category: str, page: int = 1, page_size: int = 20):
        return self.get(f"/api/products/category/{category}", page=page, page_size=page_size)

    def products_by_vendor(self, vendor: str, page: int = 1, page_size: int = 20):
        return self.get(f"/api/products/vendor/{vendor}", page=page, page_size=page_size)

    def featured_products(self, limit: int = 10):
        return self.get("/api/products/featured", limit=limit)

    def related_products(self, product_id: str, limit: int = 5):
        return self.get(f"/api/products/{product_id}/related", limit=limit)

    def categories(self):
        return self.get("/api/products/categories")

    def vendors(self):
        return self.get("/api/products/vendors")

    def create_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        return self.post("/api/products", product)

    def update_product(self, product_id: str, **fields) -> Dict[str, Any]:
        return self.put(f"/api/products/{product_id}", fields)

    def delete_product(self, product_id: str) -> None:
        self.delete(f"/api/products/{product_id}")

    def update_inventory(self, product_id: str, sku: str, quantity: int) -> Dict[str, Any]:
        return self.put(f"/api/products/{product_id}/inventory", {"sku": sku, "quantity": quantity})

    def get_inventory(self, product_id: str, sku: str) -> int:
        return self.get(f"/api/products/{product_id}/inventory", sku=sku)["inventory_quantity"]

    # --- users ---

    def search_users(self, **params) -> Dict[str, Any]:
        return self.get("/api/users", **params)

    def get_user(self, user_id: str) -> Dict[str, Any]:
        return self.get(f"/api/users/{user_id}")

    def create_user(self, **fields) -> Dict[str, Any]:
        return self.post("/api/users", fields)

    def update_user(self, user_id: str, **fields) -> Dict[str, Any]:
        return self.put(f"/api/users/{user_id}", fields)

    def delete_user(self, user_id: str) -> None:
        self.delete(f"/api/users/{user_id}")

    # --- orders ---

    def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return self.post("/api/orders", order)

    def search_orders(self, **params) -> Dict[str, Any]:
        return self.get("/api/orders", **params)

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self.get(f"/api/orders/{order_id}")

    def get_order_by_number(self, order_number: str) -> Dict[str, Any]:
        return self.get(f"/api/orders/number/{order_number}")

    def cancel_order(self, order_id: str) -> Dict[str, Any]:
        return self.post(f"/api/orders/{order_id}/cancel")

    def update_order_status(self, order_id: str, status: str) -> Dict[str, Any]:
        return self.put(f"/api/orders/{order_id}/status", {"status": status})

    def order_stats(self) -> Dict[str, Any]:
        return self.get("/api/orders/stats")

    def health(self) -> Dict[str, Any]:
        return self.get("/health")
