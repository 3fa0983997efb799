"""
Demo data for local development.

Creates one account per role and a small catalog. Safe to run repeatedly:
existing users (by email) and products (by handle) are left alone.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from models import Product, ProductImage, ProductOption, ProductVariant, User
from repositories import ProductRepository, UserRepository
from security import hash_password

logger = logging.getLogger("wholesale.seed")

DEMO_USERS = [
    {"email": "admin@wholesale.com", "password": "admin123", "first_name": "Admin", "last_name": "User",
     "role": "admin"},
    {"email": "wholesale@example.com", "password": "wholesale123", "first_name": "Wendy", "last_name": "Buyer",
     "role": "wholesale"},
    {"email": "retail@example.com", "password": "retail123", "first_name": "Rick", "last_name": "Shopper",
     "role": "retail"},
]

DEMO_PRODUCTS = [
    {
        "title": "Cordless Drill 18V",
        "handle": "cordless-drill-18v",
        "description": "Compact 18V drill driver with two batteries",
        "vendor": "Acme Tools",
        "product_type": "Power Tools",
        "tags": ["drill", "cordless", "bulk"],
        "images": [{"url": "https://images.unsplash.com/photo-1504148455328-c376907d081c", "position": 1}],
        "options": [{"name": "Kit", "position": 1, "values": ["Bare", "Kit"]}],
        "variants": [
            {"title": "Bare tool", "sku": "ACME-DRL-18-BARE", "price": 79.0, "inventory_quantity": 120,
             "option1": "Bare"},
            {"title": "Kit", "sku": "ACME-DRL-18-KIT", "price": 129.0, "compare_at_price": 149.0,
             "inventory_quantity": 60, "option1": "Kit"},
        ],
    },
    {
        "title": "Safety Gloves (Pack of 12)",
        "handle": "safety-gloves-12",
        "description": "Nitrile coated work gloves sold by the dozen",
        "vendor": "SafeHands",
        "product_type": "Safety",
        "tags": ["gloves", "ppe"],
        "images": [{"url": "https://images.unsplash.com/photo-1583947215259-38e31be8751f", "position": 1}],
        "options": [{"name": "Size", "position": 1, "values": ["M", "L"]}],
        "variants": [
            {"title": "Medium", "sku": "SH-GLV-12-M", "price": 24.5, "inventory_quantity": 500, "option1": "M"},
            {"title": "Large", "sku": "SH-GLV-12-L", "price": 24.5, "inventory_quantity": 350, "option1": "L"},
        ],
    },
    {
        "title": "Shop Vacuum 30L",
        "handle": "shop-vacuum-30l",
        "description": "Wet and dry vacuum for workshops",
        "vendor": "Acme Tools",
        "product_type": "Cleaning",
        "tags": ["vacuum"],
        "status": "draft",
        "variants": [
            {"title": "Default", "sku": "ACME-VAC-30", "price": 149.99, "inventory_quantity": 0},
        ],
    },
]


def _seed_users(users: UserRepository) -> int:
    created = 0
    for data in DEMO_USERS:
        if users.exists_by_email(data["email"]):
            continue
        users.add(User(
            email=data["email"],
            password_hash=hash_password(data["password"]),
            first_name=data["first_name"],
            last_name=data["last_name"],
            role=data["role"],
            status="active",
        ))
        created += 1
    return created


def _seed_products(products: ProductRepository) -> int:
    created = 0
    for data in DEMO_PRODUCTS:
        if products.exists_by_handle(data["handle"]):
            continue
        status = data.get("status", "active")
        product = Product(
            title=data["title"],
            handle=data["handle"],
            description=data["description"],
            vendor=data["vendor"],
            product_type=data["product_type"],
            tags=data["tags"],
            status=status,
            published_at=datetime.now(timezone.utc) if status == "active" else None,
        )
        product.variants = [ProductVariant(**v) for v in data["variants"]]
        product.images = [ProductImage(**i) for i in data.get("images", [])]
        product.options = [ProductOption(**o) for o in data.get("options", [])]
        products.add(product)
        created += 1
    return created


def seed_demo_data(db: Session) -> dict:
    users = _seed_users(UserRepository(db))
    products = _seed_products(ProductRepository(db))
    logger.info("Seeded %s users and %s products", users, products)
    return {"ok": True, "users_created": users, "products_created": products}
