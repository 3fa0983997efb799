import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./wholesale.db")
SQL_ECHO = _flag("SQL_ECHO")

# Security
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret_change_me")
JWT_ALGORITHM = "HS256"
JWT_ISSUER = os.getenv("JWT_ISSUER", "WholesaleEcommerce")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "WholesaleEcommerceUsers")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Store
STORE_NAME = os.getenv("STORE_NAME", "Wholesale E-commerce API")
API_VERSION = "1.0.0"
PRIMARY_CURRENCY = os.getenv("PRIMARY_CURRENCY", "USD")
DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", "0.0"))
SHIPPING_STANDARD = float(os.getenv("SHIPPING_STANDARD", "0.0"))
SHIPPING_EXPRESS = float(os.getenv("SHIPPING_EXPRESS", "25.0"))
FREE_SHIPPING_THRESHOLD = float(os.getenv("FREE_SHIPPING_THRESHOLD", "0"))  # 0 disables

# Runtime
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_DEV_ENDPOINTS = _flag("ENABLE_DEV_ENDPOINTS")
SEED_ON_STARTUP = _flag("SEED_ON_STARTUP")
PORT = int(os.getenv("PORT", "8000"))
