import os
from dotenv import load_dotenv

load_dotenv()

# =====================================================
# ENV
# =====================================================
ENV = os.getenv("ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =====================================================
# DATABASE
# =====================================================
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")
STORE_BACKEND = os.getenv("STORE_BACKEND", "mongo").lower()

# =====================================================
# JWT
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES", 60))

# =====================================================
# SECRETS
# =====================================================
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET")
BANK_DATA_ENCRYPTION_KEY = os.getenv("BANK_DATA_ENCRYPTION_KEY")

# =====================================================
# ORDERS / ESCROW
# =====================================================
MIN_ORDER_AMOUNT = int(os.getenv("MIN_ORDER_AMOUNT", 100))
PAYMENT_LINK_EXPIRY_HOURS = int(os.getenv("PAYMENT_LINK_EXPIRY_HOURS", 24))
DELIVERY_GRACE_HOURS = int(os.getenv("DELIVERY_GRACE_HOURS", 72))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# =====================================================
# PAYOUTS / LEDGER
# =====================================================
MIN_WITHDRAWAL_AMOUNT = int(os.getenv("MIN_WITHDRAWAL_AMOUNT", 1000))
LEDGER_CACHE_TTL_SECONDS = int(os.getenv("LEDGER_CACHE_TTL_SECONDS", 30))

# =====================================================
# WORKERS
# =====================================================
WORKERS_ENABLED = os.getenv("WORKERS_ENABLED", "true").lower() in {"1", "true", "yes"}

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")


def validate_production_env() -> None:
    if (ENV or "").lower() != "production":
        return

    required = {
        "JWT_SECRET": JWT_SECRET,
        "PAYMENT_WEBHOOK_SECRET": PAYMENT_WEBHOOK_SECRET,
        "BANK_DATA_ENCRYPTION_KEY": BANK_DATA_ENCRYPTION_KEY,
        "MONGODB_URI": MONGO_URI,
    }

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if STORE_BACKEND != "mongo":
        invalid.append("STORE_BACKEND")

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")
