import hashlib
import hmac

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from passlib.context import CryptContext

from config.env import PAYMENT_WEBHOOK_SECRET
from database import get_store
from models.user import Identity, Role
from utils.errors import Unauthorized
from utils.jwt import decode_token

security = HTTPBearer(auto_error=False)

# ==============================
# Passwords (bcrypt)
# ==============================

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto"
)

# bcrypt hard limit
MAX_BCRYPT_BYTES = 72


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > MAX_BCRYPT_BYTES:
        raise ValueError("Password too long (max 72 bytes)")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Re-check a password. Oversized input and unreadable legacy
    hashes count as a mismatch.
    """
    if not plain_password or not hashed_password:
        return False
    if len(plain_password.encode("utf-8")) > MAX_BCRYPT_BYTES:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


# ==============================
# Bearer identity
# ==============================

async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    store=Depends(get_store),
) -> Identity:
    if credentials is None:
        raise Unauthorized("Missing bearer token")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise Unauthorized("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token payload")

    user = await store.find_user(user_id)
    if not user:
        raise Unauthorized("User not found")

    return Identity(user_id=user["id"], role=user["role"])


def require_role(required_role: Role):
    async def checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role != required_role:
            raise Unauthorized(f"{required_role.value.capitalize()} access only")
        return identity

    return checker


get_current_seller = require_role(Role.SELLER)
get_current_admin = require_role(Role.ADMIN)


# ==============================
# Payment notifier signature
# ==============================

def verify_payment_signature(*, raw_body: bytes, received_signature: str | None) -> bool:
    if not PAYMENT_WEBHOOK_SECRET:
        raise RuntimeError("PAYMENT_WEBHOOK_SECRET is not configured")
    if not received_signature:
        return False
    expected = hmac.new(
        PAYMENT_WEBHOOK_SECRET.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, received_signature)
