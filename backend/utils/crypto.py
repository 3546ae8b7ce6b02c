import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from config.env import BANK_DATA_ENCRYPTION_KEY
from utils.errors import ValidationError


def _payout_fernet() -> Fernet:
    # any string works as a seed; Fernet wants 32 urlsafe-b64 bytes
    seed = (BANK_DATA_ENCRYPTION_KEY or "").strip()
    if not seed:
        raise RuntimeError("BANK_DATA_ENCRYPTION_KEY is not configured")
    return Fernet(base64.urlsafe_b64encode(hashlib.sha256(seed.encode("utf-8")).digest()))


def encrypt_account(value: str) -> str:
    """Encrypt a payout account identifier (phone or bank account number)."""
    if not value:
        raise ValidationError("Payout account is missing", field="account")
    return _payout_fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_account(token: str) -> str:
    if not token:
        raise ValidationError("Encrypted payout account is missing", field="account")
    try:
        raw = _payout_fernet().decrypt(token.encode("utf-8"))
    except InvalidToken:
        raise ValidationError("Encrypted payout account is unreadable", field="account")
    return raw.decode("utf-8")
