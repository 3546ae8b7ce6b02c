import re

from config.constants import (
    BANK_ACCOUNT_MAX_DIGITS,
    BANK_ACCOUNT_MIN_DIGITS,
    MOBILE_MONEY_PROVIDERS,
    PAYOUT_METHOD_BANK_TRANSFER,
    PAYOUT_METHOD_MOBILE_MONEY,
    PAYOUT_METHODS,
)
from utils.errors import ValidationError

# +255 / 255 / 0 prefix optional, then a 6x or 7x subscriber number
PHONE_REGEX = re.compile(r"^(?:\+?255|0)?([67]\d{8})$", re.ASCII)
_SEPARATORS = re.compile(r"[\s\-()]")
ACCOUNT_DIGITS = re.compile(r"\d+", re.ASCII)


def normalize_phone(phone: str) -> str:
    phone = _SEPARATORS.sub("", phone or "")

    match = PHONE_REGEX.match(phone)
    if not match:
        raise ValueError("Invalid phone number format")

    return "+255" + match.group(1)


def mask_phone(phone: str) -> str:
    """+255712345678 -> +255 712 *** 678"""
    local = normalize_phone(phone)[4:]
    return f"+255 {local[:3]} *** {local[-3:]}"


def mask_account_number(account_number: str) -> str:
    return "****" + account_number[-4:]


def _provider_key(value) -> str:
    if not isinstance(value, str):
        return ""
    return re.sub(r"[\s\-_]", "", value).lower()


def _required_text(raw: dict, field: str) -> str:
    value = raw.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def validate_destination(raw) -> dict:
    """
    Check a payout destination supplied by the seller.

    Returns the normalized destination with the full account identifier
    under "account". Callers mask and encrypt it before persisting.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Payout destination must be an object", field="destination")

    method = raw.get("method")
    if not isinstance(method, str) or method not in PAYOUT_METHODS:
        raise ValidationError(
            "Unsupported payout method",
            field="method",
            allowed=sorted(PAYOUT_METHODS),
        )

    if method == PAYOUT_METHOD_MOBILE_MONEY:
        provider = MOBILE_MONEY_PROVIDERS.get(_provider_key(raw.get("provider")))
        if not provider:
            raise ValidationError(
                "Unsupported mobile money provider",
                field="provider",
                allowed=sorted(MOBILE_MONEY_PROVIDERS.values()),
            )
        try:
            phone = normalize_phone(_required_text(raw, "phone"))
        except ValueError:
            raise ValidationError("Invalid phone number format", field="phone")

        account_name = raw.get("account_name")
        return {
            "method": PAYOUT_METHOD_MOBILE_MONEY,
            "provider": provider,
            "bank_name": None,
            "account_name": account_name.strip() if isinstance(account_name, str) and account_name.strip() else None,
            "account": phone,
        }

    # bank transfer
    bank_name = _required_text(raw, "bank_name")
    account_name = _required_text(raw, "account_name")
    account_number = _SEPARATORS.sub("", _required_text(raw, "account_number"))
    if not ACCOUNT_DIGITS.fullmatch(account_number) or not (
        BANK_ACCOUNT_MIN_DIGITS <= len(account_number) <= BANK_ACCOUNT_MAX_DIGITS
    ):
        raise ValidationError(
            f"Bank account number must be {BANK_ACCOUNT_MIN_DIGITS}-{BANK_ACCOUNT_MAX_DIGITS} digits",
            field="account_number",
        )

    return {
        "method": PAYOUT_METHOD_BANK_TRANSFER,
        "provider": None,
        "bank_name": bank_name,
        "account_name": account_name,
        "account": account_number,
    }


def mask_destination_account(destination: dict) -> str:
    if destination["method"] == PAYOUT_METHOD_MOBILE_MONEY:
        return mask_phone(destination["account"])
    return mask_account_number(destination["account"])
