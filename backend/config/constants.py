# backend/config/constants.py

# -----------------------------
# PAYOUT CHANNELS
# -----------------------------

PAYOUT_METHOD_MOBILE_MONEY = "mobile_money"
PAYOUT_METHOD_BANK_TRANSFER = "bank_transfer"

PAYOUT_METHODS = {PAYOUT_METHOD_MOBILE_MONEY, PAYOUT_METHOD_BANK_TRANSFER}

# canonical provider name by lookup key (lowercase, no spaces/dashes)
MOBILE_MONEY_PROVIDERS = {
    "mpesa": "M-Pesa",
    "tigopesa": "Tigo Pesa",
    "airtelmoney": "Airtel Money",
    "halopesa": "HaloPesa",
}

BANK_ACCOUNT_MIN_DIGITS = 8
BANK_ACCOUNT_MAX_DIGITS = 20

# -----------------------------
# DISPUTES
# -----------------------------

DISPUTE_REASON_MAX_LENGTH = 500
DISPUTE_DESCRIPTION_MAX_LENGTH = 5000

# -----------------------------
# RATE LIMITS
# -----------------------------

WITHDRAWAL_MAX_REQUESTS = 5           # per seller
WITHDRAWAL_WINDOW_SECONDS = 60 * 10
