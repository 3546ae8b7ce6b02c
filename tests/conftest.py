import os

os.environ.setdefault("ENV", "test")
os.environ["STORE_BACKEND"] = "memory"
os.environ["WORKERS_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("BANK_DATA_ENCRYPTION_KEY", "test-bank-key")

from datetime import datetime

import pytest

from factories import add_user
from utils.memory_store import MemoryOrderStore


@pytest.fixture
def store():
    return MemoryOrderStore()


@pytest.fixture
def now():
    return datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
async def seller(store):
    await add_user(store, "seller-1")
    return "seller-1"


@pytest.fixture
async def admin(store):
    await add_user(store, "admin-1", role="admin")
    return "admin-1"
