import asyncio

import pytest

from factories import SELLER_PASSWORD, add_user, mobile_money, seed_order
from models.order import OrderStatus
from models.user import AuthProof, Identity, Role
from utils.crypto import decrypt_account
from utils.errors import (
    BelowMinimum,
    Conflict,
    InsufficientBalance,
    Unauthorized,
    ValidationError,
)
from utils.ledger import get_ledger
from utils.withdrawals import list_withdrawals, request_withdrawal


def proof(user_id="seller-1", role=Role.SELLER, password=SELLER_PASSWORD):
    return AuthProof(identity=Identity(user_id=user_id, role=role), password=password)


@pytest.fixture
async def funded(store, seller):
    await seed_order(store, amount=100_000, status=OrderStatus.COMPLETED)
    return seller


async def test_withdrawal_appends_masked_record(store, funded):
    record = await request_withdrawal(store, funded, 60_000, mobile_money(provider="mpesa"), proof())

    assert record.id.startswith("WTH-")
    assert record.seq == 1
    assert record.destination.provider == "M-Pesa"
    assert record.destination.account_masked == "+255 712 *** 678"
    assert "712345678" not in record.destination.account_encrypted
    assert decrypt_account(record.destination.account_encrypted) == "+255712345678"
    assert "account_encrypted" not in record.public()["destination"]

    assert [w.id for w in await list_withdrawals(store, funded)] == [record.id]
    assert store.audit_logs[-1]["action"] == "WITHDRAWAL_REQUESTED"


async def test_bank_transfer_destination(store, funded):
    destination = {
        "method": "bank_transfer",
        "bank_name": "CRDB",
        "account_name": "Duka Ltd",
        "account_number": "0150 2233 4455 678",
    }

    record = await request_withdrawal(store, funded, 5_000, destination, proof())

    assert record.destination.account_masked == "****5678"
    assert record.destination.bank_name == "CRDB"
    assert decrypt_account(record.destination.account_encrypted) == "015022334455678"


async def test_withdrawal_invalidates_cached_ledger(store, funded):
    assert (await get_ledger(store, funded)).available == 100_000

    await request_withdrawal(store, funded, 25_000, mobile_money(), proof())

    snapshot = await get_ledger(store, funded)
    assert snapshot.available == 75_000
    assert snapshot.withdrawn == 25_000


# ------------------------------------------------------
# precondition order
# ------------------------------------------------------

@pytest.mark.parametrize("auth", [
    proof(user_id="seller-2"),
    proof(role=Role.ADMIN),
    proof(password="wrong"),
])
async def test_auth_is_checked_before_anything_else(store, funded, auth):
    with pytest.raises(Unauthorized):
        await request_withdrawal(store, funded, "not-a-number", {"method": "carrier-pigeon"}, auth)


async def test_unknown_account(store):
    with pytest.raises(Unauthorized):
        await request_withdrawal(store, "seller-9", 5_000, mobile_money(), proof(user_id="seller-9"))


async def test_admin_account_cannot_withdraw(store):
    await add_user(store, "admin-1", role="admin")

    with pytest.raises(Unauthorized):
        await request_withdrawal(store, "admin-1", 5_000, mobile_money(), proof(user_id="admin-1"))


@pytest.mark.parametrize("amount", ["5000", 5000.0, True, None])
async def test_amount_must_be_integer(store, funded, amount):
    with pytest.raises(ValidationError):
        await request_withdrawal(store, funded, amount, mobile_money(), proof())


async def test_below_minimum_before_balance(store, seller):
    with pytest.raises(BelowMinimum) as exc:
        await request_withdrawal(store, seller, 999, {"method": "carrier-pigeon"}, proof())

    assert exc.value.context == {"requested": 999, "minimum": 1000}


async def test_balance_before_destination(store, funded):
    with pytest.raises(InsufficientBalance) as exc:
        await request_withdrawal(store, funded, 100_001, {"method": "carrier-pigeon"}, proof())

    assert exc.value.context["available"] == 100_000


@pytest.mark.parametrize("destination", [
    {"method": "carrier-pigeon"},
    mobile_money(provider="Vodacom Cash"),
    mobile_money(phone="+254712345678"),
    mobile_money(phone="0812345678"),
    {"method": "bank_transfer", "bank_name": "NMB", "account_name": "Duka", "account_number": "1234"},
    {"method": "bank_transfer", "bank_name": "NMB", "account_number": "12345678"},
    "mpesa",
    {"method": ["mobile_money"], "provider": "M-Pesa", "phone": "0712345678"},
    {"method": "mobile_money", "provider": 123, "phone": "0712345678"},
    {"method": "bank_transfer", "bank_name": "NMB", "account_name": "Duka", "account_number": "\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668"},
    mobile_money(phone="07\u0661\u0662345678"),
])
async def test_invalid_destination(store, funded, destination):
    with pytest.raises(ValidationError):
        await request_withdrawal(store, funded, 5_000, destination, proof())

    assert await list_withdrawals(store, funded) == []


async def test_escrow_is_not_withdrawable(store, seller):
    await seed_order(store, amount=100_000, status=OrderStatus.DELIVERED)

    with pytest.raises(InsufficientBalance):
        await request_withdrawal(store, seller, 1_000, mobile_money(), proof())


# ------------------------------------------------------
# retries and races
# ------------------------------------------------------

async def test_repeated_request_id_returns_original(store, funded):
    first = await request_withdrawal(store, funded, 10_000, mobile_money(), proof(), request_id="req-1")
    again = await request_withdrawal(store, funded, 10_000, mobile_money(), proof(), request_id="req-1")

    assert again == first
    assert len(await list_withdrawals(store, funded)) == 1


async def test_concurrent_withdrawals_cannot_overdraw(store, funded):
    results = await asyncio.gather(
        request_withdrawal(store, funded, 60_000, mobile_money(), proof()),
        request_withdrawal(store, funded, 60_000, mobile_money(), proof()),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientBalance)
    assert sum(w.amount for w in await list_withdrawals(store, funded)) == 60_000


async def test_many_concurrent_withdrawals_respect_balance(store, funded):
    results = await asyncio.gather(
        *[request_withdrawal(store, funded, 30_000, mobile_money(), proof()) for _ in range(5)],
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    assert len(succeeded) == 3
    assert sorted(r.seq for r in succeeded) == [1, 2, 3]
    assert len(store.locks) == 0


async def test_lost_sequence_race_is_conflict(store, funded, monkeypatch):
    await request_withdrawal(store, funded, 10_000, mobile_money(), proof())

    async def stale_seq(seller_id):
        # another process appended after this one read the head
        return 0

    monkeypatch.setattr(store, "withdrawal_seq", stale_seq)

    with pytest.raises(Conflict):
        await request_withdrawal(store, funded, 10_000, mobile_money(), proof())

    assert len(store.withdrawals) == 1
