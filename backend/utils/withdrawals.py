import logging
from datetime import datetime
from typing import List, Optional

from config.env import MIN_WITHDRAWAL_AMOUNT
from models.user import AuthProof, Role
from models.withdrawal import PayoutDestination, WithdrawalRecord
from utils.audit import log_audit
from utils.crypto import encrypt_account
from utils.errors import (
    BelowMinimum,
    Conflict,
    InsufficientBalance,
    Unauthorized,
    ValidationError,
)
from utils.ids import generate_reference
from utils.ledger import derive_fresh
from utils.security import verify_password
from utils.validators import mask_destination_account, validate_destination

logger = logging.getLogger(__name__)


async def _authenticate(store, seller_id: str, auth_proof: AuthProof):
    identity = auth_proof.identity if auth_proof else None
    if identity is None or identity.user_id != seller_id or identity.role != Role.SELLER:
        raise Unauthorized("Identity does not match the seller account")

    user = await store.find_user(seller_id)
    if not user or user.get("role") != Role.SELLER.value:
        raise Unauthorized("Seller account not found")

    if not verify_password(auth_proof.password, user.get("password_hash")):
        raise Unauthorized("Password verification failed")


def _check_amount(amount) -> int:
    # bool is an int subclass; True is not a withdrawal amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be a whole number", field="amount")
    if amount < MIN_WITHDRAWAL_AMOUNT:
        raise BelowMinimum(requested=amount, minimum=MIN_WITHDRAWAL_AMOUNT)
    return amount


async def list_withdrawals(store, seller_id: str) -> List[WithdrawalRecord]:
    return await store.find_withdrawals(seller_id)


async def request_withdrawal(
    store,
    seller_id: str,
    amount,
    destination,
    auth_proof: AuthProof,
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WithdrawalRecord:
    """
    Append one withdrawal against the seller's available balance.

    Checks run in a fixed order (auth, amount, balance, destination) so
    each failure kind is reported before the next is considered. The
    balance is derived fresh inside the seller scope; the cache is
    never consulted here.
    """
    await _authenticate(store, seller_id, auth_proof)
    amount = _check_amount(amount)

    async with store.seller_scope(seller_id):
        if request_id:
            previous = await store.find_withdrawal_by_request(seller_id, request_id)
            if previous is not None:
                logger.info("WITHDRAWAL_REPLAY seller=%s request=%s", seller_id, request_id)
                return previous

        seq = await store.withdrawal_seq(seller_id)
        ledger = await derive_fresh(store, seller_id)
        if amount > ledger.available:
            raise InsufficientBalance(requested=amount, available=ledger.available)

        channel = validate_destination(destination)

        record = WithdrawalRecord(
            id=generate_reference("WTH"),
            seller_id=seller_id,
            amount=amount,
            destination=PayoutDestination(
                method=channel["method"],
                provider=channel["provider"],
                bank_name=channel["bank_name"],
                account_name=channel["account_name"],
                account_masked=mask_destination_account(channel),
                account_encrypted=encrypt_account(channel["account"]),
            ),
            request_id=request_id,
            seq=seq + 1,
            created_at=now or datetime.utcnow(),
        )

        if not await store.append_withdrawal(record):
            raise Conflict(
                "Ledger changed while the withdrawal was being recorded",
                seller_id=seller_id,
            )

        store.ledger_cache.invalidate(seller_id)

    await log_audit(
        store,
        actor_id=seller_id,
        actor_role="seller",
        action="WITHDRAWAL_REQUESTED",
        metadata={
            "withdrawal_id": record.id,
            "amount": amount,
            "method": record.destination.method,
            "account": record.destination.account_masked,
        },
    )

    logger.info(
        "WITHDRAWAL_APPENDED seller=%s id=%s amount=%s seq=%s",
        seller_id, record.id, amount, record.seq,
    )
    return record
