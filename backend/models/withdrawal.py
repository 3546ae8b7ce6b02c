from pydantic import BaseModel, Field
from typing import Any, Optional
from datetime import datetime


class PayoutDestination(BaseModel):
    """
    Validated payout channel as persisted on a withdrawal record.
    The full account identifier is only kept encrypted.
    """
    method: str                       # mobile_money | bank_transfer
    provider: Optional[str] = None    # mobile money only
    bank_name: Optional[str] = None   # bank transfer only
    account_name: Optional[str] = None
    account_masked: str
    account_encrypted: str


class WithdrawalRecord(BaseModel):
    id: str
    seller_id: str
    amount: int = Field(..., gt=0)
    destination: PayoutDestination
    request_id: Optional[str] = None
    seq: int
    created_at: datetime

    def public(self) -> dict:
        data = self.model_dump()
        data["destination"].pop("account_encrypted", None)
        return data


class WithdrawalCreate(BaseModel):
    amount: Any          # checked by the withdrawal engine, after auth
    password: str
    destination: Any
    request_id: Optional[str] = Field(None, max_length=128)
