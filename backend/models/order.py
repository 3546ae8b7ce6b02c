from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    REFUNDED = "refunded"
    CANCELED = "canceled"
    DELETED = "deleted"


ESCROW_STATUSES = {OrderStatus.PAID, OrderStatus.DELIVERED, OrderStatus.DISPUTED}
TERMINAL_STATUSES = {
    OrderStatus.COMPLETED,
    OrderStatus.REFUNDED,
    OrderStatus.CANCELED,
    OrderStatus.DELETED,
}


def to_naive_utc(value: datetime) -> datetime:
    # stored timestamps are naive UTC, as returned by Mongo
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class BuyerInfo(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None

    @field_validator("name", "phone")
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class DeliveryInfo(BaseModel):
    destination: str
    carrier: str
    estimated_arrival: datetime
    tracking_number: str = ""
    receipts: List[str] = Field(default_factory=list)
    notes: str = ""

    @field_validator("estimated_arrival")
    @classmethod
    def normalize_eta(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class OrderCreate(BaseModel):
    amount: int = Field(..., gt=0, strict=True)
    product_name: str = Field(..., min_length=1)
    product_description: str = ""
    buyer: BuyerInfo


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    seller_id: str
    buyer: BuyerInfo
    product_name: str
    product_description: str = ""
    amount: int = Field(..., gt=0)
    status: OrderStatus

    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    payment_ref: Optional[str] = None
    delivery_info: Optional[DeliveryInfo] = None
    dispute_ref: Optional[str] = None
    cancel_reason: Optional[str] = None

    def summary(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "product_description": self.product_description,
            "amount": self.amount,
            "status": self.status,
            "buyer_name": self.buyer.name,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
            "delivery_info": self.delivery_info,
        }
