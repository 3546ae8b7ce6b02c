from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class DisputeStatus(str, Enum):
    OPENED = "opened"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


class DisputeResolution(str, Enum):
    PENDING = "pending"
    SELLER = "seller"       # funds released to seller
    BUYER = "buyer"         # funds returned to buyer


class Verdict(str, Enum):
    RELEASE = "release"
    REFUND = "refund"


VERDICT_RESOLUTION = {
    Verdict.RELEASE: DisputeResolution.SELLER,
    Verdict.REFUND: DisputeResolution.BUYER,
}


class DisputeEvent(BaseModel):
    action: str
    actor_role: str
    details: str = ""
    at: datetime


class Dispute(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    order_id: str
    seller_id: str
    reason: str
    description: str = ""
    status: DisputeStatus = DisputeStatus.OPENED
    resolution: DisputeResolution = DisputeResolution.PENDING

    opened_at: datetime
    updated_at: datetime
    responded_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    seller_response: str = ""
    admin_comment: str = ""
    resolved_by: Optional[str] = None

    timeline: List[DisputeEvent] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status != DisputeStatus.RESOLVED


class DisputeOpen(BaseModel):
    reason: str
    description: str = ""


class DisputeResponse(BaseModel):
    response: str


class DisputeDecision(BaseModel):
    verdict: Verdict
    comment: str = ""
