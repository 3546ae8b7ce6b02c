from pydantic import BaseModel, Field


class LedgerSnapshot(BaseModel):
    seller_id: str
    available: int = Field(0, ge=0)
    in_escrow: int = Field(0, ge=0)
    refunded: int = Field(0, ge=0)
    withdrawn: int = Field(0, ge=0)

    @property
    def total(self) -> int:
        return self.available + self.in_escrow + self.refunded + self.withdrawn
