from pydantic import BaseModel
from enum import Enum


class Role(str, Enum):
    SELLER = "seller"
    ADMIN = "admin"


class Identity(BaseModel):
    """Verified caller identity handed over by the auth layer."""
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class AuthProof(BaseModel):
    """Identity plus the password re-entered at the point of transfer."""
    identity: Identity
    password: str
