from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, Field
from pydantic.config import ConfigDict

from .models import Role


class SessionSnapshot(BaseModel):
    """User fields copied into the session at login. Not refreshed afterwards."""
    id: int
    email: str
    role: Role
    displayname: str
    surname: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


@dataclass(frozen=True)
class Authenticated:
    snapshot: SessionSnapshot
    token: str


@dataclass(frozen=True)
class Anonymous:
    token: Optional[str] = None


Principal = Union[Authenticated, Anonymous]


class MemberRead(BaseModel):
    id: int = Field(validation_alias=AliasChoices("userid", "id"))
    displayname: str
    surname: Optional[str] = None
    email: str
    phone: Optional[str] = None
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LatestMember(BaseModel):
    displayname: str
    surname: Optional[str] = None
    email: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleUpdate(BaseModel):
    role: Role


class PaymentCreate(BaseModel):
    # every field is optional at the schema level; completeness is checked by
    # the handler so a missing field still yields {"success": false}
    fullname: Optional[str] = None
    email: Optional[str] = None
    package: Optional[str] = None
    card_number: Optional[str] = None
    expiry_date: Optional[str] = None
    cvv: Optional[str] = None

    model_config = ConfigDict(coerce_numbers_to_str=True)

    def missing_fields(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if not (value or "").strip()]


class PaymentResult(BaseModel):
    success: bool
    message: Optional[str] = None


class MembershipRead(BaseModel):
    fullname: str
    package: str
    payment_date: datetime

    model_config = ConfigDict(from_attributes=True)


class WeekCounts(BaseModel):
    labels: list[str] = []
    counts: list[int] = []
