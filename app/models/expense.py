from pydantic import BaseModel, Field, field_serializer
from typing import Optional
from uuid import uuid4
from datetime import datetime, timezone


def to_utc_iso(value: Optional[datetime]) -> Optional[str]:
    """Naive UTC ISO-8601, the form stored timestamps are compared in."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


class ExpenseCreate(BaseModel):
    category: str
    amount: float = Field(ge=0)
    description: Optional[str] = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return to_utc_iso(value)


class ExpenseUpdate(BaseModel):
    category: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_utc_iso(value)


class ExpenseInDB(BaseModel):
    user_id: str
    expense_id: str = Field(default_factory=lambda: uuid4().hex)
    category: str
    amount: float
    description: Optional[str] = ""
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


class ExpensePublic(BaseModel):
    expense_id: str
    category: str
    amount: float
    description: Optional[str] = ""
    timestamp: str
