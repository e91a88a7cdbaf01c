import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledger.periods import format_cycle, parse_cycle

TxType = Literal["income", "fixed", "card", "casual"]


def _clean_description(v):
    v = (v or "").strip()
    if not v:
        raise ValueError("description is required")
    return v


class TransactionDraft(BaseModel):
    """A transaction row waiting to be inserted."""

    model_config = ConfigDict(frozen=True)

    type: TxType
    description: str
    amount: float
    date: dt.date
    is_recurrent: bool = False
    installments: int = 1
    current_installment: int = 1
    purchase_group_id: Optional[str] = None
    ideal_day: Optional[int] = None

    @property
    def label(self):
        if self.installments > 1:
            return f"{self.description} ({self.current_installment}/{self.installments})"
        return self.description


class TransactionRecord(TransactionDraft):
    """Immutable snapshot of a stored transaction."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: int
    created_at: Optional[dt.datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "label": self.label,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "is_recurrent": self.is_recurrent,
            "installments": self.installments,
            "current_installment": self.current_installment,
            "purchase_group_id": self.purchase_group_id,
            "ideal_day": self.ideal_day,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ProfileRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: int
    username: str
    current_cycle: str
    ideal_day: int = 5
    total_saved: float = 0.0
    initial_income: float = 0.0
    monthly_salary: float = 0.0

    def to_dict(self):
        return self.model_dump(exclude={"id", "user_id"})


class TransactionInput(BaseModel):
    """User-entered transaction, validated before any store call."""

    type: TxType = "casual"
    description: str
    amount: float = Field(gt=0)
    is_recurrent: bool = False
    installments: int = Field(default=1, ge=1)
    ideal_day: Optional[int] = Field(default=None, ge=1, le=31)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v):
        return _clean_description(v)


class TransactionEdit(BaseModel):
    description: str
    amount: float = Field(gt=0)
    installments: Optional[int] = Field(default=None, ge=1)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v):
        return _clean_description(v)


class ProfileInput(BaseModel):
    current_cycle: Optional[str] = None
    ideal_day: Optional[int] = Field(default=None, ge=1, le=31)
    initial_income: Optional[float] = Field(default=None, ge=0)
    monthly_salary: Optional[float] = Field(default=None, ge=0)

    @field_validator("current_cycle")
    @classmethod
    def check_cycle(cls, v):
        if v is None:
            return v
        return format_cycle(parse_cycle(v))
