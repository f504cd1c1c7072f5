"""
Pydantic schemas for API requests and responses
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (ZAR, USD, etc.)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=money.plain(), currency=money.currency.code)

    @classmethod
    def from_minor_units(cls, minor_units: int, currency: Currency) -> 'MoneyModel':
        return cls.from_money(Money.from_minor_units(minor_units, currency))


# Transfer schemas
class TransferRequest(BaseModel):
    from_account_id: str
    to_account_number: str
    amount: str = Field(..., description="Decimal amount as string, e.g. '250.00'")
    currency: Optional[str] = None  # Defaults to the sender account currency
    reference: str


# Proof of payment schemas
class BulkGenerateRequest(BaseModel):
    transaction_ids: List[str] = Field(default_factory=list)
