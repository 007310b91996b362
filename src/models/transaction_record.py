"""
Transaction record model.

Read-only view of a posted transaction as seen by recurring pattern detection.
Records come from the transaction source (DynamoDB in production) and are
never mutated by the detection core.
"""

import datetime as dt
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing_extensions import Self

logger = logging.getLogger(__name__)

TRANSACTION_ITEM_FIELDS = {
    'transactionId', 'accountId', 'spaceId', 'date', 'amount',
    'description', 'merchant', 'currency',
}


class TransactionRecord(BaseModel):
    """
    A single posted transaction.

    Amounts are signed: negative values are outflows (charges), positive
    values are inflows (payroll, refunds).
    """
    transaction_id: str = Field(alias="transactionId")
    account_id: str = Field(alias="accountId")
    space_id: Optional[str] = Field(default=None, alias="spaceId")
    date: dt.date
    amount: Decimal
    description: str = Field(default="", max_length=1000)
    merchant: Optional[str] = Field(default=None, max_length=500)
    currency: Optional[str] = Field(default=None, max_length=10)

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={
            Decimal: str
        }
    )

    @field_validator('amount', mode='before')
    @classmethod
    def ensure_amount_is_decimal(cls, v: Any) -> Any:
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator('date', mode='before')
    @classmethod
    def coerce_date(cls, v: Any) -> Any:
        # Epoch milliseconds are what the rest of the backend stores
        if isinstance(v, (int, Decimal)) and not isinstance(v, bool):
            return dt.datetime.fromtimestamp(int(v) / 1000, tz=dt.timezone.utc).date()
        if isinstance(v, dt.datetime):
            return v.date()
        return v

    @property
    def sort_key(self) -> Tuple[dt.date, str]:
        """Ordering used everywhere in detection: date, then id."""
        return (self.date, self.transaction_id)

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from a DynamoDB transactions table item."""
        converted_data = {k: v for k, v in data.items() if k in TRANSACTION_ITEM_FIELDS}

        for field in ('transactionId', 'accountId', 'spaceId'):
            if converted_data.get(field) is not None:
                converted_data[field] = str(converted_data[field])

        return cls.model_validate(converted_data)
