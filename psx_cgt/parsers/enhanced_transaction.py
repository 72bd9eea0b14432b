"""
Transaction Model

Immutable, validated trade record for the FIFO ledger:
- Accepts user/collaborator input (strings, floats, ISO-8601 dates)
- Normalises symbols and transaction kinds
- Derives the T+2 settlement date used for holding periods

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from psx_cgt.core.calendar import settlement_date as compute_settlement_date
from psx_cgt.modules.tax.exceptions import ValidationError


class TransactionTypeError(ValidationError):
    """Raised when transaction type cannot be normalized."""

    def __init__(self, value: Any):
        super().__init__(f"Unknown transaction type: '{value}'", field="kind", value=value)


class TransactionType(str, Enum):
    """Trade directions the ledger records."""

    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def normalize(cls, value: Any) -> 'TransactionType':
        """Normalize transaction type from various formats.

        Raises:
            TransactionTypeError: If the value maps to neither BUY nor SELL.
        """
        if isinstance(value, cls):
            return value

        type_map = {
            "BUY": cls.BUY,
            "B": cls.BUY,
            "PURCHASE": cls.BUY,
            "SELL": cls.SELL,
            "S": cls.SELL,
            "SALE": cls.SELL,
        }

        clean_value = str(value).strip().upper().replace(" ", "").replace("_", "")
        result = type_map.get(clean_value)

        if result is None:
            raise TransactionTypeError(value)

        return result


def parse_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Parse a number from Decimal/int/float/str.

    Floats go through str() so 0.2 becomes Decimal('0.2'), not its binary
    expansion. Thousands separators ('1,234.50') are stripped.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field, value=value)
    else:
        text = str(value).strip().replace(",", "")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field, value=value)

    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}", field=field, value=value)
    return result


def parse_date(value: Any, field: str = "date") -> date:
    """
    Parse a date from a date, datetime or ISO-8601 string.

    Timestamps ('2025-01-03T00:00:00.000Z') are reduced to their date part.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError(f"{field} is not an ISO-8601 date: {value!r}", field=field, value=value)


class Transaction(BaseModel):
    """
    One committed BUY or SELL.

    settlement_date is derived from trade_date (T+2, weekends skipped) unless
    supplied, e.g. when a stored ledger is reloaded.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    kind: TransactionType
    symbol: str
    quantity: Decimal
    unit_price: Decimal
    trade_date: date
    settlement_date: date
    commission: Decimal = Decimal(0)

    @model_validator(mode='before')
    @classmethod
    def derive_settlement_date(cls, data: Any) -> Any:
        """Fill settlement_date from trade_date when it is missing."""
        if isinstance(data, dict) and data.get('settlement_date') is None and 'trade_date' in data:
            data = dict(data)
            data['settlement_date'] = compute_settlement_date(parse_date(data['trade_date'], 'trade_date'))
        return data

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind(cls, v):
        return TransactionType.normalize(v)

    @field_validator('symbol', mode='before')
    @classmethod
    def normalize_symbol(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValidationError("Symbol is required and must be a string", field="symbol", value=v)
        return v.strip().upper()

    @field_validator('quantity', 'unit_price', mode='before')
    @classmethod
    def positive_values(cls, v, info):
        value = parse_decimal(v, info.field_name)
        if value <= 0:
            raise ValidationError(f"{info.field_name} must be positive, got {value}",
                                  field=info.field_name, value=v)
        return value

    @field_validator('commission', mode='before')
    @classmethod
    def non_negative_commission(cls, v):
        value = parse_decimal(v if v is not None else 0, 'commission')
        if value < 0:
            raise ValidationError(f"commission cannot be negative: {value}", field="commission", value=v)
        return value

    @field_validator('trade_date', 'settlement_date', mode='before')
    @classmethod
    def parse_dates(cls, v, info):
        return parse_date(v, info.field_name)

    @model_validator(mode='after')
    def settlement_not_before_trade(self) -> 'Transaction':
        if self.settlement_date < self.trade_date:
            raise ValidationError(
                f"settlement_date {self.settlement_date} precedes trade_date {self.trade_date}",
                field="settlement_date", value=self.settlement_date
            )
        return self

    @property
    def total_value(self) -> Decimal:
        """Gross trade value, commission excluded."""
        return self.quantity * self.unit_price

    def is_buy(self) -> bool:
        return self.kind == TransactionType.BUY


def build_transaction(**fields) -> Transaction:
    """
    Construct a Transaction, converting pydantic's error into the engine's
    ValidationError so callers handle one error family.
    """
    try:
        return Transaction(**fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = first.get('loc') or ()
        field = str(loc[0]) if loc else None
        raise ValidationError(
            f"Invalid transaction {field or 'input'}: {first.get('msg')}",
            field=field,
            value=first.get('input')
        ) from e


def optional_date(value: Any, field: str) -> Optional[date]:
    """parse_date that lets None through."""
    if value is None or value == "":
        return None
    return parse_date(value, field)


def round_money(value: Decimal) -> Decimal:
    """Round to paisa (2 dp), half-up. Used only at report/serialization boundaries."""
    return Decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
