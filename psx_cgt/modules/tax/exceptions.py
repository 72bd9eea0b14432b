"""
Engine Error Taxonomy

Every error raised by the ledger, the rate engine and the corporate action
processor derives from TaxEngineError and carries the structured context a
caller needs to render a message (symbol, requested vs. available, ...).
No error leaves partial state behind: checks run before any lot is touched.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date
from decimal import Decimal
from typing import Optional


class TaxEngineError(Exception):
    """Base class for all engine errors."""
    pass


class ValidationError(TaxEngineError, ValueError):
    """Malformed input: non-positive quantity/price, unparseable date or ratio."""

    def __init__(self, message: str, field: Optional[str] = None, value=None):
        super().__init__(message)
        self.field = field
        self.value = value


class InvalidRatio(ValidationError):
    """Corporate action ratio that cannot be parsed or is out of range."""

    def __init__(self, ratio, reason: str):
        super().__init__(f"Invalid ratio {ratio!r}: {reason}", field="ratio", value=ratio)
        self.ratio = ratio
        self.reason = reason


class InsufficientHoldings(TaxEngineError):
    """A (simulated) sale asks for more shares than the symbol's queue holds."""

    def __init__(self, symbol: str, requested: Decimal, available: Decimal):
        super().__init__(
            f"Cannot sell {requested} shares of {symbol}: only {available} available"
        )
        self.symbol = symbol
        self.requested = requested
        self.available = available


class CorporateActionError(TaxEngineError):
    """Base class for corporate action failures."""

    def __init__(self, message: str, symbol: Optional[str] = None):
        super().__init__(message)
        self.symbol = symbol


class DuplicateAction(CorporateActionError):
    """An active action already exists for (symbol, kind, ex_date)."""

    def __init__(self, symbol: str, kind: str, ex_date: date, existing_id: int):
        super().__init__(
            f"Corporate action already applied: {kind} for {symbol} on {ex_date.isoformat()} "
            f"(action #{existing_id})",
            symbol=symbol
        )
        self.kind = kind
        self.ex_date = ex_date
        self.existing_id = existing_id


class NoEligibleLots(CorporateActionError):
    """No lot of the symbol was acquired before the ex-date."""

    def __init__(self, symbol: str, ex_date: date):
        super().__init__(
            f"No shares of {symbol} acquired before ex-date {ex_date.isoformat()}",
            symbol=symbol
        )
        self.ex_date = ex_date


class RatioTooSmall(CorporateActionError):
    """The ratio yields zero new shares after flooring."""

    def __init__(self, symbol: str, eligible_shares: Decimal, ratio: Decimal):
        super().__init__(
            f"Ratio too small for {symbol}: {eligible_shares} x {ratio} yields 0 whole shares",
            symbol=symbol
        )
        self.eligible_shares = eligible_shares
        self.ratio = ratio


class PostActionSalesExist(CorporateActionError):
    """Sales recorded after the action make reversal unsafe for reported tax."""

    def __init__(self, symbol: str, action_id: int, sale_count: int):
        super().__init__(
            f"Cannot reverse action #{action_id}: {sale_count} sale(s) of {symbol} "
            f"occurred after it was applied",
            symbol=symbol
        )
        self.action_id = action_id
        self.sale_count = sale_count


class PartiallySold(CorporateActionError):
    """Shares from a rights lot have been sold, so the lot cannot be withdrawn."""

    def __init__(self, symbol: str, action_id: int, sold_quantity: Decimal):
        super().__init__(
            f"Cannot reverse action #{action_id}: {sold_quantity} rights shares of {symbol} "
            f"have been sold",
            symbol=symbol
        )
        self.action_id = action_id
        self.sold_quantity = sold_quantity


class ActionNotFound(CorporateActionError):
    """No corporate action with the given id exists in the log."""

    def __init__(self, action_id: int):
        super().__init__(f"Corporate action with ID {action_id} not found")
        self.action_id = action_id


class ActionAlreadyReversed(CorporateActionError):
    """The action was reversed before."""

    def __init__(self, action_id: int, symbol: str):
        super().__init__(f"Corporate action {action_id} is already reversed", symbol=symbol)
        self.action_id = action_id
