"""
Lot, Sale and Tax Data Models

Defines the core data structures for FIFO tax basis tracking:
- Lot: a purchase (or rights subscription) still held, fully or in part
- LotConsumption / RealizedGain: what one sale took from which lots
- Holding: derived per-symbol view over open lots
- CorporateActionRecord: immutable entry of the corporate action audit log
- LotTax / SaleTax / AggregateTax / TaxLiability: rate engine output

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from psx_cgt.modules.tax.exceptions import ValidationError


class LotOrigin(str, Enum):
    """How a lot entered the queue."""
    PURCHASE = "PURCHASE"
    RIGHTS_ISSUE = "RIGHTS_ISSUE"


class ActionKind(str, Enum):
    """Supported corporate actions."""
    BONUS = "BONUS"
    RIGHTS = "RIGHTS"

    @classmethod
    def normalize(cls, value: Any) -> 'ActionKind':
        if isinstance(value, cls):
            return value
        clean = str(value).strip().upper().replace(" ", "_")
        aliases = {
            "BONUS": cls.BONUS,
            "BONUS_ISSUE": cls.BONUS,
            "RIGHT": cls.RIGHTS,
            "RIGHTS": cls.RIGHTS,
            "RIGHTS_ISSUE": cls.RIGHTS,
            "RIGHT_ISSUE": cls.RIGHTS,
        }
        if clean not in aliases:
            raise ValidationError(f"Action type must be BONUS or RIGHTS, got {value!r}",
                                  field="kind", value=value)
        return aliases[clean]


class ActionEvent(str, Enum):
    """What an audit log entry records."""
    APPLY = "APPLY"
    REVERSE = "REVERSE"


@dataclass
class Lot:
    """
    A FIFO lot.

    Key Invariant: 0 <= remaining_quantity <= quantity. Only sales (which
    lower remaining_quantity) and bonus issues (which raise both quantities
    and lower unit_cost) mutate a lot.
    """

    lot_id: str
    symbol: str
    quantity: Decimal
    remaining_quantity: Decimal
    unit_cost: Decimal
    acquisition_date: date
    origin: LotOrigin = LotOrigin.PURCHASE
    transaction_id: Optional[int] = None

    def remaining_cost_basis(self) -> Decimal:
        """Cost attributed to the shares still held."""
        return self.remaining_quantity * self.unit_cost

    def is_exhausted(self) -> bool:
        return self.remaining_quantity <= 0

    def is_untouched(self) -> bool:
        """No share of this lot has been sold."""
        return self.remaining_quantity == self.quantity


@dataclass(frozen=True)
class LotConsumption:
    """The part of one lot consumed by a sale."""

    lot_id: str
    acquisition_date: date
    quantity: Decimal
    unit_cost: Decimal
    holding_days: int
    origin: LotOrigin = LotOrigin.PURCHASE

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class RealizedGain:
    """
    Result of one (possibly simulated) sale. Produced exactly once per SELL
    and never mutated afterwards.

    sale_date is the settlement date of the sale; commission is recorded but
    not netted into capital_gain.
    """

    symbol: str
    quantity_sold: Decimal
    unit_sale_price: Decimal
    sale_proceeds: Decimal
    total_cost_basis: Decimal
    capital_gain: Decimal
    lots_consumed: Tuple[LotConsumption, ...]
    sale_date: date
    trade_date: date
    commission: Decimal = Decimal(0)
    transaction_id: Optional[int] = None
    is_simulation: bool = False

    @property
    def average_cost(self) -> Decimal:
        if self.quantity_sold == 0:
            return Decimal(0)
        return self.total_cost_basis / self.quantity_sold

    def is_loss(self) -> bool:
        return self.capital_gain < 0


@dataclass(frozen=True)
class Holding:
    """Derived view of one symbol's open lots; rebuilt on every request."""

    symbol: str
    total_quantity: Decimal
    weighted_average_cost: Decimal
    total_cost_basis: Decimal
    lots: Tuple[Lot, ...]

    def market_value(self, price: Decimal) -> Decimal:
        return self.total_quantity * price

    def unrealized_gain(self, price: Decimal) -> Decimal:
        return self.market_value(price) - self.total_cost_basis


@dataclass(frozen=True)
class CorporateActionRecord:
    """
    One immutable entry of the corporate action audit log.

    An APPLY entry and its later REVERSE entry share the same id; the latest
    entry for an id holds the action's current state. `seal` covers every
    other field.
    """

    id: int
    symbol: str
    kind: ActionKind
    ex_date: date
    applied_date: date
    parameters: Dict[str, Any]
    result_summary: Dict[str, Any]
    active: bool
    event: ActionEvent = ActionEvent.APPLY
    reversed_date: Optional[date] = None
    transaction_count: int = 0
    seal: Optional[str] = None

    @property
    def summary(self) -> str:
        return self.result_summary.get("summary", "")


@dataclass(frozen=True)
class LotTax:
    """Tax computed on one lot consumption entry."""

    acquisition_date: date
    quantity: Decimal
    unit_cost: Decimal
    sale_price: Decimal
    gain: Decimal
    taxable_gain: Decimal
    tax_rate: Decimal
    tax: Decimal
    holding_days: int

    @property
    def tax_rate_percentage(self) -> str:
        return f"{self.tax_rate * 100:.2f}%"


@dataclass(frozen=True)
class SaleTax:
    """Tax on one realized (or simulated) sale."""

    symbol: str
    quantity_sold: Decimal
    sale_proceeds: Decimal
    total_cost_basis: Decimal
    capital_gain: Decimal
    taxable_gain: Decimal
    total_tax: Decimal
    net_profit: Decimal
    effective_rate: Decimal
    per_lot_breakdown: Tuple[LotTax, ...]
    sale_date: date
    is_filer: bool


@dataclass(frozen=True)
class AggregateTax:
    """Tax summed over several sales."""

    total_gains: Decimal
    total_losses: Decimal
    net_gain: Decimal
    total_tax: Decimal
    net_profit_after_tax: Decimal
    effective_rate: Decimal
    sales_count: int
    sales: Tuple[SaleTax, ...]
    is_filer: bool
    calculation_date: date


@dataclass(frozen=True)
class DelayBenefit:
    """Tax effect of postponing a sale by a number of days."""

    current_tax: Decimal
    delayed_tax: Decimal
    tax_savings: Decimal
    savings_percentage: Decimal
    days_to_delay: int
    delayed_sale_date: date
    recommendation: str


@dataclass
class TaxLiability:
    """
    Calculated tax owed for one tax (fiscal) year.

    This is the output of jurisdiction calculators.
    """

    jurisdiction: str
    tax_year: int
    total_realized_gain: Decimal
    taxable_gain: Decimal
    tax_owed: Decimal
    breakdown: Dict[str, Decimal]

    notes: Optional[str] = None
    assumptions: List[str] = field(default_factory=list)
    calculation_date: Optional[date] = None
    calculator_version: str = "1.0"
