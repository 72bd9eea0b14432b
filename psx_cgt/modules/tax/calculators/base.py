"""
Abstract Base Class for Tax Calculators

Defines the interface that all jurisdiction calculators implement, the
registry they are looked up through, and the rate table types:
- RateBucket: half-open holding-period range [lower_days, upper_days) -> rate
- TaxRegime: buckets per filer status, applicable from an acquisition date
- RateTable: regimes ordered by effective_from

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from psx_cgt.modules.tax.exceptions import ValidationError
from psx_cgt.modules.tax.tax_events import RealizedGain, TaxLiability
from psx_cgt.parsers.enhanced_transaction import parse_date, parse_decimal


@dataclass(frozen=True)
class RateBucket:
    """Holding-period range [lower_days, upper_days); upper_days None = unbounded."""

    lower_days: int
    upper_days: Optional[int]
    rate: Decimal

    def contains(self, holding_days: int) -> bool:
        if holding_days < self.lower_days:
            return False
        return self.upper_days is None or holding_days < self.upper_days


@dataclass(frozen=True)
class TaxRegime:
    """Rate schedule for securities acquired on or after effective_from."""

    effective_from: date
    filer: Tuple[RateBucket, ...]
    non_filer: Tuple[RateBucket, ...]
    description: str = ""

    def buckets(self, is_filer: bool) -> Tuple[RateBucket, ...]:
        return self.filer if is_filer else self.non_filer

    def rate_for(self, holding_days: int, is_filer: bool) -> Decimal:
        buckets = self.buckets(is_filer)
        # Negative holding days (sale settling before acquisition) fall in the first bucket
        if holding_days < buckets[0].lower_days:
            return buckets[0].rate
        for bucket in buckets:
            if bucket.contains(holding_days):
                return bucket.rate
        return buckets[-1].rate

    def milestones(self, is_filer: bool) -> List[int]:
        """Holding-day boundaries where the rate may change."""
        return [b.upper_days for b in self.buckets(is_filer) if b.upper_days is not None]


def _parse_buckets(rows: Sequence[Sequence[Any]], label: str) -> Tuple[RateBucket, ...]:
    if not rows:
        raise ValidationError(f"Rate schedule '{label}' has no buckets", field="rates", value=rows)

    buckets = []
    expected_lower = 0
    for row in rows:
        lower, upper, rate = row
        lower = int(lower)
        upper = int(upper) if upper is not None else None
        rate = parse_decimal(rate, "rate")

        if lower != expected_lower:
            raise ValidationError(
                f"Rate schedule '{label}' is not contiguous at {lower} days (expected {expected_lower})",
                field="rates", value=row
            )
        if upper is not None and upper <= lower:
            raise ValidationError(f"Empty bucket {row} in '{label}'", field="rates", value=row)
        if not Decimal(0) <= rate <= Decimal(1):
            raise ValidationError(f"Rate {rate} outside [0, 1] in '{label}'", field="rates", value=row)

        buckets.append(RateBucket(lower, upper, rate))
        expected_lower = upper

    if buckets[-1].upper_days is not None:
        raise ValidationError(f"Last bucket of '{label}' must be unbounded", field="rates", value=rows)

    return tuple(buckets)


class RateTable:
    """
    Regimes ordered by effective_from. The regime applying to a lot is the
    latest one whose effective_from is on or before the lot's acquisition date.
    """

    def __init__(self, regimes: Sequence[TaxRegime]):
        if not regimes:
            raise ValidationError("Rate table needs at least one regime", field="regimes")
        self.regimes: Tuple[TaxRegime, ...] = tuple(sorted(regimes, key=lambda r: r.effective_from))

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'RateTable':
        """Build a table from the dict format of rate_config.PSX_RATE_TABLE."""
        regimes = []
        for entry in config.get("regimes", []):
            effective_from = parse_date(entry["effective_from"], "effective_from")
            rates = entry["rates"]
            regimes.append(TaxRegime(
                effective_from=effective_from,
                filer=_parse_buckets(rates["filer"], f"{effective_from} filer"),
                non_filer=_parse_buckets(rates["non_filer"], f"{effective_from} non_filer"),
                description=entry.get("description", ""),
            ))
        return cls(regimes)

    def regime_for(self, acquisition_date: date) -> TaxRegime:
        applicable = self.regimes[0]
        for regime in self.regimes:
            if regime.effective_from <= acquisition_date:
                applicable = regime
            else:
                break
        return applicable

    def rate_for(self, acquisition_date: date, holding_days: int, is_filer: bool) -> Decimal:
        return self.regime_for(acquisition_date).rate_for(holding_days, is_filer)

    @property
    def legacy_regime(self) -> TaxRegime:
        return self.regimes[0]

    @property
    def current_regime(self) -> TaxRegime:
        return self.regimes[-1]

    @property
    def cutover_date(self) -> date:
        """Start of the current regime."""
        return self.current_regime.effective_from


class TaxCalculator(ABC):
    """
    Abstract base class for jurisdiction-specific tax calculators.

    The calculator consumes RealizedGains produced by the LotLedger and
    produces a TaxLiability for one tax year.
    """

    @abstractmethod
    def calculate_tax_liability(
        self,
        gains: List[RealizedGain],
        tax_year: int,
        **kwargs
    ) -> TaxLiability:
        """
        Calculate total tax liability for a given tax year.

        Args:
            gains: Realized gains to process (any period; filtered here)
            tax_year: Tax year as the jurisdiction labels it
            **kwargs: Jurisdiction-specific parameters (e.g., filer status)
        """
        pass

    @abstractmethod
    def get_jurisdiction_name(self) -> str:
        pass

    @abstractmethod
    def get_jurisdiction_code(self) -> str:
        pass

    def tax_year_bounds(self, tax_year: int) -> Tuple[date, date]:
        """First and last day of a tax year. Calendar year unless overridden."""
        return date(tax_year, 1, 1), date(tax_year, 12, 31)

    def filter_gains_by_year(
        self,
        gains: List[RealizedGain],
        tax_year: int
    ) -> List[RealizedGain]:
        """Gains whose sale (settlement) date falls in tax_year."""
        start, end = self.tax_year_bounds(tax_year)
        return [g for g in gains if start <= g.sale_date <= end]

    def calculate_total_gain(self, gains: List[RealizedGain]) -> Decimal:
        """Net realized gain (negative = loss)."""
        return sum((g.capital_gain for g in gains), Decimal(0))


# Registry of available calculators
_CALCULATOR_REGISTRY: Dict[str, Type[TaxCalculator]] = {}


def register_calculator(jurisdiction_code: str):
    """
    Decorator to register a tax calculator class.

    Usage:
        @register_calculator("PK")
        class PakistanTaxCalculator(TaxCalculator):
            ...
    """
    def decorator(cls: Type[TaxCalculator]):
        _CALCULATOR_REGISTRY[jurisdiction_code.upper()] = cls
        return cls
    return decorator


def get_calculator(jurisdiction_code: str, **kwargs) -> TaxCalculator:
    """
    Factory method to get a tax calculator instance.

    Keyword arguments are passed to the calculator's constructor.

    Raises:
        ValidationError: If jurisdiction is not supported
    """
    code = jurisdiction_code.upper()

    if code not in _CALCULATOR_REGISTRY:
        available = ", ".join(sorted(_CALCULATOR_REGISTRY.keys()))
        raise ValidationError(
            f"Tax calculator for '{jurisdiction_code}' not found. Available: {available}",
            field="jurisdiction_code", value=jurisdiction_code
        )

    return _CALCULATOR_REGISTRY[code](**kwargs)


def list_available_jurisdictions() -> List[str]:
    return sorted(_CALCULATOR_REGISTRY.keys())
