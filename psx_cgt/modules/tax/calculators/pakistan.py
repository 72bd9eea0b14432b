"""
Pakistan Capital Gains Tax Calculator (PSX listed securities)

Implements the capital gains rules for Pakistan Stock Exchange securities:
- Securities acquired on or after 1 July 2024: flat 15% (filer and non-filer)
- Securities acquired earlier: holding-period schedule
  (filer 15% / 12.5% / 10% / 7.5% / exempt after 4 years; non-filer 15% throughout)
- Rate is chosen per consumed lot from its acquisition (settlement) date
- Tax applies to positive per-lot gains only; losses are never taxed
- Tax year N runs 1 July N-1 to 30 June N

The rates themselves live in rate_config.PSX_RATE_TABLE.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from psx_cgt.core.calendar import tax_year_bounds
from psx_cgt.modules.tax.calculators.base import RateTable, TaxCalculator, register_calculator
from psx_cgt.modules.tax.calculators.rate_config import PSX_RATE_TABLE
from psx_cgt.modules.tax.tax_events import (
    AggregateTax,
    DelayBenefit,
    LotTax,
    RealizedGain,
    SaleTax,
    TaxLiability,
)
from psx_cgt.utils.logging_config import setup_logger

logger = setup_logger(__name__)


@register_calculator("PK")
class PakistanTaxCalculator(TaxCalculator):
    """
    Tax rate engine for PSX securities.

    Filer status is fixed at construction and changed only through
    set_filer_status(). Methods that take an `is_filer` argument use it as a
    one-off override without touching the stored status.
    """

    def __init__(self, is_filer: bool = True, rate_table: Optional[RateTable] = None):
        self.is_filer = is_filer
        self.rate_table = rate_table or RateTable.from_config(PSX_RATE_TABLE)

    def get_jurisdiction_name(self) -> str:
        return "Pakistan"

    def get_jurisdiction_code(self) -> str:
        return "PK"

    def set_filer_status(self, is_filer: bool):
        self.is_filer = bool(is_filer)
        logger.info(f"Filer status set to: {'Filer' if self.is_filer else 'Non-Filer'}")

    def _status(self, is_filer: Optional[bool]) -> bool:
        return self.is_filer if is_filer is None else is_filer

    def rate_for(self, acquisition_date: date, holding_days: int, is_filer: Optional[bool] = None) -> Decimal:
        """Rate for a lot acquired on `acquisition_date` and held `holding_days`."""
        return self.rate_table.rate_for(acquisition_date, holding_days, self._status(is_filer))

    def tax_year_bounds(self, tax_year: int) -> Tuple[date, date]:
        return tax_year_bounds(tax_year)

    # ------------------------------------------------------------------

    def calculate_tax_for_sale(
        self,
        gain: RealizedGain,
        is_filer: Optional[bool] = None,
        extra_holding_days: int = 0
    ) -> SaleTax:
        """
        Tax on one sale, lot by lot.

        Args:
            gain: RealizedGain from LotLedger.sell() or simulate_sell()
            is_filer: One-off filer status override
            extra_holding_days: Added to every lot's holding period (delayed-sale pricing)
        """
        status = self._status(is_filer)
        breakdown = []
        total_tax = Decimal(0)

        for consumed in gain.lots_consumed:
            holding_days = consumed.holding_days + extra_holding_days
            rate = self.rate_table.rate_for(consumed.acquisition_date, holding_days, status)

            lot_gain = (gain.unit_sale_price - consumed.unit_cost) * consumed.quantity
            taxable_gain = max(Decimal(0), lot_gain)
            lot_tax = taxable_gain * rate
            total_tax += lot_tax

            breakdown.append(LotTax(
                acquisition_date=consumed.acquisition_date,
                quantity=consumed.quantity,
                unit_cost=consumed.unit_cost,
                sale_price=gain.unit_sale_price,
                gain=lot_gain,
                taxable_gain=taxable_gain,
                tax_rate=rate,
                tax=lot_tax,
                holding_days=holding_days,
            ))

        capital_gain = gain.capital_gain
        effective_rate = total_tax / capital_gain if capital_gain > 0 else Decimal(0)

        return SaleTax(
            symbol=gain.symbol,
            quantity_sold=gain.quantity_sold,
            sale_proceeds=gain.sale_proceeds,
            total_cost_basis=gain.total_cost_basis,
            capital_gain=capital_gain,
            taxable_gain=max(Decimal(0), capital_gain),
            total_tax=total_tax,
            net_profit=capital_gain - total_tax,
            effective_rate=effective_rate,
            per_lot_breakdown=tuple(breakdown),
            sale_date=gain.sale_date + timedelta(days=extra_holding_days),
            is_filer=status,
        )

    def calculate_aggregate_tax(
        self,
        gains: List[RealizedGain],
        is_filer: Optional[bool] = None,
        calculation_date: Optional[date] = None
    ) -> AggregateTax:
        """Tax over several sales. Losses reduce net_gain but never the tax of a gain."""
        status = self._status(is_filer)
        total_gains = Decimal(0)
        total_losses = Decimal(0)
        total_tax = Decimal(0)
        sales = []

        for gain in gains:
            sale_tax = self.calculate_tax_for_sale(gain, is_filer=status)
            sales.append(sale_tax)

            if sale_tax.capital_gain > 0:
                total_gains += sale_tax.capital_gain
            else:
                total_losses += abs(sale_tax.capital_gain)

            total_tax += sale_tax.total_tax

        net_gain = total_gains - total_losses

        return AggregateTax(
            total_gains=total_gains,
            total_losses=total_losses,
            net_gain=net_gain,
            total_tax=total_tax,
            net_profit_after_tax=net_gain - total_tax,
            effective_rate=total_tax / net_gain if net_gain > 0 else Decimal(0),
            sales_count=len(sales),
            sales=tuple(sales),
            is_filer=status,
            calculation_date=calculation_date or date.today(),
        )

    def analyze_delay_benefit(
        self,
        gain: RealizedGain,
        days_to_delay: int,
        is_filer: Optional[bool] = None
    ) -> DelayBenefit:
        """Compare tax now with tax if every consumed lot were held `days_to_delay` longer."""
        current = self.calculate_tax_for_sale(gain, is_filer=is_filer)
        delayed = self.calculate_tax_for_sale(gain, is_filer=is_filer, extra_holding_days=days_to_delay)

        savings = current.total_tax - delayed.total_tax
        percentage = savings / current.total_tax * 100 if current.total_tax > 0 else Decimal(0)

        if savings > 0:
            recommendation = (
                f"Consider delaying sale by {days_to_delay} days to save Rs. {savings:.2f} in taxes"
            )
        else:
            recommendation = "No tax benefit from delaying this sale"

        return DelayBenefit(
            current_tax=current.total_tax,
            delayed_tax=delayed.total_tax,
            tax_savings=savings,
            savings_percentage=percentage,
            days_to_delay=days_to_delay,
            delayed_sale_date=delayed.sale_date,
            recommendation=recommendation,
        )

    def rate_explanation(
        self,
        acquisition_date: date,
        holding_days: int,
        is_filer: Optional[bool] = None
    ) -> str:
        """One-line explanation of the rate a lot attracts."""
        status = self._status(is_filer)
        rate = self.rate_for(acquisition_date, holding_days, status)
        percent = f"{rate * 100:.2f}"
        label = "Filer" if status else "Non-Filer"

        regime = self.rate_table.regime_for(acquisition_date)
        if regime is not self.rate_table.legacy_regime:
            return f"{percent}% - {regime.description} [{label}]"

        if holding_days < 365:
            return f"{percent}% - Short-term holding (less than 1 year) [{label}]"

        years = holding_days // 365
        if holding_days < 1460:
            return f"{percent}% - Held for {years}-{years + 1} years [{label}]"
        if status:
            return f"{percent}% - Exempt after 4 years [{label}]"
        return f"{percent}% - No exemption for non-filers [{label}]"

    # ------------------------------------------------------------------

    def calculate_tax_liability(
        self,
        gains: List[RealizedGain],
        tax_year: int,
        **kwargs
    ) -> TaxLiability:
        """
        Tax owed for one PSX tax year.

        Args:
            gains: Realized gains (filtered to the tax year by sale date)
            tax_year: Year in which the tax year ends (2025 = Jul 2024 .. Jun 2025)
            **kwargs: Optional parameters:
                - is_filer: filer status override (default: calculator's status)
        """
        status = self._status(kwargs.get("is_filer"))
        year_gains = self.filter_gains_by_year(gains, tax_year)
        start, end = self.tax_year_bounds(tax_year)

        aggregate = self.calculate_aggregate_tax(year_gains, is_filer=status)

        cutover = self.rate_table.cutover_date
        tax_current_regime = Decimal(0)
        tax_legacy_regime = Decimal(0)
        taxable_gain = Decimal(0)
        for sale in aggregate.sales:
            for lot in sale.per_lot_breakdown:
                taxable_gain += lot.taxable_gain
                if lot.acquisition_date >= cutover:
                    tax_current_regime += lot.tax
                else:
                    tax_legacy_regime += lot.tax

        logger.info(
            f"PK tax year {tax_year} ({start} to {end}): {len(year_gains)} sales, "
            f"tax Rs. {aggregate.total_tax:.2f}"
        )

        return TaxLiability(
            jurisdiction="PK",
            tax_year=tax_year,
            total_realized_gain=aggregate.net_gain,
            taxable_gain=taxable_gain,
            tax_owed=aggregate.total_tax,
            breakdown={
                "total_gains": aggregate.total_gains,
                "total_losses": aggregate.total_losses,
                "net_gain": aggregate.net_gain,
                "tax_legacy_regime": tax_legacy_regime,
                "tax_current_regime": tax_current_regime,
                "net_profit_after_tax": aggregate.net_profit_after_tax,
            },
            notes=(
                f"Tax year {start.isoformat()} to {end.isoformat()}, "
                f"{'Filer' if status else 'Non-Filer'}"
            ),
            assumptions=[
                "Tax computed per consumed lot at the rate of its acquisition regime",
                "Losses are not offset against gains of other lots",
                "Commissions are not deducted from gains",
            ],
            calculation_date=date.today(),
        )
