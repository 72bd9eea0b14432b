"""
What-If Scenarios - Tax Optimization Analyzer

Read-only analysis on top of a LotLedger and a PakistanTaxCalculator:
- Sale timing (sell now vs. after a delay)
- Tax loss harvesting
- Filer vs. non-filer comparison (per sale and portfolio-wide)
- Holding period milestones under the legacy schedule
- Break-even prices and tax-aware rebalancing
- PSX fiscal year-end projection

Every sale priced here goes through LotLedger.simulate_sell(), so no
committed lot is ever consumed. Filer comparisons pass an explicit
`is_filer` override and never change the calculator's stored status.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from psx_cgt.core.calendar import days_between, fiscal_year_bounds, settlement_date
from psx_cgt.modules.tax.calculators.pakistan import PakistanTaxCalculator
from psx_cgt.modules.tax.calculators.rate_config import SCENARIO_SETTINGS
from psx_cgt.modules.tax.engine import LotLedger
from psx_cgt.modules.tax.exceptions import TaxEngineError, ValidationError
from psx_cgt.modules.tax.tax_events import RealizedGain, SaleTax
from psx_cgt.parsers.enhanced_transaction import parse_decimal
from psx_cgt.utils.logging_config import get_perf_logger, setup_logger

logger = setup_logger(__name__)


def _pct(value: Decimal, places: int = 2) -> str:
    return f"{value * 100:.{places}f}%"


class WhatIfAnalyzer:
    """
    Tax optimization scenarios over one ledger.

    Args:
        ledger: Committed LotLedger (only read)
        calculator: Rate engine; its filer status is the default for every scenario
        settings: Overrides for rate_config.SCENARIO_SETTINGS
    """

    def __init__(
        self,
        ledger: LotLedger,
        calculator: Optional[PakistanTaxCalculator] = None,
        settings: Optional[Dict[str, Any]] = None
    ):
        self.ledger = ledger
        self.calculator = calculator or PakistanTaxCalculator()
        self.settings = {**SCENARIO_SETTINGS, **(settings or {})}

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _amount_setting(self, key: str) -> Decimal:
        return parse_decimal(self.settings[key], key)

    def _status(self, is_filer: Optional[bool]) -> bool:
        return self.calculator.is_filer if is_filer is None else is_filer

    @staticmethod
    def _prices(current_prices: Optional[Mapping[str, Any]]) -> Dict[str, Decimal]:
        """Upper-cased symbols with positive prices; anything else is skipped."""
        prices = {}
        for symbol, price in (current_prices or {}).items():
            if price is None or price == "":
                continue
            value = parse_decimal(price, f"price of {symbol}")
            if value <= 0:
                logger.warning(f"Ignoring non-positive price {value} for {symbol}")
                continue
            prices[symbol.strip().upper()] = value
        return prices

    def _current_rate(self, is_filer: Optional[bool]) -> Decimal:
        """Rate of the newest regime for a fresh lot."""
        return self.calculator.rate_table.current_regime.rate_for(0, self._status(is_filer))

    def _simulate(
        self,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        as_of: date,
        is_filer: Optional[bool] = None
    ) -> SaleTax:
        gain = self.ledger.simulate_sell(symbol, quantity, price, as_of)
        return self.calculator.calculate_tax_for_sale(gain, is_filer=is_filer)

    # ------------------------------------------------------------------
    # Sale timing
    # ------------------------------------------------------------------

    def analyze_optimal_timing(
        self,
        symbol: str,
        quantity: Any,
        current_price: Any,
        delays: Optional[Iterable[int]] = None,
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Tax if sold today vs. after each delay, at today's price.

        Raises:
            InsufficientHoldings: quantity exceeds what is held
        """
        as_of = as_of or date.today()
        delays = list(delays) if delays is not None else self.settings["timing_delays_days"]
        quantity = parse_decimal(quantity, "quantity")
        price = parse_decimal(current_price, "current_price")

        today = self._simulate(symbol, quantity, price, as_of)
        scenarios = [{
            "scenario": "Sell Today",
            "date": as_of,
            "days_from_now": 0,
            "tax": today.total_tax,
            "net_profit": today.net_profit,
            "effective_rate": today.effective_rate,
            "tax_savings": Decimal(0),
        }]

        for days in delays:
            future_date = as_of + timedelta(days=days)
            try:
                future = self._simulate(symbol, quantity, price, future_date)
            except TaxEngineError as e:
                logger.warning(f"Cannot calculate scenario for {days} days: {e}", extra={'symbol': symbol})
                continue

            scenarios.append({
                "scenario": f"Sell in {days} days",
                "date": future_date,
                "days_from_now": days,
                "tax": future.total_tax,
                "net_profit": future.net_profit,
                "effective_rate": future.effective_rate,
                "tax_savings": today.total_tax - future.total_tax,
            })

        optimal = min(scenarios, key=lambda s: s["tax"])
        savings = today.total_tax - optimal["tax"]
        if savings <= 0:
            recommendation = "Sell now - no tax benefit from waiting"
        else:
            recommendation = (
                f"Wait {optimal['days_from_now']} days to save Rs. {savings:.2f} "
                f"({savings / today.total_tax * 100:.1f}% reduction)"
            )

        return {
            "symbol": today.symbol,
            "quantity": quantity,
            "current_price": price,
            "scenarios": scenarios,
            "optimal": optimal,
            "recommendation": recommendation,
        }

    # ------------------------------------------------------------------
    # Loss harvesting
    # ------------------------------------------------------------------

    def identify_tax_loss_harvesting(
        self,
        current_prices: Mapping[str, Any],
        as_of: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """Held positions trading below cost, largest loss first."""
        as_of = as_of or date.today()
        prices = self._prices(current_prices)
        opportunities = []

        for symbol, holding in self.ledger.get_holdings().items():
            price = prices.get(symbol)
            if price is None:
                continue

            current_value = holding.market_value(price)
            unrealized = current_value - holding.total_cost_basis
            if unrealized >= 0:
                continue

            try:
                simulated = self.ledger.simulate_sell(symbol, holding.total_quantity, price, as_of)
            except TaxEngineError as e:
                logger.warning(f"Cannot simulate {symbol}: {e}", extra={'symbol': symbol})
                continue

            opportunities.append({
                "symbol": symbol,
                "quantity": holding.total_quantity,
                "cost_basis": holding.total_cost_basis,
                "current_value": current_value,
                "unrealized_loss": abs(unrealized),
                "loss_percentage": f"{unrealized / holding.total_cost_basis * 100:.2f}",
                "current_price": price,
                "average_cost": holding.weighted_average_cost,
                "realized_loss_if_sold": abs(simulated.capital_gain),
                "recommendation": f"Sell to realize loss of Rs. {abs(unrealized):.2f} for tax offset",
            })

        opportunities.sort(key=lambda o: o["unrealized_loss"], reverse=True)
        return opportunities

    def suggest_loss_harvesting(
        self,
        current_prices: Mapping[str, Any],
        realized_gains_total: Any = None,
        min_savings: Any = None,
        as_of: Optional[date] = None,
        is_filer: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        Losses that could offset realized gains, with the tax they would save.

        realized_gains_total defaults to the positive gains realized so far in
        the fiscal year containing `as_of`.
        """
        as_of = as_of or date.today()
        prices = self._prices(current_prices)
        threshold = (parse_decimal(min_savings, "min_savings") if min_savings is not None
                     else self._amount_setting("min_loss_harvest_savings"))

        if realized_gains_total is None:
            start, end = fiscal_year_bounds(as_of)
            realized = sum(
                (g.capital_gain for g in self.ledger.get_realized_gains(start, end) if g.capital_gain > 0),
                Decimal(0)
            )
        else:
            realized = parse_decimal(realized_gains_total, "realized_gains_total")

        rate = self._current_rate(is_filer)
        suggestions = []

        for symbol, holding in self.ledger.get_holdings().items():
            price = prices.get(symbol)
            if price is None:
                continue

            current_value = holding.market_value(price)
            loss = holding.total_cost_basis - current_value
            if loss <= 0:
                continue

            offset = min(loss, realized)
            savings = offset * rate
            if savings <= threshold:
                continue

            suggestions.append({
                "type": "LOSS_HARVEST",
                "symbol": symbol,
                "quantity": holding.total_quantity,
                "average_cost": holding.weighted_average_cost,
                "current_price": price,
                "recommendation": f"Sell {holding.total_quantity} shares at Rs. {price:.2f}",
                "unrealized_loss": loss,
                "loss_percentage": f"{loss / holding.total_cost_basis * 100:.2f}",
                "realized_gains_to_offset": offset,
                "tax_savings": savings,
                "savings": savings,
                "net_benefit": savings,
                "explanation": (
                    f"Selling {holding.total_quantity} {symbol} at Rs. {price:.2f} realizes a loss of "
                    f"Rs. {loss:.2f}. This offsets Rs. {offset:.2f} of your realized gains, saving you "
                    f"Rs. {savings:.2f} in taxes ({_pct(rate, 0)} rate)."
                ),
                "detailed_breakdown": {
                    "cost_basis": holding.total_cost_basis,
                    "current_value": current_value,
                    "realized_loss": loss,
                    "your_realized_gains": realized,
                    "offset_amount": offset,
                    "tax_rate": _pct(rate, 0),
                    "tax_savings": savings,
                },
            })

        suggestions.sort(key=lambda s: s["tax_savings"], reverse=True)
        return suggestions

    # ------------------------------------------------------------------
    # Filer status
    # ------------------------------------------------------------------

    def compare_filer_status(self, realized_gain: RealizedGain) -> Dict[str, Any]:
        """Tax on one (real or simulated) sale as filer and as non-filer."""
        filer = self.calculator.calculate_tax_for_sale(realized_gain, is_filer=True)
        non_filer = self.calculator.calculate_tax_for_sale(realized_gain, is_filer=False)
        difference = non_filer.total_tax - filer.total_tax

        return {
            "symbol": realized_gain.symbol,
            "capital_gain": realized_gain.capital_gain,
            "filer": {
                "tax": filer.total_tax,
                "net_profit": filer.net_profit,
                "effective_rate": filer.effective_rate,
            },
            "non_filer": {
                "tax": non_filer.total_tax,
                "net_profit": non_filer.net_profit,
                "effective_rate": non_filer.effective_rate,
            },
            "tax_difference": difference,
            "savings_by_being_filer": difference,
            "recommendation": (
                f"Being a filer saves Rs. {difference:.2f} on this transaction" if difference > 0
                else "No tax difference between filer and non-filer for this transaction"
            ),
        }

    def compare_filing_status_portfolio(
        self,
        current_prices: Mapping[str, Any],
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """Realized plus liquidation tax of the whole portfolio under both statuses."""
        as_of = as_of or date.today()
        prices = self._prices(current_prices)
        realized = self.ledger.get_realized_gains()
        holdings = self.ledger.get_holdings()

        totals = {}
        for label, status in (("filer", True), ("non_filer", False)):
            realized_tax = sum(
                (self.calculator.calculate_tax_for_sale(g, is_filer=status).total_tax for g in realized),
                Decimal(0)
            )
            unrealized_tax = Decimal(0)
            details = []
            for symbol, holding in holdings.items():
                price = prices.get(symbol)
                if price is None:
                    continue
                try:
                    sale = self._simulate(symbol, holding.total_quantity, price, as_of, is_filer=status)
                except TaxEngineError as e:
                    logger.warning(f"Cannot simulate {symbol}: {e}", extra={'symbol': symbol})
                    continue
                unrealized_tax += sale.total_tax
                details.append({"symbol": symbol, "unrealized_gain": sale.capital_gain, "tax": sale.total_tax})

            totals[label] = {
                "realized_tax": realized_tax,
                "unrealized_tax": unrealized_tax,
                "total_tax": realized_tax + unrealized_tax,
                "details": details,
            }

        filer_total = totals["filer"]["total_tax"]
        non_filer_total = totals["non_filer"]["total_tax"]
        difference = non_filer_total - filer_total
        share = difference / non_filer_total * 100 if non_filer_total > 0 else Decimal(0)

        if difference > 0:
            recommendation = (
                f"As a non-filer, you're paying Rs. {difference:.2f} extra ({share:.1f}% more). "
                f"Consider becoming a filer to save on taxes."
            )
            explanation = (
                f"Being a filer lowers the rate on securities acquired before "
                f"{self.calculator.rate_table.cutover_date.strftime('%B %d, %Y')}. "
                f"Your current portfolio would save Rs. {difference:.2f} by filing taxes."
            )
        else:
            recommendation = (
                "Currently, there is no tax difference between filer and non-filer status "
                "for your portfolio."
            )
            explanation = (
                "Securities acquired under the current regime are taxed at the same flat rate "
                "regardless of filer status."
            )

        return {
            "type": "FILER_COMPARISON",
            "filer": totals["filer"],
            "non_filer": totals["non_filer"],
            "difference": difference,
            "savings": difference,
            "savings_percentage": f"{share:.2f}",
            "recommendation": recommendation,
            "explanation": explanation,
            "current_status": "Filer" if self.calculator.is_filer else "Non-Filer",
        }

    # ------------------------------------------------------------------
    # Portfolio
    # ------------------------------------------------------------------

    def analyze_portfolio_tax_efficiency(
        self,
        current_prices: Mapping[str, Any],
        as_of: Optional[date] = None,
        is_filer: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Liquidation tax of every priced position plus portfolio totals."""
        as_of = as_of or date.today()
        prices = self._prices(current_prices)
        high_rate = self._amount_setting("high_effective_rate")

        total_gains = Decimal(0)
        total_losses = Decimal(0)
        total_tax = Decimal(0)
        stock_analysis = []

        with get_perf_logger(logger, "portfolio tax efficiency", threshold_ms=500):
            for symbol, holding in self.ledger.get_holdings().items():
                price = prices.get(symbol)
                if price is None:
                    logger.warning(f"No price provided for {symbol}", extra={'symbol': symbol})
                    continue

                current_value = holding.market_value(price)
                unrealized = current_value - holding.total_cost_basis

                try:
                    sale = self._simulate(symbol, holding.total_quantity, price, as_of, is_filer=is_filer)
                except TaxEngineError as e:
                    logger.warning(f"Cannot analyze {symbol}: {e}", extra={'symbol': symbol})
                    continue

                if unrealized > 0:
                    total_gains += unrealized
                    total_tax += sale.total_tax
                else:
                    total_losses += abs(unrealized)

                if unrealized < 0:
                    recommendation = f"Consider tax loss harvesting - realize loss of Rs. {abs(unrealized):.2f}"
                elif sale.effective_rate > high_rate:
                    recommendation = f"High tax rate ({_pct(sale.effective_rate, 1)}) - consider holding longer"
                else:
                    recommendation = "Position is tax-efficient"

                stock_analysis.append({
                    "symbol": symbol,
                    "quantity": holding.total_quantity,
                    "cost_basis": holding.total_cost_basis,
                    "current_value": current_value,
                    "unrealized_gain_loss": unrealized,
                    "potential_tax": sale.total_tax,
                    "net_profit_after_tax": sale.net_profit,
                    "effective_rate": sale.effective_rate,
                    "recommendation": recommendation,
                })

        net = total_gains - total_losses

        losers = [s for s in stock_analysis if s["unrealized_gain_loss"] < 0]
        winners = [s for s in stock_analysis if s["unrealized_gain_loss"] > 0]
        summary = []
        if losers:
            loss_total = sum((abs(s["unrealized_gain_loss"]) for s in losers), Decimal(0))
            summary.append(
                f"{len(losers)} positions with losses (Rs. {loss_total:.2f}) - consider tax loss harvesting"
            )
        if total_tax > 0:
            summary.append(f"Potential tax liability: Rs. {total_tax:.2f} if all positions are liquidated")
        if winners and losers:
            summary.append("Consider offsetting gains with losses to minimize tax")

        return {
            "total_unrealized_gains": total_gains,
            "total_unrealized_losses": total_losses,
            "net_unrealized_gain": net,
            "potential_tax_liability": total_tax,
            "net_portfolio_value": net - total_tax,
            "stock_analysis": stock_analysis,
            "summary": summary,
        }

    def calculate_break_even(
        self,
        symbol: str,
        include_tax: bool = True,
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Sale price that recovers the average cost, optionally after tax.

        The rate is estimated from the oldest open lot.
        """
        as_of = as_of or date.today()
        symbol = symbol.strip().upper()
        holding = self.ledger.get_holdings().get(symbol)
        if holding is None:
            raise ValidationError(f"No holdings found for {symbol}", field="symbol", value=symbol)

        break_even = holding.weighted_average_cost
        break_even_with_tax = break_even
        rate = Decimal(0)

        if include_tax:
            first_lot = holding.lots[0]
            held_days = days_between(first_lot.acquisition_date, settlement_date(as_of))
            rate = self.calculator.rate_for(first_lot.acquisition_date, held_days)
            # price - tax on (price - cost) = cost  =>  price = cost / (1 - rate)
            break_even_with_tax = break_even / (1 - rate)

        impact = break_even_with_tax - break_even

        return {
            "symbol": symbol,
            "quantity": holding.total_quantity,
            "average_cost": holding.weighted_average_cost,
            "total_cost_basis": holding.total_cost_basis,
            "estimated_tax_rate": rate,
            "break_even_no_tax": break_even,
            "break_even_with_tax": break_even_with_tax,
            "tax_impact": impact,
            "tax_impact_percent": f"{impact / break_even * 100:.2f}",
        }

    def generate_rebalancing_plan(
        self,
        target_allocation: Mapping[str, Any],
        current_prices: Mapping[str, Any],
        min_trade_value: Any = None,
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Trades that move the portfolio toward `target_allocation`
        ({symbol: percent}), with the tax each sale would trigger.
        """
        as_of = as_of or date.today()
        prices = self._prices(current_prices)
        threshold = (parse_decimal(min_trade_value, "min_trade_value") if min_trade_value is not None
                     else self._amount_setting("min_rebalance_trade_value"))
        holdings = self.ledger.get_holdings()

        current_allocation = {}
        total_value = Decimal(0)
        for symbol, holding in holdings.items():
            price = prices.get(symbol)
            if price is not None:
                value = holding.market_value(price)
                current_allocation[symbol] = value
                total_value += value

        trades = []
        for raw_symbol, percent in target_allocation.items():
            symbol = raw_symbol.strip().upper()
            target_value = total_value * parse_decimal(percent, f"allocation of {symbol}") / 100
            difference = target_value - current_allocation.get(symbol, Decimal(0))

            if abs(difference) <= threshold:
                continue

            price = prices.get(symbol)
            if price is None:
                logger.warning(f"No price for {symbol}; skipped in rebalancing", extra={'symbol': symbol})
                continue

            quantity = Decimal(math.floor(abs(difference) / price))
            if quantity == 0:
                continue

            if difference > 0:
                trades.append({
                    "action": "BUY",
                    "symbol": symbol,
                    "quantity": quantity,
                    "estimated_value": difference,
                    "tax_impact": Decimal(0),
                })
                continue

            try:
                sale = self._simulate(symbol, quantity, price, as_of)
            except TaxEngineError as e:
                logger.warning(f"Cannot simulate sale for {symbol}: {e}", extra={'symbol': symbol})
                continue

            trades.append({
                "action": "SELL",
                "symbol": symbol,
                "quantity": quantity,
                "estimated_value": abs(difference),
                "tax_impact": sale.total_tax,
                "net_profit": sale.net_profit,
            })

        total_tax_impact = sum((t["tax_impact"] for t in trades), Decimal(0))
        high_impact = total_tax_impact > total_value * self._amount_setting("high_tax_impact_share")

        return {
            "current_allocation": current_allocation,
            "target_allocation": dict(target_allocation),
            "total_value": total_value,
            "trades": trades,
            "total_tax_impact": total_tax_impact,
            "recommendation": (
                "High tax impact - consider gradual rebalancing" if high_impact
                else "Rebalancing is tax-efficient"
            ),
        }

    def generate_optimization_report(
        self,
        current_prices: Mapping[str, Any],
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """Portfolio analysis plus loss harvesting, condensed into top recommendations."""
        as_of = as_of or date.today()
        portfolio = self.analyze_portfolio_tax_efficiency(current_prices, as_of=as_of)
        loss_harvesting = self.identify_tax_loss_harvesting(current_prices, as_of=as_of)
        high_rate = self._amount_setting("high_effective_rate")

        recommendations = []
        estimated_savings = Decimal(0)

        if loss_harvesting:
            total_losses = sum((o["unrealized_loss"] for o in loss_harvesting), Decimal(0))
            savings = total_losses * self._current_rate(None)
            recommendations.append({
                "priority": 1,
                "category": "Tax Loss Harvesting",
                "description": f"Realize Rs. {total_losses:.2f} in losses to offset gains",
                "estimated_savings": savings,
            })
            estimated_savings += savings

        high_tax = [s for s in portfolio["stock_analysis"] if s["effective_rate"] > high_rate]
        if high_tax:
            recommendations.append({
                "priority": 2,
                "category": "Holding Period Optimization",
                "description": f"{len(high_tax)} positions with high tax rates - consider holding longer",
                "positions": [s["symbol"] for s in high_tax],
            })

        return {
            "generated_at": as_of,
            "portfolio": portfolio,
            "loss_harvesting_opportunities": loss_harvesting,
            "top_recommendations": recommendations,
            "estimated_tax_savings": estimated_savings,
        }

    # ------------------------------------------------------------------
    # Holding period and fiscal year
    # ------------------------------------------------------------------

    def scan_holding_period_opportunities(
        self,
        current_prices: Mapping[str, Any],
        window_days: Optional[int] = None,
        min_savings: Any = None,
        as_of: Optional[date] = None,
        is_filer: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        Lots within `window_days` of a holding-period milestone where waiting
        lowers the rate. Milestones are the bucket boundaries of each lot's
        regime, so flat-rate lots never qualify.
        """
        as_of = as_of or date.today()
        window = window_days if window_days is not None else self.settings["holding_period_window_days"]
        threshold = (parse_decimal(min_savings, "min_savings") if min_savings is not None
                     else self._amount_setting("min_holding_period_savings"))
        status = self._status(is_filer)
        prices = self._prices(current_prices)
        sale_settles = settlement_date(as_of)
        opportunities = []

        for lot in self.ledger.get_open_lots():
            price = prices.get(lot.symbol)
            if price is None or lot.remaining_quantity <= 0:
                continue

            regime = self.calculator.rate_table.regime_for(lot.acquisition_date)
            held_days = days_between(lot.acquisition_date, sale_settles)
            gain = (price - lot.unit_cost) * lot.remaining_quantity
            current_rate = regime.rate_for(held_days, status)
            current_tax = max(Decimal(0), gain * current_rate)

            for milestone in regime.milestones(status):
                days_to_wait = milestone - held_days
                if not 0 < days_to_wait <= window:
                    continue

                target_rate = regime.rate_for(milestone, status)
                optimized_tax = max(Decimal(0), gain * target_rate)
                savings = current_tax - optimized_tax
                if savings <= threshold:
                    continue

                years = milestone // 365
                name = f"{years} year" if years == 1 else f"{years} years"
                milestone_date = lot.acquisition_date + timedelta(days=milestone)

                opportunities.append({
                    "type": "HOLDING_PERIOD",
                    "symbol": lot.symbol,
                    "lot_id": lot.lot_id,
                    "quantity": lot.remaining_quantity,
                    "recommendation": f"Wait {days_to_wait} days to reach {name} holding period",
                    "current_tax": current_tax,
                    "optimized_tax": optimized_tax,
                    "savings": savings,
                    "days_to_wait": days_to_wait,
                    "milestone_date": milestone_date,
                    "acquisition_date": lot.acquisition_date,
                    "current_tax_rate": _pct(current_rate, 1),
                    "target_tax_rate": _pct(target_rate, 1),
                    "explanation": (
                        f"On {milestone_date.strftime('%b %d, %Y')}, your holding period will exceed {name}. "
                        f"Tax rate will drop from {_pct(current_rate, 1)} to {_pct(target_rate, 1)}, "
                        f"saving you Rs. {savings:.2f}."
                    ),
                })

        opportunities.sort(key=lambda o: o["savings"], reverse=True)
        return opportunities

    def project_year_end_tax(
        self,
        current_prices: Optional[Mapping[str, Any]] = None,
        as_of: Optional[date] = None,
        is_filer: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Fiscal year-to-date tax, liquidation exposure and actions before 30 June."""
        as_of = as_of or date.today()
        prices = self._prices(current_prices)
        fy_start, fy_end = fiscal_year_bounds(as_of)

        days_remaining = days_between(as_of, fy_end)
        days_completed = days_between(fy_start, as_of)
        total_days = days_between(fy_start, fy_end)

        gains_total = Decimal(0)
        losses_total = Decimal(0)
        realized_tax = Decimal(0)
        transactions = []
        for gain in self.ledger.get_realized_gains(fy_start, fy_end):
            sale = self.calculator.calculate_tax_for_sale(gain, is_filer=is_filer)
            if gain.capital_gain > 0:
                gains_total += gain.capital_gain
            else:
                losses_total += abs(gain.capital_gain)
            realized_tax += sale.total_tax
            transactions.append({
                "symbol": gain.symbol,
                "date": gain.sale_date,
                "gain": gain.capital_gain,
                "tax": sale.total_tax,
            })
        net_realized = gains_total - losses_total

        unrealized_gains = Decimal(0)
        unrealized_losses = Decimal(0)
        potential_tax = Decimal(0)
        details = []
        for symbol, holding in self.ledger.get_holdings().items():
            price = prices.get(symbol)
            if price is None:
                continue
            unrealized = holding.unrealized_gain(price)
            try:
                sale = self._simulate(symbol, holding.total_quantity, price, as_of, is_filer=is_filer)
            except TaxEngineError as e:
                logger.warning(f"Cannot simulate {symbol}: {e}", extra={'symbol': symbol})
                continue

            if unrealized > 0:
                unrealized_gains += unrealized
                potential_tax += sale.total_tax
            else:
                unrealized_losses += abs(unrealized)
            details.append({"symbol": symbol, "unrealized_gain_loss": unrealized, "potential_tax": sale.total_tax})

        recommendations = []
        if unrealized_losses > 0 and gains_total > 0:
            offset = min(unrealized_losses, gains_total)
            savings = offset * self._current_rate(is_filer)
            recommendations.append({
                "priority": 1,
                "type": "LOSS_HARVEST_YEAR_END",
                "action": f"Harvest losses before {fy_end.strftime('%B %d')}",
                "potential_savings": savings,
                "description": (
                    f"You have Rs. {unrealized_losses:.2f} in unrealized losses. Selling these positions "
                    f"before {fy_end.strftime('%B %d')} can offset Rs. {offset:.2f} of your realized gains, "
                    f"saving Rs. {savings:.2f} in taxes."
                ),
                "deadline": fy_end,
            })

        if unrealized_gains > 0 and days_remaining < self.settings["defer_gains_window_days"]:
            recommendations.append({
                "priority": 2,
                "type": "DEFER_GAINS",
                "action": "Consider deferring gains to next fiscal year",
                "description": (
                    f"You have Rs. {unrealized_gains:.2f} in unrealized gains. If you can wait "
                    f"{days_remaining} days until the new fiscal year, you can defer tax payment by one year."
                ),
                "days_to_wait": days_remaining,
                "deadline": fy_end,
            })

        if days_remaining > self.settings["holding_period_window_days"]:
            holding_opps = self.scan_holding_period_opportunities(current_prices, as_of=as_of, is_filer=is_filer)
            if holding_opps:
                total_savings = sum((o["savings"] for o in holding_opps), Decimal(0))
                recommendations.append({
                    "priority": 3,
                    "type": "HOLDING_PERIOD",
                    "action": "Optimize holding periods",
                    "potential_savings": total_savings,
                    "description": (
                        f"{len(holding_opps)} positions are approaching tax milestone dates. "
                        f"Waiting could save Rs. {total_savings:.2f}."
                    ),
                    "opportunities": holding_opps[:self.settings["top_opportunities"]],
                })

        if days_remaining < self.settings["year_end_high_urgency_days"]:
            urgency = "HIGH"
        elif days_remaining < self.settings["year_end_medium_urgency_days"]:
            urgency = "MEDIUM"
        else:
            urgency = "LOW"

        return {
            "type": "YEAR_END_PROJECTION",
            "fiscal_year": {
                "start": fy_start,
                "end": fy_end,
                "current": as_of,
                "days_remaining": days_remaining,
                "days_completed": days_completed,
                "progress_percentage": f"{Decimal(days_completed) / Decimal(total_days) * 100:.1f}",
            },
            "realized": {
                "gains": gains_total,
                "losses": losses_total,
                "net_gain": net_realized,
                "tax": realized_tax,
                "transactions": transactions,
            },
            "unrealized": {
                "gains": unrealized_gains,
                "losses": unrealized_losses,
                "potential_tax": potential_tax,
                "details": details,
            },
            "projection": {
                "total_tax_liability": realized_tax,
                "potential_additional_tax": potential_tax,
                "max_tax_liability": realized_tax + potential_tax,
                "net_position": net_realized + unrealized_gains - unrealized_losses,
            },
            "recommendations": recommendations,
            "summary": (
                f"Year-to-date (FY {fy_start.year}-{fy_end.year}): You've realized Rs. {net_realized:.2f} "
                f"in net gains with Rs. {realized_tax:.2f} in tax liability. With {days_remaining} days "
                f"until fiscal year end, you have time to optimize your tax position."
            ),
            "urgency_level": urgency,
        }

    def generate_complete_optimization_report(
        self,
        holdings: Any,
        realized_gains_total: Any = 0,
        is_filer: Optional[bool] = None,
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Holding period, loss harvesting, filer status and year-end analysis
        in one report, with every opportunity ranked by savings.

        Args:
            holdings: [{"symbol": ..., "current_price": ...}, ...] or {symbol: price}
            realized_gains_total: Gains to offset; 0 means use the fiscal year's realized gains
            is_filer: Status to analyse under (default: calculator's status, left unchanged)
        """
        as_of = as_of or date.today()
        status = self._status(is_filer)

        if isinstance(holdings, Mapping):
            prices = dict(holdings)
        else:
            prices = {
                h["symbol"]: h["current_price"]
                for h in holdings or []
                if h.get("symbol") and h.get("current_price")
            }

        with get_perf_logger(logger, "complete optimization report", threshold_ms=1000):
            holding_opps = self.scan_holding_period_opportunities(prices, as_of=as_of, is_filer=status)
            loss_opps = self.suggest_loss_harvesting(
                prices,
                realized_gains_total=realized_gains_total or None,
                as_of=as_of,
                is_filer=status,
            )
            filer_comparison = self.compare_filing_status_portfolio(prices, as_of=as_of)
            projection = self.project_year_end_tax(prices, as_of=as_of, is_filer=status)

        optimizations = holding_opps + loss_opps
        if filer_comparison["savings"] > 0:
            optimizations.append({
                "type": "FILER_STATUS",
                "recommendation": "Become a filer",
                "savings": filer_comparison["savings"],
                "explanation": filer_comparison["recommendation"],
            })
        optimizations.sort(key=lambda o: o.get("savings", Decimal(0)), reverse=True)

        return {
            "generated_at": as_of,
            "is_filer": status,
            "optimizations": optimizations,
            "top_recommendations": optimizations[:self.settings["top_opportunities"]],
            "holding_period_optimizations": holding_opps,
            "loss_harvesting_opportunities": loss_opps,
            "filer_comparison": filer_comparison,
            "year_end_projection": projection,
            "total_potential_savings": sum((o.get("savings", Decimal(0)) for o in optimizations), Decimal(0)),
            "top_recommendation": optimizations[0] if optimizations else None,
            "urgent_actions": [r for r in projection["recommendations"] if r["priority"] == 1],
        }
