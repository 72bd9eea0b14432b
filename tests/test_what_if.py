"""
Unit Tests for What-If Tax Scenarios

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date
from decimal import Decimal

import pytest

from psx_cgt.modules.scenarios.what_if import WhatIfAnalyzer
from psx_cgt.modules.tax.calculators.pakistan import PakistanTaxCalculator
from psx_cgt.modules.tax.engine import LotLedger
from psx_cgt.modules.tax.exceptions import InsufficientHoldings, ValidationError
from psx_cgt.modules.tax.tax_events import LotConsumption, RealizedGain
from psx_cgt.parsers.enhanced_transaction import round_money


def lot_state(ledger):
    return [(lot.lot_id, lot.remaining_quantity, lot.unit_cost) for lot in ledger.get_open_lots()]


@pytest.fixture
def calculator():
    return PakistanTaxCalculator(is_filer=True)


@pytest.fixture
def legacy_ledger():
    """One lot acquired under the holding-period schedule (settles 2023-01-04)."""
    ledger = LotLedger()
    ledger.buy("HBL", 100, 100, "2023-01-02")
    return ledger


@pytest.fixture
def portfolio_ledger():
    """
    Current-regime positions plus one realized gain of Rs. 5,000 in FY 2024-25.
    """
    ledger = LotLedger()
    ledger.buy("GAIN", 100, 100, "2025-01-01")
    ledger.sell("GAIN", 100, 150, "2025-03-03")
    ledger.buy("ABC", 100, 100, "2025-01-01")
    ledger.buy("XYZ", 100, 50, "2025-01-01")
    return ledger


class TestOptimalTiming:

    def test_crossing_legacy_milestone(self, legacy_ledger, calculator):
        analyzer = WhatIfAnalyzer(legacy_ledger, calculator)
        before = lot_state(legacy_ledger)

        result = analyzer.analyze_optimal_timing("HBL", 100, 200, as_of=date(2023, 10, 27))

        taxes = [s["tax"] for s in result["scenarios"]]
        assert taxes == [Decimal("1500"), Decimal("1500"), Decimal("1250"), Decimal("1250"), Decimal("1250")]
        assert result["optimal"]["days_from_now"] == 90
        assert result["recommendation"] == "Wait 90 days to save Rs. 250.00 (16.7% reduction)"
        assert lot_state(legacy_ledger) == before
        assert legacy_ledger.get_realized_gains() == []

    def test_current_regime_sell_now(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.analyze_optimal_timing("ABC", 50, 150, delays=[30, 365], as_of=date(2025, 6, 2))

        assert len(result["scenarios"]) == 3
        assert result["optimal"]["days_from_now"] == 0
        assert result["recommendation"] == "Sell now - no tax benefit from waiting"

    def test_oversized_quantity(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)
        with pytest.raises(InsufficientHoldings):
            analyzer.analyze_optimal_timing("ABC", 500, 150, as_of=date(2025, 6, 2))


class TestLossHarvesting:

    def test_identify(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.identify_tax_loss_harvesting({"abc": 80, "XYZ": 60}, as_of=date(2025, 6, 2))

        assert [o["symbol"] for o in result] == ["ABC"]
        assert result[0]["unrealized_loss"] == Decimal("2000")
        assert result[0]["loss_percentage"] == "-20.00"
        assert result[0]["realized_loss_if_sold"] == Decimal("2000")

    def test_suggest_uses_fiscal_year_gains(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.suggest_loss_harvesting({"ABC": 80, "XYZ": 60}, as_of=date(2025, 6, 2))

        assert len(result) == 1
        suggestion = result[0]
        assert suggestion["type"] == "LOSS_HARVEST"
        assert suggestion["realized_gains_to_offset"] == Decimal("2000")
        assert suggestion["tax_savings"] == Decimal("300")
        assert "(15% rate)" in suggestion["explanation"]

    def test_suggest_below_threshold(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.suggest_loss_harvesting(
            {"ABC": 80}, realized_gains_total=500, as_of=date(2025, 6, 2)
        )

        assert result == []

    def test_no_gains_next_fiscal_year(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        assert analyzer.suggest_loss_harvesting({"ABC": 80}, as_of=date(2025, 7, 15)) == []


class TestFilerComparison:

    def test_single_sale(self, calculator):
        calculator.set_filer_status(False)
        gain = RealizedGain(
            symbol="HBL",
            quantity_sold=Decimal("100"),
            unit_sale_price=Decimal("200"),
            sale_proceeds=Decimal("20000"),
            total_cost_basis=Decimal("10000"),
            capital_gain=Decimal("10000"),
            lots_consumed=(LotConsumption("HBL-1", date(2023, 1, 4), Decimal("100"), Decimal("100"), 400),),
            sale_date=date(2024, 2, 8),
            trade_date=date(2024, 2, 6),
        )
        analyzer = WhatIfAnalyzer(LotLedger(), calculator)

        result = analyzer.compare_filer_status(gain)

        assert result["filer"]["tax"] == Decimal("1250")
        assert result["non_filer"]["tax"] == Decimal("1500")
        assert result["recommendation"] == "Being a filer saves Rs. 250.00 on this transaction"
        assert calculator.is_filer is False

    def test_portfolio(self, legacy_ledger, calculator):
        analyzer = WhatIfAnalyzer(legacy_ledger, calculator)

        result = analyzer.compare_filing_status_portfolio({"HBL": 200}, as_of=date(2024, 3, 1))

        assert result["filer"]["total_tax"] == Decimal("1250")
        assert result["non_filer"]["total_tax"] == Decimal("1500")
        assert result["difference"] == Decimal("250")
        assert result["savings_percentage"] == "16.67"
        assert result["recommendation"].startswith("As a non-filer")
        assert result["current_status"] == "Filer"

    def test_portfolio_current_regime_no_difference(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.compare_filing_status_portfolio({"ABC": 150}, as_of=date(2025, 6, 2))

        assert result["difference"] == Decimal(0)
        assert result["recommendation"].startswith("Currently, there is no tax difference")


class TestPortfolioAnalysis:

    def test_tax_efficiency(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.analyze_portfolio_tax_efficiency({"ABC": 150, "XYZ": 40}, as_of=date(2025, 6, 2))

        assert result["total_unrealized_gains"] == Decimal("5000")
        assert result["total_unrealized_losses"] == Decimal("1000")
        assert result["net_unrealized_gain"] == Decimal("4000")
        assert result["potential_tax_liability"] == Decimal("750")
        assert result["net_portfolio_value"] == Decimal("3250")
        assert len(result["summary"]) == 3

        by_symbol = {s["symbol"]: s for s in result["stock_analysis"]}
        assert by_symbol["ABC"]["recommendation"] == "High tax rate (15.0%) - consider holding longer"
        assert by_symbol["XYZ"]["recommendation"].startswith("Consider tax loss harvesting")

    def test_unpriced_positions_skipped(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.analyze_portfolio_tax_efficiency({"ABC": 150, "XYZ": 0}, as_of=date(2025, 6, 2))

        assert [s["symbol"] for s in result["stock_analysis"]] == ["ABC"]

    def test_break_even(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.calculate_break_even("abc", as_of=date(2025, 6, 2))

        assert result["estimated_tax_rate"] == Decimal("0.15")
        assert round_money(result["break_even_with_tax"]) == Decimal("117.65")
        assert result["tax_impact_percent"] == "17.65"

    def test_break_even_without_tax(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.calculate_break_even("ABC", include_tax=False)

        assert result["break_even_with_tax"] == result["break_even_no_tax"] == Decimal("100")
        assert result["tax_impact_percent"] == "0.00"

    def test_break_even_unknown_symbol(self, portfolio_ledger, calculator):
        with pytest.raises(ValidationError):
            WhatIfAnalyzer(portfolio_ledger, calculator).calculate_break_even("LUCK")

    def test_rebalancing_plan(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)
        before = lot_state(portfolio_ledger)

        plan = analyzer.generate_rebalancing_plan(
            {"ABC": 50, "XYZ": 50}, {"ABC": 150, "XYZ": 50}, as_of=date(2025, 6, 2)
        )

        trades = {t["symbol"]: t for t in plan["trades"]}
        assert plan["total_value"] == Decimal("20000")
        assert trades["ABC"]["action"] == "SELL"
        assert trades["ABC"]["quantity"] == Decimal("33")
        assert trades["ABC"]["tax_impact"] == Decimal("247.5")
        assert trades["XYZ"]["action"] == "BUY"
        assert trades["XYZ"]["quantity"] == Decimal("100")
        assert plan["recommendation"] == "Rebalancing is tax-efficient"
        assert lot_state(portfolio_ledger) == before

    def test_rebalancing_already_on_target(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        plan = analyzer.generate_rebalancing_plan({"ABC": 75, "XYZ": 25}, {"ABC": 150, "XYZ": 50})

        assert plan["trades"] == []

    def test_optimization_report(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        report = analyzer.generate_optimization_report({"ABC": 150, "XYZ": 40}, as_of=date(2025, 6, 2))

        categories = [r["category"] for r in report["top_recommendations"]]
        assert categories == ["Tax Loss Harvesting", "Holding Period Optimization"]
        assert report["estimated_tax_savings"] == Decimal("150")


class TestHoldingPeriodScan:

    def test_lot_near_one_year(self, legacy_ledger, calculator):
        analyzer = WhatIfAnalyzer(legacy_ledger, calculator)

        result = analyzer.scan_holding_period_opportunities({"HBL": 200}, as_of=date(2023, 12, 1))

        assert len(result) == 1
        opportunity = result[0]
        assert opportunity["days_to_wait"] == 30
        assert opportunity["milestone_date"] == date(2024, 1, 4)
        assert opportunity["savings"] == Decimal("250")
        assert opportunity["current_tax_rate"] == "15.0%"
        assert opportunity["target_tax_rate"] == "12.5%"
        assert opportunity["recommendation"] == "Wait 30 days to reach 1 year holding period"

    def test_non_filer_has_no_milestone_benefit(self, legacy_ledger, calculator):
        analyzer = WhatIfAnalyzer(legacy_ledger, calculator)

        result = analyzer.scan_holding_period_opportunities({"HBL": 200}, as_of=date(2023, 12, 1), is_filer=False)

        assert result == []

    def test_outside_window(self, legacy_ledger, calculator):
        analyzer = WhatIfAnalyzer(legacy_ledger, calculator)

        result = analyzer.scan_holding_period_opportunities({"HBL": 200}, window_days=20, as_of=date(2023, 12, 1))

        assert result == []

    def test_current_regime_lots_never_qualify(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        assert analyzer.scan_holding_period_opportunities({"ABC": 500}, as_of=date(2025, 12, 20)) == []


class TestYearEndProjection:

    def test_close_to_year_end(self, portfolio_ledger, calculator):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)

        result = analyzer.project_year_end_tax({"ABC": 80, "XYZ": 60}, as_of=date(2025, 6, 10))

        assert result["fiscal_year"]["start"] == date(2024, 7, 1)
        assert result["fiscal_year"]["end"] == date(2025, 6, 30)
        assert result["fiscal_year"]["days_remaining"] == 20
        assert result["urgency_level"] == "HIGH"
        assert result["realized"]["gains"] == Decimal("5000")
        assert result["realized"]["tax"] == Decimal("750")
        assert result["unrealized"]["losses"] == Decimal("2000")

        types = [r["type"] for r in result["recommendations"]]
        assert types == ["LOSS_HARVEST_YEAR_END", "DEFER_GAINS"]
        assert result["recommendations"][0]["potential_savings"] == Decimal("300")
        assert "FY 2024-2025" in result["summary"]

    @pytest.mark.parametrize("as_of, urgency", [
        (date(2025, 6, 10), "HIGH"),
        (date(2025, 5, 1), "MEDIUM"),
        (date(2025, 3, 1), "LOW"),
    ])
    def test_urgency(self, portfolio_ledger, calculator, as_of, urgency):
        analyzer = WhatIfAnalyzer(portfolio_ledger, calculator)
        assert analyzer.project_year_end_tax(as_of=as_of)["urgency_level"] == urgency


class TestCompleteReport:

    def test_ranked_opportunities(self, calculator):
        ledger = LotLedger()
        ledger.buy("HBL", 100, 100, "2023-01-02")
        ledger.buy("LUCK", 100, 100, "2023-06-01")
        analyzer = WhatIfAnalyzer(ledger, calculator)

        report = analyzer.generate_complete_optimization_report(
            [{"symbol": "HBL", "current_price": 200}, {"symbol": "LUCK", "current_price": 80}],
            realized_gains_total=3000,
            as_of=date(2023, 12, 1),
        )

        types = [o["type"] for o in report["optimizations"]]
        assert types == ["LOSS_HARVEST", "HOLDING_PERIOD"]
        assert report["total_potential_savings"] == Decimal("550")
        assert report["top_recommendation"]["symbol"] == "LUCK"
        assert report["urgent_actions"] == []
        assert report["year_end_projection"]["urgency_level"] == "LOW"

    def test_status_override_leaves_calculator(self, legacy_ledger, calculator):
        analyzer = WhatIfAnalyzer(legacy_ledger, calculator)

        report = analyzer.generate_complete_optimization_report(
            {"HBL": 200}, is_filer=False, as_of=date(2023, 12, 1)
        )

        assert report["is_filer"] is False
        assert report["holding_period_optimizations"] == []
        assert calculator.is_filer is True
        assert len(legacy_ledger.get_transactions()) == 1
