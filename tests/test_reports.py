"""
Unit Tests for Report Frames and Text Reports

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from psx_cgt.modules.tax.calculators.pakistan import PakistanTaxCalculator
from psx_cgt.modules.tax.corporate_actions import CorporateActionProcessor
from psx_cgt.modules.tax.engine import LotLedger
from psx_cgt.modules.tax.reports import (
    HOLDING_COLUMNS,
    REALIZED_GAIN_COLUMNS,
    TAX_BREAKDOWN_COLUMNS,
    corporate_actions_report,
    holdings_frame,
    realized_gains_frame,
    tax_breakdown_frame,
    tax_report,
)


@pytest.fixture
def ledger():
    ledger = LotLedger()
    ledger.buy("ABC", 100, 100, "2025-01-01")
    ledger.buy("ABC", 50, 120, "2025-02-01")
    ledger.sell("ABC", 120, 150, "2025-03-01")
    ledger.buy("XYZ", 10, "33.333", "2025-01-01")
    return ledger


@pytest.fixture
def calculator():
    return PakistanTaxCalculator(is_filer=True)


class TestFrames:

    def test_realized_gains_frame(self, ledger):
        df = realized_gains_frame(ledger.get_realized_gains())

        assert list(df.columns) == REALIZED_GAIN_COLUMNS
        assert len(df) == 1
        row = df.iloc[0]
        assert row['capital_gain'] == 5600.0
        assert row['lots_used'] == 2
        assert row['sale_date'] == pd.Timestamp("2025-03-04")

    def test_realized_gains_frame_with_tax(self, ledger, calculator):
        df = realized_gains_frame(ledger.get_realized_gains(), calculator)

        row = df.iloc[0]
        assert row['tax'] == 840.0
        assert row['net_profit'] == 4760.0
        assert row['effective_rate'] == pytest.approx(0.15)

    def test_empty_frame_keeps_columns(self):
        df = realized_gains_frame([])
        assert df.empty
        assert list(df.columns) == REALIZED_GAIN_COLUMNS

    def test_holdings_frame(self, ledger):
        df = holdings_frame(ledger.get_holdings(), {"ABC": Decimal("140")})

        assert list(df.columns) == HOLDING_COLUMNS + ['current_price', 'market_value', 'unrealized_gain']
        abc = df[df['symbol'] == 'ABC'].iloc[0]
        assert abc['quantity'] == 30.0
        assert abc['market_value'] == 4200.0
        assert abc['unrealized_gain'] == 600.0

        xyz = df[df['symbol'] == 'XYZ'].iloc[0]
        assert xyz['total_cost_basis'] == 333.33
        assert pd.isna(xyz['market_value'])

    def test_tax_breakdown_frame(self, ledger, calculator):
        sale = calculator.calculate_tax_for_sale(ledger.get_realized_gains()[0])

        df = tax_breakdown_frame([sale])

        assert list(df.columns) == TAX_BREAKDOWN_COLUMNS
        assert df['tax'].tolist() == [750.0, 90.0]
        assert df['holding_days'].tolist() == [60, 28]


class TestTextReports:

    def test_tax_report(self, ledger, calculator):
        aggregate = calculator.calculate_aggregate_tax(
            ledger.get_realized_gains(), calculation_date=date(2025, 3, 10)
        )

        report = tax_report(aggregate)

        assert "PAKISTAN STOCK EXCHANGE - CAPITAL GAINS TAX REPORT" in report
        assert "Taxpayer Status: Filer" in report
        assert "Report Date: 2025-03-10" in report
        assert "Total Tax Liability:      Rs. 840.00" in report
        assert "Sale Proceeds:          Rs. 18,000.00" in report
        assert "Effective Tax Rate:       15.00%" in report
        assert "Lots Used:              2" in report

    def test_corporate_actions_report(self):
        ledger = LotLedger()
        ledger.buy("OGDC", 100, 100, "2025-01-01")
        processor = CorporateActionProcessor(ledger)
        bonus = processor.apply_bonus("OGDC", "2025-03-01", "20%", applied_on="2025-03-05")
        processor.apply_rights("OGDC", "2025-04-01", "1:5", 80, applied_on="2025-04-02")

        report = corporate_actions_report(processor.get_corporate_actions())

        assert "BONUS: OGDC (#1)" in report
        assert "New Avg Cost: Rs. 83.33" in report
        assert "RIGHTS: OGDC (#2)" in report
        assert "Right Shares: 24" in report
        assert "Total Cost: Rs. 1,920.00" in report
        assert bonus.active
