"""
Unit Tests for the FIFO Lot Ledger

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date
from decimal import Decimal

import pytest

from psx_cgt.modules.tax.engine import FIFOStrategy, LotLedger
from psx_cgt.modules.tax.exceptions import InsufficientHoldings, ValidationError
from psx_cgt.modules.tax.tax_events import Lot, LotOrigin


@pytest.fixture
def ledger():
    return LotLedger()


@pytest.fixture
def worked_ledger():
    """Two buys and one sale that crosses the lot boundary."""
    ledger = LotLedger()
    ledger.buy("ABC", 100, 100, "2025-01-01")   # settles Fri 2025-01-03
    ledger.buy("ABC", 50, 120, "2025-02-01")    # Sat, settles Tue 2025-02-04
    gain = ledger.sell("ABC", 120, 150, "2025-03-01")  # Sat, settles Tue 2025-03-04
    return ledger, gain


class TestBuy:

    def test_buy_creates_lot_on_settlement_date(self, ledger):
        txn = ledger.buy("OGDC", 100, "95.50", "2025-01-01")

        lots = ledger.get_open_lots("OGDC")
        assert len(lots) == 1
        assert lots[0].lot_id == f"OGDC-{txn.id}"
        assert lots[0].acquisition_date == date(2025, 1, 3)
        assert lots[0].quantity == Decimal("100")
        assert lots[0].remaining_quantity == Decimal("100")
        assert lots[0].unit_cost == Decimal("95.50")
        assert lots[0].origin == LotOrigin.PURCHASE

    def test_symbol_normalised(self, ledger):
        ledger.buy("ogdc", 10, 100, "2025-01-01")
        assert "OGDC" in ledger.get_holdings()

    def test_transaction_ids_sequential(self, ledger):
        ids = [ledger.buy("ABC", 10, 100, "2025-01-01").id for _ in range(3)]
        assert ids == [1, 2, 3]

    def test_invalid_buy_leaves_ledger_untouched(self, ledger):
        with pytest.raises(ValidationError):
            ledger.buy("ABC", 0, 100, "2025-01-01")
        with pytest.raises(ValidationError):
            ledger.buy("ABC", 10, -1, "2025-01-01")
        with pytest.raises(ValidationError):
            ledger.buy("ABC", 10, 100, "not-a-date")

        assert ledger.get_transactions() == []
        assert ledger.get_holdings() == {}

    def test_lots_appended_in_insertion_order(self, ledger):
        ledger.buy("ABC", 10, 100, "2025-03-01")
        ledger.buy("ABC", 10, 90, "2025-01-01")

        lots = ledger.get_open_lots("ABC")
        assert [lot.unit_cost for lot in lots] == [Decimal("100"), Decimal("90")]


class TestSell:

    def test_worked_example_totals(self, worked_ledger):
        _, gain = worked_ledger

        assert gain.total_cost_basis == Decimal("12400")
        assert gain.sale_proceeds == Decimal("18000")
        assert gain.capital_gain == Decimal("5600")
        assert gain.sale_date == date(2025, 3, 4)
        assert gain.trade_date == date(2025, 3, 1)
        assert gain.transaction_id == 3
        assert not gain.is_simulation

    def test_worked_example_consumes_oldest_first(self, worked_ledger):
        _, gain = worked_ledger

        first, second = gain.lots_consumed
        assert (first.quantity, first.unit_cost) == (Decimal("100"), Decimal("100"))
        assert (second.quantity, second.unit_cost) == (Decimal("20"), Decimal("120"))
        assert first.holding_days == 60
        assert second.holding_days == 28

    def test_worked_example_remaining_holding(self, worked_ledger):
        ledger, _ = worked_ledger

        holding = ledger.get_holdings()["ABC"]
        assert holding.total_quantity == Decimal("30")
        assert holding.weighted_average_cost == Decimal("120")
        assert holding.total_cost_basis == Decimal("3600")
        assert len(holding.lots) == 1

    def test_exhausted_lot_pruned(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        ledger.buy("ABC", 50, 120, "2025-02-03")
        ledger.sell("ABC", 100, 150, "2025-03-03")

        lots = ledger.get_open_lots("ABC")
        assert len(lots) == 1
        assert lots[0].unit_cost == Decimal("120")

    def test_selling_everything_removes_symbol(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        ledger.sell("ABC", 100, 90, "2025-03-03")

        assert ledger.get_holdings() == {}
        assert ledger.get_open_lots("ABC") == []
        assert ledger.available_quantity("ABC") == Decimal(0)

    def test_loss_recorded(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        gain = ledger.sell("ABC", 100, 90, "2025-03-03")

        assert gain.capital_gain == Decimal("-1000")
        assert gain.is_loss()

    def test_oversell_refused_without_side_effects(self, worked_ledger):
        ledger, _ = worked_ledger
        before = ledger.get_open_lots("ABC")

        with pytest.raises(InsufficientHoldings) as exc:
            ledger.sell("ABC", 31, 150, "2025-04-01")

        assert exc.value.requested == Decimal("31")
        assert exc.value.available == Decimal("30")
        assert ledger.get_open_lots("ABC") == before
        assert len(ledger.get_transactions()) == 3
        assert len(ledger.get_realized_gains()) == 1

    def test_sell_unknown_symbol(self, ledger):
        with pytest.raises(InsufficientHoldings) as exc:
            ledger.sell("XYZ", 1, 10, "2025-01-01")
        assert exc.value.available == Decimal(0)
        assert ledger.get_holdings() == {}


class TestSimulation:

    def test_simulate_matches_sell_without_mutation(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        ledger.buy("ABC", 50, 120, "2025-02-01")
        before = ledger.get_open_lots("ABC")

        simulated = ledger.simulate_sell("ABC", 120, 150, "2025-03-01")

        assert simulated.is_simulation
        assert simulated.transaction_id is None
        assert simulated.capital_gain == Decimal("5600")
        assert ledger.get_open_lots("ABC") == before
        assert ledger.get_realized_gains() == []
        assert len(ledger.get_transactions()) == 2

    def test_simulate_oversell_raises(self, ledger):
        ledger.buy("ABC", 10, 100, "2025-01-01")
        with pytest.raises(InsufficientHoldings):
            ledger.simulate_sell("ABC", 11, 100, "2025-03-01")

    def test_cost_basis_for_sale(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        ledger.buy("ABC", 50, 120, "2025-02-01")

        basis = ledger.cost_basis_for_sale("abc", 120)
        assert basis['total_cost'] == Decimal("12400")
        assert len(basis['lots']) == 2
        assert basis['average_cost'] == Decimal("12400") / Decimal("120")
        assert ledger.available_quantity("ABC") == Decimal("150")


class TestQueries:

    def test_realized_gains_filtered_by_sale_date(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        ledger.sell("ABC", 10, 110, "2025-02-03")   # settles 2025-02-05
        ledger.sell("ABC", 10, 120, "2025-06-02")   # settles 2025-06-04

        assert len(ledger.get_realized_gains(start_date=date(2025, 3, 1))) == 1
        assert len(ledger.get_realized_gains(end_date=date(2025, 2, 5))) == 1
        assert len(ledger.get_realized_gains(symbol="xyz")) == 0
        assert len(ledger.get_realized_gains(symbol="abc")) == 2

    def test_holdings_are_copies(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        holding = ledger.get_holdings()["ABC"]
        holding.lots[0].remaining_quantity = Decimal(0)

        assert ledger.available_quantity("ABC") == Decimal("100")

    def test_holding_period_helper(self):
        period = LotLedger.holding_period(date(2025, 1, 3), date(2026, 1, 3))
        assert period.days == 365
        assert period.years == 1

    def test_reset(self, worked_ledger):
        ledger, _ = worked_ledger
        ledger.reset()

        assert ledger.get_holdings() == {}
        assert ledger.get_transactions() == []
        assert ledger.get_realized_gains() == []

    def test_strategy_name(self, ledger):
        assert isinstance(ledger.strategy, FIFOStrategy)
        assert ledger.strategy.get_method_name() == "FIFO"


class TestLotHooks:

    def _lot(self, lot_id, acquired, quantity=10, remaining=None):
        return Lot(
            lot_id=lot_id,
            symbol="ABC",
            quantity=Decimal(quantity),
            remaining_quantity=Decimal(quantity if remaining is None else remaining),
            unit_cost=Decimal("100"),
            acquisition_date=acquired,
        )

    def test_insert_lot_after_same_date(self, ledger):
        ledger.append_lot(self._lot("A", date(2025, 1, 3)))
        ledger.append_lot(self._lot("B", date(2025, 3, 3)))

        index = ledger.insert_lot(self._lot("R", date(2025, 1, 3)))

        assert index == 1
        assert [lot.lot_id for lot in ledger.get_open_lots("ABC")] == ["A", "R", "B"]

    def test_append_lot_rejects_bad_remaining(self, ledger):
        with pytest.raises(ValidationError):
            ledger.append_lot(self._lot("A", date(2025, 1, 3), quantity=10, remaining=11))

    def test_remove_lot(self, ledger):
        ledger.append_lot(self._lot("A", date(2025, 1, 3)))

        removed = ledger.remove_lot("ABC", "A")

        assert removed.lot_id == "A"
        assert ledger.remove_lot("ABC", "A") is None
        assert "ABC" not in ledger.open_lots

    def test_sales_after(self, ledger):
        ledger.buy("ABC", 100, 100, "2025-01-01")
        ledger.sell("ABC", 10, 110, "2025-02-03")
        ledger.sell("ABC", 10, 110, "2025-02-10")

        assert len(ledger.sales_after("ABC", 1)) == 2
        assert len(ledger.sales_after("ABC", 2)) == 1
        assert ledger.sales_after("ABC", 3) == []
