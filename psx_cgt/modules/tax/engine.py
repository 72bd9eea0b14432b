"""
Lot Ledger - FIFO Cost Basis Tracking

The ledger owns one queue of lots per symbol. It:
1. Appends a lot for every BUY (acquired on the T+2 settlement date)
2. Consumes lots oldest-first for every SELL and records a RealizedGain
3. Simulates sales on a deep copy for what-if analysis
4. Derives holdings views on demand

Queue order is insertion order and is never re-sorted; that order is the
FIFO invariant. Rate lookup and tax live in the calculators package,
bonus/rights adjustments in corporate_actions.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

import bisect
import copy
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from datetime import date
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional

from psx_cgt.core.calendar import HoldingPeriod, days_between, holding_period
from psx_cgt.modules.tax.exceptions import InsufficientHoldings, ValidationError
from psx_cgt.modules.tax.tax_events import (
    Holding,
    Lot,
    LotConsumption,
    LotOrigin,
    RealizedGain,
)
from psx_cgt.parsers.enhanced_transaction import (
    Transaction,
    TransactionType,
    build_transaction,
)
from psx_cgt.utils.logging_config import setup_logger

logger = setup_logger(__name__)


class LotMatchingStrategy(ABC):
    """Decides which lots a sale consumes and in what order."""

    @abstractmethod
    def consume(
        self,
        queue: Deque[Lot],
        quantity: Decimal,
        sale_date: date
    ) -> List[LotConsumption]:
        """
        Consume `quantity` shares from `queue`, mutating its lots and pruning
        exhausted ones. Availability has been checked by the caller.
        """
        pass

    @abstractmethod
    def get_method_name(self) -> str:
        pass


class FIFOStrategy(LotMatchingStrategy):
    """First-In, First-Out: walk the queue head to tail."""

    def consume(
        self,
        queue: Deque[Lot],
        quantity: Decimal,
        sale_date: date
    ) -> List[LotConsumption]:
        remaining_to_sell = quantity
        consumed = []

        for lot in queue:
            if remaining_to_sell <= 0:
                break

            shares_to_take = min(lot.remaining_quantity, remaining_to_sell)
            if shares_to_take <= 0:
                continue

            consumed.append(LotConsumption(
                lot_id=lot.lot_id,
                acquisition_date=lot.acquisition_date,
                quantity=shares_to_take,
                unit_cost=lot.unit_cost,
                holding_days=days_between(lot.acquisition_date, sale_date),
                origin=lot.origin,
            ))

            lot.remaining_quantity -= shares_to_take
            remaining_to_sell -= shares_to_take

            logger.debug(
                f"  -> Using {shares_to_take} shares from lot acquired {lot.acquisition_date} "
                f"@ Rs. {lot.unit_cost}"
            )

        # Prune after the sweep, never during it
        kept = [lot for lot in queue if not lot.is_exhausted()]
        queue.clear()
        queue.extend(kept)

        return consumed

    def get_method_name(self) -> str:
        return "FIFO"


class LotLedger:
    """
    Single-owner FIFO ledger for one portfolio.

    Not thread-safe: a host serving several portfolios must serialise all
    calls against one instance.
    """

    def __init__(self, strategy: Optional[LotMatchingStrategy] = None):
        self.strategy = strategy or FIFOStrategy()

        self.open_lots: Dict[str, Deque[Lot]] = defaultdict(deque)
        self.transactions: List[Transaction] = []
        self.realized_gains: List[RealizedGain] = []

    # ------------------------------------------------------------------
    # Committed operations
    # ------------------------------------------------------------------

    def buy(
        self,
        symbol: str,
        quantity: Any,
        unit_price: Any,
        trade_date: Any,
        commission: Any = 0
    ) -> Transaction:
        """Record a purchase and append its lot to the tail of the symbol's queue."""
        txn = build_transaction(
            id=self._next_transaction_id(),
            kind=TransactionType.BUY,
            symbol=symbol,
            quantity=quantity,
            unit_price=unit_price,
            trade_date=trade_date,
            commission=commission,
        )
        self._commit_buy(txn)
        return txn

    def sell(
        self,
        symbol: str,
        quantity: Any,
        unit_price: Any,
        trade_date: Any,
        commission: Any = 0
    ) -> RealizedGain:
        """
        Record a sale, consuming lots oldest-first.

        Raises:
            InsufficientHoldings: quantity exceeds the symbol's remaining shares.
                Nothing is consumed in that case.
        """
        txn = build_transaction(
            id=self._next_transaction_id(),
            kind=TransactionType.SELL,
            symbol=symbol,
            quantity=quantity,
            unit_price=unit_price,
            trade_date=trade_date,
            commission=commission,
        )
        return self._commit_sell(txn)

    def replay(self, txn: Transaction) -> Optional[RealizedGain]:
        """Re-apply a stored transaction, keeping its id (used when loading state)."""
        if txn.kind == TransactionType.BUY:
            self._commit_buy(txn)
            return None
        return self._commit_sell(txn)

    def _commit_buy(self, txn: Transaction):
        lot = Lot(
            lot_id=f"{txn.symbol}-{txn.id}",
            symbol=txn.symbol,
            quantity=txn.quantity,
            remaining_quantity=txn.quantity,
            unit_cost=txn.unit_price,
            acquisition_date=txn.settlement_date,
            origin=LotOrigin.PURCHASE,
            transaction_id=txn.id,
        )
        self.open_lots[txn.symbol].append(lot)
        self.transactions.append(txn)

        logger.info(
            f"Added {txn.quantity} shares of {txn.symbol} @ Rs. {txn.unit_price} to FIFO queue "
            f"(settles {txn.settlement_date})",
            extra={'symbol': txn.symbol, 'transaction_id': txn.id}
        )

    def _commit_sell(self, txn: Transaction) -> RealizedGain:
        queue = self.open_lots.get(txn.symbol, deque())
        self._check_available(txn.symbol, queue, txn.quantity)

        consumed = self.strategy.consume(queue, txn.quantity, txn.settlement_date)
        if not queue:
            self.open_lots.pop(txn.symbol, None)

        gain = self._build_gain(txn, consumed, is_simulation=False)
        self.transactions.append(txn)
        self.realized_gains.append(gain)

        logger.info(
            f"Sold {txn.quantity} shares of {txn.symbol} @ Rs. {txn.unit_price}: "
            f"cost basis Rs. {gain.total_cost_basis:.2f}, proceeds Rs. {gain.sale_proceeds:.2f}, "
            f"gain Rs. {gain.capital_gain:.2f}",
            extra={'symbol': txn.symbol, 'transaction_id': txn.id}
        )
        return gain

    # ------------------------------------------------------------------
    # Non-committing operations
    # ------------------------------------------------------------------

    def simulate_sell(
        self,
        symbol: str,
        quantity: Any,
        unit_price: Any,
        as_of_date: Any
    ) -> RealizedGain:
        """
        Price a hypothetical sale traded on `as_of_date` without touching the
        ledger. Runs the same consumption sweep as sell() on a deep copy.

        Raises:
            InsufficientHoldings: same condition as sell().
        """
        txn = build_transaction(
            id=0,
            kind=TransactionType.SELL,
            symbol=symbol,
            quantity=quantity,
            unit_price=unit_price,
            trade_date=as_of_date,
        )
        queue = copy.deepcopy(self.open_lots.get(txn.symbol, deque()))
        self._check_available(txn.symbol, queue, txn.quantity)

        consumed = self.strategy.consume(queue, txn.quantity, txn.settlement_date)
        return self._build_gain(txn, consumed, is_simulation=True)

    def cost_basis_for_sale(self, symbol: str, quantity: Any) -> Dict[str, Any]:
        """
        FIFO cost of the next `quantity` shares, without an availability
        check: asking for more than is held prices only what is held.
        """
        symbol = symbol.strip().upper()
        quantity = Decimal(str(quantity))
        remaining_to_sell = quantity
        total_cost = Decimal(0)
        lots = []

        for lot in self.open_lots.get(symbol, ()):
            if remaining_to_sell <= 0:
                break
            shares_to_take = min(lot.remaining_quantity, remaining_to_sell)
            cost = shares_to_take * lot.unit_cost
            total_cost += cost
            lots.append({
                'quantity': shares_to_take,
                'unit_cost': lot.unit_cost,
                'total_cost': cost,
                'acquisition_date': lot.acquisition_date,
            })
            remaining_to_sell -= shares_to_take

        return {
            'total_cost': total_cost,
            'average_cost': total_cost / quantity if quantity > 0 else Decimal(0),
            'lots': lots,
        }

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_holdings(self) -> Dict[str, Holding]:
        """Per-symbol holdings built fresh from the queues on every call."""
        summary = {}

        for symbol, queue in self.open_lots.items():
            total_quantity = sum((lot.remaining_quantity for lot in queue), Decimal(0))
            if total_quantity <= 0:
                continue

            total_cost = sum((lot.remaining_cost_basis() for lot in queue), Decimal(0))
            summary[symbol] = Holding(
                symbol=symbol,
                total_quantity=total_quantity,
                weighted_average_cost=total_cost / total_quantity,
                total_cost_basis=total_cost,
                lots=tuple(copy.copy(lot) for lot in queue),
            )

        return summary

    def available_quantity(self, symbol: str) -> Decimal:
        queue = self.open_lots.get(symbol.strip().upper(), ())
        return sum((lot.remaining_quantity for lot in queue), Decimal(0))

    def get_open_lots(self, symbol: Optional[str] = None) -> List[Lot]:
        """Copies of open lots in queue order, optionally for one symbol."""
        if symbol:
            return [copy.copy(lot) for lot in self.open_lots.get(symbol.strip().upper(), ())]

        return [copy.copy(lot) for queue in self.open_lots.values() for lot in queue]

    def get_realized_gains(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        symbol: Optional[str] = None
    ) -> List[RealizedGain]:
        """Realized gains, optionally filtered by sale (settlement) date and symbol."""
        gains = self.realized_gains

        if symbol:
            gains = [g for g in gains if g.symbol == symbol.strip().upper()]

        if start_date:
            gains = [g for g in gains if g.sale_date >= start_date]

        if end_date:
            gains = [g for g in gains if g.sale_date <= end_date]

        return list(gains)

    def get_transactions(self) -> List[Transaction]:
        return list(self.transactions)

    @staticmethod
    def holding_period(acquired: date, disposed: date) -> HoldingPeriod:
        return holding_period(acquired, disposed)

    def reset(self):
        """Drop all lots, transactions and realized gains."""
        self.open_lots.clear()
        self.transactions.clear()
        self.realized_gains.clear()
        logger.info("Ledger reset")

    # ------------------------------------------------------------------
    # Hooks for corporate actions and state loading
    # ------------------------------------------------------------------

    def lots_for_update(self, symbol: str) -> Deque[Lot]:
        """Live queue of a symbol; mutations are visible to the ledger."""
        return self.open_lots.get(symbol, deque())

    def insert_lot(self, lot: Lot) -> int:
        """
        Insert a lot at its acquisition-date position: after every lot acquired
        on or before the same date. Returns the queue index used.
        """
        queue = self.open_lots[lot.symbol]
        dates = [existing.acquisition_date for existing in queue]
        index = bisect.bisect_right(dates, lot.acquisition_date)
        queue.insert(index, lot)
        return index

    def append_lot(self, lot: Lot):
        """Append a restored lot to the tail of its queue."""
        if lot.remaining_quantity < 0 or lot.remaining_quantity > lot.quantity:
            raise ValidationError(
                f"Lot {lot.lot_id} violates 0 <= remaining ({lot.remaining_quantity}) "
                f"<= quantity ({lot.quantity})",
                field="remaining_quantity", value=lot.remaining_quantity
            )
        self.open_lots[lot.symbol].append(lot)

    def remove_lot(self, symbol: str, lot_id: str) -> Optional[Lot]:
        queue = self.open_lots.get(symbol)
        if not queue:
            return None
        for lot in queue:
            if lot.lot_id == lot_id:
                queue.remove(lot)
                if not queue:
                    self.open_lots.pop(symbol, None)
                return lot
        return None

    def sales_after(self, symbol: str, transaction_count: int) -> List[RealizedGain]:
        """Committed sales of `symbol` recorded after the first `transaction_count` transactions."""
        return [
            g for g in self.realized_gains
            if g.symbol == symbol and g.transaction_id is not None and g.transaction_id > transaction_count
        ]

    # ------------------------------------------------------------------

    def _next_transaction_id(self) -> int:
        if not self.transactions:
            return 1
        return max(t.id for t in self.transactions) + 1

    @staticmethod
    def _check_available(symbol: str, queue, quantity: Decimal):
        available = sum((lot.remaining_quantity for lot in queue), Decimal(0))
        if quantity > available:
            logger.warning(
                f"Refused sale of {quantity} {symbol}: only {available} available",
                extra={'symbol': symbol}
            )
            raise InsufficientHoldings(symbol, quantity, available)

    @staticmethod
    def _build_gain(txn: Transaction, consumed: List[LotConsumption], is_simulation: bool) -> RealizedGain:
        total_cost_basis = sum((c.cost_basis for c in consumed), Decimal(0))
        sale_proceeds = txn.quantity * txn.unit_price

        return RealizedGain(
            symbol=txn.symbol,
            quantity_sold=txn.quantity,
            unit_sale_price=txn.unit_price,
            sale_proceeds=sale_proceeds,
            total_cost_basis=total_cost_basis,
            capital_gain=sale_proceeds - total_cost_basis,
            lots_consumed=tuple(consumed),
            sale_date=txn.settlement_date,
            trade_date=txn.trade_date,
            commission=txn.commission,
            transaction_id=None if is_simulation else txn.id,
            is_simulation=is_simulation,
        )
