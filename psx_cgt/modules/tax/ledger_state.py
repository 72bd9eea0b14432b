"""
Ledger State Import/Export

Plain-data contract between the engine and its persistence collaborator.
export_state() returns JSON-native data only (str/int/bool/None/list/dict);
load_state() rebuilds a LotLedger and the corporate action log from it.

- Dates are ISO-8601 strings
- Money totals are rounded half-up to 2 dp
- Quantities and unit costs are exact decimal strings, so a reloaded
  snapshot carries no rounding drift
- Corporate action records keep their exact content so their seals verify

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

import json
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from psx_cgt.core.hashing import canonical_json_dumps
from psx_cgt.modules.tax.corporate_actions import CorporateActionProcessor
from psx_cgt.modules.tax.engine import LotLedger
from psx_cgt.modules.tax.exceptions import ValidationError
from psx_cgt.modules.tax.tax_events import (
    ActionEvent,
    ActionKind,
    CorporateActionRecord,
    Lot,
    LotConsumption,
    LotOrigin,
    RealizedGain,
)
from psx_cgt.parsers.enhanced_transaction import (
    Transaction,
    build_transaction,
    optional_date,
    parse_date,
    parse_decimal,
    round_money,
)
from psx_cgt.utils.logging_config import setup_logger

logger = setup_logger(__name__)

STATE_VERSION = "1.0"


def _money(value: Decimal) -> str:
    return str(round_money(value))


def _exact(value: Decimal) -> str:
    return str(value)


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------

def export_state(
    ledger: LotLedger,
    corporate_actions: Iterable[CorporateActionRecord] = ()
) -> Dict[str, Any]:
    """Full ledger state as serializable records. No delta format."""
    state = {
        "version": STATE_VERSION,
        "export_date": date.today().isoformat(),
        "transactions": [_transaction_to_dict(t) for t in ledger.transactions],
        "holdings": {
            symbol: [_lot_to_dict(lot) for lot in queue]
            for symbol, queue in ledger.open_lots.items()
            if queue
        },
        "realized_gains": [_gain_to_dict(g) for g in ledger.realized_gains],
        "corporate_actions": [_record_to_dict(r) for r in corporate_actions],
    }

    logger.info(
        f"Exported ledger state: {len(state['transactions'])} transactions, "
        f"{len(state['holdings'])} symbols, {len(state['corporate_actions'])} corporate action entries"
    )
    return state


def _transaction_to_dict(txn: Transaction) -> Dict[str, Any]:
    return {
        "id": txn.id,
        "kind": txn.kind.value,
        "symbol": txn.symbol,
        "quantity": _exact(txn.quantity),
        "unit_price": _exact(txn.unit_price),
        "trade_date": txn.trade_date.isoformat(),
        "settlement_date": txn.settlement_date.isoformat(),
        "commission": _money(txn.commission),
    }


def _lot_to_dict(lot: Lot) -> Dict[str, Any]:
    return {
        "lot_id": lot.lot_id,
        "symbol": lot.symbol,
        "quantity": _exact(lot.quantity),
        "remaining_quantity": _exact(lot.remaining_quantity),
        "unit_cost": _exact(lot.unit_cost),
        "acquisition_date": lot.acquisition_date.isoformat(),
        "origin": lot.origin.value,
        "transaction_id": lot.transaction_id,
    }


def _gain_to_dict(gain: RealizedGain) -> Dict[str, Any]:
    return {
        "symbol": gain.symbol,
        "quantity_sold": _exact(gain.quantity_sold),
        "unit_sale_price": _exact(gain.unit_sale_price),
        "sale_proceeds": _money(gain.sale_proceeds),
        "total_cost_basis": _money(gain.total_cost_basis),
        "capital_gain": _money(gain.capital_gain),
        "sale_date": gain.sale_date.isoformat(),
        "trade_date": gain.trade_date.isoformat(),
        "commission": _money(gain.commission),
        "transaction_id": gain.transaction_id,
        "lots_consumed": [
            {
                "lot_id": c.lot_id,
                "acquisition_date": c.acquisition_date.isoformat(),
                "quantity": _exact(c.quantity),
                "unit_cost": _exact(c.unit_cost),
                "cost_basis": _money(c.cost_basis),
                "holding_days": c.holding_days,
                "origin": c.origin.value,
            }
            for c in gain.lots_consumed
        ],
    }


def _record_to_dict(record: CorporateActionRecord) -> Dict[str, Any]:
    # Same encoding the seal is computed over
    data = json.loads(canonical_json_dumps(record))
    data["seal"] = record.seal
    return data


# ----------------------------------------------------------------------
# Load
# ----------------------------------------------------------------------

def load_state(data: Dict[str, Any]) -> Tuple[LotLedger, List[CorporateActionRecord]]:
    """
    Rebuild a ledger from exported state.

    Lot queues come from the 'holdings' snapshot when present. Without one,
    transactions are replayed in order and active corporate actions are
    re-applied at the transaction position they were first applied at.

    Raises:
        ValidationError: malformed records
    """
    if not isinstance(data, dict):
        raise ValidationError("Ledger state must be a mapping", field="state", value=type(data).__name__)

    version = data.get("version")
    if version != STATE_VERSION:
        logger.warning(f"Loading ledger state version {version!r} (current: {STATE_VERSION})")

    transactions = [_transaction_from_dict(t) for t in data.get("transactions", [])]
    records = [_record_from_dict(r) for r in data.get("corporate_actions", [])]

    ledger = LotLedger()
    if data.get("holdings") is not None:
        _restore_snapshot(ledger, data, transactions)
    else:
        _replay(ledger, transactions, records)

    logger.info(
        f"Loaded ledger state: {len(ledger.transactions)} transactions, "
        f"{len(ledger.get_holdings())} symbols held, {len(records)} corporate action entries"
    )
    return ledger, records


def _restore_snapshot(ledger: LotLedger, data: Dict[str, Any], transactions: List[Transaction]):
    ledger.transactions.extend(transactions)

    for symbol, lots in data["holdings"].items():
        for raw in lots:
            ledger.append_lot(_lot_from_dict(raw, symbol))

    for raw in data.get("realized_gains", []):
        ledger.realized_gains.append(_gain_from_dict(raw))


def _replay(ledger: LotLedger, transactions: List[Transaction], records: List[CorporateActionRecord]):
    processor = CorporateActionProcessor(ledger, records)
    pending = sorted(
        (r for r in processor.active_actions() if r.event == ActionEvent.APPLY),
        key=lambda r: (r.transaction_count, r.id)
    )

    for position, txn in enumerate(transactions):
        while pending and pending[0].transaction_count <= position:
            processor.replay_record(pending.pop(0))
        ledger.replay(txn)

    for record in pending:
        processor.replay_record(record)


def _transaction_from_dict(raw: Dict[str, Any]) -> Transaction:
    return build_transaction(
        id=raw["id"],
        kind=raw["kind"],
        symbol=raw["symbol"],
        quantity=raw["quantity"],
        unit_price=raw["unit_price"],
        trade_date=raw["trade_date"],
        settlement_date=raw.get("settlement_date"),
        commission=raw.get("commission", 0),
    )


def _lot_from_dict(raw: Dict[str, Any], symbol: str) -> Lot:
    return Lot(
        lot_id=str(raw["lot_id"]),
        symbol=str(raw.get("symbol", symbol)).upper(),
        quantity=parse_decimal(raw["quantity"], "quantity"),
        remaining_quantity=parse_decimal(raw["remaining_quantity"], "remaining_quantity"),
        unit_cost=parse_decimal(raw["unit_cost"], "unit_cost"),
        acquisition_date=parse_date(raw["acquisition_date"], "acquisition_date"),
        origin=LotOrigin(raw.get("origin", LotOrigin.PURCHASE.value)),
        transaction_id=raw.get("transaction_id"),
    )


def _gain_from_dict(raw: Dict[str, Any]) -> RealizedGain:
    consumed = tuple(
        LotConsumption(
            lot_id=str(c["lot_id"]),
            acquisition_date=parse_date(c["acquisition_date"], "acquisition_date"),
            quantity=parse_decimal(c["quantity"], "quantity"),
            unit_cost=parse_decimal(c["unit_cost"], "unit_cost"),
            holding_days=int(c["holding_days"]),
            origin=LotOrigin(c.get("origin", LotOrigin.PURCHASE.value)),
        )
        for c in raw.get("lots_consumed", [])
    )

    # Totals are recomputed from the exact parts; the exported 2 dp figures are for display
    quantity = parse_decimal(raw["quantity_sold"], "quantity_sold")
    unit_price = parse_decimal(raw["unit_sale_price"], "unit_sale_price")
    proceeds = quantity * unit_price
    cost_basis = sum((c.cost_basis for c in consumed), Decimal(0))

    return RealizedGain(
        symbol=str(raw["symbol"]).upper(),
        quantity_sold=quantity,
        unit_sale_price=unit_price,
        sale_proceeds=proceeds,
        total_cost_basis=cost_basis,
        capital_gain=proceeds - cost_basis,
        lots_consumed=consumed,
        sale_date=parse_date(raw["sale_date"], "sale_date"),
        trade_date=parse_date(raw.get("trade_date", raw["sale_date"]), "trade_date"),
        commission=parse_decimal(raw.get("commission", 0), "commission"),
        transaction_id=raw.get("transaction_id"),
    )


def _record_from_dict(raw: Dict[str, Any]) -> CorporateActionRecord:
    return CorporateActionRecord(
        id=int(raw["id"]),
        symbol=str(raw["symbol"]).upper(),
        kind=ActionKind.normalize(raw["kind"]),
        ex_date=parse_date(raw["ex_date"], "ex_date"),
        applied_date=parse_date(raw["applied_date"], "applied_date"),
        parameters=dict(raw.get("parameters", {})),
        result_summary=dict(raw.get("result_summary", {})),
        active=bool(raw.get("active", True)),
        event=ActionEvent(raw.get("event", ActionEvent.APPLY.value)),
        reversed_date=optional_date(raw.get("reversed_date"), "reversed_date"),
        transaction_count=int(raw.get("transaction_count", 0)),
        seal=raw.get("seal"),
    )
