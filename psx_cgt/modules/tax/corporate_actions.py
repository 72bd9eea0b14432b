"""
Corporate Action Processor

Applies PSX bonus and rights issues to a LotLedger and keeps an append-only,
SHA256 sealed log of every application and reversal.

- BONUS: lots acquired before the ex-date gain floor(remaining x ratio) shares;
  unit cost drops so each lot's held cost basis is unchanged.
- RIGHTS: a new RIGHTS_ISSUE lot of floor(eligible x ratio) shares at the issue
  price, dated on the subscription date (default: ex-date + 30 days).

Per (symbol, kind, ex_date) an action moves unapplied -> applied -> reversed.
Every check runs before the first lot is touched.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

import math
from dataclasses import asdict, replace
from datetime import date, timedelta
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, List, Optional, Tuple

from psx_cgt.core.hashing import calculate_sha256, verify_hash
from psx_cgt.modules.tax.engine import LotLedger
from psx_cgt.modules.tax.exceptions import (
    ActionAlreadyReversed,
    ActionNotFound,
    CorporateActionError,
    DuplicateAction,
    InvalidRatio,
    NoEligibleLots,
    PartiallySold,
    PostActionSalesExist,
    RatioTooSmall,
    ValidationError,
)
from psx_cgt.modules.tax.tax_events import (
    ActionEvent,
    ActionKind,
    CorporateActionRecord,
    Lot,
    LotOrigin,
)
from psx_cgt.parsers.enhanced_transaction import optional_date, parse_date, parse_decimal
from psx_cgt.utils.logging_config import setup_logger

logger = setup_logger(__name__)

# Rights lots are dated this many days after the ex-date unless a subscription date is given
DEFAULT_SUBSCRIPTION_DAYS = 30


def parse_ratio(value: Any, kind: ActionKind) -> Fraction:
    """
    Parse a corporate action ratio into an exact fraction.

    Accepted forms: "20%", "1:5" (n new per m held), "1/5", 0.2, "0.2", Decimal.
    BONUS ratios must lie in (0, 1]; RIGHTS ratios must be > 0.

    Raises:
        InvalidRatio: unparseable or out of range
    """
    if isinstance(value, Fraction):
        ratio = value
    elif isinstance(value, bool) or value is None:
        raise InvalidRatio(value, "expected a percentage, 'n:m' or a decimal")
    elif isinstance(value, str):
        text = value.strip().replace(" ", "")
        try:
            if text.endswith("%"):
                ratio = Fraction(parse_decimal(text[:-1], "ratio")) / 100
            elif ":" in text or "/" in text:
                new, held = text.replace("/", ":").split(":", 1)
                held = Fraction(parse_decimal(held, "ratio"))
                if held == 0:
                    raise InvalidRatio(value, "held side of 'n:m' cannot be zero")
                ratio = Fraction(parse_decimal(new, "ratio")) / held
            else:
                ratio = Fraction(parse_decimal(text, "ratio"))
        except InvalidRatio:
            raise
        except ValidationError as e:
            raise InvalidRatio(value, "expected a percentage, 'n:m' or a decimal") from e
    else:
        try:
            ratio = Fraction(parse_decimal(value, "ratio"))
        except ValidationError as e:
            raise InvalidRatio(value, "expected a percentage, 'n:m' or a decimal") from e

    if ratio <= 0:
        raise InvalidRatio(value, "must be greater than zero")
    if kind == ActionKind.BONUS and ratio > 1:
        raise InvalidRatio(value, "bonus ratio must be between 0 and 100%")

    return ratio


def _to_decimal(ratio: Fraction) -> Decimal:
    return Decimal(ratio.numerator) / Decimal(ratio.denominator)


def _format_percentage(ratio: Fraction) -> str:
    return f"{_to_decimal(ratio) * 100:.2f}%"


def seal_record(record: CorporateActionRecord) -> CorporateActionRecord:
    """Return the record with its seal computed over every other field."""
    return replace(record, seal=calculate_sha256(_seal_payload(record)))


def _seal_payload(record: CorporateActionRecord) -> Dict[str, Any]:
    payload = asdict(record)
    payload.pop("seal")
    return payload


class CorporateActionProcessor:
    """
    Applies and reverses corporate actions against one LotLedger.

    The processor owns the action log; the ledger owns the lots. Both must be
    driven from a single thread.
    """

    def __init__(self, ledger: LotLedger, records: Optional[List[CorporateActionRecord]] = None):
        self.ledger = ledger
        self._log: List[CorporateActionRecord] = list(records or [])

    # ------------------------------------------------------------------
    # Log views
    # ------------------------------------------------------------------

    @property
    def log(self) -> Tuple[CorporateActionRecord, ...]:
        """Every entry ever appended, in order."""
        return tuple(self._log)

    def _current_state(self) -> Dict[int, CorporateActionRecord]:
        state = {}
        for record in self._log:
            state[record.id] = record
        return state

    def get_corporate_actions(self, symbol: Optional[str] = None) -> List[CorporateActionRecord]:
        """Current state of each action (latest entry per id), in id order."""
        actions = sorted(self._current_state().values(), key=lambda r: r.id)
        if symbol:
            symbol = symbol.strip().upper()
            actions = [a for a in actions if a.symbol == symbol]
        return actions

    def active_actions(self, symbol: Optional[str] = None) -> List[CorporateActionRecord]:
        return [a for a in self.get_corporate_actions(symbol) if a.active]

    def get_summary(self) -> Dict[str, Any]:
        actions = self.get_corporate_actions()
        return {
            "total_actions": len(actions),
            "bonus_actions": sum(1 for a in actions if a.kind == ActionKind.BONUS),
            "rights_actions": sum(1 for a in actions if a.kind == ActionKind.RIGHTS),
            "active_actions": sum(1 for a in actions if a.active),
            "reversed_actions": sum(1 for a in actions if not a.active),
            "symbols_affected": sorted({a.symbol for a in actions}),
            "actions": actions,
        }

    def clear_history(self):
        """Forget the log. Lots keep their adjustments; cleared actions can no longer be reversed."""
        count = len(self._log)
        self._log.clear()
        logger.info(f"Cleared {count} corporate action log entries")

    @staticmethod
    def verify_record(record: CorporateActionRecord) -> bool:
        """True if the record's seal matches its content."""
        return record.seal is not None and verify_hash(_seal_payload(record), record.seal)

    def generate_report(self, symbol: Optional[str] = None) -> str:
        from psx_cgt.modules.tax.reports import corporate_actions_report
        return corporate_actions_report(self.get_corporate_actions(symbol), symbol)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, symbol: str, kind: Any, details: Dict[str, Any]) -> CorporateActionRecord:
        """
        Generic entry point.

        details for BONUS: {"ex_date", "ratio", "applied_on"?}
        details for RIGHTS: {"ex_date", "ratio", "issue_price", "subscription_date"?, "applied_on"?}
        """
        kind = ActionKind.normalize(kind)
        for key in ("ex_date", "ratio"):
            if key not in details:
                raise ValidationError(f"Missing '{key}' for {kind.value} action", field=key)

        if kind == ActionKind.BONUS:
            return self.apply_bonus(symbol, details["ex_date"], details["ratio"],
                                    applied_on=details.get("applied_on"))

        if "issue_price" not in details:
            raise ValidationError("Missing 'issue_price' for RIGHTS action", field="issue_price")
        return self.apply_rights(symbol, details["ex_date"], details["ratio"], details["issue_price"],
                                 subscription_date=details.get("subscription_date"),
                                 applied_on=details.get("applied_on"))

    def apply_bonus(
        self,
        symbol: str,
        ex_date: Any,
        ratio: Any,
        applied_on: Any = None
    ) -> CorporateActionRecord:
        """
        Issue bonus shares on every lot acquired before `ex_date`.

        Raises:
            InvalidRatio, DuplicateAction, NoEligibleLots, RatioTooSmall
        """
        symbol = self._normalize_symbol(symbol)
        ex_date = parse_date(ex_date, "ex_date")
        applied_date = optional_date(applied_on, "applied_on") or date.today()
        parsed = parse_ratio(ratio, ActionKind.BONUS)

        self._check_duplicate(symbol, ActionKind.BONUS, ex_date)
        plan = self._plan_bonus(symbol, ex_date, parsed)
        result_summary = self._execute_bonus(plan, parsed)

        return self._append(
            symbol=symbol,
            kind=ActionKind.BONUS,
            ex_date=ex_date,
            applied_date=applied_date,
            parameters={"ratio": str(ratio).strip(), "ratio_value": _to_decimal(parsed)},
            result_summary=result_summary,
        )

    def apply_rights(
        self,
        symbol: str,
        ex_date: Any,
        ratio: Any,
        issue_price: Any,
        subscription_date: Any = None,
        applied_on: Any = None
    ) -> CorporateActionRecord:
        """
        Add a rights issue lot for shares held before `ex_date`.

        Raises:
            InvalidRatio, ValidationError (issue price), DuplicateAction,
            NoEligibleLots, RatioTooSmall
        """
        symbol = self._normalize_symbol(symbol)
        ex_date = parse_date(ex_date, "ex_date")
        applied_date = optional_date(applied_on, "applied_on") or date.today()
        subscription = optional_date(subscription_date, "subscription_date")
        parsed = parse_ratio(ratio, ActionKind.RIGHTS)

        price = parse_decimal(issue_price, "issue_price")
        if price <= 0:
            raise ValidationError(f"Rights issue price must be positive, got {price}",
                                  field="issue_price", value=issue_price)

        self._check_duplicate(symbol, ActionKind.RIGHTS, ex_date)
        action_id = self._next_action_id()
        lot = self._plan_rights(symbol, ex_date, parsed, price, subscription, action_id)
        result_summary = self._execute_rights(lot, ratio, parsed, ex_date)

        return self._append(
            symbol=symbol,
            kind=ActionKind.RIGHTS,
            ex_date=ex_date,
            applied_date=applied_date,
            parameters={
                "ratio": str(ratio).strip(),
                "ratio_value": _to_decimal(parsed),
                "issue_price": price,
                "subscription_date": subscription,
            },
            result_summary=result_summary,
            action_id=action_id,
        )

    def replay_record(self, record: CorporateActionRecord):
        """
        Re-run the lot mutation an APPLY record describes, without logging a
        new entry. Used when a ledger is rebuilt from its transactions.
        """
        kind = ActionKind.normalize(record.kind)
        parsed = parse_ratio(record.parameters["ratio"], kind)

        if kind == ActionKind.BONUS:
            self._execute_bonus(self._plan_bonus(record.symbol, record.ex_date, parsed), parsed)
        else:
            params = record.parameters
            lot = self._plan_rights(
                record.symbol,
                record.ex_date,
                parsed,
                parse_decimal(params["issue_price"], "issue_price"),
                optional_date(params.get("subscription_date"), "subscription_date"),
                record.id,
            )
            self.ledger.insert_lot(lot)

        logger.debug(f"Replayed {kind.value} action #{record.id}",
                     extra={'symbol': record.symbol, 'action_id': record.id})

    def _plan_bonus(self, symbol: str, ex_date: date, ratio: Fraction) -> List[Tuple[Lot, Decimal]]:
        eligible = [lot for lot in self.ledger.lots_for_update(symbol) if lot.acquisition_date < ex_date]
        if not eligible:
            raise NoEligibleLots(symbol, ex_date)

        plan = [(lot, Decimal(math.floor(Fraction(lot.remaining_quantity) * ratio))) for lot in eligible]
        if sum((bonus for _, bonus in plan), Decimal(0)) == 0:
            eligible_shares = sum((lot.remaining_quantity for lot in eligible), Decimal(0))
            raise RatioTooSmall(symbol, eligible_shares, _to_decimal(ratio))

        return plan

    def _execute_bonus(self, plan: List[Tuple[Lot, Decimal]], ratio: Fraction) -> Dict[str, Any]:
        old_shares = sum((lot.remaining_quantity for lot, _ in plan), Decimal(0))
        cost_basis = sum((lot.remaining_cost_basis() for lot, _ in plan), Decimal(0))
        bonus_shares = sum((bonus for _, bonus in plan), Decimal(0))
        adjustments = []

        for lot, bonus in plan:
            adjustments.append({
                "lot_id": lot.lot_id,
                "bonus_shares": bonus,
                "prior_quantity": lot.quantity,
                "prior_unit_cost": lot.unit_cost,
            })
            if bonus == 0:
                continue

            old_remaining = lot.remaining_quantity
            lot.remaining_quantity = old_remaining + bonus
            lot.quantity += bonus
            lot.unit_cost = old_remaining * lot.unit_cost / lot.remaining_quantity

            logger.debug(
                f"  Adjusted lot {lot.lot_id}: {old_remaining} -> {lot.remaining_quantity} shares, "
                f"unit cost Rs. {lot.unit_cost:.2f}"
            )

        new_shares = old_shares + bonus_shares
        old_avg = cost_basis / old_shares
        new_avg = cost_basis / new_shares
        percentage = _format_percentage(ratio)

        return {
            "eligible_shares": old_shares,
            "bonus_shares": bonus_shares,
            "new_total_shares": new_shares,
            "cost_basis": cost_basis,
            "old_average_cost": old_avg,
            "new_average_cost": new_avg,
            "bonus_percentage": percentage,
            "adjustments": adjustments,
            "summary": (
                f"Bonus {percentage}: {old_shares} -> {new_shares} shares, "
                f"avg cost Rs. {old_avg:.2f} -> Rs. {new_avg:.2f}"
            ),
        }

    def _plan_rights(
        self,
        symbol: str,
        ex_date: date,
        ratio: Fraction,
        price: Decimal,
        subscription: Optional[date],
        action_id: int
    ) -> Lot:
        eligible = [lot for lot in self.ledger.lots_for_update(symbol) if lot.acquisition_date < ex_date]
        if not eligible:
            raise NoEligibleLots(symbol, ex_date)

        eligible_shares = sum((lot.remaining_quantity for lot in eligible), Decimal(0))
        rights_shares = Decimal(math.floor(Fraction(eligible_shares) * ratio))
        if rights_shares == 0:
            raise RatioTooSmall(symbol, eligible_shares, _to_decimal(ratio))

        return Lot(
            lot_id=f"{symbol}-R{action_id}",
            symbol=symbol,
            quantity=rights_shares,
            remaining_quantity=rights_shares,
            unit_cost=price,
            acquisition_date=subscription or ex_date + timedelta(days=DEFAULT_SUBSCRIPTION_DAYS),
            origin=LotOrigin.RIGHTS_ISSUE,
        )

    def _execute_rights(self, lot: Lot, ratio_input: Any, ratio: Fraction, ex_date: date) -> Dict[str, Any]:
        eligible_shares = sum(
            (l.remaining_quantity for l in self.ledger.lots_for_update(lot.symbol) if l.acquisition_date < ex_date),
            Decimal(0)
        )
        position = self.ledger.insert_lot(lot)

        holding = self.ledger.get_holdings()[lot.symbol]
        ratio_text = ratio_input.strip() if isinstance(ratio_input, str) else _format_percentage(ratio)

        return {
            "eligible_shares": eligible_shares,
            "rights_shares": lot.quantity,
            "issue_price": lot.unit_cost,
            "total_cost": lot.remaining_cost_basis(),
            "lot_id": lot.lot_id,
            "lot_date": lot.acquisition_date,
            "queue_position": position,
            "new_total_shares": holding.total_quantity,
            "new_average_cost": holding.weighted_average_cost,
            "summary": (
                f"Right {ratio_text}: Added {lot.quantity} shares @ Rs. {lot.unit_cost:.2f}, "
                f"new avg cost Rs. {holding.weighted_average_cost:.2f}"
            ),
        }

    # ------------------------------------------------------------------
    # Reverse
    # ------------------------------------------------------------------

    def reverse(self, action_id: int, reversed_on: Any = None) -> CorporateActionRecord:
        """
        Undo an applied action and append a REVERSE entry.

        Raises:
            ActionNotFound, ActionAlreadyReversed, PostActionSalesExist,
            PartiallySold (rights), CorporateActionError (a later action on
            the same symbol is still active)
        """
        state = self._current_state()
        if action_id not in state:
            raise ActionNotFound(action_id)

        record = state[action_id]
        if not record.active:
            raise ActionAlreadyReversed(action_id, record.symbol)

        reversed_date = optional_date(reversed_on, "reversed_on") or date.today()
        symbol = record.symbol

        sales = self.ledger.sales_after(symbol, record.transaction_count)
        sales += [
            g for g in self.ledger.get_realized_gains(symbol=symbol)
            if g.sale_date > record.applied_date and g not in sales
        ]
        if sales:
            raise PostActionSalesExist(symbol, action_id, len(sales))

        later = [a for a in self.active_actions(symbol) if a.id > action_id]
        if later:
            raise CorporateActionError(
                f"Cannot reverse action #{action_id}: later action #{later[0].id} on {symbol} "
                f"is still active",
                symbol=symbol
            )

        if record.kind == ActionKind.BONUS:
            summary = self._reverse_bonus(record)
        else:
            summary = self._reverse_rights(record)

        reversal = seal_record(replace(
            record,
            active=False,
            event=ActionEvent.REVERSE,
            reversed_date=reversed_date,
            transaction_count=len(self.ledger.transactions),
            result_summary={**record.result_summary, "reversal": summary},
            seal=None,
        ))
        self._log.append(reversal)

        logger.info(f"Reversed {record.kind.value} action #{action_id} for {symbol}",
                    extra={'symbol': symbol, 'action_id': action_id})
        return reversal

    def _reverse_bonus(self, record: CorporateActionRecord) -> str:
        queue = self.ledger.lots_for_update(record.symbol)
        adjustments = record.result_summary.get("adjustments")

        if adjustments:
            by_id = {lot.lot_id: lot for lot in queue}
            missing = [a["lot_id"] for a in adjustments if a["lot_id"] not in by_id]
            if missing:
                raise CorporateActionError(
                    f"Cannot reverse action #{record.id}: adjusted lot(s) {', '.join(missing)} no longer held",
                    symbol=record.symbol
                )

            removed = Decimal(0)
            for adjustment in adjustments:
                lot = by_id[adjustment["lot_id"]]
                bonus = parse_decimal(adjustment["bonus_shares"], "bonus_shares")
                lot.quantity = parse_decimal(adjustment["prior_quantity"], "prior_quantity")
                lot.remaining_quantity -= bonus
                lot.unit_cost = parse_decimal(adjustment["prior_unit_cost"], "prior_unit_cost")
                removed += bonus
            return f"Removed {removed} bonus shares"

        # Records without per-lot adjustments: invert the ratio lot by lot
        ratio = parse_ratio(record.parameters["ratio"], ActionKind.BONUS)
        removed = Decimal(0)
        for lot in queue:
            if lot.acquisition_date >= record.ex_date:
                continue
            current = lot.remaining_quantity
            restored = Decimal(math.floor(Fraction(current) / (1 + ratio)))
            if restored <= 0:
                continue
            lot.unit_cost = current * lot.unit_cost / restored
            lot.quantity -= current - restored
            lot.remaining_quantity = restored
            removed += current - restored
        return f"Removed {removed} bonus shares"

    def _reverse_rights(self, record: CorporateActionRecord) -> str:
        lot_id = record.result_summary.get("lot_id")
        lot = next((l for l in self.ledger.lots_for_update(record.symbol) if l.lot_id == lot_id), None)

        if lot is None:
            sold = parse_decimal(record.result_summary.get("rights_shares", 0), "rights_shares")
            raise PartiallySold(record.symbol, record.id, sold)
        if lot.remaining_quantity != lot.quantity:
            raise PartiallySold(record.symbol, record.id, lot.quantity - lot.remaining_quantity)

        self.ledger.remove_lot(record.symbol, lot_id)
        return f"Removed rights lot {lot_id} ({lot.quantity} shares)"

    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_symbol(symbol: Any) -> str:
        if not isinstance(symbol, str) or not symbol.strip():
            raise ValidationError("Symbol is required and must be a string", field="symbol", value=symbol)
        return symbol.strip().upper()

    def _check_duplicate(self, symbol: str, kind: ActionKind, ex_date: date):
        for action in self.active_actions(symbol):
            if action.kind == kind and action.ex_date == ex_date:
                logger.warning(f"Refused duplicate {kind.value} for {symbol} on {ex_date}",
                               extra={'symbol': symbol, 'action_id': action.id})
                raise DuplicateAction(symbol, kind.value, ex_date, action.id)

    def _next_action_id(self) -> int:
        if not self._log:
            return 1
        return max(r.id for r in self._log) + 1

    def _append(
        self,
        symbol: str,
        kind: ActionKind,
        ex_date: date,
        applied_date: date,
        parameters: Dict[str, Any],
        result_summary: Dict[str, Any],
        action_id: Optional[int] = None
    ) -> CorporateActionRecord:
        record = seal_record(CorporateActionRecord(
            id=action_id if action_id is not None else self._next_action_id(),
            symbol=symbol,
            kind=kind,
            ex_date=ex_date,
            applied_date=applied_date,
            parameters=parameters,
            result_summary=result_summary,
            active=True,
            event=ActionEvent.APPLY,
            transaction_count=len(self.ledger.transactions),
        ))
        self._log.append(record)

        logger.info(f"Applied {kind.value} for {symbol} (ex-date {ex_date}): {record.summary}",
                    extra={'symbol': symbol, 'action_id': record.id})
        return record
