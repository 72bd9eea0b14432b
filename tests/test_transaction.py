"""
Unit Tests for the Transaction Model and Input Parsing

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from psx_cgt.modules.tax.exceptions import TaxEngineError, ValidationError
from psx_cgt.parsers.enhanced_transaction import (
    TransactionType,
    TransactionTypeError,
    build_transaction,
    optional_date,
    parse_date,
    parse_decimal,
    round_money,
)


def _fields(**overrides):
    fields = {
        "id": 1,
        "kind": "BUY",
        "symbol": "OGDC",
        "quantity": 100,
        "unit_price": "95.50",
        "trade_date": "2025-01-01",
    }
    fields.update(overrides)
    return fields


class TestTransactionType:

    @pytest.mark.parametrize("raw, expected", [
        ("BUY", TransactionType.BUY),
        ("b", TransactionType.BUY),
        (" purchase ", TransactionType.BUY),
        ("Sell", TransactionType.SELL),
        ("S", TransactionType.SELL),
        ("sale", TransactionType.SELL),
    ])
    def test_normalize(self, raw, expected):
        assert TransactionType.normalize(raw) == expected

    def test_unknown_type(self):
        with pytest.raises(TransactionTypeError):
            TransactionType.normalize("HOLD")

    def test_type_error_is_value_error(self):
        assert issubclass(TransactionTypeError, ValueError)
        assert issubclass(TransactionTypeError, TaxEngineError)


class TestParsing:

    def test_parse_decimal_from_float_uses_text(self):
        assert parse_decimal(0.2) == Decimal("0.2")

    def test_parse_decimal_strips_thousands_separator(self):
        assert parse_decimal("1,234.50") == Decimal("1234.50")

    @pytest.mark.parametrize("bad", ["abc", None, True, "NaN", float("inf")])
    def test_parse_decimal_rejects(self, bad):
        with pytest.raises(ValidationError):
            parse_decimal(bad)

    def test_parse_date_formats(self):
        assert parse_date("2025-01-01") == date(2025, 1, 1)
        assert parse_date("2025-01-01T00:00:00.000Z") == date(2025, 1, 1)
        assert parse_date(datetime(2025, 1, 1, 15, 30)) == date(2025, 1, 1)

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValidationError) as exc:
            parse_date("01/13/2025", "trade_date")
        assert exc.value.field == "trade_date"

    def test_optional_date(self):
        assert optional_date(None, "x") is None
        assert optional_date("", "x") is None
        assert optional_date("2025-03-01", "x") == date(2025, 3, 1)

    def test_round_money_half_up(self):
        assert round_money(Decimal("83.335")) == Decimal("83.34")
        assert round_money(Decimal("2.5")) == Decimal("2.50")


class TestTransaction:

    def test_normalises_input(self):
        txn = build_transaction(**_fields(kind="b", symbol=" ogdc ", quantity="1,000", unit_price=95.5))
        assert txn.kind == TransactionType.BUY
        assert txn.symbol == "OGDC"
        assert txn.quantity == Decimal("1000")
        assert txn.unit_price == Decimal("95.5")
        assert txn.commission == Decimal(0)

    def test_settlement_derived_from_trade_date(self):
        txn = build_transaction(**_fields())
        assert txn.trade_date == date(2025, 1, 1)
        assert txn.settlement_date == date(2025, 1, 3)

    def test_explicit_settlement_kept(self):
        txn = build_transaction(**_fields(settlement_date="2025-01-06"))
        assert txn.settlement_date == date(2025, 1, 6)

    def test_settlement_before_trade_rejected(self):
        with pytest.raises(ValidationError):
            build_transaction(**_fields(settlement_date="2024-12-31"))

    @pytest.mark.parametrize("field, value", [
        ("quantity", 0),
        ("quantity", -5),
        ("unit_price", 0),
        ("commission", -1),
    ])
    def test_non_positive_values_rejected(self, field, value):
        with pytest.raises(ValidationError) as exc:
            build_transaction(**_fields(**{field: value}))
        assert exc.value.field == field

    def test_empty_symbol_rejected(self):
        with pytest.raises(ValidationError):
            build_transaction(**_fields(symbol="  "))

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError) as exc:
            build_transaction(**_fields(kind="HOLD"))
        assert exc.value.field == "kind"

    def test_pydantic_error_is_chained(self):
        with pytest.raises(ValidationError) as exc:
            build_transaction(**_fields(quantity=0))
        assert isinstance(exc.value.__cause__, PydanticValidationError)

    def test_transaction_is_frozen(self):
        txn = build_transaction(**_fields())
        with pytest.raises(PydanticValidationError):
            txn.quantity = Decimal("5")

    def test_total_value_excludes_commission(self):
        txn = build_transaction(**_fields(quantity=10, unit_price=100, commission=25))
        assert txn.total_value == Decimal("1000")
        assert txn.is_buy()
