"""
Tax Reports

Numeric output for UI and document collaborators:
- pandas DataFrames of realized gains, holdings and per-lot tax
- fixed-width text reports (tax summary, corporate actions)

Amounts are rounded half-up to 2 dp here and nowhere earlier.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from decimal import Decimal
from typing import Dict, Iterable, Optional

import pandas as pd

from psx_cgt.modules.tax.tax_events import (
    ActionKind,
    AggregateTax,
    CorporateActionRecord,
    Holding,
    RealizedGain,
    SaleTax,
)
from psx_cgt.parsers.enhanced_transaction import parse_decimal, round_money
from psx_cgt.utils.logging_config import log_dataframe_info, setup_logger

logger = setup_logger(__name__)

REALIZED_GAIN_COLUMNS = [
    'symbol', 'trade_date', 'sale_date', 'quantity_sold', 'unit_sale_price',
    'sale_proceeds', 'total_cost_basis', 'capital_gain', 'lots_used',
]
HOLDING_COLUMNS = [
    'symbol', 'quantity', 'weighted_average_cost', 'total_cost_basis', 'lots',
]
TAX_BREAKDOWN_COLUMNS = [
    'symbol', 'sale_date', 'acquisition_date', 'holding_days', 'quantity', 'unit_cost',
    'sale_price', 'gain', 'taxable_gain', 'tax_rate', 'tax',
]


def _amount(value) -> float:
    return float(round_money(value))


def realized_gains_frame(gains: Iterable[RealizedGain], calculator=None) -> pd.DataFrame:
    """
    One row per sale. With a calculator, adds tax, net_profit and
    effective_rate columns.
    """
    columns = list(REALIZED_GAIN_COLUMNS)
    if calculator is not None:
        columns += ['tax', 'net_profit', 'effective_rate']

    rows = []
    for gain in gains:
        row = {
            'symbol': gain.symbol,
            'trade_date': pd.Timestamp(gain.trade_date),
            'sale_date': pd.Timestamp(gain.sale_date),
            'quantity_sold': float(gain.quantity_sold),
            'unit_sale_price': float(gain.unit_sale_price),
            'sale_proceeds': _amount(gain.sale_proceeds),
            'total_cost_basis': _amount(gain.total_cost_basis),
            'capital_gain': _amount(gain.capital_gain),
            'lots_used': len(gain.lots_consumed),
        }
        if calculator is not None:
            sale_tax = calculator.calculate_tax_for_sale(gain)
            row['tax'] = _amount(sale_tax.total_tax)
            row['net_profit'] = _amount(sale_tax.net_profit)
            row['effective_rate'] = float(sale_tax.effective_rate)
        rows.append(row)

    df = pd.DataFrame(rows, columns=columns)
    log_dataframe_info(logger, df, "realized_gains")
    return df


def holdings_frame(
    holdings: Dict[str, Holding],
    current_prices: Optional[Dict[str, Decimal]] = None
) -> pd.DataFrame:
    """One row per held symbol; market value columns when prices are given."""
    columns = list(HOLDING_COLUMNS)
    if current_prices is not None:
        columns += ['current_price', 'market_value', 'unrealized_gain']

    rows = []
    for symbol in sorted(holdings):
        holding = holdings[symbol]
        row = {
            'symbol': symbol,
            'quantity': float(holding.total_quantity),
            'weighted_average_cost': _amount(holding.weighted_average_cost),
            'total_cost_basis': _amount(holding.total_cost_basis),
            'lots': len(holding.lots),
        }
        if current_prices is not None:
            price = current_prices.get(symbol)
            if price is None:
                row.update(current_price=None, market_value=None, unrealized_gain=None)
            else:
                price = parse_decimal(price, "current_price")
                row['current_price'] = float(price)
                row['market_value'] = _amount(holding.market_value(price))
                row['unrealized_gain'] = _amount(holding.unrealized_gain(price))
        rows.append(row)

    df = pd.DataFrame(rows, columns=columns)
    log_dataframe_info(logger, df, "holdings")
    return df


def tax_breakdown_frame(sales: Iterable[SaleTax]) -> pd.DataFrame:
    """One row per consumed lot of each sale."""
    rows = []
    for sale in sales:
        for lot in sale.per_lot_breakdown:
            rows.append({
                'symbol': sale.symbol,
                'sale_date': pd.Timestamp(sale.sale_date),
                'acquisition_date': pd.Timestamp(lot.acquisition_date),
                'holding_days': lot.holding_days,
                'quantity': float(lot.quantity),
                'unit_cost': float(lot.unit_cost),
                'sale_price': float(lot.sale_price),
                'gain': _amount(lot.gain),
                'taxable_gain': _amount(lot.taxable_gain),
                'tax_rate': float(lot.tax_rate),
                'tax': _amount(lot.tax),
            })

    return pd.DataFrame(rows, columns=TAX_BREAKDOWN_COLUMNS)


def tax_report(aggregate: AggregateTax) -> str:
    """Fixed-width capital gains tax summary."""
    lines = [
        '=' * 60,
        'PAKISTAN STOCK EXCHANGE - CAPITAL GAINS TAX REPORT',
        '=' * 60,
        '',
        f"Taxpayer Status: {'Filer' if aggregate.is_filer else 'Non-Filer'}",
        f"Report Date: {aggregate.calculation_date.isoformat()}",
        '',
        '-' * 60,
        'SUMMARY',
        '-' * 60,
        f"Total Realized Gains:     Rs. {round_money(aggregate.total_gains):,.2f}",
        f"Total Realized Losses:    Rs. {round_money(aggregate.total_losses):,.2f}",
        f"Net Capital Gain:         Rs. {round_money(aggregate.net_gain):,.2f}",
        f"Total Tax Liability:      Rs. {round_money(aggregate.total_tax):,.2f}",
        f"Net Profit After Tax:     Rs. {round_money(aggregate.net_profit_after_tax):,.2f}",
        f"Effective Tax Rate:       {round_money(aggregate.effective_rate * 100)}%",
        '',
        '-' * 60,
        'TRANSACTION DETAILS',
        '-' * 60,
    ]

    for i, sale in enumerate(aggregate.sales, 1):
        lines += [
            '',
            f"Sale #{i}: {sale.symbol}",
            f"  Quantity Sold:          {sale.quantity_sold}",
            f"  Sale Proceeds:          Rs. {round_money(sale.sale_proceeds):,.2f}",
            f"  Cost Basis:             Rs. {round_money(sale.total_cost_basis):,.2f}",
            f"  Capital Gain:           Rs. {round_money(sale.capital_gain):,.2f}",
            f"  Tax Liability:          Rs. {round_money(sale.total_tax):,.2f}",
            f"  Net Profit:             Rs. {round_money(sale.net_profit):,.2f}",
        ]
        if len(sale.per_lot_breakdown) > 1:
            lines.append(f"  Lots Used:              {len(sale.per_lot_breakdown)}")
            for j, lot in enumerate(sale.per_lot_breakdown, 1):
                lines.append(
                    f"    Lot {j}: {lot.quantity} shares @ Rs. {round_money(lot.unit_cost)} "
                    f"({lot.tax_rate_percentage} tax)"
                )

    lines += ['', '=' * 60]
    return '\n'.join(lines)


def _summary_amount(record: CorporateActionRecord, key: str) -> str:
    return f"{round_money(parse_decimal(record.result_summary[key], key)):,.2f}"


def corporate_actions_report(
    records: Iterable[CorporateActionRecord],
    symbol: Optional[str] = None
) -> str:
    """Fixed-width listing of corporate actions (current state of each)."""
    lines = ['=' * 70, 'CORPORATE ACTIONS REPORT']
    if symbol:
        lines.append(f"Symbol: {symbol.strip().upper()}")
    lines += ['=' * 70, '']

    for record in records:
        lines += [
            f"{record.kind.value}: {record.symbol} (#{record.id})",
            f"  Ex-Date: {record.ex_date.isoformat()}",
            f"  Applied: {record.applied_date.isoformat()}",
            f"  Status: {'Active' if record.active else 'Reversed'}",
        ]
        if record.reversed_date:
            lines.append(f"  Reversed: {record.reversed_date.isoformat()}")

        summary = record.result_summary
        if record.kind == ActionKind.BONUS:
            lines += [
                f"  Ratio: {summary['bonus_percentage']}",
                f"  Old Shares: {summary['eligible_shares']}",
                f"  Bonus Shares: {summary['bonus_shares']}",
                f"  New Total: {summary['new_total_shares']}",
                f"  Old Avg Cost: Rs. {_summary_amount(record, 'old_average_cost')}",
                f"  New Avg Cost: Rs. {_summary_amount(record, 'new_average_cost')}",
            ]
        else:
            lines += [
                f"  Ratio: {record.parameters['ratio']}",
                f"  Eligible Shares: {summary['eligible_shares']}",
                f"  Right Shares: {summary['rights_shares']}",
                f"  Right Price: Rs. {_summary_amount(record, 'issue_price')}",
                f"  Total Cost: Rs. {_summary_amount(record, 'total_cost')}",
                f"  New Avg Cost: Rs. {_summary_amount(record, 'new_average_cost')}",
            ]
        lines.append('')

    lines.append('=' * 70)
    return '\n'.join(lines)
