"""
PSX Capital Gains Rate Configuration

Static rate table and scenario thresholds. The rate engine never reads this
module directly: it is turned into a RateTable via RateTable.from_config(),
so callers may supply their own table with the same shape.

Format:
{
    "regimes": [
        {
            "effective_from": "YYYY-MM-DD",   # acquisition (settlement) date
            "description": "...",
            "rates": {
                "filer":     [[lower_days, upper_days | None, "rate"], ...],
                "non_filer": [[lower_days, upper_days | None, "rate"], ...]
            }
        }
    ]
}

Buckets are half-open [lower_days, upper_days); the last bucket is unbounded.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

# Securities acquired before 1 July 2024 keep the holding-period schedule.
# Non-filers never get the long-holding relief.
PSX_RATE_TABLE = {
    "regimes": [
        {
            "effective_from": "0001-01-01",
            "description": "Legacy holding-period schedule",
            "rates": {
                "filer": [
                    [0, 365, "0.15"],
                    [365, 730, "0.125"],
                    [730, 1095, "0.10"],
                    [1095, 1460, "0.075"],
                    [1460, None, "0.00"],
                ],
                "non_filer": [
                    [0, 365, "0.15"],
                    [365, 730, "0.15"],
                    [730, 1095, "0.15"],
                    [1095, 1460, "0.15"],
                    [1460, None, "0.15"],
                ],
            },
        },
        {
            "effective_from": "2024-07-01",
            "description": "Flat rate for securities acquired after July 1, 2024",
            "rates": {
                "filer": [[0, None, "0.15"]],
                "non_filer": [[0, None, "0.15"]],
            },
        },
    ]
}

# What-if scenario thresholds (Rs. unless noted)
SCENARIO_SETTINGS = {
    "timing_delays_days": [30, 90, 180, 365],
    "holding_period_window_days": 90,
    "min_holding_period_savings": "100",
    "min_loss_harvest_savings": "100",
    "min_rebalance_trade_value": "100",
    "high_tax_impact_share": "0.05",      # of total portfolio value
    "high_effective_rate": "0.12",
    "year_end_high_urgency_days": 30,
    "year_end_medium_urgency_days": 90,
    "defer_gains_window_days": 30,
    "top_opportunities": 3,
}
