"""
Tax Module

FIFO cost basis and capital gains tax engine for PSX equities.

Features:
- FIFO lot ledger with T+2 settlement dates
- Regime and filer-status aware rate engine
- Bonus and rights issue adjustments with reversal
- Append-only, SHA256 sealed corporate action log

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

__all__ = ['engine', 'calculators', 'corporate_actions', 'ledger_state', 'reports']
