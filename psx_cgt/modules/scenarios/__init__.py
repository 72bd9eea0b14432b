"""
Scenarios Module

Read-only what-if analysis over a LotLedger: every sale it prices is
simulated on a copy of the lot queues.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

__all__ = ['what_if']
