"""
Modules Package

Modular Monolith Architecture - Business Logic Layer

Modules:
- tax: Lot ledger, rate engine and corporate actions
- scenarios: What-if and tax optimization analysis (Read-Only)

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

__all__ = ['tax', 'scenarios']
