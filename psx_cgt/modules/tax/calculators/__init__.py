"""
Tax Calculator System

Rate tables and jurisdiction calculators for capital gains on PSX securities.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from .base import (
    RateBucket,
    RateTable,
    TaxCalculator,
    TaxRegime,
    get_calculator,
    list_available_jurisdictions,
)
from .pakistan import PakistanTaxCalculator

__all__ = [
    "RateBucket",
    "RateTable",
    "TaxRegime",
    "TaxCalculator",
    "PakistanTaxCalculator",
    "get_calculator",
    "list_available_jurisdictions",
]
