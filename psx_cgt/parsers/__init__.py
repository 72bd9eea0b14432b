"""
Parsers Package

Validated transaction model and input parsing helpers.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

__all__ = ['enhanced_transaction']
