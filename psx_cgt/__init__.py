"""
PSX Capital Gains Tax Engine

FIFO lot accounting, tiered capital gains tax and corporate action
cost-basis adjustments for Pakistan Stock Exchange equities.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

__version__ = "1.0.0"

__all__ = ['core', 'parsers', 'modules', 'utils']
