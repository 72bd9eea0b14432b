"""
Core Kernel Module

Foundational utilities shared by every module.

Components:
- calendar: T+2 settlement and PSX fiscal year arithmetic
- hashing: SHA256 audit logic for immutable records

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

__all__ = ['calendar', 'hashing']
