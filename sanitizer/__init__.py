"""
Sanitizer Module

Deterministic text rewrites for generated component code.

This module provides:
- An ordered pipeline of idempotent rewrite rules with audit records
- Hook hoisting out of conditional and loop blocks
- Declarative/imperative geometry and material conversions
- Log-only detection of render-time animation anti-patterns
"""

__version__ = "0.1.0"

from .hoister import HookHoister
from .pipeline import Sanitizer, sanitize_code
from .rules import SanitizationRule, default_rules

__all__ = [
    "HookHoister",
    "SanitizationRule",
    "Sanitizer",
    "default_rules",
    "sanitize_code",
]
