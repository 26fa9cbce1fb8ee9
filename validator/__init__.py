"""
Validator Module

Static pre-execution checks for generated component code.

This module provides:
- Error-tolerant JavaScript/JSX parsing (esprima)
- Scope-tree construction with destructuring, defaults and rest handling
- Undefined-identifier errors against the scope chain and host allowlist
- Advisory temporal-dead-zone and declarative/imperative confusion warnings
"""

__version__ = "0.1.0"

from .scope import ScopeInfo
from .static import StaticValidator, validate_code

__all__ = [
    "ScopeInfo",
    "StaticValidator",
    "validate_code",
]
