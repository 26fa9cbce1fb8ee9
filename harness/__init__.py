"""
Harness Module

Offline tooling around the guard pipeline.

This module provides:
- YAML configuration for budgets, limits, allowlist extras and the LLM provider
- A command-line interface to validate, sanitize, check and correct code files
"""

__version__ = "0.1.0"
