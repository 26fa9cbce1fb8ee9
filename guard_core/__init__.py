"""
Guard Core Module

Shared records and the budgeted correction loop.

This module provides:
- Pydantic schemas for units, validation, sanitization and patches
- The error taxonomy and failure classification
- The session/per-unit correction budget
- The asynchronous correction orchestrator
"""

__version__ = "0.1.0"
