"""
Sandbox Module

Render-time containment for generated component code.

This module provides:
- Host policy tables (injected bindings, allowlisted globals, culled types)
- A wrapping element factory that repairs props and guards handlers
- Render, per-frame and missing-output crash boundaries
- A host driver that prepares each code version once and renders it

WARNING: This is NOT a security sandbox. It contains accidental defects in
generated code; it does not isolate memory, CPU or network access.
"""

__version__ = "0.1.0"
