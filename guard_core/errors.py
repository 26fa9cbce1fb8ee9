"""Exceptions raised inside the correction loop."""

from __future__ import annotations

from collections.abc import Sequence

from .schemas import CodeEdit, ValidationIssue


class GuardError(Exception):
    """Base class for correction-loop failures."""


class BudgetExhaustedError(GuardError):
    def __init__(self, message: str, unit_id: str | None = None) -> None:
        super().__init__(message)
        self.unit_id = unit_id


class PatchApplicationError(GuardError):
    def __init__(self, failed_edits: Sequence[CodeEdit]) -> None:
        self.failed_edits = list(failed_edits)
        missing = ", ".join(repr(edit.search_text) for edit in self.failed_edits)
        super().__init__(f"Could not apply error fixes. These search strings were not found: {missing}")


class CorrectionValidationError(GuardError):
    def __init__(self, errors: Sequence[ValidationIssue], original_error: str) -> None:
        self.errors = list(errors)
        summary = "; ".join(error.describe() for error in self.errors)
        super().__init__(
            f"Error correction failed validation: {summary}. Original error: {original_error}"
        )
