"""Failure classification for reported unit errors and correction outcomes."""

from enum import Enum


class FailureType(str, Enum):
    SYNTAX_ERROR = "syntax_error"
    UNDEFINED_IDENTIFIER = "undefined_identifier"
    TDZ_WARNING = "tdz_warning"
    RUNTIME_ERROR = "runtime_error"
    MISSING_OUTPUT = "missing_output"
    PATCH_APPLICATION = "patch_application"
    VALIDATION_FAILED = "validation_failed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    COLLABORATOR_ERROR = "collaborator_error"
    OTHER = "other"


# First match wins; every marker is compared against the lowercased message.
_MARKERS: list[tuple[FailureType, tuple[str, ...]]] = [
    (FailureType.BUDGET_EXHAUSTED, ("[budget]",)),
    (FailureType.PATCH_APPLICATION, ("search strings were not found",)),
    (FailureType.VALIDATION_FAILED, ("failed validation",)),
    (FailureType.SYNTAX_ERROR, ("syntax error", "syntaxerror", "unexpected token")),
    (FailureType.UNDEFINED_IDENTIFIER, ("is not defined",)),
    (FailureType.TDZ_WARNING, ("possible tdz", "before initialization")),
    (FailureType.MISSING_OUTPUT, ("returned nothing", "missing a `return`")),
    (FailureType.RUNTIME_ERROR, ("error", "exception", "failed", "cannot", "not a function")),
]


class FailureAnalyzer:
    def __init__(self):
        self.counts: dict[FailureType, int] = {ft: 0 for ft in FailureType}

    def classify_error(self, error_msg: str) -> FailureType:
        lowered = error_msg.lower()
        for failure_type, markers in _MARKERS:
            if any(marker in lowered for marker in markers):
                return failure_type
        return FailureType.OTHER

    def record_failure(self, error_msg: str) -> FailureType:
        failure_type = self.classify_error(error_msg)
        self.counts[failure_type] += 1
        return failure_type

    def get_failure_stats(self) -> dict[FailureType, int]:
        return dict(self.counts)

    def most_common(self, n: int = 5) -> list[tuple[str, int]]:
        seen = [(ft.value, count) for ft, count in self.counts.items() if count > 0]
        seen.sort(key=lambda item: item[1], reverse=True)
        return seen[:n]
