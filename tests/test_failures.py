import pytest

from guard_core.failures import FailureAnalyzer, FailureType
from sandbox.boundary import MISSING_OUTPUT_MESSAGE


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("[BUDGET] Session limit reached (2/2). No more corrections this session.", FailureType.BUDGET_EXHAUSTED),
        ("Could not apply error fixes. These search strings were not found: 'x'", FailureType.PATCH_APPLICATION),
        ("Error correction failed validation: Line 2: 'y' is not defined.", FailureType.VALIDATION_FAILED),
        ("Syntax error: Line 3: Unexpected token )", FailureType.SYNTAX_ERROR),
        ("Line 1: 'heigth' is not defined", FailureType.UNDEFINED_IDENTIFIER),
        ("Cannot access 'count' before initialization", FailureType.TDZ_WARNING),
        (MISSING_OUTPUT_MESSAGE, FailureType.MISSING_OUTPUT),
        ("geometry.addEventListener is not a function", FailureType.RUNTIME_ERROR),
        ("something odd", FailureType.OTHER),
    ],
)
def test_classify_error(message, expected):
    assert FailureAnalyzer().classify_error(message) == expected


def test_most_common_skips_unseen_types():
    analyzer = FailureAnalyzer()
    for message in ["'a' is not defined", "'b' is not defined", "boom failed"]:
        analyzer.record_failure(message)

    assert analyzer.most_common() == [("undefined_identifier", 2), ("runtime_error", 1)]
    assert analyzer.most_common(1) == [("undefined_identifier", 2)]
