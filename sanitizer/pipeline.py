from __future__ import annotations

import logging
from collections.abc import Sequence

from guard_core.schemas import FixRecord, SanitizeResult

from .hoister import DEFAULT_MAX_ITERATIONS
from .rules import SanitizationRule, default_rules

logger = logging.getLogger(__name__)


class Sanitizer:
    """Run the ordered rewrite rules over generated code."""

    def __init__(
        self,
        rules: Sequence[SanitizationRule] | None = None,
        hoist_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.rules = list(rules) if rules is not None else default_rules(hoist_max_iterations)

    def sanitize(self, code: str) -> SanitizeResult:
        text = code
        fixes: list[FixRecord] = []
        warnings: list[str] = []
        for rule in self.rules:
            text, records = rule.apply(text)
            for record in records:
                if rule.log_only:
                    logger.warning(f"[{record.category}] {record.description}")
                    warnings.append(record.description)
                else:
                    logger.warning(f"Auto-fixed [{record.category}]: {record.description}")
                    fixes.append(record)

        if fixes:
            logger.info(f"Applied {len(fixes)} sanitization fix(es)")
        return SanitizeResult(sanitized_text=text, fixes_applied=fixes, warnings=warnings)


def sanitize_code(code: str, hoist_max_iterations: int = DEFAULT_MAX_ITERATIONS) -> SanitizeResult:
    return Sanitizer(hoist_max_iterations=hoist_max_iterations).sanitize(code)
