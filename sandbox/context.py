from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

ErrorSink = Callable[[str, "str | None", "list[str] | None"], None]


class CorrectionContext:
    """
    Failure hand-off and auto-fix dedup state for one render tree.

    Every containment tier reports through ``report``, which calls the
    ``on_error(message, stack, static_warnings)`` sink at most once per code
    version. ``reset`` starts a fresh episode when a new version is adopted.
    """

    def __init__(self, on_error: ErrorSink | None = None, code_version: str = "") -> None:
        self.on_error = on_error
        self.code_version = code_version
        self.static_warnings: list[str] = []
        self.reported = False
        self.frame_suppressed = False
        self.last_error: str | None = None
        self._fix_counts: Counter[tuple[str, str]] = Counter()

    def reset(self, code_version: str, static_warnings: Sequence[str] | None = None) -> None:
        self.code_version = code_version
        self.static_warnings = list(static_warnings or [])
        self.reported = False
        self.frame_suppressed = False
        self.last_error = None
        self._fix_counts.clear()

    def note_once(self, category: str, description: str) -> bool:
        """Count an auto-fix; only the first occurrence of a pair is logged."""
        key = (category, description)
        self._fix_counts[key] += 1
        if self._fix_counts[key] == 1:
            logger.warning(f"Auto-fixed: {description}")
            return True
        return False

    def fix_count(self, category: str, description: str) -> int:
        return self._fix_counts[(category, description)]

    def report(
        self,
        message: str,
        stack: str | None = None,
        static_warnings: Sequence[str] | None = None,
    ) -> bool:
        if self.reported:
            logger.debug(f"Suppressed repeat failure for version {self.code_version}: {message}")
            return False
        self.reported = True
        self.last_error = message

        warnings = list(static_warnings) if static_warnings is not None else list(self.static_warnings)
        logger.error(f"Unit version {self.code_version} failed: {message}")
        if self.on_error is not None:
            self.on_error(message, stack, warnings or None)
        return True
