"""
Session-wide and per-unit limits on correction requests.

Counters only grow within a session; ``init_session`` is the single reset
point. A refused request never touches either counter.
"""

from __future__ import annotations

import logging
import threading

from .errors import BudgetExhaustedError

logger = logging.getLogger(__name__)

DEFAULT_PER_UNIT_MAX = 1


class CorrectionBudget:
    def __init__(self, session_max: int = 0, per_unit_max: int = DEFAULT_PER_UNIT_MAX) -> None:
        self.session_max = session_max
        self.per_unit_max = per_unit_max
        self.session_used = 0
        self.per_unit_used: dict[str, int] = {}
        self._lock = threading.Lock()

    def init_session(self, unit_count: int | None = None, session_max: int | None = None) -> None:
        """Start a new session sized to ``unit_count`` units unless ``session_max`` is given."""
        with self._lock:
            if session_max is not None:
                self.session_max = session_max
            elif unit_count is not None:
                self.session_max = unit_count * self.per_unit_max
            self.session_used = 0
            self.per_unit_used = {}
        logger.info(
            f"[BUDGET] Session started: {self.session_max} correction(s), "
            f"{self.per_unit_max} per unit"
        )

    def used_by(self, unit_id: str) -> int:
        return self.per_unit_used.get(unit_id, 0)

    def remaining_for(self, unit_id: str) -> int:
        return max(0, min(self.per_unit_max - self.used_by(unit_id), self.session_max - self.session_used))

    def consume(self, unit_id: str) -> None:
        """Charge one request to ``unit_id`` or raise ``BudgetExhaustedError``."""
        with self._lock:
            used = self.per_unit_used.get(unit_id, 0)
            if used >= self.per_unit_max:
                message = (
                    f"[BUDGET] Unit {unit_id}: already used {used}/{self.per_unit_max} "
                    f"correction call(s). Giving up on this unit."
                )
                logger.warning(message)
                raise BudgetExhaustedError(message, unit_id)
            if self.session_used >= self.session_max:
                message = (
                    f"[BUDGET] Session limit reached ({self.session_used}/{self.session_max}). "
                    f"No more corrections this session."
                )
                logger.warning(message)
                raise BudgetExhaustedError(message, unit_id)

            self.per_unit_used[unit_id] = used + 1
            self.session_used += 1
        logger.info(f"[BUDGET] Correction call {self.session_used}/{self.session_max} (unit {unit_id})")

    def try_consume(self, unit_id: str) -> bool:
        try:
            self.consume(unit_id)
        except BudgetExhaustedError:
            return False
        return True

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "session_max": self.session_max,
                "session_used": self.session_used,
                "per_unit_max": self.per_unit_max,
                "per_unit_used": dict(self.per_unit_used),
            }
