"""
Crash containment for generated units.

Three tiers report through one ``CorrectionContext``:

- ``RenderBoundary`` catches exceptions raised while the unit builds its
  element tree, and also treats an empty result (usually a missing
  ``return``) as a failure. Both show a fallback placeholder until the code
  identity changes.
- ``FrameGuard`` wraps per-frame callbacks; the first exception is reported
  and every later frame for that version is skipped.
- Event handlers are guarded by ``SafeElementFactory``.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Callable
from typing import Any

from . import elements
from .context import CorrectionContext

logger = logging.getLogger(__name__)

MISSING_OUTPUT_MESSAGE = (
    "Component returned nothing (undefined). "
    "The code body is missing a `return` statement before the final React.createElement() call."
)
FALLBACK_TITLE = "Simulation Error"
FALLBACK_HINT = "Check console for details"
FALLBACK_MESSAGE_LIMIT = 100

FrameCallback = Callable[..., Any]
FrameRegistrar = Callable[[FrameCallback, "int | None"], Any]


def build_fallback(
    message: str,
    create_element: elements.ElementFactory = elements.create_element,
    text_type: Any = "Text",
) -> Any:
    """Red wireframe box with the truncated error message above it."""
    box = create_element(
        "mesh",
        {"position": [0, 0, 0]},
        create_element("boxGeometry", {"args": [2, 2, 2]}),
        create_element("meshStandardMaterial", {"color": "#ff4444", "wireframe": True}),
    )
    title = create_element(
        text_type,
        {"position": [0, 2.5, 0], "fontSize": 0.35, "color": "#ff6b6b", "anchorX": "center"},
        FALLBACK_TITLE,
    )
    detail = create_element(
        text_type,
        {"position": [0, 1.8, 0], "fontSize": 0.18, "color": "#ffaa88", "anchorX": "center", "maxWidth": 6},
        message[:FALLBACK_MESSAGE_LIMIT],
    )
    hint = create_element(
        text_type,
        {"position": [0, 1.2, 0], "fontSize": 0.15, "color": "#888", "anchorX": "center", "maxWidth": 6},
        FALLBACK_HINT,
    )
    return create_element("group", None, box, title, detail, hint)


def is_missing_output(result: Any) -> bool:
    return result is None


class RenderBoundary:
    def __init__(
        self,
        context: CorrectionContext,
        create_element: elements.ElementFactory = elements.create_element,
        text_type: Any = "Text",
    ) -> None:
        self.context = context
        self.create_element = create_element
        self.text_type = text_type
        self.code_version = context.code_version
        self.has_error = False
        self.error = ""

    def reset_for(self, code_version: str) -> bool:
        """Clear the fallback when a different code version is adopted."""
        if code_version == self.code_version:
            return False
        self.code_version = code_version
        self.has_error = False
        self.error = ""
        return True

    def fail(self, message: str, stack: str | None = None) -> Any:
        self.has_error = True
        self.error = message
        # the report may synchronously adopt a corrected version and reset this boundary
        fallback = self.fallback()
        self.context.report(message, stack)
        return fallback

    def fallback(self) -> Any:
        return build_fallback(self.error, self.create_element, self.text_type)

    def render(self, render_fn: Callable[[], Any]) -> Any:
        if self.has_error:
            return self.fallback()
        try:
            result = render_fn()
        except Exception as exc:
            logger.exception(f"Render failed for version {self.code_version}")
            return self.fail(str(exc), traceback.format_exc())

        if is_missing_output(result):
            logger.error(f"Render produced no output for version {self.code_version}")
            return self.fail(MISSING_OUTPUT_MESSAGE)
        return result


class FrameGuard:
    """
    Per-frame callback registration with containment.

    Without an external registrar, callbacks are kept in call-order slots
    that are refreshed on each render and run by ``tick``.
    """

    def __init__(self, context: CorrectionContext, register: FrameRegistrar | None = None) -> None:
        self.context = context
        self.register = register
        self._slots: list[FrameCallback] = []
        self._cursor = 0

    def wrap(self, callback: FrameCallback) -> FrameCallback:
        context = self.context

        def guarded(*args: Any) -> Any:
            if context.frame_suppressed:
                return None
            try:
                return callback(*args)
            except Exception as exc:
                context.frame_suppressed = True
                logger.exception(f"Frame callback failed for version {context.code_version}")
                context.report(str(exc), traceback.format_exc())
                return None

        return guarded

    def use_frame(self, callback: FrameCallback, priority: int | None = None) -> Any:
        guarded = self.wrap(callback)
        if self.register is not None:
            return self.register(guarded, priority)
        if self._cursor < len(self._slots):
            self._slots[self._cursor] = guarded
        else:
            self._slots.append(guarded)
        self._cursor += 1
        return None

    def begin_render(self) -> None:
        self._cursor = 0

    def end_render(self) -> None:
        del self._slots[self._cursor:]

    def clear(self) -> None:
        self._slots.clear()
        self._cursor = 0

    @property
    def callback_count(self) -> int:
        return len(self._slots)

    def tick(self, state: Any = None, delta: float = 0.0) -> None:
        for callback in list(self._slots):
            callback(state, delta)
