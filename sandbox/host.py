"""
Host driver for one generated unit.

``SimulationHost`` adopts a ``GeneratedModule`` version, validates and
sanitizes it once per version, compiles it through an injected
``UnitCompiler`` and renders it inside the crash boundary with the host
bindings. A unit that fails validation is never executed; its errors are
reported and the fallback placeholder is shown instead. Only the current
version stays prepared.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Protocol

from guard_core.schemas import GeneratedModule, SanitizeResult, UnitStatus, ValidationResult
from sanitizer import Sanitizer
from validator import StaticValidator

from . import elements
from .boundary import FrameGuard, FrameRegistrar, RenderBoundary
from .context import CorrectionContext, ErrorSink
from .interceptor import SafeElementFactory

logger = logging.getLogger(__name__)

Component = Callable[[Mapping[str, Any]], Any]


class UnitCompiler(Protocol):
    """Turns sanitized code into a callable that renders from a bindings mapping."""

    def __call__(self, code: str) -> Component:
        ...


@dataclass
class PreparedUnit:
    version: str
    validation: ValidationResult
    sanitized: SanitizeResult | None = None
    component: Component | None = None
    compile_error: str | None = None
    compile_stack: str | None = None


class SimulationHost:
    def __init__(
        self,
        compiler: UnitCompiler,
        on_error: ErrorSink | None = None,
        validator: StaticValidator | None = None,
        sanitizer: Sanitizer | None = None,
        create_element: elements.ElementFactory = elements.create_element,
        three: Any = None,
        three_state: Any = None,
        text_type: Any = "Text",
        react_members: Mapping[str, Any] | None = None,
        frame_register: FrameRegistrar | None = None,
    ) -> None:
        self.compiler = compiler
        self.validator = validator or StaticValidator()
        self.sanitizer = sanitizer or Sanitizer()
        self.three = three
        self.three_state = three_state
        self.text_type = text_type
        self.react_members = dict(react_members or {})

        self.context = CorrectionContext(on_error)
        self.factory = SafeElementFactory(create_element, self.context)
        self.boundary = RenderBoundary(self.context, self.factory, text_type)
        self.frames = FrameGuard(self.context, frame_register)

        self.module: GeneratedModule | None = None
        self._prepared: dict[str, PreparedUnit] = {}
        self.preparations = 0

    @property
    def unit_id(self) -> str | None:
        return self.module.unit_id if self.module else None

    def adopt(self, module: GeneratedModule) -> None:
        """Switch to ``module``; a repeat of the current version is a no-op."""
        if self.module is not None and self.module.version == module.version:
            self.module = module
            return

        logger.info(f"Adopting unit {module.unit_id} version {module.version}")
        self.module = module
        prepared = self.prepare(module)
        self._prepared = {module.version: prepared}
        self.context.reset(module.version, prepared.validation.warnings)
        self.boundary.reset_for(module.version)
        self.frames.clear()

        if not prepared.validation.valid:
            logger.warning(
                f"Unit {module.unit_id} failed static validation with "
                f"{len(prepared.validation.errors)} error(s); not executing"
            )
            self.boundary.fail(prepared.validation.error_summary())

    def prepare(self, module: GeneratedModule) -> PreparedUnit:
        cached = self._prepared.get(module.version)
        if cached is not None:
            return cached

        self.preparations += 1
        validation = self.validator.validate(module.raw_code)
        prepared = PreparedUnit(version=module.version, validation=validation)
        if validation.valid:
            prepared.sanitized = self.sanitizer.sanitize(module.raw_code)
            try:
                prepared.component = self.compiler(prepared.sanitized.sanitized_text)
            except Exception as exc:
                logger.exception(f"Failed to compile unit {module.unit_id} version {module.version}")
                prepared.compile_error = f"{type(exc).__name__}: {exc}"
                prepared.compile_stack = traceback.format_exc()

        self._prepared[module.version] = prepared
        return prepared

    @property
    def sanitized_code(self) -> str:
        if self.module is None:
            return ""
        prepared = self._prepared.get(self.module.version)
        if prepared is not None and prepared.sanitized is not None:
            return prepared.sanitized.sanitized_text
        return self.module.sanitized_code or self.module.raw_code

    def bindings(self, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        react = SimpleNamespace(createElement=self.factory, **self.react_members)
        return {
            "React": react,
            "THREE": self.three,
            "useFrame": self.frames.use_frame,
            "useThree": lambda: self.three_state,
            "Text": self.text_type,
            "params": dict(params or {}),
        }

    def render(self, params: Mapping[str, Any] | None = None) -> Any:
        if self.module is None:
            raise RuntimeError("No unit adopted")

        prepared = self.prepare(self.module)
        if not prepared.validation.valid:
            if self.boundary.has_error:
                return self.boundary.fallback()
            return self.boundary.fail(prepared.validation.error_summary())
        if prepared.compile_error is not None:
            return self.boundary.fail(prepared.compile_error, prepared.compile_stack)

        component = prepared.component
        bindings = self.bindings(params)
        self.frames.begin_render()
        result = self.boundary.render(lambda: component(bindings))
        self.frames.end_render()
        if self.boundary.has_error:
            self.frames.clear()
        return result

    def tick(self, state: Any = None, delta: float = 0.0) -> None:
        self.frames.tick(state, delta)

    def status(self, pending: bool = False) -> UnitStatus:
        if self.module is None:
            raise RuntimeError("No unit adopted")
        return UnitStatus(
            unit_id=self.module.unit_id,
            state=self.module.state,
            version=self.module.version,
            sanitized_code=self.sanitized_code,
            pending=pending,
            fallback_visible=self.boundary.has_error,
            diagnostic=self.context.last_error,
        )

    def connect(self, orchestrator: Any) -> None:
        """Route failures to ``orchestrator`` and adopt the versions it corrects."""

        def on_error(message: str, stack: str | None = None, warnings: list[str] | None = None) -> None:
            if self.unit_id is not None:
                orchestrator.report_failure(self.unit_id, message, stack, warnings)

        def on_corrected(module: GeneratedModule) -> None:
            if module.unit_id == self.unit_id:
                self.adopt(module)

        self.context.on_error = on_error
        orchestrator.subscribe(on_corrected)
