"""
Budgeted correction loop for generated units.

Per unit: ``valid -> correcting -> valid`` when a patch applies and the
patched code validates, otherwise ``-> given_up`` with the last good code
kept and a persistent diagnostic. A unit has at most one request in flight;
a response that arrives after a newer version was registered is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from sanitizer import Sanitizer
from validator import StaticValidator

from .budget import CorrectionBudget
from .errors import BudgetExhaustedError, CorrectionValidationError, GuardError, PatchApplicationError
from .failures import FailureAnalyzer, FailureType
from .schemas import (
    CodeEdit,
    CorrectionAttempt,
    CorrectionRequest,
    GeneratedModule,
    PatchResponse,
    UnitState,
    UnitStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_STACK_TRACE_LIMIT = 500

ModuleListener = Callable[[GeneratedModule], None]


class PatchGenerator(Protocol):
    async def generate_patch(self, request: CorrectionRequest) -> PatchResponse:
        ...


def apply_edits(code: str, edits: Sequence[CodeEdit]) -> tuple[str, list[CodeEdit]]:
    """Apply search/replace edits in order, replacing every occurrence.

    Returns the new code and the edits whose search text was not present.
    """
    current = code
    failed: list[CodeEdit] = []
    for edit in edits:
        if not edit.search_text or edit.search_text not in current:
            failed.append(edit)
            continue
        current = current.replace(edit.search_text, edit.replace_text)
    return current, failed


@dataclass
class _UnitRecord:
    module: GeneratedModule
    pending: bool = False
    fallback_visible: bool = False
    diagnostic: str | None = None
    history: list[CorrectionAttempt] = field(default_factory=list)

    @property
    def code(self) -> str:
        return self.module.sanitized_code or self.module.raw_code


class _StaleResponse(Exception):
    pass


class CorrectionOrchestrator:
    def __init__(
        self,
        generator: PatchGenerator,
        budget: CorrectionBudget | None = None,
        sanitizer: Sanitizer | None = None,
        validator: StaticValidator | None = None,
        stack_trace_limit: int = DEFAULT_STACK_TRACE_LIMIT,
        analyzer: FailureAnalyzer | None = None,
    ) -> None:
        self.generator = generator
        self.budget = budget or CorrectionBudget()
        self.sanitizer = sanitizer or Sanitizer()
        self.validator = validator or StaticValidator()
        self.stack_trace_limit = stack_trace_limit
        self.analyzer = analyzer or FailureAnalyzer()
        self._units: dict[str, _UnitRecord] = {}
        self._listeners: list[ModuleListener] = []
        self._tasks: set[asyncio.Task] = set()

    def register(self, module: GeneratedModule) -> GeneratedModule:
        """Adopt ``module`` as the current version of its unit."""
        adopted = module.with_state(UnitState.VALID)
        record = self._units.get(module.unit_id)
        if record is None:
            self._units[module.unit_id] = _UnitRecord(module=adopted)
        else:
            record.module = adopted
            record.fallback_visible = False
            record.diagnostic = None
        logger.info(f"Registered unit {module.unit_id} version {module.version}")
        return adopted

    def _record(self, unit_id: str) -> _UnitRecord:
        try:
            return self._units[unit_id]
        except KeyError:
            raise GuardError(f"Unknown unit: {unit_id}") from None

    def current(self, unit_id: str) -> GeneratedModule:
        return self._record(unit_id).module

    def history(self, unit_id: str) -> list[CorrectionAttempt]:
        return list(self._record(unit_id).history)

    def status(self, unit_id: str) -> UnitStatus:
        record = self._record(unit_id)
        return UnitStatus(
            unit_id=unit_id,
            state=record.module.state,
            version=record.module.version,
            sanitized_code=record.code,
            pending=record.pending,
            fallback_visible=record.fallback_visible,
            diagnostic=record.diagnostic,
        )

    def subscribe(self, listener: ModuleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def report_failure(
        self,
        unit_id: str,
        message: str,
        stack: str | None = None,
        static_warnings: Sequence[str] | None = None,
    ):
        """Failure sink for the render layer.

        Schedules the correction on the running event loop and returns the
        task; without a running loop the correction runs to completion and
        its attempt is returned.
        """
        coro = self.handle_failure(unit_id, message, stack, static_warnings)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)

        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled correction to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _truncate_stack(self, stack: str | None) -> str | None:
        if stack is None:
            return None
        return stack[: self.stack_trace_limit]

    async def handle_failure(
        self,
        unit_id: str,
        message: str,
        stack: str | None = None,
        static_warnings: Sequence[str] | None = None,
    ) -> CorrectionAttempt | None:
        record = self._record(unit_id)
        record.fallback_visible = True
        record.diagnostic = message
        failure_type = self.analyzer.record_failure(message)
        logger.warning(f"Unit {unit_id} reported {failure_type.value}: {message}")

        if record.pending:
            logger.info(f"Correction already pending for unit {unit_id}; ignoring duplicate report")
            return None

        version = record.module.version
        prior_code = record.code
        warnings = list(static_warnings) if static_warnings else None
        attempt = CorrectionAttempt(
            unit_id=unit_id,
            prior_code=prior_code,
            error_message=message,
            stack_trace=self._truncate_stack(stack),
            static_warnings=warnings,
        )
        record.history.append(attempt)

        try:
            self.budget.consume(unit_id)
        except BudgetExhaustedError as exc:
            self._give_up(record, attempt, exc, FailureType.BUDGET_EXHAUSTED)
            return attempt

        record.pending = True
        record.module = record.module.with_state(UnitState.CORRECTING)
        try:
            request = CorrectionRequest(
                unit_id=unit_id,
                prior_code=prior_code,
                parameters=list(record.module.parameters),
                error_message=message,
                stack_trace=attempt.stack_trace,
                static_warnings=warnings,
            )
            response = await self._request(request, record, version)
            patched, failed = apply_edits(prior_code, response.edits)

            if failed:
                logger.warning(
                    f"{len(failed)} edit(s) did not match for unit {unit_id}; retrying once with full code"
                )
                attempt.retried = True
                retry = request.model_copy(update={"failed_edits": failed})
                response = await self._request(retry, record, version)
                # applied to the code the first response was meant for
                patched, failed = apply_edits(prior_code, response.edits)
                if failed:
                    attempt.edits = list(response.edits)
                    raise PatchApplicationError(failed)

            attempt.edits = list(response.edits)
            attempt.explanation = response.explanation
            sanitized = self.sanitizer.sanitize(patched)
            validation = self.validator.validate(sanitized.sanitized_text)
            if validation.warnings:
                logger.warning(f"Corrected code for unit {unit_id} has warnings: {validation.warnings}")
            if not validation.valid:
                raise CorrectionValidationError(validation.errors, message)
        except _StaleResponse:
            attempt.stale = True
            logger.info(f"Discarded stale correction for unit {unit_id} version {version}")
            return attempt
        except GuardError as exc:
            self._give_up(record, attempt, exc, self.analyzer.classify_error(str(exc)))
            return attempt
        except Exception as exc:
            logger.exception(f"Correction request failed for unit {unit_id}")
            self._give_up(record, attempt, exc, FailureType.COLLABORATOR_ERROR)
            return attempt
        finally:
            record.pending = False

        corrected = record.module.revise(
            raw_code=sanitized.sanitized_text,
            sanitized_code=sanitized.sanitized_text,
            parameters=response.parameters,
            state=UnitState.VALID,
        )
        record.module = corrected
        record.fallback_visible = False
        record.diagnostic = None
        attempt.success = True
        logger.info(f"Applied correction for unit {unit_id}: {response.explanation}")

        for listener in list(self._listeners):
            listener(corrected)
        return attempt

    async def _request(self, request: CorrectionRequest, record: _UnitRecord, version: str) -> PatchResponse:
        response = await self.generator.generate_patch(request)
        if record.module.version != version:
            raise _StaleResponse()
        return response

    def _give_up(
        self,
        record: _UnitRecord,
        attempt: CorrectionAttempt,
        exc: Exception,
        failure_type: FailureType,
    ) -> None:
        attempt.success = False
        attempt.failure_type = failure_type.value
        attempt.failure_message = str(exc)
        record.module = record.module.with_state(UnitState.GIVEN_UP)
        record.fallback_visible = True
        record.diagnostic = f"Automatic correction failed: {exc}"
        logger.warning(f"Giving up on unit {record.module.unit_id}: {exc}")
