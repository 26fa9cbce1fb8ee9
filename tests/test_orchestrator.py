import asyncio

import pytest

from guard_core.budget import CorrectionBudget
from guard_core.errors import GuardError
from guard_core.failures import FailureType
from guard_core.orchestrator import CorrectionOrchestrator, apply_edits
from guard_core.schemas import CodeEdit, ControlParam, GeneratedModule, PatchResponse, UnitState


BROKEN_CODE = (
    "const speed = params.speed;\n"
    "const offset = speed.value * 2;\n"
    "return React.createElement('mesh', { position: [0, offset, 0] });\n"
)
FIXED_CODE = BROKEN_CODE.replace("speed.value", "speed")


def _patch(*pairs: tuple[str, str], explanation: str = "fix", parameters=None) -> PatchResponse:
    return PatchResponse(
        explanation=explanation,
        edits=[CodeEdit(search_text=search, replace_text=replace) for search, replace in pairs],
        parameters=parameters,
    )


class ScriptedGenerator:
    """Returns queued patches in order; an exception in the queue is raised instead."""

    def __init__(self, *replies, before_reply=None) -> None:
        self.replies = list(replies)
        self.requests = []
        self.before_reply = before_reply

    async def generate_patch(self, request):
        self.requests.append(request)
        if self.before_reply is not None:
            await self.before_reply()
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _orchestrator(generator, units: int = 1, **kwargs) -> CorrectionOrchestrator:
    budget = kwargs.pop("budget", None) or CorrectionBudget()
    if budget.session_max == 0:
        budget.init_session(unit_count=units)
    orchestrator = CorrectionOrchestrator(generator, budget=budget, **kwargs)
    orchestrator.register(GeneratedModule.create("u1", BROKEN_CODE))
    return orchestrator


def test_apply_edits_replaces_every_occurrence():
    code, failed = apply_edits("a + a + b", [CodeEdit(search_text="a", replace_text="c")])

    assert code == "c + c + b"
    assert failed == []


def test_apply_edits_reports_missing_and_empty_searches():
    edits = [
        CodeEdit(search_text="zzz", replace_text="y"),
        CodeEdit(search_text="", replace_text="y"),
        CodeEdit(search_text="b", replace_text="d"),
    ]
    code, failed = apply_edits("a + b", edits)

    assert code == "a + d"
    assert failed == edits[:2]


def test_successful_correction_notifies_listeners():
    generator = ScriptedGenerator(
        _patch(("speed.value", "speed"), parameters=[ControlParam(name="speed", default_value=1.0)])
    )
    orchestrator = _orchestrator(generator)
    received = []
    orchestrator.subscribe(received.append)

    attempt = asyncio.run(orchestrator.handle_failure("u1", "Cannot read properties of undefined", "at render"))

    assert attempt.success is True
    corrected = orchestrator.current("u1")
    assert corrected.state == UnitState.VALID
    assert corrected.raw_code == FIXED_CODE
    assert corrected.revision == 1
    assert [param.name for param in corrected.parameters] == ["speed"]
    assert received == [corrected]
    status = orchestrator.status("u1")
    assert status.fallback_visible is False
    assert status.diagnostic is None
    assert status.pending is False

    request = generator.requests[0]
    assert request.prior_code == BROKEN_CODE
    assert request.error_message == "Cannot read properties of undefined"
    assert request.stack_trace == "at render"


def test_unsubscribe_stops_notifications():
    orchestrator = _orchestrator(ScriptedGenerator(_patch(("speed.value", "speed"))))
    received = []
    unsubscribe = orchestrator.subscribe(received.append)
    unsubscribe()

    asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert received == []


def test_exhausted_budget_gives_up_without_a_request():
    generator = ScriptedGenerator()
    budget = CorrectionBudget()
    budget.init_session(unit_count=1)
    budget.consume("u1")
    orchestrator = _orchestrator(generator, budget=budget)

    attempt = asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert generator.requests == []
    assert budget.session_used == 1
    assert attempt.failure_type == "budget_exhausted"
    status = orchestrator.status("u1")
    assert status.state == UnitState.GIVEN_UP
    assert status.fallback_visible is True
    assert status.diagnostic.startswith("Automatic correction failed: [BUDGET]")
    assert orchestrator.current("u1").raw_code == BROKEN_CODE


def test_failed_edits_are_retried_once_with_every_miss_named():
    missing = CodeEdit(search_text="speed.valeu", replace_text="speed")
    also_missing = CodeEdit(search_text="offset * 3", replace_text="offset")
    generator = ScriptedGenerator(
        PatchResponse(edits=[missing, also_missing, CodeEdit(search_text="[0, offset, 0]", replace_text="[0, offset, 1]")]),
        _patch(("speed.value", "speed")),
    )
    budget = CorrectionBudget()
    budget.init_session(unit_count=1)
    orchestrator = _orchestrator(generator, budget=budget)

    attempt = asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert attempt.success is True
    assert attempt.retried is True
    assert len(generator.requests) == 2
    assert generator.requests[1].failed_edits == [missing, also_missing]
    assert budget.session_used == 1
    assert orchestrator.current("u1").raw_code == FIXED_CODE


def test_second_failed_application_gives_up():
    generator = ScriptedGenerator(
        _patch(("nope", "x")),
        _patch(("still nope", "x")),
    )
    orchestrator = _orchestrator(generator)

    attempt = asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert attempt.failure_type == "patch_application"
    assert "'still nope'" in attempt.failure_message
    assert orchestrator.status("u1").state == UnitState.GIVEN_UP
    assert orchestrator.current("u1").raw_code == BROKEN_CODE


def test_patch_that_fails_validation_is_rejected():
    generator = ScriptedGenerator(_patch(("speed.value * 2", "sped * 2")))
    orchestrator = _orchestrator(generator)

    attempt = asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert attempt.success is False
    assert attempt.failure_type == "validation_failed"
    assert "'sped' is not defined" in attempt.failure_message
    assert "Original error: boom" in attempt.failure_message
    status = orchestrator.status("u1")
    assert status.state == UnitState.GIVEN_UP
    assert status.sanitized_code == BROKEN_CODE


def test_corrected_code_is_sanitized_before_adoption():
    generator = ScriptedGenerator(
        _patch(("speed.value * 2", "speed * 2;\nparams.geometry.computeBoundingSphere()"))
    )
    orchestrator = _orchestrator(generator)

    asyncio.run(orchestrator.handle_failure("u1", "boom"))

    code = orchestrator.current("u1").raw_code
    assert "computeBoundingSphere()" not in code
    assert orchestrator.current("u1").sanitized_code == code


def test_generator_error_gives_up():
    orchestrator = _orchestrator(ScriptedGenerator(RuntimeError("connection reset")))

    attempt = asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert attempt.failure_type == "collaborator_error"
    assert orchestrator.status("u1").diagnostic == "Automatic correction failed: connection reset"
    assert orchestrator.status("u1").pending is False


def test_duplicate_report_while_pending_is_ignored():
    async def scenario():
        gate = asyncio.Event()
        generator = ScriptedGenerator(_patch(("speed.value", "speed")), before_reply=gate.wait)
        orchestrator = _orchestrator(generator, units=3)

        first = asyncio.create_task(orchestrator.handle_failure("u1", "boom"))
        await asyncio.sleep(0)
        assert orchestrator.status("u1").pending is True
        assert orchestrator.status("u1").state == UnitState.CORRECTING
        duplicate = await orchestrator.handle_failure("u1", "boom again")
        gate.set()
        return generator, orchestrator, duplicate, await first

    generator, orchestrator, duplicate, attempt = asyncio.run(scenario())

    assert duplicate is None
    assert attempt.success is True
    assert len(generator.requests) == 1
    assert len(orchestrator.history("u1")) == 1


def test_stale_response_is_discarded():
    generator = ScriptedGenerator(_patch(("speed.value", "speed")))
    orchestrator = _orchestrator(generator)
    replacement = GeneratedModule.create("u1", FIXED_CODE + "// user edit\n")

    async def user_edits_meanwhile():
        orchestrator.register(replacement)

    generator.before_reply = user_edits_meanwhile
    received = []
    orchestrator.subscribe(received.append)

    attempt = asyncio.run(orchestrator.handle_failure("u1", "boom"))

    assert attempt.stale is True
    assert attempt.success is False
    assert received == []
    assert orchestrator.current("u1").version == replacement.version
    assert orchestrator.status("u1").state == UnitState.VALID


def test_stack_trace_is_truncated():
    generator = ScriptedGenerator(_patch(("speed.value", "speed")))
    orchestrator = _orchestrator(generator, stack_trace_limit=10)

    asyncio.run(orchestrator.handle_failure("u1", "boom", "x" * 50, ["Line 1: warning"]))

    request = generator.requests[0]
    assert request.stack_trace == "x" * 10
    assert request.static_warnings == ["Line 1: warning"]


def test_report_failure_without_a_loop_runs_to_completion():
    orchestrator = _orchestrator(ScriptedGenerator(_patch(("speed.value", "speed"))))

    attempt = orchestrator.report_failure("u1", "boom")

    assert attempt.success is True


def test_report_failure_inside_a_loop_schedules_a_task():
    async def scenario():
        orchestrator = _orchestrator(ScriptedGenerator(_patch(("speed.value", "speed"))))
        task = orchestrator.report_failure("u1", "boom")
        assert isinstance(task, asyncio.Task)
        await orchestrator.drain()
        return orchestrator

    orchestrator = asyncio.run(scenario())

    assert orchestrator.status("u1").state == UnitState.VALID
    assert orchestrator.current("u1").revision == 1


def test_unknown_unit_is_an_error():
    orchestrator = _orchestrator(ScriptedGenerator())

    with pytest.raises(GuardError, match="Unknown unit"):
        asyncio.run(orchestrator.handle_failure("missing", "boom"))


def test_failures_are_classified():
    orchestrator = _orchestrator(ScriptedGenerator(_patch(("speed.value", "speed"))))

    asyncio.run(orchestrator.handle_failure("u1", "'foo' is not defined"))

    assert orchestrator.analyzer.get_failure_stats()[FailureType.UNDEFINED_IDENTIFIER] == 1


def test_second_failure_after_a_used_attempt_never_reaches_the_generator():
    generator = ScriptedGenerator(_patch(("speed.value", "speed")))
    orchestrator = _orchestrator(generator, units=2)

    first = asyncio.run(orchestrator.handle_failure("u1", "boom"))
    second = asyncio.run(orchestrator.handle_failure("u1", "boom again"))

    assert first.success is True
    assert second.failure_type == "budget_exhausted"
    assert "already used 1/1" in second.failure_message
    assert len(generator.requests) == 1
    assert orchestrator.budget.session_used == 1
    assert orchestrator.status("u1").state == UnitState.GIVEN_UP
