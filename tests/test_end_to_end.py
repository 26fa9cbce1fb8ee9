"""
Full loop: host render failure -> orchestrator -> scripted provider -> corrected version adopted.
"""

from guard_core.budget import CorrectionBudget
from guard_core.orchestrator import CorrectionOrchestrator
from guard_core.schemas import GeneratedModule, UnitState
from llm.patcher import LLMPatchGenerator
from llm.providers import FakeProvider
from sandbox.host import SimulationHost


CRASHING_CODE = (
    "const radius = params.size.value;\n"
    "return React.createElement('mesh', { scale: [radius, radius, radius] });\n"
)


def compile_unit(code: str):
    """Python stand-in for the JS compiler, keyed on the broken expression."""

    def component(bindings):
        if "params.size.value" in code:
            raise TypeError("Cannot read properties of undefined (reading 'value')")
        size = bindings["params"]["size"]
        return bindings["React"].createElement("mesh", {"scale": [size, size, size]})

    return component


def _wire(provider: FakeProvider, session_max: int | None = None):
    budget = CorrectionBudget()
    budget.init_session(unit_count=1, session_max=session_max)
    orchestrator = CorrectionOrchestrator(LLMPatchGenerator(provider), budget=budget)
    host = SimulationHost(compile_unit)
    host.connect(orchestrator)
    return orchestrator, host


def test_runtime_crash_is_corrected_and_rerendered():
    provider = FakeProvider(
        replies=[
            {
                "explanation": "size is a number, not an object",
                "edits": [{"old_code": "params.size.value", "new_code": "params.size"}],
                "params": None,
            }
        ]
    )
    orchestrator, host = _wire(provider)
    module = orchestrator.register(GeneratedModule.create("u1", CRASHING_CODE))
    host.adopt(module)

    first = host.render({"size": 2})

    assert first.type == "group"
    assert provider.call_count == 1
    assert "RUNTIME ERROR:\nCannot read properties of undefined (reading 'value')" in provider.transcripts[0][1]["content"]

    status = orchestrator.status("u1")
    assert status.state == UnitState.VALID
    assert status.fallback_visible is False
    assert host.module.revision == 1
    assert host.status().fallback_visible is False

    second = host.render({"size": 2})
    assert second.type == "mesh"
    assert second.props["scale"] == [2, 2, 2]


def test_exhausted_budget_keeps_the_fallback_and_never_calls_the_provider():
    provider = FakeProvider()
    orchestrator, host = _wire(provider, session_max=0)
    host.adopt(orchestrator.register(GeneratedModule.create("u1", CRASHING_CODE)))

    host.render({"size": 2})
    host.render({"size": 2})

    assert provider.call_count == 0
    history = orchestrator.history("u1")
    assert len(history) == 1
    assert history[0].failure_type == "budget_exhausted"
    status = orchestrator.status("u1")
    assert status.state == UnitState.GIVEN_UP
    assert status.fallback_visible is True
    assert status.diagnostic.startswith("Automatic correction failed:")
    assert host.status().fallback_visible is True
    assert orchestrator.budget.session_used == 0


def test_statically_invalid_unit_is_corrected_before_it_runs():
    provider = FakeProvider(
        replies=[
            "```json\n"
            '{"explanation": "typo", "edits": [{"old_code": "= sise;", "new_code": "= params.size;"}]}\n'
            "```"
        ]
    )
    orchestrator, host = _wire(provider)
    code = (
        "const radius = sise;\n"
        "return React.createElement('mesh', { scale: [radius, radius, radius] });\n"
    )

    host.adopt(orchestrator.register(GeneratedModule.create("u1", code)))

    assert provider.call_count == 1
    assert "'sise' is not defined" in provider.transcripts[0][1]["content"]
    assert host.module.raw_code == code.replace("= sise;", "= params.size;")
    assert host.render({"size": 3}).props["scale"] == [3, 3, 3]


def test_per_unit_budget_spent_still_reports_once_and_shows_the_fallback():
    provider = FakeProvider()
    orchestrator, host = _wire(provider)
    orchestrator.budget.consume("u1")
    relay = host.context.on_error
    reported = []

    def on_error(message, stack=None, warnings=None):
        reported.append(message)
        relay(message, stack, warnings)

    host.context.on_error = on_error
    host.adopt(orchestrator.register(GeneratedModule.create("u1", CRASHING_CODE)))

    first = host.render({"size": 2})
    second = host.render({"size": 2})

    assert reported == ["Cannot read properties of undefined (reading 'value')"]
    assert provider.call_count == 0
    assert orchestrator.budget.session_used == 1
    assert orchestrator.history("u1")[0].failure_type == "budget_exhausted"
    assert orchestrator.status("u1").state == UnitState.GIVEN_UP
    assert first.type == "group"
    assert second.type == "group"
    assert host.status().fallback_visible is True


def test_invalid_unit_that_cannot_be_corrected_shows_the_fallback():
    provider = FakeProvider()
    orchestrator, host = _wire(provider, session_max=0)
    host.adopt(orchestrator.register(GeneratedModule.create("u1", "return sise;\n")))

    result = host.render({})

    assert provider.call_count == 0
    assert orchestrator.status("u1").state == UnitState.GIVEN_UP
    assert result.type == "group"
    assert host.status().fallback_visible is True
    assert host.status().diagnostic == "Line 1: 'sise' is not defined"
