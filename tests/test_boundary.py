from sandbox.boundary import (
    FALLBACK_HINT,
    FALLBACK_TITLE,
    MISSING_OUTPUT_MESSAGE,
    FrameGuard,
    RenderBoundary,
    build_fallback,
)
from sandbox.context import CorrectionContext
from sandbox.elements import create_element


def _context(errors: list) -> CorrectionContext:
    return CorrectionContext(
        on_error=lambda message, stack, warnings: errors.append((message, stack, warnings)),
        code_version="v1",
    )


def _text_lines(fallback) -> list[str]:
    return [element.children[0] for element in fallback.find_all("Text")]


def test_fallback_shape() -> None:
    fallback = build_fallback("boom")

    assert fallback.type == "group"
    box = fallback.children[0]
    assert box.type == "mesh"
    assert box.children[0].props == {"args": [2, 2, 2]}
    assert box.children[1].props == {"color": "#ff4444", "wireframe": True}
    assert _text_lines(fallback) == [FALLBACK_TITLE, "boom", FALLBACK_HINT]


def test_fallback_message_is_truncated() -> None:
    fallback = build_fallback("x" * 250)

    assert _text_lines(fallback)[1] == "x" * 100


def test_render_exception_shows_fallback_and_reports_once() -> None:
    errors: list = []
    boundary = RenderBoundary(_context(errors))

    def explode():
        raise TypeError("Cannot read properties of undefined")

    first = boundary.render(explode)
    second = boundary.render(lambda: create_element("mesh"))

    assert boundary.has_error is True
    assert first.type == "group"
    assert second.type == "group"
    assert len(errors) == 1
    message, stack, warnings = errors[0]
    assert message == "Cannot read properties of undefined"
    assert "TypeError" in stack
    assert warnings is None


def test_static_warnings_travel_with_the_report() -> None:
    errors: list = []
    context = _context(errors)
    context.reset("v2", ["Line 3: Possible TDZ - 'x'"])
    boundary = RenderBoundary(context)

    boundary.render(lambda: 1 / 0)

    assert errors[0][2] == ["Line 3: Possible TDZ - 'x'"]


def test_missing_output_is_a_failure() -> None:
    errors: list = []
    boundary = RenderBoundary(_context(errors))

    result = boundary.render(lambda: None)

    assert result.type == "group"
    assert errors == [(MISSING_OUTPUT_MESSAGE, None, None)]
    assert _text_lines(result)[1] == MISSING_OUTPUT_MESSAGE[:100]


def test_successful_render_passes_through() -> None:
    errors: list = []
    boundary = RenderBoundary(_context(errors))
    element = create_element("mesh")

    assert boundary.render(lambda: element) is element
    assert errors == []


def test_fallback_persists_until_version_changes() -> None:
    errors: list = []
    context = _context(errors)
    boundary = RenderBoundary(context)
    boundary.render(lambda: None)

    assert boundary.reset_for("v1") is False
    assert boundary.has_error is True

    context.reset("v2")
    assert boundary.reset_for("v2") is True
    element = create_element("mesh")
    assert boundary.render(lambda: element) is element


def test_frame_callback_failure_suppresses_later_frames() -> None:
    errors: list = []
    context = _context(errors)
    frames = FrameGuard(context)
    calls: list[float] = []

    def step(state, delta):
        calls.append(delta)
        if len(calls) == 2:
            raise RuntimeError("position is undefined")

    frames.use_frame(step)
    for _ in range(5):
        frames.tick(None, 0.016)

    assert len(calls) == 2
    assert context.frame_suppressed is True
    assert [error[0] for error in errors] == ["position is undefined"]


def test_frame_and_render_failures_share_one_report() -> None:
    errors: list = []
    context = _context(errors)
    frames = FrameGuard(context)
    boundary = RenderBoundary(context)

    frames.wrap(lambda state, delta: 1 / 0)(None, 0.1)
    boundary.render(lambda: None)

    assert len(errors) == 1
    assert boundary.has_error is True


def test_frame_slots_follow_call_order_across_renders() -> None:
    frames = FrameGuard(CorrectionContext())
    seen: list[str] = []

    frames.begin_render()
    frames.use_frame(lambda state, delta: seen.append("a"))
    frames.use_frame(lambda state, delta: seen.append("b"))
    frames.end_render()
    assert frames.callback_count == 2

    frames.begin_render()
    frames.use_frame(lambda state, delta: seen.append("c"))
    frames.end_render()
    frames.tick()

    assert frames.callback_count == 1
    assert seen == ["c"]


def test_external_registrar_receives_wrapped_callback() -> None:
    registered: list = []
    frames = FrameGuard(CorrectionContext(), register=lambda callback, priority: registered.append((callback, priority)))

    frames.use_frame(lambda state, delta: 1 / 0, 1)
    callback, priority = registered[0]

    assert priority == 1
    assert callback(None, 0.1) is None
    assert frames.callback_count == 0
