"""Prompt templates for patch-based error correction."""

from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence

from guard_core.schemas import CodeEdit, CorrectionRequest

from .base import ChatMessage

EDIT_PREVIEW_LIMIT = 80


def _error_patterns() -> str:
    return textwrap.dedent(
        """
        COMMON ERROR PATTERNS AND FIXES:

        1. "Objects are not valid as a React child"
           - WRONG: React.createElement('mesh', null, new THREE.BoxGeometry(1,1,1))
           - CORRECT: React.createElement('mesh', null, React.createElement('boxGeometry', { args: [1,1,1] }))

        2. "Rendered more hooks than during the previous render"
           - Hooks (React.useMemo, React.useRef, ...) must never be called inside if/for/while blocks
             or inside .map() callbacks. Move them to the top level of the component body.

        3. "geometry.addEventListener is not a function"
           - A declarative element was passed as the `geometry` prop. Put geometry elements
             as children of the mesh, or build a real THREE.BufferGeometry in React.useMemo.

        4. "X is not defined"
           - Declare X before use, or use one of the provided bindings:
             React, THREE, useFrame, useThree, Text, params.

        5. "Cannot read properties of undefined (reading 'center')" / computeBoundingSphere errors
           - Remove every .computeBoundingSphere() call; frustum culling is disabled by the runtime.

        6. "Component returned nothing"
           - Add a `return` before the final React.createElement(...) call.
        """
    ).strip()


def _system_prompt() -> str:
    return "\n\n".join(
        [
            "You are a code editor for React Three Fiber simulations specializing in ERROR CORRECTION.",
            textwrap.dedent(
                """
                A runtime error occurred in the simulation code. Produce MINIMAL search-and-replace
                patches that fix it. Output JSON with this shape:
                {"explanation": str, "edits": [{"old_code": str, "new_code": str}], "params": [...] | null}

                RULES:
                1. NEVER output the full code. Only output the minimal edits needed.
                2. old_code must be an EXACT substring of the current code, whitespace included.
                3. Keep edits surgical. Do not refactor code that is not broken.
                4. Only return params when the fix requires changing the controls.
                """
            ).strip(),
            _error_patterns(),
        ]
    )


def _truncate(text: str, limit: int = EDIT_PREVIEW_LIMIT) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class CorrectionPromptTemplate:
    def system(self) -> str:
        return _system_prompt()

    def error_fix(self, request: CorrectionRequest) -> str:
        params_json = json.dumps(
            [param.to_dict() for param in request.parameters],
            indent=2,
        )
        sections = [
            "Current simulation code that produced an error:\n```javascript\n" + request.prior_code + "\n```",
            f"Current controls (params):\n{params_json}",
            f"RUNTIME ERROR:\n{request.error_message}",
        ]
        if request.stack_trace:
            sections.append(f"ERROR STACK TRACE:\n{request.stack_trace}")
        if request.static_warnings:
            warnings = "\n".join(
                f"{index + 1}. {warning}" for index, warning in enumerate(request.static_warnings)
            )
            sections.append(
                "PRE-EXECUTION VALIDATION WARNINGS (static analysis):\n"
                f"{warnings}\n\n"
                "These were detected before execution; the error likely stems from one of them."
            )
        sections.append(
            "Identify which pattern caused the error and output minimal patches. "
            "Remember: old_code must be an EXACT substring of the code above."
        )
        return "\n\n".join(sections)

    def failed_edits_retry(self, current_code: str, failed_edits: Sequence[CodeEdit], error_message: str) -> str:
        failed_list = "\n".join(
            f'[{index + 1}] old_code: "{_truncate(edit.search_text)}"'
            for index, edit in enumerate(failed_edits)
        )
        return "\n\n".join(
            [
                f"These edits failed because old_code was not found in the code:\n{failed_list}",
                "Here is the current code again. Provide corrected edits with old_code that "
                "exactly matches substrings in this code:\n```javascript\n" + current_code + "\n```",
                f"Original error: {error_message}",
            ]
        )

    def messages(self, request: CorrectionRequest) -> list[ChatMessage]:
        """Build the chat transcript; a request with failed edits gets the retry turn appended."""
        messages: list[ChatMessage] = [
            {"role": "system", "content": self.system()},
            {"role": "user", "content": self.error_fix(request)},
        ]
        if request.failed_edits:
            messages.append(
                {
                    "role": "user",
                    "content": self.failed_edits_retry(
                        request.prior_code, request.failed_edits, request.error_message
                    ),
                }
            )
        return messages
