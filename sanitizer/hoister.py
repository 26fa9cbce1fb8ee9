"""
Hoist hook registrations out of conditional and loop blocks.

The renderer requires hook calls to happen in the same order on every
render. A hook placed inside ``if``/``for``/``while`` changes the count when
the condition flips and the scheduler aborts with "Rendered more hooks than
during the previous render".

Wrong:
    if (condition) {
      const geo = React.useMemo(() => build(), [dep]);
      children.push(React.createElement('line', { geometry: geo }));
    }

Hoisted:
    const geo = React.useMemo(() => build(), [dep]);
    if (condition) {
      children.push(React.createElement('line', { geometry: geo }));
    }
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from sandbox import policy

from .scanner import find_closing, scan, starts_statement

DEFAULT_MAX_ITERATIONS = 30

_DECLARATION_PREFIX = re.compile(
    r"((?:const|let|var)\s+(?:[\w$]+|\[[^\[\]]*\]|\{[^{}]*\})\s*=\s*)$"
)


class HookHoister:
    def __init__(
        self,
        hook_names: Sequence[str] | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        names = list(hook_names or policy.HOOK_NAMES)
        self.max_iterations = max_iterations
        self._pattern = re.compile(
            r"(?<![\w$.])(?:React\.)?(?:" + "|".join(re.escape(name) for name in names) + r")\("
        )

    def _find_nested(self, text: str) -> tuple[int, int] | None:
        """Locate the next hoistable hook statement as a ``(start, end)`` span."""
        source = scan(text)
        for match in self._pattern.finditer(text):
            idx = match.start()
            if not source.nested_code(idx):
                continue

            stmt_start = idx
            look_back = text[max(0, idx - 120):idx]
            declaration = _DECLARATION_PREFIX.search(look_back)
            if declaration:
                stmt_start = idx - len(declaration.group(1))
            if not starts_statement(text, source, stmt_start):
                # part of a larger expression
                continue

            end = find_closing(text, match.end() - 1)
            while end < len(text) and text[end] in "; ":
                end += 1
            if end < len(text) and text[end] == "\n":
                end += 1
            return stmt_start, end
        return None

    def hoist(self, text: str) -> tuple[str, list[str]]:
        """
        Return the rewritten text and the hoisted statements in discovery order.

        A hoisted statement can carry another hook inside its callback, so
        the output is scanned again until no nested hook remains or the
        iteration bound is spent.
        """
        result = text
        hoisted: list[str] = []
        remaining = self.max_iterations
        while remaining > 0:
            body = result
            found: list[str] = []
            while remaining > 0:
                span = self._find_nested(body)
                if span is None:
                    break
                remaining -= 1
                start, end = span
                found.append(body[start:end].strip())
                body = body[:start] + body[end:]
            if not found:
                break
            hoisted.extend(found)
            result = "\n".join(found) + "\n\n" + body
        return result, hoisted
