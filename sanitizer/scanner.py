"""
String- and comment-aware scanning helpers for text-level rewrites.

Regular-expression literals are not recognized; a quote inside one is
treated as the start of a string.
"""

from __future__ import annotations

from dataclasses import dataclass

_QUOTES = ("'", '"', "`")
_EXPRESSION_END = "_$)]'\"`"


@dataclass(frozen=True)
class SourceMap:
    """Per-character brace depth and flags for code and comment positions."""

    depth: list[int]
    code: list[bool]
    comment: list[bool]

    def nested_code(self, index: int) -> bool:
        return self.code[index] and self.depth[index] > 0


def scan(text: str) -> SourceMap:
    length = len(text)
    depth_at = [0] * length
    code_at = [True] * length
    comment_at = [False] * length
    depth = 0
    in_str: str | None = None
    in_comment: str | None = None
    escaped = False
    i = 0
    while i < length:
        ch = text[i]
        if in_comment == "line":
            code_at[i] = False
            comment_at[i] = True
            depth_at[i] = depth
            if ch == "\n":
                in_comment = None
            i += 1
            continue
        if in_comment == "block":
            code_at[i] = False
            comment_at[i] = True
            depth_at[i] = depth
            if ch == "*" and i + 1 < length and text[i + 1] == "/":
                code_at[i + 1] = False
                comment_at[i + 1] = True
                depth_at[i + 1] = depth
                in_comment = None
                i += 2
                continue
            i += 1
            continue
        if in_str:
            code_at[i] = False
            depth_at[i] = depth
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == in_str:
                in_str = None
            i += 1
            continue
        if ch in _QUOTES:
            in_str = ch
            code_at[i] = False
        elif ch == "/" and i + 1 < length and text[i + 1] in "/*":
            in_comment = "line" if text[i + 1] == "/" else "block"
            code_at[i] = False
            comment_at[i] = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        depth_at[i] = depth
        i += 1
    return SourceMap(depth=depth_at, code=code_at, comment=comment_at)


def find_closing(text: str, open_index: int, open_char: str = "(", close_char: str = ")") -> int:
    """
    Return the index just past the bracket matching ``text[open_index]``.

    Brackets inside strings, template literals and comments are ignored.
    Returns ``len(text)`` when the bracket is never closed.
    """
    depth = 1
    i = open_index + 1
    length = len(text)
    in_str: str | None = None
    escaped = False
    while i < length:
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == in_str:
                in_str = None
        elif ch in _QUOTES:
            in_str = ch
        elif ch == "/" and i + 1 < length and text[i + 1] == "/":
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
            continue
        elif ch == "/" and i + 1 < length and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue
        elif ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return length


def starts_statement(text: str, source: SourceMap, index: int) -> bool:
    """
    True when a statement may begin at ``index``.

    Whitespace and comments before it are skipped. A line break counts as a
    boundary after a token that can end an expression, so statements without
    a trailing semicolon are recognized.
    """
    i = index - 1
    crossed_line = False
    while i >= 0 and (text[i].isspace() or source.comment[i]):
        if text[i] == "\n":
            crossed_line = True
        i -= 1
    if i < 0:
        return True
    ch = text[i]
    if ch in "{};":
        return True
    return crossed_line and (ch.isalnum() or ch in _EXPRESSION_END)
