"""
Ordered text-rewrite rules for generated component code.

Each rule is deterministic and idempotent on its own and returns the new
text plus one audit record per change. Rules operate on text, never on a
re-printed syntax tree, so untouched code keeps its exact formatting.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable

from guard_core.schemas import FixRecord
from sandbox import policy

from .hoister import DEFAULT_MAX_ITERATIONS, HookHoister
from .scanner import find_closing, scan
from .tables import (
    GEOMETRY_INSTANCE_METHODS,
    GEOMETRY_TYPES,
    MATERIAL_TYPES,
    UNICODE_TO_ASCII,
    element_name,
)

RuleOutput = tuple[str, list[FixRecord]]

_STORED_PATTERNS = (
    re.compile(r"=\s*$"),
    re.compile(r"=>\s*$"),
    re.compile(r"\breturn\s+$"),
)


def _short(text: str, limit: int = 80) -> str:
    return text[:limit]


def is_stored_or_returned(text: str, index: int) -> bool:
    """True when the expression at ``index`` is assigned, arrow-returned or returned."""
    look_back = text[max(0, index - 80):index]
    return any(pattern.search(look_back) for pattern in _STORED_PATTERNS)


class SanitizationRule(ABC):
    name: str
    category: str
    # Log-only rules report findings without changing the text.
    log_only: bool = False

    @abstractmethod
    def apply(self, text: str) -> RuleOutput:
        """Rewrite ``text`` and return it with the audit records."""

    def record(self, description: str, category: str | None = None) -> FixRecord:
        return FixRecord(category=category or self.category, description=description)


class ShadowStripRule(SanitizationRule):
    """Drop module syntax and declarations that collide with host bindings."""

    name = "shadow-strip"
    category = "strip-redeclaration"

    _IMPORT = re.compile(
        r"^[ \t]*import\s+(?:[\w$*{}\s,]+?\s+from\s+)?['\"][^'\"\n]+['\"][ \t]*;?[ \t]*$",
        re.MULTILINE,
    )
    _EXPORT_LIST = re.compile(r"^export\s*(?:\{[^}]*\}|\*)(?:\s*from\s*['\"][^'\"]+['\"])?\s*;?$")
    _EXPORT_KEYWORD = re.compile(r"^export\s+(?:default\s+)?")
    _FUNCTION_DECL = re.compile(r"^(?:async\s+)?function\s*\*?\s*([\w$]+)\s*\(")
    _DESTRUCTURE = re.compile(r"^((?:const|let|var)\s+)\{([^}]+)\}(\s*=\s*.+)$")
    _DIRECT_DECL = re.compile(r"^(?:const|let|var)\s+([\w$]+)\s*=")

    def __init__(self, provided: Iterable[str] | None = None) -> None:
        self.provided = frozenset(provided or policy.PROVIDED_BINDINGS)

    @staticmethod
    def _bound_name(entry: str) -> str:
        target = entry.split(":", 1)[1] if ":" in entry else entry
        target = target.split("=", 1)[0]
        return target.strip().lstrip(".").strip()

    def apply(self, text: str) -> RuleOutput:
        records: list[FixRecord] = []

        def _drop_import(match: re.Match[str]) -> str:
            statement = " ".join(match.group(0).split())
            records.append(self.record(f"Removed: {_short(statement)}", "strip-import"))
            return ""

        text = self._IMPORT.sub(_drop_import, text)

        lines = text.split("\n")
        for index, line in enumerate(lines):
            trimmed = line.strip()
            indent = line[: len(line) - len(line.lstrip())]

            if self._EXPORT_LIST.match(trimmed):
                records.append(self.record(f"Removed: {_short(trimmed)}", "strip-export"))
                lines[index] = ""
                continue

            keyword = self._EXPORT_KEYWORD.match(trimmed)
            if keyword:
                records.append(self.record(f"Stripped export from: {_short(trimmed, 60)}", "strip-export"))
                trimmed = trimmed[keyword.end():]
                line = indent + trimmed
                lines[index] = line

            function = self._FUNCTION_DECL.match(trimmed)
            if function and function.group(1) in self.provided:
                name = function.group(1)
                records.append(
                    self.record(f"Renamed: function {name} -> function _shadow_{name}", "rename-func-shadow")
                )
                lines[index] = re.sub(rf"\b{re.escape(name)}\b", f"_shadow_{name}", line, count=1)
                continue

            destructure = self._DESTRUCTURE.match(trimmed)
            if destructure:
                declare, names_str, rhs = destructure.groups()
                names = [name.strip() for name in names_str.split(",") if name.strip()]
                conflicting = [name for name in names if self._bound_name(name) in self.provided]
                if conflicting:
                    remaining = [name for name in names if self._bound_name(name) not in self.provided]
                    if not remaining:
                        records.append(self.record(f"Removed: {_short(trimmed)}"))
                        lines[index] = ""
                    else:
                        records.append(
                            self.record(
                                f"Removed {', '.join(conflicting)} from destructuring",
                                "strip-partial-redecl",
                            )
                        )
                        lines[index] = f"{indent}{declare}{{ {', '.join(remaining)} }}{rhs}"
                    continue

            direct = self._DIRECT_DECL.match(trimmed)
            if direct and direct.group(1) in self.provided:
                records.append(self.record(f"Removed: {_short(trimmed)}", "strip-direct-redecl"))
                lines[index] = ""

        return "\n".join(lines), records


class HookHoistRule(SanitizationRule):
    name = "hook-hoist"
    category = "hoist-conditional-hooks"

    def __init__(self, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> None:
        self.hoister = HookHoister(max_iterations=max_iterations)

    def apply(self, text: str) -> RuleOutput:
        result, hoisted = self.hoister.hoist(text)
        if not hoisted:
            return text, []
        summary = "; ".join(_short(statement) for statement in hoisted)
        return result, [self.record(f"Hoisted {len(hoisted)} hook(s): {summary}")]


class UnicodeRule(SanitizationRule):
    name = "unicode-normalize"
    category = "unicode-to-ascii"

    _TABLE = str.maketrans(UNICODE_TO_ASCII)

    def apply(self, text: str) -> RuleOutput:
        replaced = sum(1 for ch in text if ch in UNICODE_TO_ASCII)
        if not replaced:
            return text, []
        return text.translate(self._TABLE), [
            self.record(f"Replaced {replaced} Unicode sub/superscript character(s)")
        ]


class _ConstructorRule(SanitizationRule):
    """Shared scan for ``new THREE.<Type>(...)`` used inline."""

    type_names: list[str] = []

    def build_props(self, args: str) -> str | None:
        raise NotImplementedError

    def apply(self, text: str) -> RuleOutput:
        records: list[FixRecord] = []
        for type_name in self.type_names:
            el_name = element_name(type_name)
            prefix = f"new THREE.{type_name}("
            start = 0
            source = scan(text)
            while True:
                idx = text.find(prefix, start)
                if idx == -1:
                    break
                if not source.code[idx]:
                    start = idx + len(prefix)
                    continue
                end = find_closing(text, idx + len(prefix) - 1)
                if is_stored_or_returned(text, idx):
                    start = end
                    continue
                args = text[idx + len(prefix):end - 1].strip()
                props = self.build_props(args)
                if props is None:
                    replacement = f"React.createElement('{el_name}')"
                else:
                    replacement = f"React.createElement('{el_name}', {props})"
                records.append(
                    self.record(f"new THREE.{type_name}(...) -> React.createElement('{el_name}', ...)")
                )
                text = text[:idx] + replacement + text[end:]
                source = scan(text)
                start = idx + len(replacement)
        return text, records


class InlineGeometryRule(_ConstructorRule):
    name = "inline-geometry"
    category = "sanitize-geometry"
    type_names = GEOMETRY_TYPES

    def build_props(self, args: str) -> str | None:
        return f"{{ args: [{args}] }}" if args else None


class GeometryReversalRule(SanitizationRule):
    """Turn a geometry element back into a constructor when used imperatively."""

    name = "geometry-reversal"
    category = "fix-createElement-geometry"

    _BINDING = re.compile(r"(?:const|let|var)\s+([\w$]+)\s*=\s*$")
    _ARGS = re.compile(r"\bargs\s*:\s*\[")
    _METHODS = "|".join(GEOMETRY_INSTANCE_METHODS)

    def apply(self, text: str) -> RuleOutput:
        records: list[FixRecord] = []
        for type_name in GEOMETRY_TYPES:
            el_name = element_name(type_name)
            pattern = re.compile(r"React\.createElement\(\s*(['\"])" + re.escape(el_name) + r"\1")
            start = 0
            while True:
                match = pattern.search(text, start)
                if match is None:
                    break
                idx = match.start()
                binding = self._BINDING.search(text[max(0, idx - 80):idx])
                if binding is None:
                    start = match.end()
                    continue
                var_name = binding.group(1)
                method_use = re.compile(rf"(?<![\w$]){re.escape(var_name)}\.(?:{self._METHODS})\b")
                if not method_use.search(text, idx):
                    start = match.end()
                    continue

                end = find_closing(text, text.index("(", idx))
                call = text[idx:end]
                args_match = self._ARGS.search(call)
                args = ""
                if args_match:
                    close = find_closing(call, args_match.end() - 1, "[", "]")
                    args = call[args_match.end():close - 1].strip()
                replacement = f"new THREE.{type_name}({args})"
                records.append(
                    self.record(
                        f"React.createElement('{el_name}', ...) -> new THREE.{type_name}(...) "
                        f"for variable '{var_name}'"
                    )
                )
                text = text[:idx] + replacement + text[end:]
                start = idx + len(replacement)
        return text, records


class RefGeometryCallRule(SanitizationRule):
    name = "ref-geometry-call"
    category = "fix-ref-setFromPoints"

    _PATTERN = re.compile(r"([\w$]+(?:\.[\w$]+)*\.current)\.setFromPoints\(")

    def apply(self, text: str) -> RuleOutput:
        result, count = self._PATTERN.subn(r"(\1.geometry || \1).setFromPoints(", text)
        if not count:
            return text, []
        return result, [self.record(f"Rewrote {count} ref .setFromPoints() call(s) to prefer .geometry")]


class BoundingSphereStripRule(SanitizationRule):
    name = "bounding-sphere-strip"
    category = "remove-computeBoundingSphere"

    MARKER = "/* computeBoundingSphere removed - frustumCulled:false handles this */"
    _PATTERN = re.compile(r"\b[\w$]+(?:\.[\w$]+)*\.computeBoundingSphere\(\s*\)\s*;?")

    def apply(self, text: str) -> RuleOutput:
        result, count = self._PATTERN.subn(self.MARKER, text)
        if not count:
            return text, []
        return result, [self.record(f"Removed {count} .computeBoundingSphere() call(s)")]


class AnimationAntiPatternRule(SanitizationRule):
    """Detect per-item meshes whose position is captured once at render time."""

    name = "animation-anti-pattern"
    category = "multi-object-animation"
    log_only = True

    _PATTERNS = (
        re.compile(
            r"([\w$]+Ref\.current(?:\.[\w$]+)*)\.(?:map|forEach)\([^)]*=>\s*"
            r"React\.createElement\(['\"]mesh['\"],\s*\{[^}]*position:\s*\[[^\]]*\1\[.*?\]\.(?:pos|position)"
        ),
        re.compile(
            r"[\w$]+Ref\.current(?:\.[\w$]+)*\.(?:map|forEach)\(\s*\(?\s*([\w$]+)[^)]*\)?\s*=>\s*"
            r"React\.createElement\(['\"]mesh['\"],\s*\{[^}]*position:\s*\[[^\]]*\b\1\.(?:pos|position)\b"
        ),
    )

    def apply(self, text: str) -> RuleOutput:
        if any(pattern.search(text) for pattern in self._PATTERNS):
            return text, [
                self.record(
                    "Multi-object animation anti-pattern: position prop read from a ref array "
                    "is evaluated once per render and will not animate smoothly. Pre-allocate "
                    "mesh refs and update mesh.position in useFrame instead."
                )
            ]
        return text, []


class MaterialConstructorRule(_ConstructorRule):
    name = "material-constructor"
    category = "sanitize-material"
    type_names = MATERIAL_TYPES

    def build_props(self, args: str) -> str | None:
        if not args:
            return None
        if args.startswith("{") and find_closing(args, 0, "{", "}") == len(args):
            inner = args[1:-1].strip()
            return f"{{ {inner} }}" if inner else None
        return f"{{ ...{args} }}"


def default_rules(hoist_max_iterations: int = DEFAULT_MAX_ITERATIONS) -> list[SanitizationRule]:
    return [
        ShadowStripRule(),
        HookHoistRule(max_iterations=hoist_max_iterations),
        UnicodeRule(),
        InlineGeometryRule(),
        GeometryReversalRule(),
        RefGeometryCallRule(),
        BoundingSphereStripRule(),
        AnimationAntiPatternRule(),
        MaterialConstructorRule(),
    ]
