"""
Static validation of generated component code.

The code is parsed into an ESTree with esprima, walked once to build a scope
tree, and then every used-but-unbound name is checked against the scope chain
and the host allowlist.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

import esprima

from guard_core.schemas import ValidationIssue, ValidationResult
from sandbox import policy

from .scope import ScopeInfo

logger = logging.getLogger(__name__)

FUNCTION_TYPES = frozenset(
    {
        "FunctionDeclaration",
        "FunctionExpression",
        "ArrowFunctionExpression",
        "AsyncFunctionDeclaration",
        "AsyncFunctionExpression",
        "AsyncArrowFunctionExpression",
    }
)

# Imperative geometry members that a declarative element does not have.
IMPERATIVE_GEOMETRY_MEMBERS = [
    "clone",
    "attributes",
    "dispose",
    "copy",
    "computeBoundingSphere",
    "computeVertexNormals",
]

_LINE_IN_MESSAGE = re.compile(r"Line (\d+)")
_PAREN_POSITION = re.compile(r"\((\d+):(\d+)\)")


def _is_node(value: object) -> bool:
    return isinstance(getattr(value, "type", None), str)


def _line(node: object) -> int:
    loc = getattr(node, "loc", None)
    start = getattr(loc, "start", None)
    line = getattr(start, "line", None)
    return int(line) if isinstance(line, int) else 0


def _column(node: object) -> int:
    loc = getattr(node, "loc", None)
    start = getattr(loc, "start", None)
    column = getattr(start, "column", None)
    return int(column) if isinstance(column, int) else 0


def _children(node: object) -> list[object]:
    found: list[object] = []
    for key, value in vars(node).items():
        if key in ("type", "loc", "range"):
            continue
        if _is_node(value):
            found.append(value)
        elif isinstance(value, (list, tuple)):
            found.extend(item for item in value if _is_node(item))
    return found


def extract_pattern_names(pattern: object) -> list[str]:
    """
    Collect the bound names of a parameter or declaration target.

    Handles plain identifiers, defaults, object/array destructuring
    (including renamed and defaulted properties) and rest elements.
    """
    if pattern is None:
        return []
    node_type = getattr(pattern, "type", None)
    if node_type == "Identifier":
        return [str(pattern.name)]
    if node_type == "AssignmentPattern":
        return extract_pattern_names(pattern.left)
    if node_type == "ObjectPattern":
        names: list[str] = []
        for prop in pattern.properties or []:
            if getattr(prop, "type", None) == "RestElement":
                names.extend(extract_pattern_names(prop.argument))
            else:
                names.extend(extract_pattern_names(prop.value))
        return names
    if node_type == "ArrayPattern":
        names = []
        for element in pattern.elements or []:
            names.extend(extract_pattern_names(element))
        return names
    if node_type == "RestElement":
        return extract_pattern_names(pattern.argument)
    return []


def _is_create_element_call(node: object) -> bool:
    if getattr(node, "type", None) != "CallExpression":
        return False
    callee = node.callee
    if getattr(callee, "type", None) != "MemberExpression" or callee.computed:
        return False
    if getattr(callee.object, "type", None) != "Identifier" or callee.object.name != "React":
        return False
    if getattr(callee.property, "type", None) != "Identifier" or callee.property.name != "createElement":
        return False
    arguments = node.arguments or []
    return bool(arguments) and isinstance(getattr(arguments[0], "value", None), str)


def _is_geometry_element(node: object) -> bool:
    return _is_create_element_call(node) and "geometry" in str(node.arguments[0].value).lower()


def _is_use_memo_call(node: object) -> bool:
    if getattr(node, "type", None) != "CallExpression":
        return False
    callee = node.callee
    if getattr(callee, "type", None) == "Identifier":
        return callee.name == "useMemo"
    if getattr(callee, "type", None) == "MemberExpression" and not callee.computed:
        return (
            getattr(callee.object, "type", None) == "Identifier"
            and callee.object.name == "React"
            and getattr(callee.property, "name", None) == "useMemo"
        )
    return False


def _binds_geometry_element(init: object) -> bool:
    if _is_geometry_element(init):
        return True
    if _is_use_memo_call(init) and init.arguments:
        callback = init.arguments[0]
        if getattr(callback, "type", None) in FUNCTION_TYPES:
            return _is_geometry_element(callback.body)
    return False


class _ScopeBuilder:
    """Single traversal that records declarations and true reads per scope."""

    def __init__(self) -> None:
        self.root = ScopeInfo()
        self.current = self.root
        self.element_vars: set[str] = set()
        self.warnings: list[str] = []

    def _enter(self) -> ScopeInfo:
        self.current = self.current.child()
        return self.current

    def _exit(self) -> None:
        parent = self.current.parent
        if parent is not None:
            self.current = parent

    def visit(self, node: object) -> None:
        if node is None:
            return
        node_type = node.type
        handler = getattr(self, f"visit_{node_type}", None)
        if handler is not None:
            handler(node)
        elif node_type in FUNCTION_TYPES:
            self._visit_function(node)
        else:
            for child in _children(node):
                self.visit(child)

    def _visit_all(self, nodes: Sequence[object] | None) -> None:
        for node in nodes or []:
            self.visit(node)

    def _visit_pattern_defaults(self, pattern: object) -> None:
        """Visit the reads inside a binding pattern (defaults, computed keys)."""
        if pattern is None:
            return
        node_type = getattr(pattern, "type", None)
        if node_type == "AssignmentPattern":
            self._visit_pattern_defaults(pattern.left)
            self.visit(pattern.right)
        elif node_type == "ObjectPattern":
            for prop in pattern.properties or []:
                if getattr(prop, "type", None) == "RestElement":
                    self._visit_pattern_defaults(prop.argument)
                    continue
                if prop.computed:
                    self.visit(prop.key)
                self._visit_pattern_defaults(prop.value)
        elif node_type == "ArrayPattern":
            for element in pattern.elements or []:
                self._visit_pattern_defaults(element)
        elif node_type == "RestElement":
            self._visit_pattern_defaults(pattern.argument)

    def _visit_function(self, node: object) -> None:
        name_node = getattr(node, "id", None)
        is_declaration = node.type in ("FunctionDeclaration", "AsyncFunctionDeclaration")
        if is_declaration and name_node is not None:
            self.current.declare(str(name_node.name), _line(name_node), kind="function")

        scope = self._enter()
        if not is_declaration and name_node is not None:
            scope.function_params.add(str(name_node.name))
        for param in node.params or []:
            scope.function_params.update(extract_pattern_names(param))
        for param in node.params or []:
            self._visit_pattern_defaults(param)

        body = node.body
        if getattr(body, "type", None) == "BlockStatement":
            self._visit_all(body.body)
        else:
            self.visit(body)
        self._exit()

    def visit_Identifier(self, node: object) -> None:
        self.current.use(str(node.name), _line(node), _column(node))

    def visit_BlockStatement(self, node: object) -> None:
        self._enter()
        self._visit_all(node.body)
        self._exit()

    def visit_CatchClause(self, node: object) -> None:
        scope = self._enter()
        scope.function_params.update(extract_pattern_names(node.param))
        self._visit_pattern_defaults(node.param)
        body = node.body
        if getattr(body, "type", None) == "BlockStatement":
            self._visit_all(body.body)
        else:
            self.visit(body)
        self._exit()

    def visit_VariableDeclaration(self, node: object) -> None:
        kind = str(node.kind or "let")
        for declarator in node.declarations or []:
            self._declare_target(declarator, kind)

    def _declare_target(self, declarator: object, kind: str) -> None:
        target = declarator.id
        line = _line(declarator)
        for name in extract_pattern_names(target):
            self.current.declare(name, line, kind=kind)
        if getattr(target, "type", None) == "Identifier" and _binds_geometry_element(declarator.init):
            self.element_vars.add(str(target.name))
        self._visit_pattern_defaults(target)
        self.visit(declarator.init)

    def visit_ClassDeclaration(self, node: object) -> None:
        if node.id is not None:
            self.current.declare(str(node.id.name), _line(node.id), kind="class")
        self.visit(node.superClass)
        self.visit(node.body)

    def visit_ClassExpression(self, node: object) -> None:
        self.visit(node.superClass)
        self.visit(node.body)

    def visit_MethodDefinition(self, node: object) -> None:
        if node.computed:
            self.visit(node.key)
        self.visit(node.value)

    def visit_Property(self, node: object) -> None:
        if node.computed:
            self.visit(node.key)
        self.visit(node.value)

    def visit_MemberExpression(self, node: object) -> None:
        target = node.object
        prop = node.property
        if (
            not node.computed
            and getattr(target, "type", None) == "Identifier"
            and target.name in self.element_vars
            and getattr(prop, "name", None) in IMPERATIVE_GEOMETRY_MEMBERS
        ):
            self.warnings.append(
                f"Line {_line(node)}: Variable '{target.name}' is a declarative element "
                f"(created with React.createElement) but is being used as a THREE.js object "
                f"(.{prop.name}). Declarative elements describe scene nodes; they are not "
                f"live geometry instances."
            )
        self.visit(target)
        if node.computed:
            self.visit(prop)

    def visit_LabeledStatement(self, node: object) -> None:
        self.visit(node.body)

    def visit_BreakStatement(self, node: object) -> None:
        return None

    def visit_ContinueStatement(self, node: object) -> None:
        return None

    def visit_MetaProperty(self, node: object) -> None:
        return None

    def visit_ImportDeclaration(self, node: object) -> None:
        return None

    def visit_ExportNamedDeclaration(self, node: object) -> None:
        self.visit(node.declaration)

    def visit_ExportDefaultDeclaration(self, node: object) -> None:
        self.visit(node.declaration)

    def visit_ExportAllDeclaration(self, node: object) -> None:
        return None


def _syntax_error(exc: Exception) -> ValidationIssue:
    message = str(getattr(exc, "message", None) or exc)
    line = getattr(exc, "lineNumber", None)
    column = getattr(exc, "column", None)
    if not isinstance(line, int):
        match = _LINE_IN_MESSAGE.search(message) or _PAREN_POSITION.search(message)
        line = int(match.group(1)) if match else 0
        if match and match.re is _PAREN_POSITION:
            column = int(match.group(2))
    if not isinstance(column, int):
        column = 0
    return ValidationIssue(
        kind="syntax",
        identifier_name=None,
        line=line,
        column=column,
        message=f"Syntax error: {message}",
    )


class StaticValidator:
    """Flags undefined identifiers and suspicious ordering before execution."""

    def __init__(self, extra_globals: Iterable[str] | None = None) -> None:
        self.allowlist: frozenset[str] = policy.build_allowlist(extra_globals)

    def parse(self, code: str) -> object:
        return esprima.parseModule(code, jsx=True, tolerant=True, loc=True)

    def build_scopes(self, code: str) -> tuple[ScopeInfo, list[str]]:
        """Parse ``code`` and return its scope tree plus heuristic warnings."""
        tree = self.parse(code)
        builder = _ScopeBuilder()
        builder._visit_all(getattr(tree, "body", None))
        return builder.root, builder.warnings

    def validate(self, code: str) -> ValidationResult:
        try:
            root, warnings = self.build_scopes(code)
        except Exception as exc:  # noqa: BLE001
            issue = _syntax_error(exc)
            logger.warning(f"Unparseable code: {issue.message}")
            return ValidationResult(valid=False, errors=[issue], warnings=None)

        undefined: dict[str, ValidationIssue] = {}
        for scope in root.walk():
            for name, lines in scope.usages.items():
                if name in self.allowlist:
                    continue
                owner = scope.resolve(name)
                if owner is None:
                    first_line = lines[0]
                    known = undefined.get(name)
                    if known is None or first_line < known.line:
                        undefined[name] = ValidationIssue(
                            kind="undefined-identifier",
                            identifier_name=name,
                            line=first_line,
                            column=scope.first_columns.get(name, 0),
                            message=f"'{name}' is not defined",
                        )
                    continue
                if owner is not scope or name not in owner.declarations or owner.is_hoisted(name):
                    continue
                declared_at = owner.declarations[name]
                early = [line for line in lines if 0 < line < declared_at]
                if early:
                    warnings.append(
                        f"Line {early[0]}: Possible TDZ - '{name}' may be used before "
                        f"initialization (declared at line {declared_at})"
                    )

        errors = sorted(undefined.values(), key=lambda issue: (issue.line, issue.column))
        if errors:
            logger.warning(f"Validation found {len(errors)} error(s): {[e.describe() for e in errors]}")
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings or None)


def validate_code(code: str, extra_globals: Iterable[str] | None = None) -> ValidationResult:
    return StaticValidator(extra_globals=extra_globals).validate(code)
