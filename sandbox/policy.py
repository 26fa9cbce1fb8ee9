"""
Host policy tables: injected bindings, allowlisted globals and render-time type sets.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# Names the host injects into the generated component's scope.
PROVIDED_BINDINGS = [
    "React",
    "THREE",
    "useFrame",
    "useThree",
    "Text",
    "params",
]

# Stateful/lifecycle registrations that must run in a stable order.
HOOK_NAMES = [
    "useMemo",
    "useRef",
    "useEffect",
    "useState",
    "useCallback",
    "useLayoutEffect",
    "useReducer",
]

KNOWN_GLOBALS = [
    # React hooks reachable without the React prefix
    "useFrame", "useRef", "useMemo", "useEffect", "useState", "useCallback",
    "useLayoutEffect", "useReducer", "useContext", "useImperativeHandle",
    # language built-ins
    "Math", "Date", "console", "Array", "Object", "String", "Number", "Boolean",
    "parseInt", "parseFloat", "isNaN", "isFinite", "undefined", "Infinity",
    "NaN", "JSON", "Promise", "Set", "Map", "WeakMap", "WeakSet", "Symbol",
    "Error", "TypeError", "ReferenceError", "SyntaxError", "RangeError",
    "setTimeout", "setInterval", "clearTimeout", "clearInterval",
    "requestAnimationFrame", "cancelAnimationFrame",
    "Float32Array", "Float64Array", "Int8Array", "Int16Array", "Int32Array",
    "Uint8Array", "Uint16Array", "Uint32Array", "Uint8ClampedArray",
    "ArrayBuffer", "DataView",
    # frame-callback and useThree() members the model often reads unqualified
    "args", "state", "delta", "clock", "camera", "scene", "gl", "raycaster",
    "pointer", "size", "viewport", "mouse", "performance", "events",
    # browser globals
    "window", "document", "navigator", "location", "history",
    # method names that occasionally surface as bare identifiers
    "length", "push", "pop", "shift", "unshift", "slice", "splice",
    "map", "filter", "reduce", "forEach", "find", "findIndex", "some", "every",
    "keys", "values", "entries", "hasOwnProperty", "toString", "valueOf",
]

# Element types whose geometry/material props are checked and whose culling is disabled.
GEOMETRY_PROP_TYPES = frozenset({"mesh", "line", "lineSegments", "points"})
FRUSTUM_CULL_DISABLED_TYPES = frozenset({"mesh", "line", "lineSegments", "points"})

HANDLER_PROP_PATTERN = re.compile(r"^on[A-Z]")


def build_allowlist(extra_names: Iterable[str] | None = None) -> frozenset[str]:
    """Return the names the validator never reports as undefined."""
    names = set(KNOWN_GLOBALS)
    names.update(PROVIDED_BINDINGS)
    names.update(extra_names or [])
    return frozenset(names)


def is_handler_prop(name: str, value: object) -> bool:
    return bool(HANDLER_PROP_PATTERN.match(name)) and callable(value)
