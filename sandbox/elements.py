"""
Declarative element values and duck-typed checks for imperative scene objects.

A geometry instance exposes ``is_buffer_geometry``, ``type`` and
``parameters``; a material exposes ``is_material`` and ``type`` plus the
usual material attributes. Anything else with a string ``type`` and a
``props`` mapping is treated as a declarative element.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from sanitizer.tables import element_name

ElementFactory = Callable[..., Any]

FRONT_SIDE = 0


@dataclass(frozen=True)
class Element:
    type: Any
    props: Mapping[str, Any] = field(default_factory=dict)
    children: tuple[Any, ...] = ()

    def walk(self) -> Iterator["Element"]:
        yield self
        for child in self.children:
            if isinstance(child, Element):
                yield from child.walk()

    def find_all(self, type_: Any) -> list["Element"]:
        return [element for element in self.walk() if element.type == type_]


def create_element(type_: Any, props: Mapping[str, Any] | None = None, *children: Any) -> Element:
    return Element(type=type_, props=dict(props or {}), children=tuple(children))


def is_geometry_instance(value: Any) -> bool:
    return getattr(value, "is_buffer_geometry", False) is True


def is_material_instance(value: Any) -> bool:
    return getattr(value, "is_material", False) is True


def is_element(value: Any) -> bool:
    if isinstance(value, Element):
        return True
    if value is None or is_geometry_instance(value) or is_material_instance(value):
        return False
    return isinstance(getattr(value, "type", None), str) and hasattr(value, "props")


def element_type_for(instance: Any) -> str:
    return element_name(instance.type)


def geometry_args(geometry: Any) -> list[Any]:
    parameters = getattr(geometry, "parameters", None) or {}
    return list(parameters.values())


def _hex(color: Any) -> str | None:
    get_hex = getattr(color, "get_hex_string", None)
    return get_hex() if callable(get_hex) else None


def material_props(material: Any) -> dict[str, Any]:
    """Collect the element props that reproduce a constructed material."""
    props: dict[str, Any] = {}

    color = _hex(getattr(material, "color", None))
    if color is not None:
        props["color"] = f"#{color}"
    for name in ("wireframe", "transparent"):
        value = getattr(material, name, None)
        if value is not None:
            props[name] = value

    opacity = getattr(material, "opacity", None)
    if opacity is not None and opacity != 1:
        props["opacity"] = opacity
    side = getattr(material, "side", None)
    if side is not None and side != FRONT_SIDE:
        props["side"] = side

    emissive = _hex(getattr(material, "emissive", None))
    if emissive is not None and emissive != "000000":
        props["emissive"] = f"#{emissive}"

    # attribute name, prop name, value that is omitted
    defaults = (
        ("emissive_intensity", "emissiveIntensity", 1),
        ("metalness", "metalness", 0),
        ("roughness", "roughness", 1),
        ("linewidth", "linewidth", 1),
    )
    for attribute, prop, default in defaults:
        value = getattr(material, attribute, None)
        if value is not None and value != default:
            props[prop] = value

    size = getattr(material, "size", None)
    if size is not None:
        props["size"] = size
    if getattr(material, "vertex_colors", False):
        props["vertexColors"] = True
    return props
