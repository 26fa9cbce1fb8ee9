"""
Element factory that repairs common mistakes at render time.

Generated code receives ``SafeElementFactory`` in place of the renderer's
own ``create_element``. For every call it:

- converts constructed geometry/material instances passed as children into
  the equivalent declarative elements,
- moves declarative geometry/material elements passed as props of mesh-like
  types into the children (real instances stay where they are, since they
  may carry post-construction mutations),
- wraps ``on<Event>`` handler props so an exception is contained and
  reported instead of escaping into event dispatch,
- disables frustum culling on renderable types whose geometry may lack a
  bounding volume.
"""

from __future__ import annotations

import functools
import logging
import traceback
from collections.abc import Callable, Mapping
from typing import Any

from . import elements, policy
from .context import CorrectionContext

logger = logging.getLogger(__name__)


class SafeElementFactory:
    def __init__(
        self,
        create_element: elements.ElementFactory = elements.create_element,
        context: CorrectionContext | None = None,
    ) -> None:
        self.create_element = create_element
        self.context = context or CorrectionContext()

    def __call__(self, type_: Any, props: Mapping[str, Any] | None = None, *children: Any) -> Any:
        fixed_children = [self._convert_child(child) for child in children]

        fixed_props: dict[str, Any] | None = dict(props) if props is not None else None
        moved: list[Any] = []
        if isinstance(type_, str) and type_ in policy.GEOMETRY_PROP_TYPES and fixed_props:
            moved = self._relocate_element_props(fixed_props)

        if fixed_props:
            for name, value in list(fixed_props.items()):
                if policy.is_handler_prop(name, value) and not getattr(value, "__guarded__", False):
                    fixed_props[name] = self._guard_handler(name, value)

        if isinstance(type_, str) and type_ in policy.FRUSTUM_CULL_DISABLED_TYPES:
            fixed_props = {**(fixed_props or {}), "frustumCulled": False}

        return self.create_element(type_, fixed_props, *moved, *fixed_children)

    def _convert_child(self, child: Any) -> Any:
        if elements.is_geometry_instance(child) and child.type and child.type != "BufferGeometry":
            el_name = elements.element_type_for(child)
            args = elements.geometry_args(child)
            self.context.note_once(
                "geometry-child-to-element",
                f"converted THREE.{child.type} instance to <{el_name}> element",
            )
            return self.create_element(el_name, {"args": args} if args else None)
        if elements.is_material_instance(child) and child.type:
            el_name = elements.element_type_for(child)
            self.context.note_once(
                "material-child-to-element",
                f"converted THREE.{child.type} instance to <{el_name}> element",
            )
            return self.create_element(el_name, elements.material_props(child))
        return child

    def _relocate_element_props(self, props: dict[str, Any]) -> list[Any]:
        moved = []
        for prop in ("geometry", "material"):
            value = props.get(prop)
            if value is None or not elements.is_element(value):
                continue
            self.context.note_once(
                f"element-{prop}-to-child",
                f"moved declarative {prop} ({value.type or 'unknown'}) prop to child",
            )
            moved.append(props.pop(prop))
        return moved

    def _guard_handler(self, name: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        context = self.context

        @functools.wraps(handler)
        def guarded(*args: Any, **kwargs: Any) -> Any:
            try:
                return handler(*args, **kwargs)
            except Exception as exc:
                message = f"{type(exc).__name__}: {exc}"
                if context.note_once("event-handler-error", f"{name}: {message}"):
                    logger.exception(f"Event handler {name} raised")
                    context.report(f"Caught in {name}: {message}", traceback.format_exc())
                return None

        guarded.__guarded__ = True
        return guarded
