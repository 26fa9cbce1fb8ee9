"""Fixed tables consulted by the rewrite rules and the runtime interceptor."""

from __future__ import annotations

GEOMETRY_TYPES = [
    "BoxGeometry", "SphereGeometry", "CylinderGeometry", "ConeGeometry",
    "PlaneGeometry", "TorusGeometry", "CircleGeometry", "RingGeometry",
    "TorusKnotGeometry", "TubeGeometry",
]

MATERIAL_TYPES = [
    "MeshBasicMaterial", "MeshStandardMaterial", "MeshPhongMaterial",
    "MeshLambertMaterial", "MeshNormalMaterial",
    "LineBasicMaterial", "LineDashedMaterial", "PointsMaterial",
]

# Imperative instance members that only a constructed geometry has.
GEOMETRY_INSTANCE_METHODS = [
    "rotateX", "rotateY", "rotateZ", "translate", "scale", "lookAt",
    "setAttribute", "setIndex", "setFromPoints", "computeVertexNormals",
    "computeBoundingSphere", "computeBoundingBox", "center", "normalize",
    "applyMatrix4", "merge", "dispose", "clone", "copy",
    "attributes", "index",
]

# The embedded text renderer has no glyphs for these code points.
UNICODE_TO_ASCII = {
    # superscripts
    "\u2070": "0", "\u00b9": "1", "\u00b2": "2", "\u00b3": "3",
    "\u2074": "4", "\u2075": "5", "\u2076": "6", "\u2077": "7",
    "\u2078": "8", "\u2079": "9", "\u207a": "+", "\u207b": "-",
    "\u207c": "=", "\u207d": "(", "\u207e": ")", "\u207f": "n",
    # subscripts
    "\u2080": "0", "\u2081": "1", "\u2082": "2", "\u2083": "3",
    "\u2084": "4", "\u2085": "5", "\u2086": "6", "\u2087": "7",
    "\u2088": "8", "\u2089": "9", "\u208a": "+", "\u208b": "-",
    "\u208c": "=", "\u208d": "(", "\u208e": ")",
    # math symbols
    "\u00d7": "x",
    "\u00f7": "/",
    "\u00b1": "+/-",
    "\u00b7": ".",
    "\u2013": "-",
    "\u2014": "--",
    "\u2212": "-",
}


def element_name(type_name: str) -> str:
    """Lower-case the first character: ``BoxGeometry`` -> ``boxGeometry``."""
    return type_name[:1].lower() + type_name[1:]
