"""
Small 3D vector helpers operating on plain tuples.

Points and directions throughout the divider are ``(x, y, z)`` tuples of
floats.  Tuples are hashable and serialise directly to JSON.
"""

from __future__ import annotations

import math
from typing import Tuple

Point = Tuple[float, float, float]
Vector = Tuple[float, float, float]
Point2D = Tuple[float, float]

ZERO: Vector = (0.0, 0.0, 0.0)


def dot(a: Vector, b: Vector) -> float:
    """Compute the dot product of two 3D vectors."""
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def cross(a: Vector, b: Vector) -> Vector:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def sub(a: Vector, b: Vector) -> Vector:
    """Subtract two 3D vectors (a - b)."""
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def add(a: Vector, b: Vector) -> Vector:
    """Add two 3D vectors."""
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def scale(a: Vector, s: float) -> Vector:
    """Scale a 3D vector by ``s``."""
    return (a[0] * s, a[1] * s, a[2] * s)


def norm(v: Vector) -> float:
    """Euclidean length of ``v``."""
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def normalize(v: Vector) -> Vector:
    """Unit vector in the direction of ``v``, or (0,0,0) if degenerate."""
    n = norm(v)
    if n <= 1e-12:
        return ZERO
    return (v[0] / n, v[1] / n, v[2] / n)


def distance(a: Point, b: Point) -> float:
    return norm(sub(a, b))


def almost_equal(a: Point, b: Point, tol: float) -> bool:
    """True when ``a`` and ``b`` are within ``tol`` of each other."""
    return distance(a, b) <= tol


def lerp(a: Point, b: Point, t: float) -> Point:
    """Linear interpolation between ``a`` and ``b`` at parameter ``t``."""
    return (
        a[0] + (b[0] - a[0]) * t,
        a[1] + (b[1] - a[1]) * t,
        a[2] + (b[2] - a[2]) * t,
    )


def format_point(p: Point) -> str:
    """Render a point for log messages."""
    return f"X={p[0]:.4f}, Y={p[1]:.4f}, Z={p[2]:.4f}"
