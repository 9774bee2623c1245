"""
Plane representation, plane fitting and in-plane coordinate frames.

A :class:`Plane` is an origin point plus a unit normal.  Panels and
cutters are planar contours; their planes are recovered with
:func:`fit_plane`, which takes the first pair of non-colinear edge
vectors found by scanning the ordered vertex list.  The scan order is
part of the contract: the same contour always yields the same plane
origin and normal, which keeps downstream projections reproducible.

:class:`PlaneFrame` provides the orthonormal ``(u, v)`` basis used by
the 2D algorithms (shoelace area, side classification, ray casting).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .tolerance import debug_enabled
from .vectors import (
    Point,
    Point2D,
    Vector,
    add,
    cross,
    dot,
    norm,
    normalize,
    scale,
    sub,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plane:
    """Infinite plane through ``origin`` with unit ``normal``.

    Attributes:
        origin: A point on the plane.
        normal: Unit vector perpendicular to the plane.
    """

    origin: Point
    normal: Vector

    @property
    def offset(self) -> float:
        """Signed offset of the plane from the world origin (``n·origin``)."""
        return dot(self.normal, self.origin)

    def signed_distance(self, p: Point) -> float:
        """Signed distance of ``p``; positive on the side the normal points to."""
        return dot(sub(p, self.origin), self.normal)

    def project(self, p: Point) -> Point:
        """Orthogonal projection of ``p`` onto the plane."""
        return sub(p, scale(self.normal, self.signed_distance(p)))


def fit_plane(points: Sequence[Point], tol: float) -> Optional[Plane]:
    """Fit a plane through the first non-colinear triple of ``points``.

    For each start index ``i`` the edge ``p[i+1] - p[i]`` is crossed with
    every later chord ``p[j] - p[i]`` (``j >= i + 2``); the first cross
    product longer than ``tol`` defines the normal and ``p[i]`` becomes
    the origin.

    Args:
        points: Ordered contour vertices.
        tol: Minimum cross-product length accepted as non-colinear.

    Returns:
        The fitted :class:`Plane`, or ``None`` when fewer than three
        points are supplied or all of them are colinear.
    """
    pts = list(points)
    if len(pts) < 3:
        return None
    for i in range(len(pts) - 2):
        v1 = sub(pts[i + 1], pts[i])
        for j in range(i + 2, len(pts)):
            v2 = sub(pts[j], pts[i])
            n = cross(v1, v2)
            if norm(n) > tol:
                plane = Plane(origin=pts[i], normal=normalize(n))
                if debug_enabled():
                    logger.debug(
                        "fit_plane: origin=%s normal=%s (i=%d, j=%d)",
                        plane.origin,
                        plane.normal,
                        i,
                        j,
                    )
                return plane
    return None


def project_points(points: Iterable[Point], plane: Plane) -> List[Point]:
    """Project every point orthogonally onto ``plane``."""
    return [plane.project(p) for p in points]


@dataclass(frozen=True)
class PlaneFrame:
    """Orthonormal 2D coordinate system lying in a plane.

    ``u`` and ``v`` span the plane and ``v = normal × u`` so that a
    positive shoelace area in ``(u, v)`` means counter-clockwise winding
    when looking against the normal.
    """

    origin: Point
    u: Vector
    v: Vector
    normal: Vector

    def to_2d(self, p: Point) -> Point2D:
        d = sub(p, self.origin)
        return (dot(d, self.u), dot(d, self.v))

    def to_3d(self, q: Point2D) -> Point:
        return add(self.origin, add(scale(self.u, q[0]), scale(self.v, q[1])))


def _fallback_axis(normal: Vector) -> Vector:
    # World axis least aligned with the normal.
    axes = [(1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)]
    return min(axes, key=lambda a: abs(dot(a, normal)))


def make_frame(plane: Plane, points: Sequence[Point], tol: float) -> PlaneFrame:
    """Build a :class:`PlaneFrame` whose ``u`` axis follows the first usable edge.

    The first consecutive pair of ``points`` whose in-plane difference is
    longer than ``tol`` defines ``u``.  When no such edge exists a world
    axis is projected into the plane instead.
    """
    n = normalize(plane.normal)
    u: Optional[Vector] = None
    for a, b in zip(points, points[1:]):
        d = sub(b, a)
        if norm(d) <= tol:
            continue
        cand = sub(d, scale(n, dot(n, d)))
        if norm(cand) > tol:
            u = normalize(cand)
            break
    if u is None:
        axis = _fallback_axis(n)
        u = normalize(sub(axis, scale(n, dot(n, axis))))
    v = normalize(cross(n, u))
    return PlaneFrame(origin=plane.origin, u=u, v=v, normal=n)
