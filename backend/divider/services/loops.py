"""
Closed polygon loops and their canonical form.

A :class:`Loop` is an ordered tuple of bounded :class:`Segment` objects
where each segment ends where the next one starts and the last one
returns to the first.  Raw loops coming out of the splitter or from a
client can contain duplicate vertices, zero-length edges, colinear
runs and either winding.  :func:`canonicalize_loop` turns such input
into the canonical form used everywhere else:

* every vertex lies on the supplied plane;
* at least three distinct vertices and no edge shorter than the
  tolerance;
* no two consecutive edges run in the same direction (including the
  pair meeting at the start vertex);
* counter-clockwise winding relative to the plane normal.

Fragments produced by splitting additionally get a deterministic start
vertex via :func:`reorder_by_perpendicular`.

The collapse and orientation steps are written as list-to-list
transforms; input sequences are never modified in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .planes import Plane, PlaneFrame, fit_plane, make_frame
from .tolerance import COLINEAR_COSINE, COLINEAR_SINE, debug_enabled
from .vectors import (
    Point,
    Point2D,
    almost_equal,
    cross,
    distance,
    dot,
    norm,
    scale,
    sub,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    """A bounded straight segment from ``start`` to ``end``."""

    start: Point
    end: Point

    @property
    def length(self) -> float:
        return distance(self.start, self.end)

    def reversed(self) -> "Segment":
        return Segment(start=self.end, end=self.start)


@dataclass(frozen=True)
class Loop:
    """A closed chain of segments describing a planar polygon."""

    segments: Tuple[Segment, ...]

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def vertices(self) -> List[Point]:
        """First endpoint of every segment, in order (not closed)."""
        return [s.start for s in self.segments]

    def is_closed(self, tol: float) -> bool:
        if not self.segments:
            return False
        for a, b in zip(self.segments, self.segments[1:]):
            if not almost_equal(a.end, b.start, tol):
                return False
        return almost_equal(self.segments[-1].end, self.segments[0].start, tol)

    @classmethod
    def from_vertices(cls, points: Sequence[Point]) -> "Loop":
        """Build a loop through ``points``, adding the closing segment.

        A trailing point identical to the first is treated as an explicit
        closure and not duplicated.
        """
        pts = [tuple(float(c) for c in p) for p in points]
        if len(pts) > 1 and pts[0] == pts[-1]:
            pts = pts[:-1]
        segments = tuple(
            Segment(start=pts[i], end=pts[(i + 1) % len(pts)]) for i in range(len(pts))
        )
        return cls(segments=segments)


def polygon_area_2d(points_uv: Sequence[Point2D]) -> float:
    """Shoelace area of a vertex ring in frame coordinates.

    Positive when the ring winds counter-clockwise in the ``(u, v)``
    frame.  The ring wraps from the last vertex to the first; an explicit
    repeat of the first vertex at the end adds nothing.
    """
    n = len(points_uv)
    if n < 3:
        return 0.0
    area = 0.0
    for i in range(n):
        u0, v0 = points_uv[i]
        u1, v1 = points_uv[(i + 1) % n]
        area += u0 * v1 - u1 * v0
    return 0.5 * area


def flatten_loop(loop: Loop, tol: float) -> List[Point]:
    """Ordered, explicitly closed vertex list of ``loop``.

    Both endpoints of every segment are visited so gaps between
    segments survive as extra vertices; consecutive duplicates within
    ``tol`` are dropped.
    """
    verts: List[Point] = []
    for seg in loop:
        if not verts or not almost_equal(verts[-1], seg.start, tol):
            verts.append(seg.start)
        if not almost_equal(seg.start, seg.end, tol):
            verts.append(seg.end)
    if verts and not almost_equal(verts[0], verts[-1], tol):
        verts.append(verts[0])
    return verts


def append_unique(points: List[Point], p: Point, tol: float) -> None:
    """Append ``p`` unless it coincides with the last point of ``points``."""
    if not points or not almost_equal(points[-1], p, tol):
        points.append(p)


def _is_straight_step(a: Point, b: Point, c: Point, tol: float) -> bool:
    ab = sub(b, a)
    bc = sub(c, b)
    ab_len = norm(ab)
    bc_len = norm(bc)
    if ab_len <= tol or bc_len <= tol:
        return False
    ab_u = scale(ab, 1.0 / ab_len)
    bc_u = scale(bc, 1.0 / bc_len)
    return norm(cross(ab_u, bc_u)) <= COLINEAR_SINE and dot(ab_u, bc_u) > COLINEAR_COSINE


def collapse_colinear(points: Sequence[Point], tol: float) -> List[Point]:
    """Drop vertices sitting in the middle of a straight run.

    ``points`` must be explicitly closed (first == last).  Only
    same-direction runs collapse; a reversal (spike) is kept so that it
    is visible to later validation.  The start vertex is removed as
    well when the closing edge and the first edge are colinear.
    """
    kept: List[Point] = []
    for p in points:
        while len(kept) >= 2 and _is_straight_step(kept[-2], kept[-1], p, tol):
            kept.pop()
        kept.append(p)
    while len(kept) >= 4 and _is_straight_step(kept[-2], kept[0], kept[1], tol):
        kept = kept[1:-1] + [kept[1]]
    return kept


def _distinct_count(points: Sequence[Point], tol: float) -> int:
    unique: List[Point] = []
    for p in points:
        if not any(almost_equal(p, q, tol) for q in unique):
            unique.append(p)
    return len(unique)


def canonicalize_loop(
    source: Union[Loop, Sequence[Point]],
    plane: Plane,
    tol: float,
) -> Optional[Loop]:
    """Clean a raw closed vertex sequence into a canonical :class:`Loop`.

    Args:
        source: Either a :class:`Loop` or an ordered vertex list (open or
            closed).
        plane: Plane onto which all vertices are projected; its normal
            defines counter-clockwise.
        tol: Linear tolerance.

    Returns:
        The canonical loop, or ``None`` when fewer than three distinct
        vertices survive any stage.
    """
    if isinstance(source, Loop):
        raw = flatten_loop(source, tol)
    else:
        raw = list(source)

    projected: List[Point] = []
    for p in raw:
        append_unique(projected, plane.project(p), tol)
    if len(projected) < 3:
        return None
    if not almost_equal(projected[0], projected[-1], tol):
        projected.append(projected[0])

    collapsed = collapse_colinear(projected, tol)
    if len(collapsed) < 4 or _distinct_count(collapsed[:-1], tol) < 3:
        return None

    frame = make_frame(plane, collapsed, tol)
    area = polygon_area_2d([frame.to_2d(p) for p in collapsed[:-1]])
    if area < 0.0:
        collapsed = list(reversed(collapsed))

    segments: List[Segment] = []
    for a, b in zip(collapsed, collapsed[1:]):
        if distance(a, b) > tol:
            segments.append(Segment(start=a, end=b))
    if not segments:
        return None
    start = segments[0].start
    end = segments[-1].end
    if not almost_equal(start, end, tol):
        segments.append(Segment(start=end, end=start))
    if len(segments) < 3:
        return None
    return Loop(segments=tuple(segments))


def reorder_by_perpendicular(
    loop: Loop,
    plane: Plane,
    cut_line: Segment,
    tol: float,
) -> Loop:
    """Rotate ``loop`` so it starts at its lowest vertex across ``cut_line``.

    The axis perpendicular to the cut line inside ``plane`` is
    ``(-d.y, d.x)`` where ``d`` is the cut direction in the plane frame.
    The first vertex (in loop order) whose projection on that axis is
    within ``tol`` of the minimum becomes the new start.  Winding is
    unchanged.  Loops that cannot be reordered are returned as-is.
    """
    verts = loop.vertices()
    if len(verts) < 3:
        return loop
    frame = make_frame(plane, verts + [verts[0]], tol)
    s0 = frame.to_2d(cut_line.start)
    s1 = frame.to_2d(cut_line.end)
    dx = s1[0] - s0[0]
    dy = s1[1] - s0[1]
    length = (dx * dx + dy * dy) ** 0.5
    if length < 1e-9:
        return loop
    perp = (-dy / length, dx / length)

    projections = []
    for p in verts:
        q = frame.to_2d(p)
        projections.append((q[0] - s0[0]) * perp[0] + (q[1] - s0[1]) * perp[1])
    lowest = min(projections)
    start_idx = next(i for i, value in enumerate(projections) if value <= lowest + tol)
    if start_idx == 0:
        return loop
    rotated = verts[start_idx:] + verts[:start_idx]
    if debug_enabled():
        logger.debug("reorder_by_perpendicular: start index %d of %d", start_idx, len(verts))
    return Loop.from_vertices(rotated)


def plane_of_loop(loop: Loop, tol: float) -> Optional[Plane]:
    """Fit the loop's own plane from the first endpoint of each segment."""
    return fit_plane(loop.vertices(), tol)


def loop_frame(loop: Loop, tol: float) -> Optional[PlaneFrame]:
    plane = plane_of_loop(loop, tol)
    if plane is None:
        return None
    verts = loop.vertices()
    return make_frame(plane, verts + verts[:1], tol)


def loop_signed_area(loop: Loop, tol: float, plane: Optional[Plane] = None) -> float:
    """Signed area of ``loop`` in the 2D frame of ``plane``.

    Without an explicit plane the loop's own fitted plane is used.
    Degenerate loops have zero area.
    """
    if plane is None:
        plane = plane_of_loop(loop, tol)
        if plane is None:
            return 0.0
    verts = loop.vertices()
    frame = make_frame(plane, verts + verts[:1], tol)
    return polygon_area_2d([frame.to_2d(p) for p in verts])
