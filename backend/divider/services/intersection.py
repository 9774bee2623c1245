"""
Plane/plane intersection clipped to a panel contour, and cut-line preparation.

A cutter only matters to a panel where the cutter's (infinite) plane
crosses the panel's plane, and only inside the panel boundary.
:func:`intersect_planes_clipped` computes the intersection line of the
two planes and bounds it by the panel contour's edges, producing a
*cut line*.  :func:`prepare_cut_lines` runs this for every cutter of a
panel, drops failures and near-zero results and removes duplicate cut
lines regardless of their direction.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .errors import Failure, FailureKind, Outcome
from .loops import Loop, Segment
from .planes import Plane, PlaneFrame, fit_plane, make_frame
from .tolerance import PARALLEL_COSINE, debug_enabled
from .vectors import (
    Point,
    Point2D,
    almost_equal,
    cross,
    dot,
    format_point,
    lerp,
    norm,
    normalize,
    scale,
    sub,
)

logger = logging.getLogger(__name__)


def _cross_2d(a: Point2D, b: Point2D) -> float:
    return a[0] * b[1] - a[1] * b[0]


def _point_segment_distance(p: Point, a: Point, b: Point) -> float:
    ab = sub(b, a)
    length_sq = dot(ab, ab)
    if length_sq == 0.0:
        return norm(sub(p, a))
    t = max(0.0, min(1.0, dot(sub(p, a), ab) / length_sq))
    return norm(sub(p, lerp(a, b, t)))


def _line_edge_hit(
    frame: PlaneFrame,
    origin_2d: Point2D,
    dir_2d: Point2D,
    edge: Segment,
    tol: float,
) -> Optional[Point]:
    """Intersection of the unbounded 2D line with one bounded edge.

    Edges parallel to the line (including colinear ones) give no hit.
    The returned point is interpolated on the 3D edge so that hits at
    edge endpoints coincide with contour vertices.
    """
    a2 = frame.to_2d(edge.start)
    b2 = frame.to_2d(edge.end)
    e = (b2[0] - a2[0], b2[1] - a2[1])
    e_len = math.hypot(e[0], e[1])
    if e_len <= tol:
        return None
    denom = _cross_2d(e, dir_2d)
    if abs(denom) <= 1e-9 * e_len:
        return None
    w = (origin_2d[0] - a2[0], origin_2d[1] - a2[1])
    s = _cross_2d(w, dir_2d) / denom
    slack = tol / e_len
    if s < -slack or s > 1.0 + slack:
        return None
    s = max(0.0, min(1.0, s))
    return lerp(edge.start, edge.end, s)


def intersect_planes_clipped(
    target: Plane,
    cutting: Plane,
    contour: Loop,
    tol: float,
) -> Outcome[Segment]:
    """Intersect two planes and clip the line to the edges of ``contour``.

    Args:
        target: Plane of the panel being divided.
        cutting: Plane of the cutter.
        contour: The panel's outer contour lying in ``target``.
        tol: Linear tolerance.

    Returns:
        An :class:`Outcome` holding the bounded cut line spanning the
        first and last hit along the line direction, or a failure of
        kind ``PARALLEL_CUTTER`` or ``INSUFFICIENT_INTERSECTIONS``.
    """
    n_t = normalize(target.normal)
    n_c = normalize(cutting.normal)
    if abs(dot(n_t, n_c)) > PARALLEL_COSINE:
        return Outcome.fail(FailureKind.PARALLEL_CUTTER, "cutter plane is parallel to the panel plane")

    n_cross = cross(n_t, n_c)
    denom = dot(n_cross, n_cross)
    if denom < 1e-12:
        return Outcome.fail(FailureKind.PARALLEL_CUTTER, "plane normals do not span a line")
    direction = normalize(n_cross)

    d1 = dot(n_t, target.origin)
    d2 = dot(n_c, cutting.origin)
    numerator = cross(sub(scale(n_c, d1), scale(n_t, d2)), n_cross)
    origin = scale(numerator, 1.0 / denom)

    verts = contour.vertices()
    frame = make_frame(target, verts + verts[:1], tol)
    origin_2d = frame.to_2d(origin)
    dir_2d = (dot(direction, frame.u), dot(direction, frame.v))

    hits: List[Point] = []
    for edge in contour:
        hit = _line_edge_hit(frame, origin_2d, dir_2d, edge, tol)
        if hit is None:
            continue
        if any(almost_equal(hit, h, tol) for h in hits):
            continue
        hits.append(hit)

    if len(hits) < 2:
        return Outcome.fail(
            FailureKind.INSUFFICIENT_INTERSECTIONS,
            f"intersection line meets the contour at {len(hits)} point(s)",
        )

    for edge in contour:
        if edge.length <= tol:
            continue
        if all(_point_segment_distance(h, edge.start, edge.end) <= tol for h in hits):
            return Outcome.fail(
                FailureKind.INSUFFICIENT_INTERSECTIONS,
                "intersection line runs along an existing contour edge",
            )

    hits.sort(key=lambda h: dot(sub(h, origin), direction))
    line = Segment(start=hits[0], end=hits[-1])
    if debug_enabled():
        logger.debug(
            "intersect_planes_clipped: %d hit(s), cut %s -> %s",
            len(hits),
            format_point(line.start),
            format_point(line.end),
        )
    return Outcome.success(line)


def segments_equal(a: Segment, b: Segment, tol: float) -> bool:
    """True when ``a`` and ``b`` share endpoints, in either direction."""
    same = almost_equal(a.start, b.start, tol) and almost_equal(a.end, b.end, tol)
    opposite = almost_equal(a.start, b.end, tol) and almost_equal(a.end, b.start, tol)
    return same or opposite


def dedupe_segments(segments: Sequence[Segment], tol: float) -> List[Segment]:
    """Remove geometrically equal segments, keeping the first occurrence.

    Tolerance-based equality is not transitive and cannot be hashed,
    so every candidate is compared against every kept segment.
    """
    unique: List[Segment] = []
    for seg in segments:
        if any(segments_equal(seg, kept, tol) for kept in unique):
            continue
        unique.append(seg)
    return unique


@dataclass
class CutLinePreparation:
    """Cut lines derived from a panel's cutters.

    Attributes:
        lines: Deduplicated cut lines in cutter order.
        failures: One entry per cutter that produced no usable line.
    """

    lines: List[Segment] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)


def prepare_cut_lines(
    contour: Loop,
    plane: Plane,
    cutters: Sequence[Tuple[str, Loop]],
    tol: float,
) -> CutLinePreparation:
    """Build the cut lines that ``cutters`` induce on a panel.

    Args:
        contour: The panel's outer contour.
        plane: The panel's fitted plane.
        cutters: ``(label, contour)`` pairs; the panel itself must already
            have been excluded by the caller.
        tol: Linear tolerance.

    Returns:
        A :class:`CutLinePreparation` with the usable lines and the
        per-cutter failures.  Nothing is raised for geometric problems.
    """
    result = CutLinePreparation()
    candidates: List[Segment] = []
    for label, cutter_loop in cutters:
        cutting_plane = fit_plane(cutter_loop.vertices(), tol)
        if cutting_plane is None:
            result.failures.append(
                Failure(FailureKind.DEGENERATE_PLANE, "cutter contour is degenerate", subject=label)
            )
            continue
        outcome = intersect_planes_clipped(plane, cutting_plane, contour, tol)
        failure = outcome.failure
        if failure is not None:
            result.failures.append(Failure(failure.kind, failure.message, subject=label))
        elif outcome.value is not None:
            candidates.append(outcome.value)

    long_enough = [seg for seg in candidates if seg.length > tol]
    result.lines = dedupe_segments(long_enough, tol)
    if debug_enabled():
        logger.debug(
            "prepare_cut_lines: %d cutter(s), %d candidate(s), %d unique line(s)",
            len(cutters),
            len(candidates),
            len(result.lines),
        )
    return result
