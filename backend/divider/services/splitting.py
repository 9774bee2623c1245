"""
Splitting closed contours by cut lines.

:func:`split_loop_by_line` divides one loop by one line into at most two
loops.  Vertices are classified by their signed distance to the line in
the plane's 2D frame; edges crossing the line receive an interpolated
vertex on both sides and vertices lying on the line are shared by both
sides.  Each side is then canonicalized and reordered so that its first
vertex is reproducible.

:func:`split_contour` is the entry point of the geometry engine.  It
fits the panel plane, derives cut lines from the cutters and applies
them one after another to the current set of fragments.  A loop is
only replaced when a line actually separates it into two pieces.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import Failure, FailureKind
from .intersection import prepare_cut_lines
from .loops import (
    Loop,
    Segment,
    append_unique,
    canonicalize_loop,
    flatten_loop,
    reorder_by_perpendicular,
)
from .planes import Plane, fit_plane, make_frame
from .tolerance import debug_enabled, sign_with_tolerance, split_tolerance
from .vectors import Point, format_point, lerp

logger = logging.getLogger(__name__)

# Optional diagnostic sink: called with an event name and a payload dict.
SplitObserver = Callable[[str, Dict[str, Any]], None]


def _notify(observer: Optional[SplitObserver], event: str, **data: Any) -> None:
    if observer is not None:
        observer(event, data)


def split_loop_by_line(
    loop: Loop,
    cut_line: Segment,
    plane: Plane,
    tol: float,
) -> List[Loop]:
    """Split ``loop`` by the infinite line through ``cut_line``.

    Args:
        loop: Closed contour lying in ``plane``.
        cut_line: Segment whose supporting line is used for the split;
            its endpoints are projected into the plane.
        plane: Plane of the contour; defines the 2D frame and the
            winding of the results.
        tol: Linear tolerance.

    Returns:
        Zero, one or two canonical loops.  Fewer than two means the line
        does not separate this loop.
    """
    tol = split_tolerance(tol)
    verts = flatten_loop(loop, tol)
    if len(verts) < 4:
        return []
    frame = make_frame(plane, verts, tol)

    s0 = frame.to_2d(cut_line.start)
    s1 = frame.to_2d(cut_line.end)
    dx = s1[0] - s0[0]
    dy = s1[1] - s0[1]
    length = math.hypot(dx, dy)
    if length < tol:
        return []
    d2 = (dx / length, dy / length)
    n2 = (-d2[1], d2[0])

    def signed_distance(p: Point) -> float:
        q = frame.to_2d(p)
        return (q[0] - s0[0]) * n2[0] + (q[1] - s0[1]) * n2[1]

    distances = [signed_distance(p) for p in verts]
    negative: List[Point] = []
    positive: List[Point] = []

    for i in range(len(verts) - 1):
        a, b = verts[i], verts[i + 1]
        sa, sb = distances[i], distances[i + 1]
        ia = sign_with_tolerance(sa, tol)
        ib = sign_with_tolerance(sb, tol)

        if ia == 0:
            append_unique(negative, a, tol)
            append_unique(positive, a, tol)
        elif ia < 0:
            append_unique(negative, a, tol)
        else:
            append_unique(positive, a, tol)

        if ia * ib < 0:
            crossing = lerp(a, b, sa / (sa - sb))
            append_unique(negative, crossing, tol)
            append_unique(positive, crossing, tol)
        elif ib == 0 and ia != 0:
            append_unique(negative, b, tol)
            append_unique(positive, b, tol)

    result: List[Loop] = []
    for side in (negative, positive):
        cleaned = canonicalize_loop(side, plane, tol)
        if cleaned is None:
            continue
        result.append(reorder_by_perpendicular(cleaned, plane, cut_line, tol))
    return result


@dataclass
class SplitResult:
    """Outcome of dividing one contour by a set of cutters.

    Attributes:
        plane: Fitted plane of the input contour (``None`` if degenerate).
        cut_lines: Cut lines that were applied, in order.
        fragments: Canonical loops left after all cuts.  A single
            fragment means nothing was split.
        failures: Per-cutter and per-fragment problems encountered.
        failure: Set when the whole contour could not be processed.
    """

    plane: Optional[Plane] = None
    cut_lines: List[Segment] = field(default_factory=list)
    fragments: List[Loop] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)
    failure: Optional[Failure] = None

    @property
    def is_split(self) -> bool:
        return self.failure is None and len(self.fragments) >= 2


def apply_cut_lines(
    contour: Loop,
    cut_lines: Sequence[Segment],
    plane: Plane,
    tol: float,
    observer: Optional[SplitObserver] = None,
) -> List[Loop]:
    """Apply ``cut_lines`` in order to a working set seeded with ``contour``.

    Each line is tried against every loop of the current set; a loop is
    replaced by its pieces only when exactly two are produced.
    """
    loops: List[Loop] = [contour]
    for index, line in enumerate(cut_lines):
        next_loops: List[Loop] = []
        for loop in loops:
            parts = split_loop_by_line(loop, line, plane, tol)
            if len(parts) == 2:
                next_loops.extend(parts)
            else:
                next_loops.append(loop)
        if debug_enabled():
            logger.debug(
                "apply_cut_lines: cut #%d %s -> %s: %d -> %d loop(s)",
                index,
                format_point(line.start),
                format_point(line.end),
                len(loops),
                len(next_loops),
            )
        _notify(observer, "cut_applied", index=index, before=len(loops), after=len(next_loops))
        loops = next_loops
    return loops


def split_contour(
    contour: Loop,
    cutters: Sequence[Tuple[str, Loop]],
    tol: float,
    observer: Optional[SplitObserver] = None,
) -> SplitResult:
    """Divide ``contour`` by the planes of ``cutters``.

    Args:
        contour: Outer contour of the panel to divide.
        cutters: ``(label, contour)`` pairs of cutting contours.  The
            panel itself must not be among them.
        tol: Linear tolerance.
        observer: Optional callable receiving diagnostic events.

    Returns:
        A :class:`SplitResult`.  ``failure`` is set (kind
        ``DEGENERATE_PLANE``) only when the contour itself has no plane;
        every other problem is recorded in ``failures`` and processing
        continues.
    """
    result = SplitResult()
    plane = fit_plane(contour.vertices(), tol)
    if plane is None:
        result.failure = Failure(FailureKind.DEGENERATE_PLANE, "contour has no three non-colinear points")
        _notify(observer, "degenerate_plane")
        return result
    result.plane = plane

    preparation = prepare_cut_lines(contour, plane, cutters, tol)
    result.failures.extend(preparation.failures)
    result.cut_lines = preparation.lines
    for failure in preparation.failures:
        _notify(observer, "cutter_skipped", cutter=failure.subject, kind=failure.kind.value)
    _notify(observer, "cut_lines_prepared", count=len(preparation.lines))

    if not preparation.lines:
        cleaned = canonicalize_loop(contour, plane, tol)
        result.fragments = [cleaned] if cleaned is not None else []
        return result

    loops = apply_cut_lines(contour, preparation.lines, plane, tol, observer)

    for index, loop in enumerate(loops):
        cleaned = canonicalize_loop(loop, plane, tol)
        if cleaned is None:
            result.failures.append(
                Failure(
                    FailureKind.DEGENERATE_FRAGMENT,
                    "fragment collapsed during final cleanup",
                    subject=str(index),
                )
            )
            continue
        result.fragments.append(cleaned)
    _notify(observer, "split_finished", fragments=len(result.fragments))
    return result
