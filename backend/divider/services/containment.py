"""
Point-in-polygon tests and transfer of openings onto split fragments.

Openings (holes such as doors or windows) belong to the original panel.
After a split every opening has to follow the fragment that contains
it.  The containment used here is deliberately naive: an opening is
considered inside a fragment when its vertex centroid is.  This is not
a polygon intersection; an opening straddling a cut line is assigned
whole to the fragment that holds its centroid and is not clipped.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .loops import Loop, Segment, loop_frame, plane_of_loop
from .vectors import Point

logger = logging.getLogger(__name__)


def loop_centroid(loop: Loop) -> Optional[Point]:
    """Mean of the first endpoint of every segment of ``loop``."""
    if len(loop) == 0:
        return None
    pts = np.asarray(loop.vertices(), dtype=float)
    c = pts.mean(axis=0)
    return (float(c[0]), float(c[1]), float(c[2]))


def point_in_loop(loop: Loop, point: Point, tol: float) -> bool:
    """Ray-casting containment test in the loop's own plane.

    Both the polygon and ``point`` are projected into the 2D frame of
    the plane fitted through the loop's vertices; a horizontal ray from
    the point is then tested against every edge and an odd number of
    crossings means inside.  Points exactly on the boundary may report
    either result.
    """
    if len(loop) < 3:
        return False
    frame = loop_frame(loop, tol)
    if frame is None:
        return False
    poly = np.asarray([frame.to_2d(p) for p in loop.vertices()], dtype=float)
    px, py = frame.to_2d(point)

    xi, yi = poly[:, 0], poly[:, 1]
    xj, yj = np.roll(xi, 1), np.roll(yi, 1)
    straddles = (yi > py) != (yj > py)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
    crossings = int(np.count_nonzero(straddles & (px < x_cross)))
    return crossings % 2 == 1


def loop_fits_inside(inner: Loop, outer: Loop, tol: float) -> bool:
    """Naive containment: only the centroid of ``inner`` is tested."""
    centroid = loop_centroid(inner)
    if centroid is None:
        return False
    return point_in_loop(outer, centroid, tol)


def project_loop_to_plane(loop: Loop, target: Loop, tol: float) -> Optional[Loop]:
    """Project every segment of ``loop`` onto the plane of ``target``.

    Returns ``None`` when ``target`` has no plane.
    """
    plane = plane_of_loop(target, tol)
    if plane is None:
        return None
    segments = tuple(
        Segment(start=plane.project(seg.start), end=plane.project(seg.end)) for seg in loop
    )
    return Loop(segments=segments)


def transfer_opening(opening: Loop, fragment: Loop, tol: float) -> Optional[Loop]:
    """Re-project ``opening`` onto ``fragment`` if it belongs there.

    The opening belongs to the fragment when its centroid lies inside
    the fragment.  The projected contour is then checked once more with
    :func:`loop_fits_inside` before being returned.
    """
    centroid = loop_centroid(opening)
    if centroid is None or not point_in_loop(fragment, centroid, tol):
        return None
    projected = project_loop_to_plane(opening, fragment, tol)
    if projected is None or len(projected) == 0:
        return None
    if not loop_fits_inside(projected, fragment, tol):
        return None
    return projected


def transfer_openings(
    openings: Sequence[Loop],
    fragment: Loop,
    tol: float,
) -> List[Tuple[int, Loop]]:
    """Return ``(index, projected_loop)`` for each opening that moves to ``fragment``."""
    moved: List[Tuple[int, Loop]] = []
    for index, opening in enumerate(openings):
        projected = transfer_opening(opening, fragment, tol)
        if projected is None:
            logger.debug("Opening %d does not belong to fragment", index)
            continue
        moved.append((index, projected))
    return moved
