"""
Tests for plane fitting and loop canonicalization.

These tests build small planar contours by hand and check that the
canonical form is closed, counter-clockwise with respect to the plane
normal, free of colinear intermediate vertices and stable when the
canonicalizer is applied twice.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

# Make the backend package importable when running tests directly via pytest
sys.path.append(str(Path(__file__).resolve().parents[1]))

from divider.services.loops import (
    Loop,
    Segment,
    canonicalize_loop,
    collapse_colinear,
    loop_signed_area,
    polygon_area_2d,
    reorder_by_perpendicular,
)
from divider.services.planes import Plane, fit_plane, make_frame
from divider.services.tolerance import (
    DEFAULT_TOLERANCE,
    default_tolerance,
    resolve_tolerance,
    sign_with_tolerance,
    split_tolerance,
)

TOL = 1e-3
XY = Plane(origin=(0.0, 0.0, 0.0), normal=(0.0, 0.0, 1.0))


def square(size: float = 10.0, z: float = 0.0) -> list[tuple[float, float, float]]:
    return [(0.0, 0.0, z), (size, 0.0, z), (size, size, z), (0.0, size, z)]


def test_default_tolerance_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DIVIDER_TOLERANCE", raising=False)
    assert default_tolerance() == DEFAULT_TOLERANCE
    monkeypatch.setenv("DIVIDER_TOLERANCE", "0.01")
    assert default_tolerance() == pytest.approx(0.01)
    monkeypatch.setenv("DIVIDER_TOLERANCE", "not-a-number")
    assert default_tolerance() == DEFAULT_TOLERANCE
    monkeypatch.setenv("DIVIDER_TOLERANCE", "-1")
    assert default_tolerance() == DEFAULT_TOLERANCE


def test_resolve_tolerance_rejects_non_positive() -> None:
    assert resolve_tolerance(0.5) == 0.5
    with pytest.raises(ValueError):
        resolve_tolerance(0.0)
    assert split_tolerance(1e-9) == pytest.approx(1e-6)
    assert [sign_with_tolerance(v, 0.1) for v in (-1.0, 0.05, 1.0)] == [-1, 0, 1]


def test_fit_plane_uses_first_non_colinear_triple() -> None:
    # The first three points are colinear; the fitter must move on.
    pts = [(0.0, 0.0, 2.0), (1.0, 0.0, 2.0), (2.0, 0.0, 2.0), (2.0, 3.0, 2.0)]
    plane = fit_plane(pts, TOL)
    assert plane is not None
    assert plane.origin == pts[0]
    assert plane.normal == pytest.approx((0.0, 0.0, 1.0))
    assert plane.signed_distance((5.0, 5.0, 3.0)) == pytest.approx(1.0)


def test_fit_plane_degenerate_inputs() -> None:
    assert fit_plane([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)], TOL) is None
    assert fit_plane([(0.0, 0.0, 0.0), (1.0, 1.0, 1.0), (2.0, 2.0, 2.0)], TOL) is None


def test_frame_is_right_handed() -> None:
    frame = make_frame(XY, square(), TOL)
    assert frame.u == pytest.approx((1.0, 0.0, 0.0))
    assert frame.v == pytest.approx((0.0, 1.0, 0.0))
    assert frame.to_3d(frame.to_2d((3.0, 4.0, 0.0))) == pytest.approx((3.0, 4.0, 0.0))


def test_canonical_loop_is_closed_and_counter_clockwise() -> None:
    clockwise = list(reversed(square()))
    loop = canonicalize_loop(clockwise, XY, TOL)
    assert loop is not None
    assert loop.is_closed(TOL)
    assert len(loop) == 4
    assert loop_signed_area(loop, TOL, XY) == pytest.approx(100.0)
    assert all(seg.length > TOL for seg in loop)


def test_canonicalize_is_idempotent() -> None:
    pts = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (10.0, 0.0, 0.0), (10.0, 10.0, 0.0), (0.0, 10.0, 0.0)]
    once = canonicalize_loop(pts, XY, TOL)
    assert once is not None
    twice = canonicalize_loop(once, XY, TOL)
    assert twice is not None
    assert twice.vertices() == once.vertices()


def test_colinear_vertices_are_collapsed() -> None:
    pts = [(0.0, 0.0, 0.0), (5.0, 0.0, 0.0), (10.0, 0.0, 0.0), (10.0, 10.0, 0.0), (0.0, 10.0, 0.0)]
    loop = canonicalize_loop(pts, XY, TOL)
    assert loop is not None
    assert (5.0, 0.0, 0.0) not in loop.vertices()
    assert len(loop) == 4


def test_colinear_start_vertex_is_collapsed() -> None:
    # The start vertex sits in the middle of the bottom edge.
    closed = [
        (5.0, 0.0, 0.0),
        (10.0, 0.0, 0.0),
        (10.0, 10.0, 0.0),
        (0.0, 10.0, 0.0),
        (0.0, 0.0, 0.0),
        (5.0, 0.0, 0.0),
    ]
    kept = collapse_colinear(closed, TOL)
    assert (5.0, 0.0, 0.0) not in kept
    assert kept[0] == kept[-1]
    assert len(kept) == 5


def test_spikes_are_not_collapsed() -> None:
    # A reversal is not a straight run and must survive the collapse.
    closed = [(0.0, 0.0, 0.0), (2.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 0.0, 0.0)]
    assert (2.0, 0.0, 0.0) in collapse_colinear(closed, TOL)


def test_points_off_plane_are_projected() -> None:
    pts = [(0.0, 0.0, 0.3), (10.0, 0.0, -0.2), (10.0, 10.0, 0.1), (0.0, 10.0, 0.0)]
    loop = canonicalize_loop(pts, XY, TOL)
    assert loop is not None
    assert all(math.isclose(p[2], 0.0, abs_tol=1e-12) for p in loop.vertices())


def test_degenerate_inputs_yield_none() -> None:
    assert canonicalize_loop([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)], XY, TOL) is None
    assert canonicalize_loop([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)], XY, TOL) is None
    tiny = [(0.0, 0.0, 0.0), (1e-4, 0.0, 0.0), (1e-4, 1e-4, 0.0)]
    assert canonicalize_loop(tiny, XY, TOL) is None


def test_loop_from_vertices_ignores_explicit_closure() -> None:
    pts = square()
    assert len(Loop.from_vertices(pts + [pts[0]])) == 4
    assert Loop.from_vertices(pts).is_closed(TOL)


def test_reorder_starts_at_lowest_vertex_across_cut() -> None:
    loop = canonicalize_loop(square(), XY, TOL)
    assert loop is not None
    # Cut direction +y: the perpendicular axis points to -x, so the start
    # vertex is the first one with maximal x.
    cut = Segment(start=(5.0, 0.0, 0.0), end=(5.0, 10.0, 0.0))
    reordered = reorder_by_perpendicular(loop, XY, cut, TOL)
    assert reordered.vertices()[0] == (10.0, 0.0, 0.0)
    assert loop_signed_area(reordered, TOL, XY) == pytest.approx(100.0)


def test_polygon_area_sign_follows_winding() -> None:
    ring = [(0.0, 0.0), (4.0, 0.0), (4.0, 3.0), (0.0, 3.0)]
    assert polygon_area_2d(ring) == pytest.approx(12.0)
    assert polygon_area_2d(ring[::-1]) == pytest.approx(-12.0)
    assert polygon_area_2d(ring + ring[:1]) == pytest.approx(12.0)
    assert polygon_area_2d(ring[:2]) == 0.0
