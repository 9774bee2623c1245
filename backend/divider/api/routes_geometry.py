"""
Stateless geometry routes.

``POST /api/geometry/split`` runs the geometry engine on contours sent
in the request body and returns the fragments without touching the
panel store.  It is useful for previewing a division.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from .models import FailureModel, SegmentModel, SplitRequest, SplitResponse
from ..services.loops import Loop
from ..services.splitting import split_contour
from ..services.tolerance import resolve_tolerance

router = APIRouter()


def _loop(contour: list) -> Loop:
    if len(contour) < 3 or any(len(v) != 3 for v in contour):
        raise HTTPException(
            status_code=422, detail="A contour needs at least three [x, y, z] vertices"
        )
    return Loop.from_vertices([tuple(v) for v in contour])


@router.post("/geometry/split", response_model=SplitResponse)
def split(request: SplitRequest) -> SplitResponse:
    """Split a contour by the planes of the given cutter contours."""
    tol = resolve_tolerance(request.tolerance)
    contour = _loop(request.contour)
    cutters = [
        (c.label if c.label is not None else str(i), _loop(c.contour))
        for i, c in enumerate(request.cutters)
    ]
    result = split_contour(contour, cutters, tol)
    return SplitResponse(
        normal=list(result.plane.normal) if result.plane is not None else None,
        fragments=[[list(p) for p in loop.vertices()] for loop in result.fragments],
        cutLines=[SegmentModel(start=list(s.start), end=list(s.end)) for s in result.cut_lines],
        failures=[FailureModel(**f.as_dict()) for f in result.failures],
        failure=FailureModel(**result.failure.as_dict()) if result.failure is not None else None,
    )
