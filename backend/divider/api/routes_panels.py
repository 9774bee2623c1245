"""
Routes for storing panels and dividing them.

Panels are created from an outer contour, an optional list of typed
attributes and optional opening contours.  The division endpoint runs
the batch pipeline of :mod:`divider.services.divider` against the
SQL-backed panel store.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from .models import (
    AttributeModel,
    DivideRequest,
    DivideResponse,
    FailureModel,
    OpeningModel,
    OpeningTransferModel,
    PanelCreateRequest,
    PanelDetail,
    PanelDivisionResult,
    PanelInfo,
)
from ..services.divider import PanelDivisionReport, divide_panels
from ..services.errors import (
    OpeningCreationError,
    PanelCreationError,
    PanelStoreError,
    SelectionCancelled,
)
from ..services.loops import Loop
from ..services.panels_store import (
    AttributeKind,
    AttributeSpec,
    PanelRecord,
    SqlPanelStore,
    attribute_value,
    create_opening_record,
    create_panel_record,
    decode_contour,
    delete_panel_record,
    get_panel_record,
    list_attribute_records,
    list_opening_records,
    list_panel_records,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_loop(contour: list) -> Loop:
    if any(len(v) != 3 for v in contour):
        raise HTTPException(status_code=422, detail="Contour vertices must have three coordinates")
    return Loop.from_vertices([tuple(v) for v in contour])


def _vertices(contour_json: str) -> list:
    return [list(p) for p in decode_contour(contour_json).vertices()]


def _panel_info(record: PanelRecord) -> PanelInfo:
    return PanelInfo(
        panelId=record.id,
        panelType=record.panel_type,
        sourcePanelId=record.source_panel_id,
        createdAt=record.created_at,
    )


def _panel_detail(record: PanelRecord) -> PanelDetail:
    attributes = [
        AttributeModel(name=a.name, kind=a.kind, value=attribute_value(a), readOnly=a.read_only)
        for a in list_attribute_records(record.id)
    ]
    openings = [
        OpeningModel(openingId=o.id, contour=_vertices(o.contour_json))
        for o in list_opening_records(record.id)
    ]
    return PanelDetail(
        panelId=record.id,
        panelType=record.panel_type,
        sourcePanelId=record.source_panel_id,
        createdAt=record.created_at,
        contour=_vertices(record.contour_json),
        attributes=attributes,
        openings=openings,
    )


def _division_result(report: PanelDivisionReport) -> PanelDivisionResult:
    return PanelDivisionResult(
        panelId=report.panel_id,
        status=report.status,
        reason=report.reason,
        newPanelIds=report.new_panel_ids,
        originalDeleted=report.original_deleted,
        cutLineCount=report.cut_line_count,
        fragmentCount=report.fragment_count,
        openingsTransferred=[
            OpeningTransferModel(openingId=opening_id, newOpeningIds=new_ids)
            for opening_id, new_ids in report.openings_transferred.items()
        ],
        failures=[FailureModel(**f.as_dict()) for f in report.failures],
    )


@router.post("/panels", response_model=PanelDetail, status_code=201)
async def create_panel(request: PanelCreateRequest) -> PanelDetail:
    """Store a new panel.

    The panel and its openings are created together; if any contour is
    rejected nothing is kept and a 422 is returned.
    """
    loop = _to_loop(request.contour)
    openings = [_to_loop(c) for c in request.openings]
    specs = [
        AttributeSpec(name=a.name, kind=AttributeKind(a.kind), value=a.value, read_only=a.readOnly)
        for a in request.attributes
    ]
    try:
        record = create_panel_record(loop, panel_type=request.panelType, attributes=specs)
    except PanelCreationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    try:
        for opening in openings:
            create_opening_record(opening, record.id)
    except OpeningCreationError as exc:
        delete_panel_record(record.id)
        raise HTTPException(status_code=422, detail=f"Opening rejected: {exc}") from exc
    logger.info("Created panel %s with %d opening(s)", record.id, len(openings))
    return _panel_detail(record)


@router.get("/panels", response_model=list[PanelInfo])
async def list_panels() -> list[PanelInfo]:
    """Return all stored panels."""
    return [_panel_info(r) for r in list_panel_records()]


@router.get("/panels/{panel_id}", response_model=PanelDetail)
async def get_panel(panel_id: int) -> PanelDetail:
    record = get_panel_record(panel_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Panel not found")
    return _panel_detail(record)


@router.delete("/panels/{panel_id}", status_code=204)
async def delete_panel(panel_id: int) -> None:
    """Delete a panel with its openings and attributes."""
    if not delete_panel_record(panel_id):
        raise HTTPException(status_code=404, detail="Panel not found")


@router.post("/panels/divide", response_model=DivideResponse)
def divide(request: DivideRequest) -> DivideResponse:
    """Divide the selected panels by the planes of the cutter panels.

    Runs in the worker thread pool; concurrent requests are serialised
    only while fragments are written back.

    Raises:
        HTTPException: 400 when the selection is empty or names a panel
            that does not exist.  Nothing is modified in that case.
    """
    store = SqlPanelStore(tol=request.tolerance)
    try:
        reports = divide_panels(store, request.panelIds, request.cutterIds, tol=request.tolerance)
    except SelectionCancelled as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PanelStoreError as exc:
        logger.exception("Division aborted by the panel store")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    results = [_division_result(r) for r in reports]
    return DivideResponse(
        results=results,
        createdCount=sum(len(r.new_panel_ids) for r in reports),
        deletedCount=sum(1 for r in reports if r.original_deleted),
    )
