"""
Pydantic data models for the panel divider API.

These models define the shapes of requests and responses used by the
backend.  Contours travel as ordered lists of ``[x, y, z]`` vertices;
the closing vertex is implied and may be omitted.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

Vertex = List[float]


class AttributeModel(BaseModel):
    """A named attribute attached to a panel."""

    name: str = Field(..., description="Attribute name, unique per panel")
    kind: Literal["numeric", "integer", "text", "reference"] = Field(
        ..., description="Storage kind; copies only happen between equal kinds"
    )
    value: Any = Field(default=None, description="Attribute value, or null when unset")
    readOnly: bool = Field(default=False, description="Read-only attributes are never copied")


class OpeningModel(BaseModel):
    """An opening hosted by a panel."""

    openingId: Optional[int] = Field(default=None, description="Identifier of the stored opening")
    contour: List[Vertex] = Field(..., description="Ordered vertices of the opening contour")


class PanelCreateRequest(BaseModel):
    """Request body for creating a panel."""

    panelType: str = Field(default="", description="Type name copied to fragments on division")
    contour: List[Vertex] = Field(..., description="Ordered vertices of the outer contour")
    attributes: List[AttributeModel] = Field(default_factory=list)
    openings: List[List[Vertex]] = Field(
        default_factory=list, description="Contours of openings to attach to the panel"
    )


class PanelInfo(BaseModel):
    """Summary of a stored panel."""

    panelId: int = Field(..., description="Unique identifier for the panel")
    panelType: str = Field(..., description="Panel type name")
    sourcePanelId: Optional[int] = Field(
        default=None, description="Panel this one was divided from, if any"
    )
    createdAt: Any = Field(..., description="Timestamp of when the panel was created")


class PanelDetail(PanelInfo):
    """A stored panel with its geometry, attributes and openings."""

    contour: List[Vertex] = Field(..., description="Ordered vertices of the outer contour")
    attributes: List[AttributeModel] = Field(default_factory=list)
    openings: List[OpeningModel] = Field(default_factory=list)


class FailureModel(BaseModel):
    """A non-fatal problem reported while dividing."""

    kind: str = Field(..., description="Failure kind, e.g. 'parallel_cutter'")
    message: str
    subject: Optional[str] = Field(
        default=None, description="Cutter id, fragment index or opening the failure concerns"
    )


class DivideRequest(BaseModel):
    """Request body for dividing stored panels."""

    panelIds: List[int] = Field(..., description="Panels to divide")
    cutterIds: List[int] = Field(..., description="Panels whose planes cut the selected panels")
    tolerance: Optional[float] = Field(
        default=None, gt=0, description="Linear tolerance; defaults to the server setting"
    )


class OpeningTransferModel(BaseModel):
    """Where an opening of a divided panel was recreated."""

    openingId: int = Field(..., description="Opening on the original panel")
    newOpeningIds: List[int] = Field(..., description="Openings created on the fragments")


class PanelDivisionResult(BaseModel):
    """What happened to one selected panel."""

    panelId: int
    status: Literal["split", "unchanged", "failed"]
    reason: Optional[str] = None
    newPanelIds: List[int] = Field(default_factory=list)
    originalDeleted: bool = False
    cutLineCount: int = 0
    fragmentCount: int = 0
    openingsTransferred: List[OpeningTransferModel] = Field(default_factory=list)
    failures: List[FailureModel] = Field(default_factory=list)


class DivideResponse(BaseModel):
    """Response of a division batch."""

    results: List[PanelDivisionResult]
    createdCount: int = Field(..., description="Total number of panels created")
    deletedCount: int = Field(..., description="Total number of original panels deleted")


class CutterContour(BaseModel):
    """A cutter contour supplied inline to the stateless split endpoint."""

    label: Optional[str] = Field(default=None, description="Name echoed in failures")
    contour: List[Vertex]


class SplitRequest(BaseModel):
    """Request body for splitting a contour without touching the store."""

    contour: List[Vertex] = Field(..., description="Ordered vertices of the contour to split")
    cutters: List[CutterContour] = Field(default_factory=list)
    tolerance: Optional[float] = Field(default=None, gt=0)


class SegmentModel(BaseModel):
    start: Vertex
    end: Vertex


class SplitResponse(BaseModel):
    """Fragments and diagnostics of a stateless split."""

    normal: Optional[Vertex] = Field(default=None, description="Normal of the fitted contour plane")
    fragments: List[List[Vertex]] = Field(..., description="Canonical fragment contours")
    cutLines: List[SegmentModel] = Field(default_factory=list)
    failures: List[FailureModel] = Field(default_factory=list)
    failure: Optional[FailureModel] = Field(
        default=None, description="Set when the contour itself could not be processed"
    )
