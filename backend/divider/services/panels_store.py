"""
Persistent storage of panels, their openings and attributes.

This module defines the SQLModel tables backing the panel store and
module-level helpers to create, query and delete records, plus
:class:`SqlPanelStore`, the store object handed to the division
pipeline.  Contours are stored as JSON arrays of ``[x, y, z]`` vertex
triples (the closing vertex is implied).

Panel creation validates the contour the way a modelling kernel would:
it must have at least three distinct vertices, admit a fitted plane
and have every vertex on that plane.  Contours failing those checks
raise :class:`PanelCreationError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Sequence

from sqlmodel import Field, SQLModel, select

from .db import create_db_and_tables, get_session
from .errors import OpeningCreationError, PanelCreationError, PanelNotFoundError
from .loops import Loop
from .planes import fit_plane
from .tolerance import resolve_tolerance
from .vectors import almost_equal

logger = logging.getLogger(__name__)


class AttributeKind(str, Enum):
    """Storage kinds an attribute value can have."""

    NUMERIC = "numeric"
    INTEGER = "integer"
    TEXT = "text"
    REFERENCE = "reference"


class PanelRecord(SQLModel, table=True):
    """Database model representing a planar panel.

    ``source_panel_id`` is set on fragments and points at the panel they
    were split from (which may no longer exist).
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    panel_type: str = Field(default="", index=True)
    contour_json: str
    source_panel_id: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class OpeningRecord(SQLModel, table=True):
    """An opening (hole) hosted by a panel."""

    id: Optional[int] = Field(default=None, primary_key=True)
    panel_id: int = Field(foreign_key="panelrecord.id", index=True)
    contour_json: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PanelAttributeRecord(SQLModel, table=True):
    """A named, typed attribute value attached to a panel.

    The value is stored JSON encoded so that every storage kind fits in
    one column.  Read-only attributes are never overwritten by copies.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    panel_id: int = Field(foreign_key="panelrecord.id", index=True)
    name: str = Field(index=True)
    kind: str
    value_json: Optional[str] = None
    read_only: bool = False


@dataclass(frozen=True)
class AttributeSpec:
    """An attribute as supplied when creating a panel."""

    name: str
    kind: AttributeKind
    value: Any = None
    read_only: bool = False


def init_db() -> None:
    """Initialise the database and create tables if they do not exist."""
    create_db_and_tables()


def encode_contour(loop: Loop) -> str:
    return json.dumps([list(p) for p in loop.vertices()])


def decode_contour(text: str) -> Loop:
    points = json.loads(text)
    return Loop.from_vertices([tuple(float(c) for c in p) for p in points])


def _coerce_value(kind: AttributeKind, value: Any) -> Any:
    if value is None:
        return None
    if kind is AttributeKind.NUMERIC:
        return float(value)
    if kind in (AttributeKind.INTEGER, AttributeKind.REFERENCE):
        return int(value)
    return str(value)


def validate_contour(loop: Loop, tol: float) -> None:
    """Reject contours a panel cannot be built from.

    Raises:
        PanelCreationError: If the contour has fewer than three distinct
            vertices, no plane, or vertices off its plane.
    """
    verts = loop.vertices()
    distinct: List[tuple] = []
    for p in verts:
        if not any(almost_equal(p, q, tol) for q in distinct):
            distinct.append(p)
    if len(distinct) < 3:
        raise PanelCreationError(f"contour has {len(distinct)} distinct vertices, need at least 3")
    plane = fit_plane(verts, tol)
    if plane is None:
        raise PanelCreationError("contour vertices are colinear")
    worst = max(abs(plane.signed_distance(p)) for p in verts)
    if worst > tol:
        raise PanelCreationError(f"contour is not planar (deviation {worst:.6g})")


def create_panel_record(
    loop: Loop,
    panel_type: str = "",
    attributes: Sequence[AttributeSpec] = (),
    source_panel_id: Optional[int] = None,
    tol: Optional[float] = None,
) -> PanelRecord:
    """Validate and persist a new panel with its attributes.

    Args:
        loop: Outer contour of the panel.
        panel_type: Free-form type name copied to fragments.
        attributes: Attribute definitions and initial values.
        source_panel_id: Panel this one was split from, if any.
        tol: Tolerance for validation; defaults to the configured one.

    Returns:
        The persisted ``PanelRecord``.

    Raises:
        PanelCreationError: If the contour is rejected or an attribute
            value does not convert to its kind.  Nothing is stored then.
    """
    validate_contour(loop, resolve_tolerance(tol))
    encoded = []
    for spec in attributes:
        try:
            kind = AttributeKind(spec.kind)
            value_json = json.dumps(_coerce_value(kind, spec.value))
        except (TypeError, ValueError) as exc:
            raise PanelCreationError(
                f"attribute '{spec.name}' has an invalid {spec.kind} value: {spec.value!r}"
            ) from exc
        encoded.append((spec, kind, value_json))

    record = PanelRecord(
        panel_type=panel_type,
        contour_json=encode_contour(loop),
        source_panel_id=source_panel_id,
    )
    with get_session() as session:
        session.add(record)
        # Flush to obtain the id; panel and attributes commit together.
        session.flush()
        for spec, kind, value_json in encoded:
            session.add(
                PanelAttributeRecord(
                    panel_id=record.id,
                    name=spec.name,
                    kind=kind.value,
                    value_json=value_json,
                    read_only=spec.read_only,
                )
            )
        session.commit()
        session.refresh(record)
        return record


def get_panel_record(panel_id: int) -> Optional[PanelRecord]:
    """Retrieve a ``PanelRecord`` by its identifier."""
    with get_session() as session:
        return session.get(PanelRecord, panel_id)


def list_panel_records() -> List[PanelRecord]:
    """Return all panel records in the database."""
    with get_session() as session:
        return list(session.exec(select(PanelRecord)))


def delete_panel_record(panel_id: int) -> bool:
    """Delete a panel together with its openings and attributes.

    Returns:
        ``True`` if the panel existed.
    """
    with get_session() as session:
        panel = session.get(PanelRecord, panel_id)
        if panel is None:
            return False
        openings = session.exec(select(OpeningRecord).where(OpeningRecord.panel_id == panel_id)).all()
        attrs = session.exec(
            select(PanelAttributeRecord).where(PanelAttributeRecord.panel_id == panel_id)
        ).all()
        for row in [*openings, *attrs]:
            session.delete(row)
        session.delete(panel)
        session.commit()
        return True


def list_attribute_records(panel_id: int) -> List[PanelAttributeRecord]:
    with get_session() as session:
        stmt = select(PanelAttributeRecord).where(PanelAttributeRecord.panel_id == panel_id)
        return list(session.exec(stmt))


def attribute_value(record: PanelAttributeRecord) -> Any:
    """Decoded value of an attribute record."""
    if record.value_json is None:
        return None
    return json.loads(record.value_json)


def copy_panel_attributes(source_id: int, target_id: int) -> int:
    """Copy writable attribute values from one panel to another.

    An attribute is copied when the target has an attribute of the same
    name and storage kind that is not read-only; read-only source
    attributes are not copied.  Everything else is skipped silently.

    Returns:
        The number of attributes copied.
    """
    copied = 0
    with get_session() as session:
        source_attrs = session.exec(
            select(PanelAttributeRecord).where(PanelAttributeRecord.panel_id == source_id)
        ).all()
        target_attrs = {
            a.name: a
            for a in session.exec(
                select(PanelAttributeRecord).where(PanelAttributeRecord.panel_id == target_id)
            ).all()
        }
        for src in source_attrs:
            if src.read_only:
                continue
            dst = target_attrs.get(src.name)
            if dst is None or dst.read_only:
                logger.debug("Attribute '%s' missing or read-only on panel %s", src.name, target_id)
                continue
            if dst.kind != src.kind:
                logger.debug(
                    "Attribute '%s' kind mismatch (%s -> %s); skipped", src.name, src.kind, dst.kind
                )
                continue
            dst.value_json = src.value_json
            session.add(dst)
            copied += 1
        session.commit()
    return copied


def create_opening_record(loop: Loop, panel_id: int, tol: Optional[float] = None) -> OpeningRecord:
    """Attach an opening contour to an existing panel.

    Raises:
        OpeningCreationError: If the panel does not exist or the contour
            is degenerate.
    """
    tol = resolve_tolerance(tol)
    try:
        validate_contour(loop, tol)
    except PanelCreationError as exc:
        raise OpeningCreationError(str(exc)) from exc
    with get_session() as session:
        if session.get(PanelRecord, panel_id) is None:
            raise OpeningCreationError(f"host panel {panel_id} does not exist")
        record = OpeningRecord(panel_id=panel_id, contour_json=encode_contour(loop))
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def get_opening_record(opening_id: int) -> Optional[OpeningRecord]:
    with get_session() as session:
        return session.get(OpeningRecord, opening_id)


def list_opening_records(panel_id: int) -> List[OpeningRecord]:
    with get_session() as session:
        stmt = select(OpeningRecord).where(OpeningRecord.panel_id == panel_id)
        return list(session.exec(stmt))


class SqlPanelStore:
    """Panel store backed by the SQLModel tables of this module."""

    def __init__(self, tol: Optional[float] = None) -> None:
        self.tol = resolve_tolerance(tol)

    def panel_exists(self, panel_id: int) -> bool:
        return get_panel_record(panel_id) is not None

    def get_outer_contour(self, panel_id: int) -> Optional[Loop]:
        record = get_panel_record(panel_id)
        if record is None:
            return None
        loop = decode_contour(record.contour_json)
        return loop if len(loop) > 0 else None

    def get_panel_type(self, panel_id: int) -> str:
        record = get_panel_record(panel_id)
        if record is None:
            raise PanelNotFoundError(panel_id)
        return record.panel_type

    def get_attribute_schema(self, panel_id: int) -> List[AttributeSpec]:
        """Attribute definitions of a panel without their values."""
        return [
            AttributeSpec(name=a.name, kind=AttributeKind(a.kind), value=None, read_only=a.read_only)
            for a in list_attribute_records(panel_id)
        ]

    def create_panel(
        self,
        loop: Loop,
        panel_type: str,
        attributes: Sequence[AttributeSpec] = (),
        source_panel_id: Optional[int] = None,
    ) -> int:
        record = create_panel_record(
            loop,
            panel_type=panel_type,
            attributes=attributes,
            source_panel_id=source_panel_id,
            tol=self.tol,
        )
        if record.id is None:
            raise PanelCreationError("store did not assign a panel id")
        return record.id

    def copy_attributes(self, source_id: int, target_id: int) -> int:
        return copy_panel_attributes(source_id, target_id)

    def list_openings(self, panel_id: int) -> List[int]:
        return [o.id for o in list_opening_records(panel_id) if o.id is not None]

    def get_opening_contour(self, opening_id: int) -> Optional[Loop]:
        record = get_opening_record(opening_id)
        if record is None:
            return None
        return decode_contour(record.contour_json)

    def create_opening(self, loop: Loop, panel_id: int) -> int:
        record = create_opening_record(loop, panel_id, tol=self.tol)
        if record.id is None:
            raise OpeningCreationError("store did not assign an opening id")
        return record.id

    def delete_panel(self, panel_id: int) -> None:
        if not delete_panel_record(panel_id):
            raise PanelNotFoundError(panel_id)
