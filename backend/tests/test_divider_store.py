"""
Tests for the panel store and the batch division pipeline.

Store-backed tests rebind the database engine to an in-memory SQLite
database so every test starts from an empty store.  A small in-memory
store is used where the SQL store would refuse the input (degenerate
contours) or to simulate a store that rejects writes or loses panels
while a division runs.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Make the backend package importable when running tests directly via pytest
sys.path.append(str(Path(__file__).resolve().parents[1]))

from divider.services import db
from divider.services.containment import loop_centroid
from divider.services.divider import (
    STATUS_FAILED,
    STATUS_SPLIT,
    STATUS_UNCHANGED,
    divide_panel,
    divide_panels,
)
from divider.services.errors import (
    FailureKind,
    OpeningCreationError,
    PanelCreationError,
    PanelNotFoundError,
    PanelStoreError,
    SelectionCancelled,
)
from divider.services.loops import Loop
from divider.services.panels_store import (
    AttributeKind,
    AttributeSpec,
    SqlPanelStore,
    attribute_value,
    copy_panel_attributes,
    create_opening_record,
    create_panel_record,
    list_attribute_records,
    list_opening_records,
    list_panel_records,
)

TOL = 1e-3


def square(size: float = 10.0) -> Loop:
    return Loop.from_vertices([(0.0, 0.0, 0.0), (size, 0.0, 0.0), (size, size, 0.0), (0.0, size, 0.0)])


def wall_x(x: float) -> Loop:
    return Loop.from_vertices([(x, -1.0, -1.0), (x, 11.0, -1.0), (x, 11.0, 1.0), (x, -1.0, 1.0)])


def attrs_by_name(panel_id: int) -> dict:
    return {a.name: a for a in list_attribute_records(panel_id)}


@pytest.fixture
def store() -> SqlPanelStore:
    db.configure_engine("sqlite://")
    return SqlPanelStore(tol=TOL)


class MemoryStore:
    """Dictionary-backed store.

    ``reject_on`` makes the n-th panel creation fail; openings whose id is
    in ``reject_openings`` cannot be recreated on fragments.
    """

    def __init__(self, reject_on: Optional[int] = None, reject_openings: tuple = ()) -> None:
        self.panels: Dict[int, Loop] = {}
        self.types: Dict[int, str] = {}
        self.openings: Dict[int, tuple] = {}
        self.deleted: List[int] = []
        self.reject_on = reject_on
        self.reject_openings = set(reject_openings)
        self.creations = 0
        self._next = 1
        self._next_opening = 1

    def add_opening(self, loop: Loop, panel_id: int) -> int:
        oid = self._next_opening
        self._next_opening += 1
        self.openings[oid] = (panel_id, loop)
        return oid

    def add(self, loop: Loop, panel_type: str = "wall") -> int:
        pid = self._next
        self._next += 1
        self.panels[pid] = loop
        self.types[pid] = panel_type
        return pid

    def panel_exists(self, panel_id: int) -> bool:
        return panel_id in self.panels

    def get_outer_contour(self, panel_id: int) -> Optional[Loop]:
        return self.panels.get(panel_id)

    def get_panel_type(self, panel_id: int) -> str:
        return self.types[panel_id]

    def get_attribute_schema(self, panel_id: int) -> list:
        return []

    def create_panel(self, loop, panel_type, attributes=(), source_panel_id=None) -> int:
        self.creations += 1
        if self.creations == self.reject_on:
            raise PanelCreationError("rejected by test store")
        return self.add(loop, panel_type)

    def copy_attributes(self, source_id: int, target_id: int) -> int:
        return 0

    def list_openings(self, panel_id: int) -> List[int]:
        return [oid for oid, (host, _) in self.openings.items() if host == panel_id]

    def get_opening_contour(self, opening_id: int) -> Optional[Loop]:
        entry = self.openings.get(opening_id)
        return entry[1] if entry is not None else None

    def create_opening(self, loop: Loop, panel_id: int) -> int:
        # The projected contour is checked against the source opening it came from.
        for oid in self.reject_openings:
            source = self.openings.get(oid)
            if source is not None and loop_centroid(source[1])[:2] == pytest.approx(loop_centroid(loop)[:2]):
                raise OpeningCreationError(f"opening {oid} rejected by test store")
        return self.add_opening(loop, panel_id)

    def delete_panel(self, panel_id: int) -> None:
        if panel_id not in self.panels:
            raise PanelNotFoundError(panel_id)
        del self.panels[panel_id]
        self.deleted.append(panel_id)
        for oid in [oid for oid, (host, _) in self.openings.items() if host == panel_id]:
            del self.openings[oid]


def test_create_panel_rejects_degenerate_contours(store: SqlPanelStore) -> None:
    with pytest.raises(PanelCreationError):
        store.create_panel(Loop.from_vertices([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)]), "wall")
    warped = Loop.from_vertices([(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (10.0, 10.0, 1.0), (0.0, 10.0, 0.0)])
    with pytest.raises(PanelCreationError):
        store.create_panel(warped, "wall")
    assert list_panel_records() == []


def test_contour_round_trips_through_store(store: SqlPanelStore) -> None:
    pid = store.create_panel(square(), "floor")
    assert store.get_outer_contour(pid).vertices() == square().vertices()
    assert store.get_panel_type(pid) == "floor"
    store.delete_panel(pid)
    assert not store.panel_exists(pid)
    with pytest.raises(PanelNotFoundError):
        store.delete_panel(pid)


def test_copy_attributes_skips_read_only_and_mismatched_kinds(store: SqlPanelStore) -> None:
    source = create_panel_record(
        square(),
        "wall",
        [
            AttributeSpec("Mark", AttributeKind.TEXT, "W-12"),
            AttributeSpec("Level", AttributeKind.REFERENCE, 7),
            AttributeSpec("Area", AttributeKind.NUMERIC, 100.0, read_only=True),
            AttributeSpec("Comment", AttributeKind.TEXT, "keep"),
        ],
    )
    target = create_panel_record(
        square(),
        "wall",
        [
            AttributeSpec("Mark", AttributeKind.TEXT),
            AttributeSpec("Level", AttributeKind.INTEGER, 1),
            AttributeSpec("Area", AttributeKind.NUMERIC, 5.0),
            AttributeSpec("Comment", AttributeKind.TEXT, "fixed", read_only=True),
        ],
    )
    assert copy_panel_attributes(source.id, target.id) == 1
    values = {name: attribute_value(a) for name, a in attrs_by_name(target.id).items()}
    assert values == {"Mark": "W-12", "Level": 1, "Area": 5.0, "Comment": "fixed"}


def test_divide_replaces_panel_with_fragments(store: SqlPanelStore) -> None:
    pid = store.create_panel(
        square(),
        "wall",
        [
            AttributeSpec("Mark", AttributeKind.TEXT, "W-1"),
            AttributeSpec("Area", AttributeKind.NUMERIC, 100.0, read_only=True),
        ],
    )
    cutter = store.create_panel(wall_x(5.0), "wall")
    opening = create_opening_record(
        Loop.from_vertices([(1.0, 4.0, 0.0), (3.0, 4.0, 0.0), (3.0, 6.0, 0.0), (1.0, 6.0, 0.0)]), pid
    )

    [report] = divide_panels(store, [pid], [cutter], tol=TOL)

    assert report.status == STATUS_SPLIT
    assert report.original_deleted
    assert report.cut_line_count == 1
    assert len(report.new_panel_ids) == 2
    assert not store.panel_exists(pid)
    assert store.panel_exists(cutter)
    for new_id in report.new_panel_ids:
        assert store.get_panel_type(new_id) == "wall"
        attrs = attrs_by_name(new_id)
        assert attribute_value(attrs["Mark"]) == "W-1"
        # Read-only values stay unset on the fragments.
        assert attrs["Area"].read_only
        assert attribute_value(attrs["Area"]) is None
    openings = {new_id: list_opening_records(new_id) for new_id in report.new_panel_ids}
    assert sorted(len(v) for v in openings.values()) == [0, 1]
    [moved] = [o for v in openings.values() for o in v]
    assert report.openings_transferred == {opening.id: [moved.id]}


def test_invalid_attribute_value_stores_nothing(store: SqlPanelStore) -> None:
    with pytest.raises(PanelCreationError):
        create_panel_record(
            square(),
            "wall",
            [
                AttributeSpec("Mark", AttributeKind.TEXT, "W-1"),
                AttributeSpec("Count", AttributeKind.INTEGER, "abc"),
            ],
        )
    assert list_panel_records() == []


def test_divide_without_crossing_cutter_leaves_panel(store: SqlPanelStore) -> None:
    pid = store.create_panel(square(), "wall")
    far = store.create_panel(wall_x(20.0), "wall")

    [report] = divide_panels(store, [pid], [far], tol=TOL)

    assert report.status == STATUS_UNCHANGED
    assert not report.original_deleted
    assert report.new_panel_ids == []
    assert [f.kind for f in report.failures] == [FailureKind.INSUFFICIENT_INTERSECTIONS]
    assert store.panel_exists(pid)
    assert len(list_panel_records()) == 2


def test_panel_is_not_its_own_cutter(store: SqlPanelStore) -> None:
    pid = store.create_panel(square(), "wall")
    [report] = divide_panels(store, [pid], [pid], tol=TOL)
    assert report.status == STATUS_UNCHANGED
    assert report.failures == []


def test_selection_is_validated_before_any_change(store: SqlPanelStore) -> None:
    pid = store.create_panel(square(), "wall")
    cutter = store.create_panel(wall_x(5.0), "wall")
    with pytest.raises(SelectionCancelled):
        divide_panels(store, [], [cutter])
    with pytest.raises(SelectionCancelled):
        divide_panels(store, [pid], [cutter, 999])
    assert store.panel_exists(pid)
    assert len(list_panel_records()) == 2


def test_degenerate_panel_does_not_affect_others() -> None:
    mem = MemoryStore()
    bad = mem.add(Loop.from_vertices([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)]))
    good = mem.add(square())
    cutter = mem.add(wall_x(5.0))

    reports = divide_panels(mem, [bad, good], [cutter], tol=TOL)

    assert reports[0].status == STATUS_FAILED
    assert reports[0].failures[-1].kind is FailureKind.DEGENERATE_PLANE
    assert bad in mem.panels
    assert reports[1].status == STATUS_SPLIT
    assert mem.deleted == [good]


def test_rejected_fragment_keeps_original() -> None:
    mem = MemoryStore(reject_on=2)
    pid = mem.add(square())
    cutter = mem.add(wall_x(5.0))

    [report] = divide_panels(mem, [pid], [cutter], tol=TOL)

    assert report.status == STATUS_FAILED
    assert not report.original_deleted
    assert len(report.new_panel_ids) == 1
    assert report.failures[-1].kind is FailureKind.MATERIALIZATION_REJECTED
    assert pid in mem.panels


def test_cutters_are_read_before_panels_change() -> None:
    # Two crossing walls divide each other; the second must still be cut
    # by the first wall's original contour.
    mem = MemoryStore()
    a = mem.add(Loop.from_vertices([(0.0, 5.0, 0.0), (10.0, 5.0, 0.0), (10.0, 5.0, 4.0), (0.0, 5.0, 4.0)]))
    b = mem.add(Loop.from_vertices([(5.0, 0.0, 0.0), (5.0, 10.0, 0.0), (5.0, 10.0, 4.0), (5.0, 0.0, 4.0)]))

    reports = divide_panels(mem, [a, b], [a, b], tol=TOL)

    assert [r.status for r in reports] == [STATUS_SPLIT, STATUS_SPLIT]
    assert sorted(mem.deleted) == [a, b]
    assert len(mem.panels) == 4


def test_rejected_opening_is_reported_and_others_transfer() -> None:
    mem = MemoryStore(reject_openings=(1,))
    pid = mem.add(square())
    cutter = mem.add(wall_x(5.0))
    left = mem.add_opening(Loop.from_vertices([(1.0, 4.0, 0.0), (3.0, 4.0, 0.0), (3.0, 6.0, 0.0), (1.0, 6.0, 0.0)]), pid)
    right = mem.add_opening(Loop.from_vertices([(6.0, 4.0, 0.0), (8.0, 4.0, 0.0), (8.0, 6.0, 0.0), (6.0, 6.0, 0.0)]), pid)
    assert left == 1

    [report] = divide_panels(mem, [pid], [cutter], tol=TOL)

    assert report.status == STATUS_SPLIT
    assert report.original_deleted
    assert [(f.kind, f.subject) for f in report.failures] == [
        (FailureKind.MATERIALIZATION_REJECTED, f"opening:{left}")
    ]
    [new_opening] = report.openings_transferred[right]
    assert list(report.openings_transferred) == [right]
    assert mem.openings[new_opening][0] in report.new_panel_ids


def test_panel_removed_during_division_is_reported() -> None:
    mem = MemoryStore()
    first = mem.add(square())
    second = mem.add(square())
    cutter = mem.add(wall_x(5.0))

    def remove_first(event: str, data: dict) -> None:
        # Another request deletes the first panel while its geometry is computed.
        if event == "split_finished":
            mem.panels.pop(first, None)

    reports = divide_panels(mem, [first, second], [cutter], tol=TOL, observer=remove_first)

    assert reports[0].status == STATUS_FAILED
    assert reports[0].new_panel_ids == []
    assert not reports[0].original_deleted
    assert reports[1].status == STATUS_SPLIT
    assert mem.deleted == [second]


class FailingCopyStore(MemoryStore):
    """Raises a store error when copying attributes from one panel."""

    def __init__(self, failing_source: int) -> None:
        super().__init__()
        self.failing_source = failing_source

    def copy_attributes(self, source_id: int, target_id: int) -> int:
        if source_id == self.failing_source:
            raise PanelStoreError(f"attributes of panel {source_id} are locked")
        return 0


def test_store_error_fails_only_that_panel() -> None:
    mem = FailingCopyStore(failing_source=1)
    first = mem.add(square())
    second = mem.add(square())
    cutter = mem.add(wall_x(5.0))
    assert first == 1

    reports = divide_panels(mem, [first, second], [cutter], tol=TOL)

    assert reports[0].status == STATUS_FAILED
    assert reports[0].failures[-1].kind is FailureKind.MATERIALIZATION_REJECTED
    assert "locked" in reports[0].reason
    # The fragment written before the error is still reported.
    assert len(reports[0].new_panel_ids) == 1
    assert first in mem.panels
    assert reports[1].status == STATUS_SPLIT
    assert mem.deleted == [second]


def test_divide_panel_on_missing_panel_reports_failure() -> None:
    mem = MemoryStore()
    report = divide_panel(mem, 7, [(1, wall_x(5.0))], tol=TOL)
    assert report.status == STATUS_FAILED
    assert report.failures[-1].kind is FailureKind.DEGENERATE_PLANE
