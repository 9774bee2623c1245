"""
Dividing stored panels by cutter panels.

This module glues the geometry engine to a panel store.  For every
selected panel it reads the outer contour, splits it by the planes of
the cutter panels and, when at least two fragments result,
materializes each fragment as a new panel of the same type, copies the
writable attributes, moves the openings whose centroid falls inside the
fragment and finally deletes the original panel.

Geometry is computed per panel without shared state.  Writing the
fragments back to the store is serialised through a lock so that one
panel's fragment set is committed completely before the next one
starts, even when several requests are served concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from .containment import transfer_opening
from .errors import (
    Failure,
    FailureKind,
    OpeningCreationError,
    PanelCreationError,
    PanelStoreError,
    SelectionCancelled,
)
from .loops import Loop
from .splitting import SplitObserver, SplitResult, split_contour
from .tolerance import resolve_tolerance

logger = logging.getLogger(__name__)

STATUS_SPLIT = "split"
STATUS_UNCHANGED = "unchanged"
STATUS_FAILED = "failed"

_commit_lock = RLock()


class PanelStore(Protocol):
    """Operations the division pipeline needs from a panel store."""

    def panel_exists(self, panel_id: int) -> bool: ...

    def get_outer_contour(self, panel_id: int) -> Optional[Loop]: ...

    def get_panel_type(self, panel_id: int) -> str: ...

    def get_attribute_schema(self, panel_id: int) -> list: ...

    def create_panel(
        self,
        loop: Loop,
        panel_type: str,
        attributes: Sequence = (),
        source_panel_id: Optional[int] = None,
    ) -> int: ...

    def copy_attributes(self, source_id: int, target_id: int) -> int: ...

    def list_openings(self, panel_id: int) -> List[int]: ...

    def get_opening_contour(self, opening_id: int) -> Optional[Loop]: ...

    def create_opening(self, loop: Loop, panel_id: int) -> int: ...

    def delete_panel(self, panel_id: int) -> None: ...


@dataclass
class PanelDivisionReport:
    """What happened to one selected panel.

    Attributes:
        panel_id: The panel that was processed.
        status: ``"split"``, ``"unchanged"`` or ``"failed"``.
        reason: Short explanation for unchanged or failed panels.
        new_panel_ids: Panels created from the fragments.
        original_deleted: Whether the source panel was removed.
        cut_line_count: Number of distinct cut lines applied.
        fragment_count: Number of fragments the geometry produced.
        openings_transferred: Map of source opening id to new opening ids.
        failures: Non-fatal problems (cutters, fragments, openings).
    """

    panel_id: int
    status: str = STATUS_UNCHANGED
    reason: Optional[str] = None
    new_panel_ids: List[int] = field(default_factory=list)
    original_deleted: bool = False
    cut_line_count: int = 0
    fragment_count: int = 0
    openings_transferred: Dict[int, List[int]] = field(default_factory=dict)
    failures: List[Failure] = field(default_factory=list)


def _load_openings(store: PanelStore, panel_id: int) -> List[Tuple[int, Loop]]:
    openings: List[Tuple[int, Loop]] = []
    for opening_id in store.list_openings(panel_id):
        contour = store.get_opening_contour(opening_id)
        if contour is None or len(contour) == 0:
            logger.warning("Opening %s of panel %s has no contour; skipped", opening_id, panel_id)
            continue
        openings.append((opening_id, contour))
    return openings


def _materialize(
    store: PanelStore,
    panel_id: int,
    result: SplitResult,
    report: PanelDivisionReport,
    tol: float,
) -> None:
    """Create fragment panels and delete the original if at least two succeeded."""
    panel_type = store.get_panel_type(panel_id)
    schema = store.get_attribute_schema(panel_id)
    openings = _load_openings(store, panel_id)

    for index, fragment in enumerate(result.fragments):
        try:
            new_id = store.create_panel(fragment, panel_type, schema, source_panel_id=panel_id)
        except PanelCreationError as exc:
            logger.warning("Panel %s: fragment %d rejected: %s", panel_id, index, exc)
            report.failures.append(
                Failure(FailureKind.MATERIALIZATION_REJECTED, str(exc), subject=f"fragment:{index}")
            )
            continue
        report.new_panel_ids.append(new_id)
        copied = store.copy_attributes(panel_id, new_id)
        logger.debug("Panel %s: copied %d attribute(s) to %s", panel_id, copied, new_id)

        for opening_id, contour in openings:
            projected = transfer_opening(contour, fragment, tol)
            if projected is None:
                continue
            try:
                new_opening = store.create_opening(projected, new_id)
            except OpeningCreationError as exc:
                logger.warning("Panel %s: opening %s not recreated on %s: %s", panel_id, opening_id, new_id, exc)
                report.failures.append(
                    Failure(FailureKind.MATERIALIZATION_REJECTED, str(exc), subject=f"opening:{opening_id}")
                )
                continue
            report.openings_transferred.setdefault(opening_id, []).append(new_opening)

    if len(report.new_panel_ids) >= 2:
        store.delete_panel(panel_id)
        report.original_deleted = True
        report.status = STATUS_SPLIT
        logger.info("Panel %s divided into %d panel(s)", panel_id, len(report.new_panel_ids))
    else:
        report.status = STATUS_FAILED
        report.reason = (
            f"only {len(report.new_panel_ids)} fragment(s) could be created; original kept"
        )
        logger.info("Panel %s kept: %s", panel_id, report.reason)


def divide_panel(
    store: PanelStore,
    panel_id: int,
    cutters: Sequence[Tuple[int, Loop]],
    tol: Optional[float] = None,
    observer: Optional[SplitObserver] = None,
) -> PanelDivisionReport:
    """Divide one stored panel by already loaded cutter contours.

    Args:
        store: Panel store to read from and write to.
        panel_id: Panel to divide.
        cutters: ``(panel_id, contour)`` pairs; an entry for ``panel_id``
            itself is ignored.
        tol: Linear tolerance; defaults to the configured one.
        observer: Optional diagnostic sink passed to the geometry engine.

    Returns:
        A :class:`PanelDivisionReport`.  Neither geometric problems nor
        store errors raise; a store error marks the report ``failed``
        and keeps whatever was created before it.
    """
    tol = resolve_tolerance(tol)
    report = PanelDivisionReport(panel_id=panel_id)
    try:
        _divide_into(report, store, cutters, tol, observer)
    except PanelStoreError as exc:
        logger.exception("Panel %s: store error, skipped", panel_id)
        report.status = STATUS_FAILED
        report.reason = f"store error: {exc}"
        report.failures.append(
            Failure(FailureKind.MATERIALIZATION_REJECTED, str(exc), subject=str(panel_id))
        )
    return report


def _divide_into(
    report: PanelDivisionReport,
    store: PanelStore,
    cutters: Sequence[Tuple[int, Loop]],
    tol: float,
    observer: Optional[SplitObserver],
) -> None:
    panel_id = report.panel_id
    contour = store.get_outer_contour(panel_id)
    if contour is None:
        report.status = STATUS_FAILED
        report.reason = "panel has no outer contour"
        report.failures.append(Failure(FailureKind.DEGENERATE_PLANE, report.reason, subject=str(panel_id)))
        logger.info("Panel %s: %s", panel_id, report.reason)
        return

    valid_cutters = [(str(cid), loop) for cid, loop in cutters if cid != panel_id]
    result = split_contour(contour, valid_cutters, tol, observer)
    report.cut_line_count = len(result.cut_lines)
    report.fragment_count = len(result.fragments)
    report.failures.extend(result.failures)

    if result.failure is not None:
        report.status = STATUS_FAILED
        report.reason = result.failure.message
        report.failures.append(result.failure)
        logger.info("Panel %s: %s", panel_id, result.failure.message)
        return

    if not result.is_split:
        report.status = STATUS_UNCHANGED
        if not result.cut_lines:
            report.reason = "no cut lines cross the panel"
        else:
            report.reason = "cut lines do not separate the panel"
        logger.info("Panel %s unchanged: %s", panel_id, report.reason)
        return

    with _commit_lock:
        # The geometry ran unlocked; another request may have removed the panel.
        if not store.panel_exists(panel_id):
            report.status = STATUS_FAILED
            report.reason = "panel was removed before its fragments could be written"
            logger.warning("Panel %s: %s", panel_id, report.reason)
            return
        _materialize(store, panel_id, result, report, tol)


def divide_panels(
    store: PanelStore,
    panel_ids: Sequence[int],
    cutter_ids: Sequence[int],
    tol: Optional[float] = None,
    observer: Optional[SplitObserver] = None,
) -> List[PanelDivisionReport]:
    """Divide each selected panel by every selected cutter.

    All cutter contours are read once before any panel is modified, so
    a panel that is both divided and used as a cutter cuts the others
    with its original contour.

    Raises:
        SelectionCancelled: If no panels are selected or a selected panel
            or cutter does not exist.  Nothing is modified in that case.
    """
    tol = resolve_tolerance(tol)
    if not panel_ids:
        raise SelectionCancelled("no panels selected")
    missing = [pid for pid in [*panel_ids, *cutter_ids] if not store.panel_exists(pid)]
    if missing:
        raise SelectionCancelled(f"unknown panel id(s): {sorted(set(missing))}")

    cutters: List[Tuple[int, Loop]] = []
    for cutter_id in dict.fromkeys(cutter_ids):
        contour = store.get_outer_contour(cutter_id)
        if contour is None:
            logger.warning("Cutter %s has no contour; ignored", cutter_id)
            continue
        cutters.append((cutter_id, contour))

    logger.info("Dividing %d panel(s) with %d cutter(s)", len(panel_ids), len(cutters))
    reports: List[PanelDivisionReport] = []
    for panel_id in dict.fromkeys(panel_ids):
        reports.append(divide_panel(store, panel_id, cutters, tol, observer))
    return reports
