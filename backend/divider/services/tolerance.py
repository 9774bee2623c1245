"""
Tolerance policy shared by the geometry engine.

Every geometric decision in the divider (point equality, degenerate
edges, side classification against a cut line, parallel planes) is
made against a single linear tolerance.  The default value can be
overridden through the ``DIVIDER_TOLERANCE`` environment variable;
callers may also pass an explicit value which takes precedence.

The angular thresholds below are fixed.  They are expressed as
sine/cosine bounds on unit vectors rather than as lengths and are
therefore independent of model units.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

# Minimum distinguishable length in model units.
DEFAULT_TOLERANCE: float = 1e-3

# Lower bound applied to the tolerance used for side classification when
# splitting; keeps sign tests meaningful when callers pass a tiny value.
MIN_SPLIT_TOLERANCE: float = 1e-6

# Two unit normals whose |dot| exceeds this are treated as parallel.
PARALLEL_COSINE: float = 0.999

# Consecutive unit edge directions are colinear when |cross| <= COLINEAR_SINE
# and dot > COLINEAR_COSINE (same direction only, reversals are kept).
COLINEAR_SINE: float = 1e-6
COLINEAR_COSINE: float = 0.9999


def default_tolerance() -> float:
    """Return the tolerance configured via ``DIVIDER_TOLERANCE``.

    Falls back to :data:`DEFAULT_TOLERANCE` when the variable is unset
    or cannot be parsed.
    """
    raw = os.getenv("DIVIDER_TOLERANCE")
    if not raw:
        return DEFAULT_TOLERANCE
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring unparsable DIVIDER_TOLERANCE=%r", raw)
        return DEFAULT_TOLERANCE
    if value <= 0.0:
        logger.warning("Ignoring non-positive DIVIDER_TOLERANCE=%r", raw)
        return DEFAULT_TOLERANCE
    return value


def resolve_tolerance(tol: Optional[float] = None) -> float:
    """Return ``tol`` if given, otherwise the configured default.

    Raises:
        ValueError: If an explicit tolerance is not strictly positive.
    """
    if tol is None:
        return default_tolerance()
    tol = float(tol)
    if tol <= 0.0:
        raise ValueError(f"tolerance must be positive, got {tol}")
    return tol


def split_tolerance(tol: float) -> float:
    """Tolerance used for signed-distance classification during splitting."""
    return max(tol, MIN_SPLIT_TOLERANCE)


def sign_with_tolerance(value: float, tol: float) -> int:
    """Classify ``value`` as -1, 0 or +1 with a dead band of ``tol``."""
    if value > tol:
        return 1
    if value < -tol:
        return -1
    return 0


def debug_enabled() -> bool:
    """True when verbose geometry tracing was requested via ``DIVIDER_DEBUG``."""
    return bool(os.getenv("DIVIDER_DEBUG"))
