"""Zero-cell continuity correction for 2x2 tables.

A study whose 2x2 table has an empty cell (no events, or no non-events,
in either arm) gets a fixed increment added to the event count and the
total of both arms before its risk ratio is computed.  Tables without
an empty cell are used as reported.  The rule is decided per study and
outcome, never for a whole pool.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from ..config.settings import settings


class CorrectedCounts(NamedTuple):
    event_t: float
    total_t: float
    event_c: float
    total_c: float
    corrected: bool


def has_zero_cell(event_t: float, total_t: float, event_c: float, total_c: float) -> bool:
    cells = (event_t, total_t - event_t, event_c, total_c - event_c)
    return any(cell == 0 for cell in cells)


def is_double_zero(event_t: float, event_c: float) -> bool:
    """True when neither arm had any event."""
    return event_t == 0 and event_c == 0


def apply_continuity_correction(
    event_t: float,
    total_t: float,
    event_c: float,
    total_c: float,
    increment: Optional[float] = None,
) -> CorrectedCounts:
    """Return the counts to use for effect computation.

    Args:
        event_t: Events in the vitamin D arm.
        total_t: Participants in the vitamin D arm.
        event_c: Events in the control arm.
        total_c: Participants in the control arm.
        increment: Amount added to each count when a cell is empty;
            defaults to ``settings.continuity_increment`` (0.5).
    """
    if not has_zero_cell(event_t, total_t, event_c, total_c):
        return CorrectedCounts(event_t, total_t, event_c, total_c, False)
    inc = settings.continuity_increment if increment is None else increment
    return CorrectedCounts(event_t + inc, total_t + inc, event_c + inc, total_c + inc, True)
