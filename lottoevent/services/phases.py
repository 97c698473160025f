from __future__ import annotations

import datetime as dt
from enum import Enum


class Phase(str, Enum):
    READY = "READY"
    ACTIVE = "ACTIVE"
    IN_REVIEW = "IN_REVIEW"
    ANNOUNCING = "ANNOUNCING"
    ENDED = "ENDED"


RESULT_PHASES = frozenset({Phase.ANNOUNCING, Phase.ENDED})


def resolve_phase(
    start_at: dt.datetime,
    end_at: dt.datetime,
    announce_start_at: dt.datetime,
    announce_end_at: dt.datetime,
    now: dt.datetime,
) -> Phase:
    """Map an event's half-open windows to the phase containing ``now``.

    Windows are assumed well ordered; event creation rejects anything else.
    """
    if start_at <= now < end_at:
        return Phase.ACTIVE
    if end_at <= now < announce_start_at:
        return Phase.IN_REVIEW
    if announce_start_at <= now < announce_end_at:
        return Phase.ANNOUNCING
    if now >= announce_end_at:
        return Phase.ENDED
    return Phase.READY


def phase_of(event, now: dt.datetime) -> Phase:
    return resolve_phase(event.start_at, event.end_at, event.announce_start_at, event.announce_end_at, now)
