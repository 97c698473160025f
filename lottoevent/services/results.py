from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Dict, Optional

from ..db import session_scope
from ..errors import NotParticipated, ResultsNotOpen
from ..models import Participation, PoolSlot, utcnow
from .events import EventRepository
from .phases import RESULT_PHASES, phase_of
from .phones import normalize_phone, phone_last4

logger = logging.getLogger("lottoevent.results")

WON_LABEL = "Winner"
LOST_LABEL = "No win"
RECHECK_LABEL = "Already checked"


class ResultQueryService:
    """Reveals a participant's result once in full, then only as a status."""

    def __init__(
        self,
        events: Optional[EventRepository] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self._clock = clock or utcnow
        self._events = events or EventRepository(clock=self._clock)

    def check_result(self, event_id: int, phone_number: str) -> Dict[str, object]:
        phone = normalize_phone(phone_number)
        event = self._events.get_event(event_id)
        now = self._clock()
        if phase_of(event, now) not in RESULT_PHASES:
            raise ResultsNotOpen(f"results for event {event_id} are not announced yet")

        with session_scope() as session:
            row = (
                session.query(Participation, PoolSlot)
                .join(PoolSlot, PoolSlot.id == Participation.slot_id)
                .filter(Participation.event_id == event_id, Participation.phone_number == phone)
                .one_or_none()
            )
            if row is None:
                raise NotParticipated(f"no participation in event {event_id} for this phone number")
            participation, slot = row
            # The conditional update decides which call is the first check.
            first_check = (
                session.query(Participation)
                .filter(Participation.id == participation.id, Participation.first_checked_at.is_(None))
                .update({Participation.first_checked_at: now}, synchronize_session=False)
            ) == 1
            won = bool(participation.won)
            numbers = slot.get_numbers()

        response: Dict[str, object] = {
            "first_check": first_check,
            "won": won,
            "phone_last4": phone_last4(phone),
        }
        if first_check:
            response["result_label"] = WON_LABEL if won else LOST_LABEL
            response["lotto_numbers"] = numbers
        else:
            response["result_label"] = RECHECK_LABEL

        logger.info(
            "Result for event %s (***%s): first_check=%s won=%s",
            event_id,
            phone_last4(phone),
            first_check,
            won,
        )
        return response
