"""Assignment of pool slots to verified participants.

Slots are claimed with a conditional update against the slot table, so any
number of workers, in any number of processes, can call `participate` for
the same event: the database arbitrates and no slot is handed out twice.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from ..db import session_scope
from ..errors import EventNotActive, PoolExhausted, PoolNotGenerated
from ..models import Participation, PoolSlot, utcnow
from .events import EventRepository
from .phases import Phase, phase_of
from .phones import normalize_phone, phone_last4
from .verification import VerificationService

logger = logging.getLogger("lottoevent.draws")

ISSUED_MESSAGE = "Your lottery numbers have been issued!"


@dataclass(frozen=True)
class DrawBinding:
    event_id: int
    phone_number: str
    slot_id: int
    lotto_numbers: List[int]
    won: bool

    def to_response(self) -> dict:
        return {
            "phone_last4": phone_last4(self.phone_number),
            "lotto_numbers": list(self.lotto_numbers),
            "won": self.won,
            "message": ISSUED_MESSAGE,
        }


class DrawAllocator:
    def __init__(
        self,
        verifications: VerificationService,
        events: Optional[EventRepository] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self._verifications = verifications
        self._clock = clock or utcnow
        self._events = events or EventRepository(clock=self._clock)

    def find_binding(self, event_id: int, phone_number: str) -> Optional[DrawBinding]:
        with session_scope() as session:
            row = (
                session.query(Participation, PoolSlot)
                .join(PoolSlot, PoolSlot.id == Participation.slot_id)
                .filter(Participation.event_id == event_id, Participation.phone_number == phone_number)
                .one_or_none()
            )
            if row is None:
                return None
            participation, slot = row
            return DrawBinding(
                event_id=event_id,
                phone_number=participation.phone_number,
                slot_id=slot.id,
                lotto_numbers=slot.get_numbers(),
                won=participation.won,
            )

    def _claim_slot(self, session, event_id: int, phone_number: str, now: dt.datetime) -> PoolSlot:
        while True:
            candidate = (
                session.query(PoolSlot.id)
                .filter(PoolSlot.event_id == event_id, PoolSlot.claimed_by_phone.is_(None))
                .order_by(PoolSlot.ordinal)
                .limit(1)
                .scalar()
            )
            if candidate is None:
                raise PoolExhausted(f"no unclaimed slots remain for event {event_id}")
            claimed = (
                session.query(PoolSlot)
                .filter(PoolSlot.id == candidate, PoolSlot.claimed_by_phone.is_(None))
                .update(
                    {PoolSlot.claimed_by_phone: phone_number, PoolSlot.claimed_at: now},
                    synchronize_session=False,
                )
            )
            if claimed == 1:
                return session.get(PoolSlot, candidate)
            logger.debug("Slot %s of event %s claimed concurrently; trying next", candidate, event_id)

    def participate(self, event_id: int, phone_number: str, verification_id: int) -> DrawBinding:
        phone = normalize_phone(phone_number)
        event = self._events.get_event(event_id)
        now = self._clock()
        if phase_of(event, now) is not Phase.ACTIVE:
            raise EventNotActive(f"event {event_id} is not accepting participants")
        self._verifications.require_verified(verification_id, event_id, phone)

        existing = self.find_binding(event_id, phone)
        if existing is not None:
            logger.info(
                "Event %s (***%s) re-entered; returning slot %s", event_id, phone_last4(phone), existing.slot_id
            )
            return existing
        if not event.has_pool:
            raise PoolNotGenerated(f"pool has not been generated for event {event_id}")

        try:
            with session_scope() as session:
                slot = self._claim_slot(session, event_id, phone, now)
                participation = Participation(
                    event_id=event_id,
                    phone_number=phone,
                    slot_id=slot.id,
                    won=slot.is_winning,
                    created_at=now,
                )
                session.add(participation)
                session.flush()
                binding = DrawBinding(
                    event_id=event_id,
                    phone_number=phone,
                    slot_id=slot.id,
                    lotto_numbers=slot.get_numbers(),
                    won=slot.is_winning,
                )
        except IntegrityError:
            # A concurrent call for the same phone committed first; our claim was rolled back.
            existing = self.find_binding(event_id, phone)
            if existing is None:
                raise
            logger.info(
                "Event %s (***%s) raced itself; returning slot %s", event_id, phone_last4(phone), existing.slot_id
            )
            return existing

        logger.info(
            "Event %s (***%s) assigned slot %s won=%s",
            event_id,
            phone_last4(phone),
            binding.slot_id,
            binding.won,
        )
        return binding
