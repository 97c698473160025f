from __future__ import annotations

import datetime as dt
import math
from typing import Callable, Dict, Optional

from sqlalchemy import case, func

from ..db import session_scope
from ..errors import EventNotFound, InvalidEventWindow
from ..models import Event, Participation, PoolSlot, utcnow
from .phases import Phase, phase_of

MAX_PAGE_SIZE = 100


def validate_windows(
    start_at: dt.datetime,
    end_at: dt.datetime,
    announce_start_at: dt.datetime,
    announce_end_at: dt.datetime,
) -> None:
    if not start_at < end_at:
        raise InvalidEventWindow("participation start must be before participation end")
    if not end_at < announce_start_at:
        raise InvalidEventWindow("participation end must be before announcement start")
    if not announce_start_at < announce_end_at:
        raise InvalidEventWindow("announcement start must be before announcement end")


class EventRepository:
    def __init__(self, clock: Optional[Callable[[], dt.datetime]] = None) -> None:
        self._clock = clock or utcnow

    def now(self) -> dt.datetime:
        return self._clock()

    def create_event(
        self,
        name: str,
        start_at: dt.datetime,
        end_at: dt.datetime,
        announce_start_at: dt.datetime,
        announce_end_at: dt.datetime,
    ) -> Event:
        validate_windows(start_at, end_at, announce_start_at, announce_end_at)
        with session_scope() as session:
            event = Event(
                name=name,
                start_at=start_at,
                end_at=end_at,
                announce_start_at=announce_start_at,
                announce_end_at=announce_end_at,
                created_at=self.now(),
            )
            session.add(event)
            session.flush()
            session.refresh(event)
            session.expunge(event)
            return event

    def get_event(self, event_id: int) -> Event:
        with session_scope() as session:
            event = session.get(Event, event_id)
            if event is None:
                raise EventNotFound(f"event {event_id} not found")
            session.expunge(event)
            return event

    def describe(self, event: Event, now: Optional[dt.datetime] = None) -> Dict[str, object]:
        record = event.to_dict()
        record["phase"] = phase_of(event, now or self.now()).value
        return record

    def list_events(self, page: int = 1, size: int = 10) -> Dict[str, object]:
        page = max(page, 1)
        size = min(max(size, 1), MAX_PAGE_SIZE)
        now = self.now()
        with session_scope() as session:
            total = session.query(func.count(Event.id)).scalar() or 0
            events = (
                session.query(Event)
                .order_by(Event.start_at.desc(), Event.id.desc())
                .offset((page - 1) * size)
                .limit(size)
                .all()
            )
            records = [self.describe(event, now) for event in events]
        return {
            "events": records,
            "page": page,
            "size": size,
            "total": int(total),
            "total_pages": math.ceil(total / size) if total else 0,
        }

    def find_current(self, phase: Phase) -> Optional[Event]:
        """Return the most recently started event that is in ``phase`` right now."""
        now = self.now()
        with session_scope() as session:
            query = session.query(Event)
            if phase is Phase.ACTIVE:
                query = query.filter(Event.start_at <= now, Event.end_at > now)
            elif phase is Phase.ANNOUNCING:
                query = query.filter(Event.announce_start_at <= now, Event.announce_end_at > now)
            else:
                raise ValueError(f"unsupported phase lookup: {phase}")
            event = query.order_by(Event.start_at.desc()).first()
            if event:
                session.expunge(event)
            return event

    def pool_stats(self, event_id: int) -> Dict[str, object]:
        event = self.get_event(event_id)
        with session_scope() as session:
            row = (
                session.query(
                    func.count(PoolSlot.id).label("slot_count"),
                    func.sum(case((PoolSlot.is_winning.is_(True), 1), else_=0)).label("winning_count"),
                    func.sum(case((PoolSlot.claimed_by_phone.isnot(None), 1), else_=0)).label("claimed_count"),
                    func.sum(
                        case(
                            (PoolSlot.is_winning.is_(True) & PoolSlot.claimed_by_phone.isnot(None), 1),
                            else_=0,
                        )
                    ).label("winners_claimed"),
                )
                .filter(PoolSlot.event_id == event_id)
                .one()
            )
            participants = (
                session.query(func.count(Participation.id)).filter(Participation.event_id == event_id).scalar()
            )
            checked = (
                session.query(func.count(Participation.id))
                .filter(Participation.event_id == event_id, Participation.first_checked_at.isnot(None))
                .scalar()
            )

        slot_count = int(row.slot_count or 0)
        claimed_count = int(row.claimed_count or 0)
        return {
            "event_id": event.id,
            "phase": phase_of(event, self.now()).value,
            "pool_size": event.pool_size,
            "winner_count": event.winner_count,
            "slot_count": slot_count,
            "winning_slots": int(row.winning_count or 0),
            "claimed_count": claimed_count,
            "remaining_count": slot_count - claimed_count,
            "winners_claimed": int(row.winners_claimed or 0),
            "participant_count": int(participants or 0),
            "checked_count": int(checked or 0),
        }
