from __future__ import annotations

import datetime as dt
import itertools
import json
import logging
import math
import random
import secrets
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import insert

from ..config import PoolSettings
from ..db import session_scope
from ..errors import EventNotReady, InvalidConfiguration, PoolAlreadyExists
from ..models import Event, PoolSlot, utcnow
from .events import EventRepository, validate_windows
from .phases import Phase, phase_of, resolve_phase

logger = logging.getLogger("lottoevent.pool")

NUMBERS_PER_SLOT = 6
BATCH_SIZE = 1_000


@dataclass(frozen=True)
class PoolSummary:
    event_id: int
    size: int
    winner_count: int
    number_domain: Tuple[int, int]
    generated_at: dt.datetime

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "size": self.size,
            "winner_count": self.winner_count,
            "number_domain": list(self.number_domain),
            "generated_at": self.generated_at.isoformat(),
        }


class PoolGenerator:
    """Builds the fixed set of outcome slots an event hands out."""

    def __init__(
        self,
        settings: Optional[PoolSettings] = None,
        events: Optional[EventRepository] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._settings = settings or PoolSettings()
        self._clock = clock or utcnow
        self._events = events or EventRepository(clock=self._clock)
        self._rng = rng or secrets.SystemRandom()

    def _validate(self, size: int, winner_count: int, low: int, high: int) -> None:
        if size < 1 or size > self._settings.max_size:
            raise InvalidConfiguration(f"pool size must be between 1 and {self._settings.max_size}")
        if winner_count < 0 or winner_count > size:
            raise InvalidConfiguration("winner count must be between 0 and the pool size")
        domain_size = high - low + 1
        if domain_size < NUMBERS_PER_SLOT:
            raise InvalidConfiguration(f"number domain must hold at least {NUMBERS_PER_SLOT} numbers")
        if size > math.comb(domain_size, NUMBERS_PER_SLOT):
            raise InvalidConfiguration("pool size exceeds the number of distinct number sets in the domain")

    def draw_number_sets(self, size: int, low: int, high: int) -> List[Tuple[int, ...]]:
        """Return ``size`` distinct sorted 6-number sets from ``low..high``."""
        domain = range(low, high + 1)
        total = math.comb(len(domain), NUMBERS_PER_SLOT)
        if size * 2 > total:
            # Dense pools: rejection sampling would stall near the end.
            return self._rng.sample(list(itertools.combinations(domain, NUMBERS_PER_SLOT)), size)

        seen = set()
        number_sets: List[Tuple[int, ...]] = []
        while len(number_sets) < size:
            candidate = tuple(sorted(self._rng.sample(domain, NUMBERS_PER_SLOT)))
            if candidate in seen:
                continue
            seen.add(candidate)
            number_sets.append(candidate)
        return number_sets

    def build_rows(
        self, event_id: int, number_sets: Sequence[Tuple[int, ...]], winner_count: int
    ) -> List[dict]:
        size = len(number_sets)
        flags = [True] * winner_count + [False] * (size - winner_count)
        self._rng.shuffle(flags)
        # Assignment order is independent of storage order and of the numbers.
        ordinals = list(range(size))
        self._rng.shuffle(ordinals)
        return [
            {
                "event_id": event_id,
                "ordinal": ordinal,
                "numbers": json.dumps(list(numbers)),
                "is_winning": is_winning,
                "claimed_by_phone": None,
                "claimed_at": None,
            }
            for numbers, is_winning, ordinal in zip(number_sets, flags, ordinals)
        ]

    def _insert_slots(self, session, rows: List[dict]) -> None:
        for start in range(0, len(rows), BATCH_SIZE):
            session.execute(insert(PoolSlot), rows[start:start + BATCH_SIZE])

    def generate_pool(
        self,
        event_id: int,
        size: int,
        winner_count: int,
        number_domain: Optional[Tuple[int, int]] = None,
    ) -> PoolSummary:
        low, high = number_domain or (self._settings.number_low, self._settings.number_high)
        self._validate(size, winner_count, low, high)

        event = self._events.get_event(event_id)
        now = self._clock()
        if phase_of(event, now) is not Phase.READY:
            raise EventNotReady(f"event {event_id} has already started; pool generation is closed")
        if event.has_pool:
            raise PoolAlreadyExists(f"pool already generated for event {event_id}")

        rows = self.build_rows(event_id, self.draw_number_sets(size, low, high), winner_count)

        with session_scope() as session:
            claimed = (
                session.query(Event)
                .filter(Event.id == event_id, Event.pool_size.is_(None))
                .update(
                    {Event.pool_size: size, Event.winner_count: winner_count, Event.pool_generated_at: now},
                    synchronize_session=False,
                )
            )
            if claimed != 1:
                raise PoolAlreadyExists(f"pool already generated for event {event_id}")
            self._insert_slots(session, rows)

        logger.info(
            "Generated pool for event %s: size=%s winners=%s domain=%s..%s",
            event_id,
            size,
            winner_count,
            low,
            high,
        )
        return PoolSummary(
            event_id=event_id,
            size=size,
            winner_count=winner_count,
            number_domain=(low, high),
            generated_at=now,
        )

    def create_event_with_pool(
        self,
        name: str,
        start_at: dt.datetime,
        end_at: dt.datetime,
        announce_start_at: dt.datetime,
        announce_end_at: dt.datetime,
        size: int,
        winner_count: int,
        number_domain: Optional[Tuple[int, int]] = None,
    ) -> Tuple[Event, PoolSummary]:
        """Insert a new event together with its pool; nothing persists if either fails."""
        validate_windows(start_at, end_at, announce_start_at, announce_end_at)
        low, high = number_domain or (self._settings.number_low, self._settings.number_high)
        self._validate(size, winner_count, low, high)
        now = self._clock()
        if resolve_phase(start_at, end_at, announce_start_at, announce_end_at, now) is not Phase.READY:
            raise EventNotReady("event has already started; pool generation is closed")

        number_sets = self.draw_number_sets(size, low, high)
        with session_scope() as session:
            event = Event(
                name=name,
                start_at=start_at,
                end_at=end_at,
                announce_start_at=announce_start_at,
                announce_end_at=announce_end_at,
                created_at=now,
                pool_size=size,
                winner_count=winner_count,
                pool_generated_at=now,
            )
            session.add(event)
            session.flush()
            self._insert_slots(session, self.build_rows(event.id, number_sets, winner_count))
            session.refresh(event)
            session.expunge(event)

        logger.info(
            "Created event %s with pool: size=%s winners=%s domain=%s..%s",
            event.id,
            size,
            winner_count,
            low,
            high,
        )
        summary = PoolSummary(
            event_id=event.id,
            size=size,
            winner_count=winner_count,
            number_domain=(low, high),
            generated_at=now,
        )
        return event, summary
