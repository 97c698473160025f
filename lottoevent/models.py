from __future__ import annotations

import datetime as dt
import json
from typing import List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, the form every datetime column stores."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    announce_start_at = Column(DateTime, nullable=False)
    announce_end_at = Column(DateTime, nullable=False)
    pool_size = Column(Integer, nullable=True)
    winner_count = Column(Integer, nullable=True)
    pool_generated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def has_pool(self) -> bool:
        return self.pool_size is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat(),
            "announce_start_at": self.announce_start_at.isoformat(),
            "announce_end_at": self.announce_end_at.isoformat(),
            "pool_size": self.pool_size,
            "winner_count": self.winner_count,
        }


class VerificationCode(Base):
    __tablename__ = "verification_codes"
    __table_args__ = (Index("ix_verification_codes_event_phone", "event_id", "phone_number"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    phone_number = Column(String(20), nullable=False)
    code = Column(String(12), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    consumed = Column(Boolean, nullable=False, default=False)
    consumed_at = Column(DateTime, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)


class PoolSlot(Base):
    __tablename__ = "pool_slots"
    __table_args__ = (
        UniqueConstraint("event_id", "ordinal", name="uq_pool_slots_event_ordinal"),
        Index("ix_pool_slots_event_claimed", "event_id", "claimed_by_phone", "ordinal"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    ordinal = Column(Integer, nullable=False)
    numbers = Column(Text, nullable=False)
    is_winning = Column(Boolean, nullable=False, default=False)
    claimed_by_phone = Column(String(20), nullable=True)
    claimed_at = Column(DateTime, nullable=True)

    def set_numbers(self, numbers: List[int]) -> None:
        self.numbers = json.dumps(sorted(numbers))

    def get_numbers(self) -> List[int]:
        return json.loads(self.numbers)


class Participation(Base):
    __tablename__ = "participations"
    __table_args__ = (UniqueConstraint("event_id", "phone_number", name="uq_participations_event_phone"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    phone_number = Column(String(20), nullable=False)
    slot_id = Column(Integer, ForeignKey("pool_slots.id"), nullable=False, unique=True)
    won = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    first_checked_at = Column(DateTime, nullable=True)
