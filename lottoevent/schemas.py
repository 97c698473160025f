from __future__ import annotations

import datetime as dt
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, validator

from .errors import InvalidPhoneNumber
from .services.phones import normalize_phone


def _naive_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


class PoolConfigRequest(BaseModel):
    size: int = Field(..., description="Total number of slots in the pool.")
    winner_count: int = Field(..., description="Exact number of winning slots.")
    number_low: Optional[int] = Field(None, description="Smallest lottery number, defaults to settings.")
    number_high: Optional[int] = Field(None, description="Largest lottery number, defaults to settings.")

    def number_domain(self, default_low: int, default_high: int) -> Tuple[int, int]:
        low = default_low if self.number_low is None else self.number_low
        high = default_high if self.number_high is None else self.number_high
        return low, high


class EventCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    start_at: dt.datetime
    end_at: dt.datetime
    announce_start_at: dt.datetime
    announce_end_at: dt.datetime
    pool: Optional[PoolConfigRequest] = None

    @validator("start_at", "end_at", "announce_start_at", "announce_end_at")
    def normalize_times(cls, value: dt.datetime) -> dt.datetime:
        return _naive_utc(value)


class PhoneRequest(BaseModel):
    event_id: int
    phone_number: str

    @validator("phone_number")
    def validate_phone(cls, value: str) -> str:
        try:
            return normalize_phone(value)
        except InvalidPhoneNumber as exc:
            raise ValueError(exc.message) from exc


class SendCodeRequest(PhoneRequest):
    pass


class SendCodeResponse(BaseModel):
    verification_id: int
    expires_at: str


class VerifyCodeRequest(BaseModel):
    verification_id: int
    code: str = Field(..., description="Numeric one-time code received by SMS.")


class ParticipateRequest(PhoneRequest):
    verification_id: int


class ParticipateResponse(BaseModel):
    phone_last4: str
    lotto_numbers: List[int]
    won: bool
    message: str


class CheckResultRequest(PhoneRequest):
    pass


class ResultResponse(BaseModel):
    first_check: bool
    won: bool
    result_label: str
    phone_last4: str
    lotto_numbers: Optional[List[int]] = None


class PoolStatsResponse(BaseModel):
    event_id: int
    phase: str
    pool_size: Optional[int] = None
    winner_count: Optional[int] = None
    slot_count: int
    winning_slots: int
    claimed_count: int
    remaining_count: int
    winners_claimed: int
    participant_count: int
    checked_count: int
