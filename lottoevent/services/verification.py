"""Phone verification with one-time numeric codes.

A code is bound to one (event, phone) pair, lives for a fixed TTL and can be
consumed exactly once. Issuing a new code for a pair retires the previous one.
State transitions are conditional updates, so concurrent verifies of the same
code are decided by the database rather than by the caller.
"""

from __future__ import annotations

import datetime as dt
import hmac
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import VerificationSettings
from ..db import session_scope
from ..errors import (
    AlreadyConsumed,
    EventNotActive,
    Expired,
    InvalidCode,
    LotteryEventError,
    Mismatch,
    NotVerified,
    SendFailed,
    TooManyAttempts,
    VerificationNotFound,
)
from ..models import VerificationCode, utcnow
from .events import EventRepository
from .phases import Phase, phase_of
from .phones import normalize_phone, phone_last4
from .sms import SmsSender

logger = logging.getLogger("lottoevent.verification")

CODE_MESSAGE = "[Lotto Event] Verification code: {code} (enter within {minutes} minutes)"


@dataclass(frozen=True)
class VerificationHandle:
    verification_id: int
    expires_at: dt.datetime


class VerificationService:
    def __init__(
        self,
        sender: SmsSender,
        settings: Optional[VerificationSettings] = None,
        events: Optional[EventRepository] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self._sender = sender
        self._settings = settings or VerificationSettings()
        self._clock = clock or utcnow
        self._events = events or EventRepository(clock=self._clock)

    def generate_code(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self._settings.code_length))

    def request_code(self, event_id: int, phone_number: str) -> VerificationHandle:
        phone = normalize_phone(phone_number)
        event = self._events.get_event(event_id)
        now = self._clock()
        if phase_of(event, now) is not Phase.ACTIVE:
            raise EventNotActive(f"event {event_id} is not accepting participants")

        code = self.generate_code()
        expires_at = now + dt.timedelta(seconds=self._settings.ttl_seconds)
        with session_scope() as session:
            # Retire any code still outstanding for this pair.
            session.query(VerificationCode).filter(
                VerificationCode.event_id == event_id,
                VerificationCode.phone_number == phone,
                VerificationCode.consumed.is_(False),
                VerificationCode.expires_at > now,
            ).update({VerificationCode.expires_at: now}, synchronize_session=False)

            record = VerificationCode(
                event_id=event_id,
                phone_number=phone,
                code=code,
                created_at=now,
                expires_at=expires_at,
                consumed=False,
                attempts=0,
            )
            session.add(record)
            session.flush()
            handle = VerificationHandle(verification_id=record.id, expires_at=record.expires_at)

        minutes = max(self._settings.ttl_seconds // 60, 1)
        try:
            self._sender.send(phone, CODE_MESSAGE.format(code=code, minutes=minutes))
        except Exception as exc:
            self._retire(handle.verification_id)
            logger.warning(
                "Verification %s for event %s (***%s) could not be sent: %s",
                handle.verification_id,
                event_id,
                phone_last4(phone),
                exc,
            )
            if isinstance(exc, SendFailed):
                raise
            raise SendFailed(f"failed to send verification code: {exc}") from exc

        logger.info(
            "Issued verification %s for event %s (***%s), expires %s",
            handle.verification_id,
            event_id,
            phone_last4(phone),
            handle.expires_at.isoformat(),
        )
        return handle

    def _retire(self, verification_id: int) -> None:
        with session_scope() as session:
            session.query(VerificationCode).filter(VerificationCode.id == verification_id).update(
                {VerificationCode.expires_at: VerificationCode.created_at}, synchronize_session=False
            )

    def _check_format(self, code: str) -> None:
        if not isinstance(code, str) or len(code) != self._settings.code_length or not code.isdigit():
            raise InvalidCode(f"verification code must be {self._settings.code_length} digits")

    def verify(self, verification_id: int, code: str) -> bool:
        self._check_format(code)
        now = self._clock()
        max_attempts = self._settings.max_attempts
        failure: Optional[LotteryEventError] = None

        with session_scope() as session:
            record = session.get(VerificationCode, verification_id)
            if record is None:
                failure = VerificationNotFound(f"verification {verification_id} not found")
            elif record.consumed:
                failure = AlreadyConsumed()
            elif now >= record.expires_at:
                failure = Expired()
            elif record.attempts >= max_attempts:
                failure = TooManyAttempts()
            elif not hmac.compare_digest(record.code, code):
                session.query(VerificationCode).filter(
                    VerificationCode.id == verification_id,
                    VerificationCode.consumed.is_(False),
                ).update({VerificationCode.attempts: VerificationCode.attempts + 1}, synchronize_session=False)
                failure = Mismatch()
            else:
                updated = (
                    session.query(VerificationCode)
                    .filter(
                        VerificationCode.id == verification_id,
                        VerificationCode.consumed.is_(False),
                        VerificationCode.attempts < max_attempts,
                        VerificationCode.expires_at > now,
                    )
                    .update(
                        {VerificationCode.consumed: True, VerificationCode.consumed_at: now},
                        synchronize_session=False,
                    )
                )
                if updated != 1:
                    # Lost a race with another verify of the same id.
                    session.refresh(record)
                    if not record.consumed and record.attempts >= max_attempts:
                        failure = TooManyAttempts()
                    else:
                        failure = AlreadyConsumed()

        if failure is not None:
            logger.info("Verification %s rejected: %s", verification_id, type(failure).__name__)
            raise failure

        logger.info("Verification %s confirmed", verification_id)
        return True

    def require_verified(self, verification_id: int, event_id: int, phone_number: str) -> None:
        with session_scope() as session:
            record = session.get(VerificationCode, verification_id)
            verified = (
                record is not None
                and record.consumed
                and record.event_id == event_id
                and record.phone_number == phone_number
            )
        if not verified:
            raise NotVerified(f"verification {verification_id} does not confirm this phone number")
