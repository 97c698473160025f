from __future__ import annotations

import re

from ..errors import InvalidPhoneNumber

_NON_DIGITS = re.compile(r"[^0-9]")
_PHONE_PATTERN = re.compile(r"^0\d{9,10}$")


def normalize_phone(phone_number: str) -> str:
    """Strip formatting and fold the +82 country code into a leading zero.

    ``+82 10-1234-5678`` and ``010-1234-5678`` both become ``01012345678``.
    """
    if not isinstance(phone_number, str):
        raise InvalidPhoneNumber()
    digits = _NON_DIGITS.sub("", phone_number)
    if digits.startswith("82"):
        digits = "0" + digits[2:]
    if not _PHONE_PATTERN.match(digits):
        raise InvalidPhoneNumber(f"invalid phone number: {phone_number!r}")
    return digits


def phone_last4(phone_number: str) -> str:
    return phone_number[-4:]
