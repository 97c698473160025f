from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


def _int_from_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {key} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class FlaskSettings:
    secret_key: str = "lottoevent-dev-secret"
    debug: bool = True


@dataclass(frozen=True)
class VerificationSettings:
    code_length: int = 6
    ttl_seconds: int = 180
    max_attempts: int = 5


@dataclass(frozen=True)
class PoolSettings:
    max_size: int = 100_000
    number_low: int = 1
    number_high: int = 45


@dataclass(frozen=True)
class SmsSettings:
    gateway_url: Optional[str] = None
    api_key: Optional[str] = None
    sender: Optional[str] = None
    timeout_seconds: int = 10


@dataclass(frozen=True)
class AppSettings:
    flask: FlaskSettings
    verification: VerificationSettings
    pool: PoolSettings
    sms: SmsSettings
    database_url: str
    admin_api_key: Optional[str]


@lru_cache(maxsize=1)
def load_settings(dotenv_path: Optional[str] = None) -> AppSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    flask_settings = FlaskSettings(
        secret_key=os.getenv("FLASK_SECRET_KEY", "lottoevent-dev-secret"),
        debug=os.getenv("FLASK_DEBUG", "1") == "1",
    )

    verification_settings = VerificationSettings(
        code_length=_int_from_env("VERIFICATION__CODE_LENGTH", 6),
        ttl_seconds=_int_from_env("VERIFICATION__TTL_SECONDS", 180),
        max_attempts=_int_from_env("VERIFICATION__MAX_ATTEMPTS", 5),
    )

    pool_settings = PoolSettings(
        max_size=_int_from_env("POOL__MAX_SIZE", 100_000),
        number_low=_int_from_env("POOL__NUMBER_LOW", 1),
        number_high=_int_from_env("POOL__NUMBER_HIGH", 45),
    )

    sms_settings = SmsSettings(
        gateway_url=os.getenv("SMS__GATEWAY_URL") or None,
        api_key=os.getenv("SMS__API_KEY") or None,
        sender=os.getenv("SMS__SENDER") or None,
        timeout_seconds=_int_from_env("SMS__TIMEOUT_SECONDS", 10),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///lottoevent.db")
    admin_api_key = os.getenv("ADMIN_API_KEY")

    return AppSettings(
        flask=flask_settings,
        verification=verification_settings,
        pool=pool_settings,
        sms=sms_settings,
        database_url=database_url,
        admin_api_key=admin_api_key,
    )
