from __future__ import annotations

from functools import lru_cache

from flask import Blueprint, jsonify, request

from ..config import load_settings
from ..schemas import SendCodeRequest, SendCodeResponse, VerifyCodeRequest
from ..services.sms import SmsSender, build_sender
from ..services.verification import VerificationService

bp = Blueprint("verification", __name__)


@lru_cache(maxsize=1)
def get_sms_sender() -> SmsSender:
    return build_sender(load_settings().sms)


def get_verification_service() -> VerificationService:
    return VerificationService(get_sms_sender(), settings=load_settings().verification)


@bp.post("/send")
def send_code():
    payload = request.get_json(force=True, silent=True) or {}
    data = SendCodeRequest(**payload)

    handle = get_verification_service().request_code(data.event_id, data.phone_number)
    response = SendCodeResponse(
        verification_id=handle.verification_id,
        expires_at=handle.expires_at.isoformat(),
    )
    return jsonify(response.dict())


@bp.post("/verify")
def verify_code():
    payload = request.get_json(force=True, silent=True) or {}
    data = VerifyCodeRequest(**payload)

    verified = get_verification_service().verify(data.verification_id, data.code)
    return jsonify({"verified": verified})
