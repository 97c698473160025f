from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..schemas import CheckResultRequest, ParticipateRequest, ParticipateResponse, ResultResponse
from ..services.draws import DrawAllocator
from ..services.results import ResultQueryService
from .verification import get_verification_service

bp = Blueprint("lotto", __name__)
result_service = ResultQueryService()


@bp.post("/participate")
def participate():
    payload = request.get_json(force=True, silent=True) or {}
    data = ParticipateRequest(**payload)

    allocator = DrawAllocator(get_verification_service())
    binding = allocator.participate(data.event_id, data.phone_number, data.verification_id)
    response = ParticipateResponse(**binding.to_response())
    return jsonify(response.dict())


@bp.post("/result")
def check_result():
    payload = request.get_json(force=True, silent=True) or {}
    data = CheckResultRequest(**payload)

    result = result_service.check_result(data.event_id, data.phone_number)
    response = ResultResponse(**result)
    return jsonify(response.dict(exclude_none=True))
