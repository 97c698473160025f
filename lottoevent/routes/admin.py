from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..config import load_settings
from ..schemas import EventCreateRequest, PoolConfigRequest, PoolStatsResponse
from ..services.events import EventRepository
from ..services.pool import PoolGenerator

bp = Blueprint("admin", __name__)
event_repo = EventRepository()


def _require_admin() -> bool:
    settings = load_settings()
    api_key = settings.admin_api_key
    if api_key:
        provided = request.headers.get("X-Admin-Token")
        if provided != api_key:
            return False
    return True


def _pool_generator() -> PoolGenerator:
    return PoolGenerator(settings=load_settings().pool, events=event_repo)


def _generate(event_id: int, config: PoolConfigRequest) -> dict:
    settings = load_settings().pool
    summary = _pool_generator().generate_pool(
        event_id,
        size=config.size,
        winner_count=config.winner_count,
        number_domain=config.number_domain(settings.number_low, settings.number_high),
    )
    return summary.to_dict()


@bp.before_request
def verify_admin():
    if not _require_admin():
        return jsonify({"error": "unauthorized"}), 401
    return None


@bp.get("/events")
def list_events():
    page = request.args.get("page", default=1, type=int)
    size = request.args.get("size", default=20, type=int)
    return jsonify(event_repo.list_events(page=page, size=size))


@bp.post("/events")
def create_event():
    payload = request.get_json(force=True, silent=True) or {}
    data = EventCreateRequest(**payload)

    windows = dict(
        name=data.name,
        start_at=data.start_at,
        end_at=data.end_at,
        announce_start_at=data.announce_start_at,
        announce_end_at=data.announce_end_at,
    )
    if data.pool is None:
        event = event_repo.create_event(**windows)
        body = {"event": event_repo.describe(event)}
    else:
        settings = load_settings().pool
        event, summary = _pool_generator().create_event_with_pool(
            size=data.pool.size,
            winner_count=data.pool.winner_count,
            number_domain=data.pool.number_domain(settings.number_low, settings.number_high),
            **windows,
        )
        body = {"event": event_repo.describe(event), "pool": summary.to_dict()}
    current_app.logger.info("Created event %s (%s)", event.id, event.name)
    return jsonify(body), 201


@bp.post("/events/<int:event_id>/pool")
def generate_pool(event_id: int):
    payload = request.get_json(force=True, silent=True) or {}
    data = PoolConfigRequest(**payload)
    return jsonify(_generate(event_id, data)), 201


@bp.get("/events/<int:event_id>/stats")
def pool_stats(event_id: int):
    stats = event_repo.pool_stats(event_id)
    return jsonify(PoolStatsResponse(**stats).dict())
