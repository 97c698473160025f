from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..services.events import EventRepository
from ..services.phases import Phase

bp = Blueprint("events", __name__)
event_repo = EventRepository()


@bp.get("")
def list_events():
    page = request.args.get("page", default=1, type=int)
    size = request.args.get("size", default=10, type=int)
    return jsonify(event_repo.list_events(page=page, size=size))


@bp.get("/active")
def get_active_event():
    event = event_repo.find_current(Phase.ACTIVE)
    if event is None:
        return jsonify({"active": False})
    return jsonify({"active": True, "event": event_repo.describe(event)})


@bp.get("/announcing")
def get_announcing_event():
    event = event_repo.find_current(Phase.ANNOUNCING)
    if event is None:
        return jsonify({"announcing": False})
    return jsonify({"announcing": True, "event": event_repo.describe(event)})


@bp.get("/<int:event_id>")
def get_event(event_id: int):
    event = event_repo.get_event(event_id)
    return jsonify(event_repo.describe(event))
