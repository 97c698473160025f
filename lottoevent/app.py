from __future__ import annotations

from flask import Flask, jsonify
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from . import db
from .config import load_settings
from .errors import LotteryEventError
from .models import Base
from .routes.admin import bp as admin_bp
from .routes.events import bp as events_bp
from .routes.health import bp as health_bp
from .routes.lotto import bp as lotto_bp
from .routes.verification import bp as verification_bp


def create_app() -> Flask:
    settings = load_settings()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.flask.secret_key
    engine = db.configure_engine(settings.database_url)
    Base.metadata.create_all(engine)

    app.register_blueprint(health_bp)
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(verification_bp, url_prefix="/api/verification")
    app.register_blueprint(lotto_bp, url_prefix="/api/lotto")
    app.register_blueprint(admin_bp, url_prefix="/admin/api")

    @app.teardown_appcontext
    def remove_session(exc=None):
        db.SessionLocal.remove()

    @app.errorhandler(LotteryEventError)
    def handle_domain_error(exc: LotteryEventError):
        if exc.status_code >= 500:
            app.logger.warning("%s: %s", type(exc).__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(PydanticValidationError)
    def handle_invalid_payload(exc: PydanticValidationError):
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return jsonify({"error": "invalid request payload", "kind": "ValidationError", "details": errors}), 400

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "internal server error"}), 500

    return app
