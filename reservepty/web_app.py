from __future__ import annotations

from datetime import datetime, timedelta
from functools import wraps
from pathlib import Path
from typing import Any, Callable
import logging

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from . import views
from .admission import AdmissionError, Requester, cancel_reservation, create_reservation
from .auth import DuplicateEmail, IdentityProvider, Unauthenticated, extract_bearer
from .config import get_config
from .locations import list_airports, list_ports
from .timeslots import parse_timestamp
from .yaml_store import ReservationStorageError, ReservePtyYamlRepository

logger = logging.getLogger(__name__)


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    config_name: str | None = None,
) -> Flask:
    settings = get_config(config_name)
    if hasattr(settings, "validate"):
        settings.validate()

    app = Flask(__name__)
    app.config.from_object(settings)
    _configure_logging(app)

    repository = ReservePtyYamlRepository(data_dir or app.config["DATA_DIR"])
    identity = IdentityProvider(
        repository,
        secret_key=app.config["SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
        expires_days=app.config["JWT_EXPIRES_DAYS"],
    )
    clock: Callable[[], datetime] = now_provider or datetime.now
    app.extensions["reservepty.repository"] = repository
    app.extensions["reservepty.identity"] = identity

    def authenticated(handler: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(handler)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                g.user = identity.resolve_user(extract_bearer(request.headers.get("Authorization")))
            except Unauthenticated as error:
                return _error(str(error), error.status_code)
            g.requester = Requester.from_user(g.user)
            return handler(*args, **kwargs)

        return wrapper

    @app.before_request
    def log_request() -> None:
        logger.debug("%s %s", request.method, request.path)

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = app.config["CORS_ORIGIN"]
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization"
        return response

    @app.errorhandler(404)
    def not_found(_exc: Any) -> Any:
        return _error("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(_exc: Any) -> Any:
        return _error("Method not allowed", 405)

    @app.errorhandler(Exception)
    def unhandled(error: Exception) -> Any:
        if isinstance(error, HTTPException):
            return _error(error.description or error.name, error.code or 500)
        logger.exception("Unhandled error: %s", error)
        return _error("Internal server error", 500)

    @app.get("/api/health")
    def health() -> Any:
        available = repository.is_available()
        return jsonify(
            {
                "status": "ok",
                "service": app.config["APP_NAME"],
                "timestamp": clock().isoformat(timespec="seconds"),
                "database": "connected" if available else "disconnected",
            }
        )

    # Auth

    @app.post("/api/auth/register")
    def register() -> Any:
        payload = request.get_json(silent=True) or {}
        email = str(payload.get("email", "")).strip()
        password = str(payload.get("password", ""))
        name = str(payload.get("name", "")).strip()
        family_id = payload.get("familyId")
        if not email or not password or not name:
            return _error("email, password and name are required", 400)

        try:
            user, token = identity.register(email, password, name, family_id=family_id, now=clock())
        except DuplicateEmail as error:
            return _error(str(error), error.status_code)
        except AdmissionError as error:
            return _error(error.message, error.status_code)
        except ValueError as error:
            return _error(str(error), 400)

        return jsonify({"user": user.to_public_dict(), "token": token})

    @app.post("/api/auth/login")
    def login() -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            user, token = identity.login(str(payload.get("email", "")), str(payload.get("password", "")))
        except Unauthenticated as error:
            return _error(str(error), error.status_code)

        return jsonify({"user": user.to_public_dict(), "token": token})

    @app.get("/api/auth/me")
    @authenticated
    def me() -> Any:
        return jsonify(g.user.to_public_dict())

    # Families

    @app.get("/api/families/mine")
    @authenticated
    def my_family() -> Any:
        if not g.user.family_id:
            return jsonify(None)
        family = repository.get_family(g.user.family_id)
        return jsonify(family.to_dict() if family else None)

    @app.get("/api/families/<family_id>/members")
    @authenticated
    def family_members(family_id: str) -> Any:
        if family_id != g.user.family_id:
            return _error("Family not found", 404)
        return jsonify([member.to_public_dict() for member in repository.list_family_members(family_id)])

    # Assets

    @app.get("/api/assets")
    @authenticated
    def list_assets() -> Any:
        return jsonify(views.asset_summaries(repository, g.user.family_id, clock()))

    @app.get("/api/assets/<asset_id>")
    @authenticated
    def get_asset(asset_id: str) -> Any:
        asset = repository.find_asset(asset_id, g.user.family_id)
        if asset is None:
            return _error("Asset not found", 404)
        return jsonify(views.serialize_asset(asset))

    @app.post("/api/assets")
    @authenticated
    def add_asset() -> Any:
        if g.user.tier > 1:
            return _error("Only tier 1 members can create assets", 403)
        if not g.user.family_id:
            return _error("Only family members can create assets", 403)

        payload = request.get_json(silent=True) or {}
        metadata = payload.get("metadata") or {}
        if not isinstance(metadata, dict):
            return _error("metadata must be an object", 400)

        try:
            created = repository.add_asset(
                family_id=g.user.family_id,
                name=str(payload.get("name", "")),
                asset_type=str(payload.get("type", "")),
                location=payload.get("location"),
                image_url=payload.get("imageUrl"),
                metadata=metadata,
                now=clock(),
            )
        except ValueError as error:
            return _error(str(error), 400)

        return jsonify(views.serialize_asset(created))

    # Reservations

    @app.get("/api/reservations")
    @authenticated
    def list_reservations() -> Any:
        return jsonify(
            views.list_reservations(
                repository,
                g.user.family_id,
                clock(),
                asset_id=request.args.get("assetId"),
                status=request.args.get("status"),
                upcoming=request.args.get("upcoming") == "true",
            )
        )

    @app.get("/api/reservations/mine")
    @authenticated
    def list_my_reservations() -> Any:
        return jsonify(views.my_reservations(repository, g.user.user_id))

    @app.post("/api/reservations")
    @authenticated
    def reserve() -> Any:
        payload = request.get_json(silent=True) or {}
        asset_id = str(payload.get("assetId", "")).strip()
        if not asset_id:
            return _error("assetId is required", 400)

        try:
            start = parse_timestamp(payload.get("startDate"))
            end = parse_timestamp(payload.get("endDate"))
        except (TypeError, ValueError):
            return _error("startDate and endDate must be ISO 8601 timestamps", 400)

        metadata = payload.get("metadata") or {}
        if not isinstance(metadata, dict):
            return _error("metadata must be an object", 400)

        try:
            created = create_reservation(
                repository,
                g.requester,
                asset_id,
                start,
                end,
                notes=payload.get("notes"),
                metadata=metadata,
                now=clock(),
            )
        except AdmissionError as error:
            return _error(error.message, error.status_code)
        except ReservationStorageError:
            logger.exception("Create reservation failed")
            return _error("Failed to create reservation", 500)

        return jsonify(created.to_dict())

    @app.patch("/api/reservations/<reservation_id>/cancel")
    @authenticated
    def cancel(reservation_id: str) -> Any:
        try:
            cancelled = cancel_reservation(repository, g.user.user_id, reservation_id, now=clock())
        except AdmissionError as error:
            return _error(error.message, error.status_code)
        except ReservationStorageError:
            logger.exception("Cancel reservation failed")
            return _error("Failed to cancel reservation", 500)

        return jsonify(cancelled.to_dict())

    # Calendar and stats

    @app.get("/api/calendar")
    @authenticated
    def calendar() -> Any:
        try:
            window_start = parse_timestamp(request.args.get("start"))
            window_end = parse_timestamp(request.args.get("end"))
        except (TypeError, ValueError):
            return _error("start and end must be ISO 8601 timestamps", 400)
        if window_start > window_end:
            return _error("start must not be after end", 400)
        max_days = app.config["CALENDAR_MAX_DAYS"]
        if window_end - window_start > timedelta(days=max_days):
            return _error(f"Calendar window cannot exceed {max_days} days", 400)

        return jsonify(
            {
                "window_start": window_start.isoformat(timespec="seconds"),
                "window_end": window_end.isoformat(timespec="seconds"),
                "events": views.calendar_events(
                    repository,
                    g.user.family_id,
                    window_start,
                    window_end,
                    asset_id=request.args.get("assetId"),
                ),
                "holidays": views.holidays_between(window_start, window_end, app.config["HOLIDAY_COUNTRY"]),
            }
        )

    @app.get("/api/stats")
    @authenticated
    def stats() -> Any:
        return jsonify(views.family_stats(repository, g.user.family_id, clock()))

    # Booking flow lookups

    @app.get("/api/airports")
    def airports() -> Any:
        return jsonify(list_airports())

    @app.get("/api/ports")
    def ports() -> Any:
        return jsonify(list_ports())

    return app


def _error(message: str, status_code: int) -> Any:
    return jsonify({"ok": False, "message": message}), status_code


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("reservepty").setLevel(level)


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=3001, debug=False)
