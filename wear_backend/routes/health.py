import platform
import time

from flask import current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..helpers import isoformat, utcnow


def ping_database():
    """Run ``SELECT 1`` and return the round trip in milliseconds."""
    started = time.perf_counter()
    db.session.execute(text("SELECT 1"))
    return round((time.perf_counter() - started) * 1000, 2)


def describe_pool():
    pool = db.engine.pool
    info = {"type": type(pool).__name__, "status": pool.status()}
    for key, method_name in (
        ("size", "size"),
        ("checkedOut", "checkedout"),
        ("checkedIn", "checkedin"),
        ("overflow", "overflow"),
    ):
        method = getattr(pool, method_name, None)
        if callable(method):
            info[key] = method()
    return info


def server_info():
    return {
        "uptime": round(time.time() - current_app.config["STARTED_AT"], 2),
        "python": platform.python_version(),
    }


def register_health_routes(app):
    @app.route("/health", methods=["GET"])
    @app.route("/api/health", methods=["GET"])
    def health_check():
        timestamp = isoformat(utcnow())
        try:
            response_time = ping_database()
        except SQLAlchemyError as exc:
            db.session.rollback()
            app.logger.error("Health check failed: %s", exc)
            return (
                jsonify(
                    {
                        "success": False,
                        "status": "unhealthy",
                        "timestamp": timestamp,
                        "database": {"status": "disconnected", "error": str(exc)},
                        "server": server_info(),
                    }
                ),
                503,
            )

        return jsonify(
            {
                "success": True,
                "status": "healthy",
                "timestamp": timestamp,
                "database": {"status": "connected", "responseTime": f"{response_time}ms"},
                "server": server_info(),
            }
        )

    @app.route("/health/db", methods=["GET"])
    @app.route("/api/health/db", methods=["GET"])
    def database_status():
        timestamp = isoformat(utcnow())
        try:
            response_time = ping_database()
        except SQLAlchemyError as exc:
            db.session.rollback()
            app.logger.error("Database status check failed: %s", exc)
            return (
                jsonify(
                    {
                        "success": False,
                        "status": "disconnected",
                        "error": str(exc),
                        "timestamp": timestamp,
                    }
                ),
                503,
            )

        return jsonify(
            {
                "success": True,
                "status": "connected",
                "responseTime": f"{response_time}ms",
                "pool": describe_pool(),
                "timestamp": timestamp,
            }
        )
