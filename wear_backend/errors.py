from flask import jsonify
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from .extensions import db


def register_error_handlers(app):
    @app.errorhandler(404)
    def handle_not_found(_error):
        return jsonify({"success": False, "message": "Route not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_error):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(413)
    def handle_payload_too_large(_error):
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return (
            jsonify(
                {
                    "success": False,
                    "message": f"Upload is too large. The limit is {limit_mb} MB.",
                }
            ),
            413,
        )

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        app.logger.warning("Integrity error: %s", error.orig)
        return (
            jsonify({"success": False, "message": "A record with these values already exists"}),
            400,
        )

    @app.errorhandler(OperationalError)
    def handle_database_error(error):
        db.session.rollback()
        app.logger.error("Database error: %s", error.orig)
        return jsonify({"success": False, "message": "Database error"}), 500

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return (
            jsonify({"success": False, "message": error.description or error.name}),
            error.code or 500,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.exception("Unhandled error: %s", error)
        return jsonify({"success": False, "message": "Internal server error"}), 500
