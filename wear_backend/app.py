import logging
import os
import time
from typing import Dict, Optional

from flask import Flask, send_from_directory
from flask_cors import CORS
from sqlalchemy import select
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import create_or_promote_admin
from .cli import register_cli
from .config import build_engine_options, load_config
from .extensions import db, jwt
from .errors import register_error_handlers
from .models import User
from .routes import register_routes

UPLOAD_CACHE_SECONDS = 60 * 60 * 24 * 365


def ensure_admin_account(app: Flask):
    """Create (or promote) the configured admin when no admin exists yet."""
    admin_email = app.config.get("ADMIN_EMAIL")
    admin_password = app.config.get("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        return None

    if db.session.scalar(select(User.id).where(User.is_admin.is_(True)).limit(1)):
        return None

    user, created = create_or_promote_admin(
        admin_email,
        admin_password,
        app.config["ADMIN_FIRST_NAME"],
        app.config["ADMIN_LAST_NAME"],
        reset_password=False,
    )
    if created:
        app.logger.info("Created admin account %s", admin_email)
    else:
        app.logger.info("Promoted existing user %s to admin", admin_email)
    return user


def create_app(overrides: Optional[Dict] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.update(load_config(app.root_path))
    if overrides:
        app.config.update(overrides)
        if "SQLALCHEMY_DATABASE_URI" in overrides and "SQLALCHEMY_ENGINE_OPTIONS" not in overrides:
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = build_engine_options(
                app.config["SQLALCHEMY_DATABASE_URI"]
            )

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]), logging.INFO))
    app.config["STARTED_AT"] = time.time()

    # Honor proxy headers so generated links keep the public origin.
    trusted_proxy_hops = app.config["TRUSTED_PROXY_HOPS"]
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # --- Initialize extensions ---
    CORS(app, supports_credentials=True, origins=app.config["CORS_ORIGINS"] or "*")
    db.init_app(app)
    jwt.init_app(app)

    register_error_handlers(app)
    register_routes(app)

    @app.route("/uploads/<path:filename>")
    def serve_uploaded_file(filename: str):
        return send_from_directory(
            app.config["UPLOAD_FOLDER"], filename, max_age=UPLOAD_CACHE_SECONDS
        )

    register_cli(app)

    if app.config["AUTO_CREATE_TABLES"]:
        with app.app_context():
            db.create_all()
            ensure_admin_account(app)

    return app
