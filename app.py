# app.py
import atexit
import logging

import click
from flask import Flask, jsonify, redirect, url_for
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException

from routes.api import api_bp
from routes.auth import auth_bp
from routes.functions import functions_bp
from services.auth_service import User
from services.csrf_service import init_csrf
from services.db import PostgresDataClient, close_pool, configure_pool
from services.errors import DataClientError, InventoryError, SessionExpired
from services.init_db import init_db
from services.logging_service import configure_logging

logger = logging.getLogger(__name__)


def create_app(overrides=None, data_client=None):
    app = Flask(__name__)
    app.config.from_object("config")
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FILE"))
    if data_client is None:
        configure_pool(app.config["DATABASE_URL"], app.config.get("DB_POOL_SIZE", 10))
        data_client = PostgresDataClient()
        atexit.register(close_pool)
    app.extensions["data_client"] = data_client

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        try:
            return User.get(data_client, user_id)
        except DataClientError as e:
            logger.error(f"Could not restore session for {user_id}: {e}")
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        error = SessionExpired()
        return jsonify({"error": error.message}), error.status_code

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(functions_bp, url_prefix="/functions")

    init_csrf(app)

    @app.errorhandler(InventoryError)
    def handle_inventory_error(e):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e.message}")
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.route("/")
    def home():
        return redirect(url_for("auth.session_info"))

    @app.route("/healthz")
    def healthz():
        return jsonify({"status": "ok", "environment": app.config.get("ENVIRONMENT")})

    @app.cli.command("init-db")
    def init_db_command():
        """Create the inventory tables."""
        init_db()
        click.echo("Database schema initialized")

    logger.info(f"🚀 Inventory Check ready in {app.config.get('ENVIRONMENT')} mode (DEBUG={app.config.get('DEBUG')})")
    return app
