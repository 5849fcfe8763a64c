# routes/functions.py
"""
Webhook-style functions callable from outside the browser session.
"""
import hmac
import logging

from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user

from services.db import get_data_client
from services.notification_service import notify_low_stock

logger = logging.getLogger(__name__)

functions_bp = Blueprint("functions", __name__, url_prefix="/functions")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


@functions_bp.after_request
def add_cors_headers(response):
    response.headers.update(CORS_HEADERS)
    return response


def _authorized():
    """Bearer secret for machine callers; a signed-in admin otherwise"""
    secret = current_app.config.get("NOTIFY_FUNCTION_SECRET")
    header = request.headers.get("Authorization", "")
    if secret and header.startswith("Bearer "):
        return hmac.compare_digest(header[len("Bearer "):], secret)
    return current_user.is_authenticated and current_user.is_admin()


@functions_bp.route("/notify-low-stock", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
def notify_low_stock_function():
    if request.method == "OPTIONS":
        return "ok", 200
    if request.method != "POST":
        return jsonify({"error": "Method not allowed"}), 405
    if not _authorized():
        return jsonify({"error": "Unauthorized"}), 401

    config = current_app.config
    result = notify_low_stock(
        get_data_client(),
        request.get_json(silent=True),
        api_key=config.get("BREVO_API_KEY"),
        sender={"email": config.get("BREVO_FROM_EMAIL"), "name": config.get("BREVO_FROM_NAME")},
        domain=config.get("SYNTHETIC_EMAIL_DOMAIN"),
    )
    if result.status_code >= 400:
        logger.warning(f"notify-low-stock answered {result.status_code}: {result.body.get('error')}")
    return jsonify(result.body), result.status_code
