# routes/auth.py
import logging

from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from services.auth_service import sign_in, sign_up, upsert_current_user_profile
from services.csrf_service import generate_csrf_token
from services.db import get_data_client
from services.errors import DataClientError
from services.logging_service import log_audit
from services.validation_service import request_data

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.route('/signup', methods=['POST'])
def signup():
    data = request_data()
    message = sign_up(get_data_client(), data.get('name'), data.get('username'),
                      data.get('email'), data.get('password'))
    return jsonify({"message": message}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request_data()
    client = get_data_client()
    user = sign_in(client, data.get('username'), data.get('password'))
    login_user(user)
    try:
        upsert_current_user_profile(client, user, user.real_email)
    except DataClientError as e:
        logger.warning(f"Profile sync failed for {user.id}: {e}")
    log_audit("login", user.id, {"username": user.username})
    return jsonify({"message": "Logged in", "user": user.to_dict(), "csrf_token": generate_csrf_token()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    log_audit("logout", current_user.id)
    logout_user()
    return jsonify({"message": "Logged out"})


@auth_bp.route('/session')
def session_info():
    if not current_user.is_authenticated:
        return jsonify({"user": None})
    return jsonify({"user": current_user.to_dict()})


@auth_bp.route('/csrf')
def csrf():
    return jsonify({"csrf_token": generate_csrf_token()})
