# services/csrf_service.py
"""
Session-bound CSRF tokens for the JSON API.
The browser reads a token from /auth/login or /auth/csrf and sends it back in
the X-CSRF-Token header on every state-changing request.
"""
import hmac
import logging
import secrets

from flask import abort, current_app, request, session

logger = logging.getLogger(__name__)

SESSION_KEY = '_csrf_token'
HEADER_NAME = 'X-CSRF-Token'
SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS')
EXEMPT_PATHS = ('/auth/login', '/auth/signup')
EXEMPT_PREFIXES = ('/functions/',)


def generate_csrf_token():
    """Token for this session, created on first use"""
    token = session.get(SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[SESSION_KEY] = token
    return token


def validate_csrf_token(token):
    expected = session.get(SESSION_KEY)
    if not token or not expected:
        return False
    return hmac.compare_digest(str(token), expected)


def _is_exempt(path):
    # Login/signup have no session yet; the webhook authenticates with a bearer secret
    return path in EXEMPT_PATHS or path.startswith(EXEMPT_PREFIXES)


def init_csrf(app):
    """Refuse unsafe requests without a matching token while CSRF_ENABLED is on."""

    @app.before_request
    def check_csrf_token():
        if not current_app.config.get('CSRF_ENABLED', True):
            return None
        if request.method in SAFE_METHODS or _is_exempt(request.path):
            return None

        if not validate_csrf_token(request.headers.get(HEADER_NAME)):
            logger.warning(f"CSRF validation failed: {request.method} {request.path} from {request.remote_addr}")
            abort(403, description="CSRF token validation failed. Please refresh the page and try again.")
        return None

    return app
