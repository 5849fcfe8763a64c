# services/auth_service.py
import re
import logging
from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from config import ADMIN_EMAILS, ADMIN_USERNAMES, SYNTHETIC_EMAIL_DOMAIN
from services.errors import AuthError, DataClientError
from services.validation_service import is_email_like, new_row_id

logger = logging.getLogger(__name__)

AUTH_TABLE = "auth_users"
PROFILE_TABLE = "user_profiles"


def normalize_username(value):
    return re.sub(r"\s+", "", str(value or "").strip().lower())


def normalize_display_name(value):
    return re.sub(r"\s+", " ", str(value or "").strip())


def username_to_auth_email(value, domain=SYNTHETIC_EMAIL_DOMAIN):
    """Accounts sign in by username; the auth table is keyed by a synthetic email."""
    local_part = re.sub(r"[^a-z0-9._-]", "", normalize_username(value))
    return f"{local_part}@{domain}" if local_part else ""


def is_synthetic_email(email, domain=SYNTHETIC_EMAIL_DOMAIN):
    return str(email or "").lower().endswith("@" + domain)


def actor_display_name(value):
    raw = str(value or "").strip()
    if not raw:
        return "?"
    if "@" in raw:
        local = raw.split("@")[0]
        return re.sub(r"[._-]+", " ", local).strip() or local or raw
    return raw


def is_admin_identity(user, username_hint="", admin_usernames=None, admin_emails=None):
    """Role comes from metadata, or from the configured admin usernames/emails."""
    admin_usernames = ADMIN_USERNAMES if admin_usernames is None else admin_usernames
    admin_emails = ADMIN_EMAILS if admin_emails is None else admin_emails
    metadata = getattr(user, "metadata", None) or {}
    username = normalize_username(metadata.get("username") or username_hint)
    email = str(getattr(user, "email", "") or "").lower()
    role = str(metadata.get("role") or "").lower()
    return (
        role == "admin"
        or username in {normalize_username(u) for u in admin_usernames}
        or email in {e.lower() for e in admin_emails}
    )


class User(UserMixin):
    """An authenticated account as loaded from the auth table"""

    def __init__(self, row):
        self.id = str(row["id"])  # Flask-Login requires id to be a string
        self.email = row.get("email") or ""
        self.password_hash = row.get("password_hash")
        self.metadata = dict(row.get("user_metadata") or {})

    @classmethod
    def get(cls, client, user_id):
        rows = client.select(AUTH_TABLE, filters=[("id", "eq", str(user_id))], limit=1)
        return cls(rows[0]) if rows else None

    @classmethod
    def by_email(cls, client, email):
        rows = client.select(AUTH_TABLE, filters=[("email", "eq", email)], limit=1)
        return cls(rows[0]) if rows else None

    @property
    def username(self):
        return self.metadata.get("username") or self.email.split("@")[0]

    @property
    def display_name(self):
        return (
            normalize_display_name(self.metadata.get("full_name"))
            or normalize_display_name(self.metadata.get("name"))
            or self.username
        )

    @property
    def real_email(self):
        return self.metadata.get("real_email") or ""

    def is_admin(self):
        return is_admin_identity(self, self.username)

    def verify_password(self, password_plain):
        return check_password_hash(self.password_hash, password_plain) if self.password_hash else False

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.display_name,
            "email": self.email,
            "is_admin": self.is_admin(),
        }


def sign_up(client, name_raw, username_raw, real_email, password):
    password = "" if password is None else str(password)
    name = normalize_display_name(name_raw)
    username = normalize_username(username_raw)
    if not name or not username or not password:
        raise AuthError("Enter name + username + password")
    if not is_email_like(real_email):
        raise AuthError("Enter a valid email address")

    email = username_to_auth_email(username_raw)
    if not email:
        raise AuthError("Invalid username format")
    if User.by_email(client, email):
        raise AuthError("User already registered")

    client.insert(AUTH_TABLE, {
        "id": new_row_id(),
        "email": email,
        "password_hash": generate_password_hash(password),
        "user_metadata": {"username": username, "full_name": name, "real_email": str(real_email).strip()},
        "created_at": datetime.now(timezone.utc),
    })
    logger.info(f"Registered account {username}")
    return "Signed up. Now log in."


def sign_in(client, username_raw, password):
    password = "" if password is None else str(password)
    username = normalize_username(username_raw)
    if not username or not password:
        raise AuthError("Enter username + password")

    email = username_to_auth_email(username_raw)
    if not email:
        raise AuthError("Invalid username format")

    user = User.by_email(client, email)
    if user is None or not user.verify_password(password):
        raise AuthError("Invalid login credentials")
    return user


def upsert_current_user_profile(client, user, real_email=""):
    """Mirror the account into user_profiles, which the alert mailer reads."""
    if not user or not getattr(user, "id", None):
        return
    client.upsert(PROFILE_TABLE, {
        "user_id": user.id,
        "email": user.email or "",
        "real_email": real_email or user.real_email or user.email or "",
        "email_verified": False,
        "is_admin": user.is_admin(),
    }, on_conflict="user_id")


def load_profile_map_for_actor_ids(client, actor_ids):
    """Map auth user ids to their sign-in email; empty if lookup fails"""
    if not actor_ids:
        return {}
    try:
        rows = client.select(PROFILE_TABLE, columns="user_id,email",
                             filters=[("user_id", "in", list(actor_ids))])
    except DataClientError as e:
        logger.warning(f"Could not resolve actor names: {e}")
        return {}

    out = {}
    for row in rows:
        user_id = str(row.get("user_id") or "")
        if user_id:
            out[user_id] = str(row.get("email") or user_id)
    return out
