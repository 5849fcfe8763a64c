# services/view_state.py
"""
Optimistic local state reconciled against the data client.

A view-model keeps the rows a page is showing. Mutations change the local
copy first, then send the request; a failed request puts the local copy back
and raises, a successful one re-reads the table so the local copy matches
what the server stored.
"""
import logging
from datetime import datetime, timezone

from services.errors import PermissionDenied, SessionExpired

logger = logging.getLogger(__name__)

NO_PRIVILEGE = "You don't have privilege, please contact admin"


def utcnow():
    return datetime.now(timezone.utc)


def serialize(row):
    """Display row with timestamps as ISO strings, ready for jsonify"""
    return {key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in row.items()}


class ViewModel:
    table = None

    def __init__(self, client, user):
        self.client = client
        self.user = user
        self.rows = []

    @property
    def is_admin(self):
        return bool(self.user) and self.user.is_admin()

    @property
    def actor_id(self):
        if not self.user or not getattr(self.user, "id", None):
            raise SessionExpired()
        return self.user.id

    @property
    def actor_username(self):
        return (self.user.username if self.user else "") or "unknown"

    @property
    def actor_name(self):
        if not self.user:
            return "Unknown"
        return self.user.display_name or self.user.username or "Unknown"

    def require_admin(self, message=NO_PRIVILEGE):
        if not self.is_admin:
            raise PermissionDenied(message)

    def fetch(self):
        """Read the rows for this page from the server."""
        raise NotImplementedError

    def load(self):
        self.rows = self.fetch()
        return self.rows

    reload = load

    def find(self, row_id):
        for row in self.rows:
            if row["id"] == row_id:
                return row
        return None

    # Optimistic primitives

    def stage(self, row):
        self.rows.insert(0, row)

    def unstage(self, row_id):
        self.rows = [row for row in self.rows if row["id"] != row_id]

    def patch_local(self, row_id, changes):
        """Apply changes to the local row; returns the previous version."""
        for index, row in enumerate(self.rows):
            if row["id"] == row_id:
                self.rows[index] = {**row, **changes}
                return row
        return None

    def restore(self, previous):
        for index, row in enumerate(self.rows):
            if row["id"] == previous["id"]:
                self.rows[index] = previous
                return

    def drop_local(self, row_id):
        for index, row in enumerate(self.rows):
            if row["id"] == row_id:
                del self.rows[index]
                return index, row
        return None, None

    def reinsert(self, index, row):
        self.rows.insert(index, row)


def sort_stamp(value):
    """Sort key for timestamps that may be naive, aware or missing"""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return 0
