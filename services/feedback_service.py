# services/feedback_service.py
from config import FEEDBACK_LIMIT
from services.errors import DataClientError, ValidationError
from services.logging_service import log_audit
from services.validation_service import clean_bool, clean_text, new_row_id
from services.view_state import ViewModel, utcnow

FEEDBACK_COLUMNS = "id,created_at,message,sender_name,sender_username,sender_user_id,resolved"


class FeedbackViewModel(ViewModel):
    """Admins see every entry; everyone else sees only what they sent."""
    table = "feedback_entries"

    def __init__(self, client, user, limit=FEEDBACK_LIMIT):
        super().__init__(client, user)
        self.limit = limit

    def fetch(self):
        filters = []
        if not self.is_admin:
            if self.user and self.user.id:
                filters.append(("sender_user_id", "eq", self.user.id))
            else:
                filters.append(("sender_username", "eq", self.actor_username))
        try:
            return self.client.select(self.table, columns=FEEDBACK_COLUMNS, filters=filters,
                                      order_by="created_at", descending=True, limit=self.limit)
        except DataClientError as e:
            raise DataClientError(f"Feedback load error: {e.message}")

    def submit(self, message):
        message = clean_text(message, max_length=4000)
        if not message:
            raise ValidationError("Message is required.", "message")

        row = {
            "id": new_row_id(),
            "message": message,
            "sender_name": self.actor_name,
            "sender_username": self.actor_username,
            "sender_user_id": self.user.id if self.user else None,
            "resolved": False,
        }
        self.stage({**row, "created_at": utcnow()})
        try:
            self.client.insert(self.table, row)
        except DataClientError as e:
            self.unstage(row["id"])
            raise DataClientError(f"Feedback send error: {e.message}")

        log_audit("feedback_submit", row["sender_user_id"], {"id": row["id"]})
        return "Feedback submitted"

    def toggle_resolved(self, feedback_id, resolved):
        self.require_admin()
        resolved = clean_bool(resolved)
        previous = self.patch_local(feedback_id, {"resolved": resolved})
        try:
            self.client.update(self.table, {"resolved": resolved}, [("id", "eq", feedback_id)])
        except DataClientError as e:
            if previous:
                self.restore(previous)
            raise DataClientError(f"Feedback update error: {e.message}")

        self.reload()
        return "Marked resolved" if resolved else "Marked unresolved"
