# services/notification_service.py
"""
Low-stock alert function.

Called once per low-stock crossing. It sends at most one successful alert per
consumable per UTC day, mails every admin that has a real address on file,
and writes the outcome of each attempt to notification_logs.
"""
import logging
from collections import namedtuple
from datetime import datetime, timezone

from config import BREVO_FROM_EMAIL, BREVO_FROM_NAME, SYNTHETIC_EMAIL_DOMAIN
from services.auth_service import PROFILE_TABLE, is_synthetic_email
from services.email_service import render_low_stock_email, send_transactional_email
from services.errors import DataClientError
from services.validation_service import new_row_id

logger = logging.getLogger(__name__)

LOG_TABLE = "notification_logs"
NOTIFICATION_TYPE = "low_stock"

NotifyResult = namedtuple("NotifyResult", ["status_code", "body"])


def is_low_stock_crossing(previous_on_hand, next_on_hand, min_level):
    """Above the minimum before, at or below it now"""
    return previous_on_hand > min_level and next_on_hand <= min_level


def start_of_day(now=None):
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def already_sent_today(client, consumable_id, now=None):
    """True when a 'sent' log exists for this item since midnight UTC"""
    try:
        rows = client.select(LOG_TABLE, columns="id", filters=[
            ("consumable_id", "eq", consumable_id),
            ("sent_at", "gte", start_of_day(now)),
            ("status", "eq", "sent"),
        ], limit=1)
    except DataClientError as e:
        # A failed check does not block the alert
        logger.error(f"Error checking notification logs: {e}")
        return False
    return bool(rows)


def admin_recipient_emails(profiles, domain=SYNTHETIC_EMAIL_DOMAIN):
    """Real mailbox addresses only; synthetic sign-in addresses are dropped"""
    emails = []
    for profile in profiles:
        email = profile.get("real_email")
        if email and "@" in email and not is_synthetic_email(email, domain) and email not in emails:
            emails.append(email)
    return emails


def record_attempt(client, payload, status, emails, error_message=None, now=None):
    try:
        client.insert(LOG_TABLE, {
            "id": new_row_id(),
            "consumable_id": payload["consumable_id"],
            "notification_type": NOTIFICATION_TYPE,
            "status": status,
            "sent_to_emails": list(emails),
            "trigger_value": payload.get("on_hand"),
            "error_message": error_message,
            "sent_at": now or datetime.now(timezone.utc),
        })
    except DataClientError as e:
        logger.error(f"Could not record {status} notification for {payload['consumable_id']}: {e}")


def notify_low_stock(client, payload, api_key, sender=None, mailer=send_transactional_email,
                     now=None, domain=SYNTHETIC_EMAIL_DOMAIN):
    """
    Email the admins about one consumable that dropped to its minimum.

    Returns NotifyResult(status_code, body); body is JSON-serializable and
    carries either "error" or "success"/"message".
    """
    if not api_key:
        return NotifyResult(500, {"error": "Missing BREVO_API_KEY in server configuration"})

    if not isinstance(payload, dict) or not payload.get("consumable_id") or not payload.get("name"):
        return NotifyResult(400, {"error": "Missing required fields"})

    now = now or datetime.now(timezone.utc)
    sender = sender or {"email": BREVO_FROM_EMAIL, "name": BREVO_FROM_NAME}
    try:
        if already_sent_today(client, payload["consumable_id"], now):
            return NotifyResult(200, {
                "success": True,
                "message": "Notification already sent today for this item",
            })

        try:
            profiles = client.select(PROFILE_TABLE, columns="user_id,real_email", filters=[
                ("real_email", "not_null", None),
                ("is_admin", "eq", True),
            ])
        except DataClientError as e:
            logger.error(f"Error fetching admin users: {e}")
            return NotifyResult(500, {"error": "Failed to fetch admin users"})

        if not profiles:
            record_attempt(client, payload, "failed", [], "No admin users found", now)
            return NotifyResult(400, {"error": "No admin users with email configured"})

        emails = admin_recipient_emails(profiles, domain)
        if not emails:
            record_attempt(client, payload, "failed", [], "No admin users with real email addresses", now)
            return NotifyResult(400, {"error": "No admin users with real email addresses configured"})

        response = mailer(
            api_key,
            sender,
            emails,
            f"LOW STOCK ALERT: {payload['name']}",
            render_low_stock_email(payload, sender.get("name") or BREVO_FROM_NAME),
        )
        if not response.ok:
            error = f"Brevo error: {response.status_code}"
            record_attempt(client, payload, "failed", emails, error, now)
            return NotifyResult(500, {"error": error})

        record_attempt(client, payload, "sent", emails, None, now)
        logger.info(f"Low stock notification for {payload['consumable_id']} sent to {len(emails)} admin(s)")
        return NotifyResult(200, {
            "success": True,
            "sent_to": emails,
            "message": f"Low stock notification sent to {len(emails)} admin(s)",
        })
    except Exception as e:
        logger.exception("Error in notify-low-stock function")
        return NotifyResult(500, {"error": str(e)})


def low_stock_notifier(client, config):
    """In-process stand-in for invoking the function over HTTP"""
    sender = {"email": config.get("BREVO_FROM_EMAIL", BREVO_FROM_EMAIL),
              "name": config.get("BREVO_FROM_NAME", BREVO_FROM_NAME)}

    def notifier(payload):
        return notify_low_stock(client, payload, api_key=config.get("BREVO_API_KEY"), sender=sender,
                                domain=config.get("SYNTHETIC_EMAIL_DOMAIN", SYNTHETIC_EMAIL_DOMAIN))
    return notifier
