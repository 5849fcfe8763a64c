# services/consumables_service.py
"""
Consumable stock per location, and the hook into low-stock alerts.
"""
import logging

from config import CONSUMABLE_LOCATIONS, RECENT_CONSUMABLES_LIMIT
from services.errors import DataClientError
from services.logging_service import log_audit
from services.notification_service import is_low_stock_crossing
from services.validation_service import clean_int, clean_text, new_row_id, require_text
from services.view_state import ViewModel, sort_stamp, utcnow

logger = logging.getLogger(__name__)

NOTIFY_MESSAGE_LIMIT = 220


def map_db_consumable(row, locations=None):
    default_location = (locations or CONSUMABLE_LOCATIONS or [""])[0]
    return {
        "id": str(row["id"]),
        "name": str(row.get("name") or ""),
        "category": str(row.get("category") or ""),
        "unit": str(row.get("unit") or "pcs"),
        "location": str(row.get("location") or default_location),
        "on_hand": clean_int(row.get("on_hand")),
        "min_level": clean_int(row.get("min_level")),
        "changed_by_name": str(row.get("updated_by_name") or ""),
        "changed_by_username": str(row.get("updated_by_username") or ""),
        "updated_at": row.get("updated_at") or utcnow(),
    }


def is_low(consumable):
    return consumable["on_hand"] <= consumable["min_level"]


class ConsumablesViewModel(ViewModel):
    table = "consumables_items"

    def __init__(self, client, user, notifier=None, locations=None):
        super().__init__(client, user)
        self.notifier = notifier
        self.locations = list(locations or CONSUMABLE_LOCATIONS)

    def fetch(self):
        try:
            rows = self.client.select(self.table, order_by="created_at")
        except DataClientError as e:
            raise DataClientError(f"Consumables load error: {e.message}")
        return [map_db_consumable(row, self.locations) for row in rows]

    @property
    def stats(self):
        total = len(self.rows)
        low = sum(1 for row in self.rows if is_low(row))
        return {"total": total, "low": low, "healthy": total - low}

    def low_rows(self):
        return [row for row in self.rows if is_low(row)]

    def recent(self, limit=RECENT_CONSUMABLES_LIMIT):
        ordered = sorted(self.rows, key=lambda row: sort_stamp(row["updated_at"]), reverse=True)
        return ordered[:limit]

    def by_location(self, location):
        if not location:
            return []
        return [row for row in self.rows if row["location"] == location]

    def add_consumable(self, form):
        self.require_admin()
        name = require_text(form.get("name"), "Name is required.", "name")

        row = {
            "id": new_row_id(),
            "name": name,
            "category": clean_text(form.get("category")),
            "unit": clean_text(form.get("unit")) or "pcs",
            "location": clean_text(form.get("location")) or self.locations[0],
            "on_hand": clean_int(form.get("on_hand"), min_val=0),
            "min_level": clean_int(form.get("min_level"), min_val=0),
            "updated_by_name": self.actor_name,
            "updated_by_username": self.actor_username,
        }
        self.stage(map_db_consumable({**row, "updated_at": utcnow()}, self.locations))
        try:
            self.client.insert(self.table, row)
        except DataClientError as e:
            self.unstage(row["id"])
            raise DataClientError(f"Consumable add error: {e.message}")

        log_audit("consumable_add", self.actor_id, {"id": row["id"], "name": name})
        self.reload()
        return "Consumable added"

    def adjust_consumable(self, consumable_id, delta):
        """
        Move on-hand stock by delta (never below zero).
        Returns the message to show, or None when the id is unknown.
        """
        current = self.find(consumable_id)
        if current is None:
            return None

        delta = int(delta)
        current_on_hand = current["on_hand"]
        min_level = current["min_level"]
        next_on_hand = max(0, current_on_hand + delta)
        now = utcnow()

        previous = self.patch_local(consumable_id, {
            "on_hand": next_on_hand,
            "updated_at": now,
            "changed_by_name": self.actor_name,
            "changed_by_username": self.actor_username,
        })
        try:
            self.client.update(self.table, {
                "on_hand": next_on_hand,
                "updated_at": now,
                "updated_by_name": self.actor_name,
                "updated_by_username": self.actor_username,
            }, [("id", "eq", consumable_id)])
        except DataClientError as e:
            self.restore(previous)
            raise DataClientError(f"Consumable update error: {e.message}")

        message = "Stock updated"
        was_above_min = current_on_hand > min_level
        if delta < 0 and not self.is_admin:
            message = "No email trigger: you are not admin."
        elif delta < 0 and not was_above_min:
            message = "No email trigger: item was already at/below min level."
        elif delta < 0 and next_on_hand > min_level:
            message = f"No email trigger: stock is still above min ({next_on_hand} > {min_level})."

        if is_low_stock_crossing(current_on_hand, next_on_hand, min_level) and self.is_admin:
            message = self._trigger_low_stock(current, next_on_hand) or message

        self.reload()
        return message

    def _trigger_low_stock(self, current, next_on_hand):
        if self.notifier is None:
            logger.warning("Low-stock crossing for %s but no notifier is configured", current["id"])
            return None

        payload = {
            "consumable_id": current["id"],
            "name": current["name"] or "Unknown",
            "on_hand": next_on_hand,
            "min_level": current["min_level"],
            "location": current["location"] or "Unknown",
            "unit": current["unit"] or "pcs",
            "updated_by_name": self.actor_name,
        }
        try:
            result = self.notifier(payload)
        except Exception:
            logger.exception("Failed to trigger low-stock notification")
            return "Low-stock email trigger failed. Check server logs."

        body = result.body or {}
        if result.status_code >= 400:
            detail = str(body.get("error") or body.get("message") or "")
            logger.error(f"notify-low-stock returned {result.status_code}: {detail}")
            message = f"Low-stock email failed: {detail}" if detail else \
                "Low-stock email trigger failed. Check server logs."
            return message[:NOTIFY_MESSAGE_LIMIT]

        logger.info(f"notify-low-stock response: {body}")
        return body.get("message")

    def remove_consumable(self, consumable_id):
        self.require_admin()
        actor = self.actor_id
        index, removed = self.drop_local(consumable_id)
        try:
            self.client.delete(self.table, [("id", "eq", consumable_id)])
        except DataClientError as e:
            if removed:
                self.reinsert(index, removed)
            raise DataClientError(f"Consumable delete error: {e.message}")

        log_audit("consumable_delete", actor, {"id": consumable_id})
        self.reload()
        return "Consumable removed"
