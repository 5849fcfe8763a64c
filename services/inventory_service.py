# services/inventory_service.py
"""
Equipment stocktake: each item is checked (seen during the count) or missing.
"""
import json
import logging
from datetime import datetime, timezone

from services.auth_service import actor_display_name, load_profile_map_for_actor_ids
from services.errors import DataClientError, SyncPending, ValidationError
from services.logging_service import log_audit
from services.validation_service import clean_bool, clean_qty, clean_text, new_row_id, require_text
from services.view_state import ViewModel, serialize, sort_stamp, utcnow

logger = logging.getLogger(__name__)

INVENTORY_COLUMNS = "id,created_at,item_name,tag,location,qty,checked,notes,created_by,updated_at,updated_by"

# display key -> column
EDITABLE_FIELDS = {
    "name": "item_name",
    "tag": "tag",
    "location": "location",
    "qty": "qty",
    "note": "notes",
    "checked": "checked",
}

STATUS_FILTERS = ("all", "checked", "missing")
SORT_MODES = ("recent", "unsorted", "name", "location")


def map_db_item(row, actor_map=None):
    """Server row -> display dict"""
    actor_map = actor_map or {}
    created_raw = str(row.get("created_by") or "?")
    updated_raw = str(row.get("updated_by") or row.get("created_by") or "?")
    qty = row.get("qty")
    return {
        "id": row["id"],
        "name": row.get("item_name") or "",
        "tag": row.get("tag") or "",
        "location": row.get("location") or "",
        "qty": 1 if qty is None else qty,
        "checked": bool(row.get("checked")),
        "note": row.get("notes") or "",
        "created_by": actor_display_name(actor_map.get(created_raw) or created_raw),
        "created_at": row.get("created_at") or utcnow(),
        "updated_by": actor_display_name(actor_map.get(updated_raw) or updated_raw),
        "updated_at": row.get("updated_at") or utcnow(),
    }


def _coerce_time(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return utcnow()


class InventoryViewModel(ViewModel):
    table = "inventory_items"

    def fetch(self):
        try:
            rows = self.client.select(self.table, columns=INVENTORY_COLUMNS,
                                      order_by="created_at", descending=True)
        except DataClientError as e:
            raise DataClientError(f"Load error: {e.message}")

        actor_ids = {str(value) for row in rows
                     for value in (row.get("created_by"), row.get("updated_by")) if value}
        actor_map = load_profile_map_for_actor_ids(self.client, sorted(actor_ids))
        if self.user and self.user.id and self.user.email:
            actor_map[self.user.id] = actor_display_name(self.user.email)
        return [map_db_item(row, actor_map) for row in rows]

    @property
    def stats(self):
        total = len(self.rows)
        checked = sum(1 for row in self.rows if row["checked"])
        return {"total": total, "checked": checked, "missing": total - checked}

    def filtered(self, query="", status="all", sort="recent"):
        q = (query or "").strip().lower()
        out = self.rows
        if q:
            out = [row for row in out
                   if q in f"{row['name']} {row['tag']} {row['location']} {row['note']}".lower()]

        if status == "checked":
            out = [row for row in out if row["checked"]]
        elif status == "missing":
            out = [row for row in out if not row["checked"]]

        if sort == "recent":
            out = sorted(out, key=lambda row: sort_stamp(row.get("updated_at")), reverse=True)
        elif sort == "name":
            out = sorted(out, key=lambda row: row["name"].lower())
        elif sort == "location":
            out = sorted(out, key=lambda row: (row["location"] or "").lower())
        else:
            out = list(out)
        return out

    def add_item(self, form):
        self.require_admin("Only admin can add items.")
        actor = self.actor_id

        item_name = require_text(form.get("name"), "Name is required.", "name")

        tag = clean_text(form.get("tag"))
        location = clean_text(form.get("location"))
        qty = clean_qty(form.get("qty"))
        notes = clean_text(form.get("note"), max_length=2000)
        now = utcnow()
        item_id = new_row_id()

        self.stage({
            "id": item_id,
            "name": item_name,
            "tag": tag,
            "location": location,
            "qty": qty,
            "checked": False,
            "note": notes,
            "created_by": self.actor_username,
            "created_at": now,
            "updated_by": self.actor_username,
            "updated_at": now,
        })

        try:
            self.client.insert(self.table, {
                "id": item_id,
                "item_name": item_name,
                "tag": tag,
                "location": location,
                "qty": qty,
                "notes": notes or None,
                "checked": False,
                "created_by": actor,
                "updated_by": actor,
            })
        except DataClientError as e:
            self.unstage(item_id)
            raise DataClientError(f"Insert error: {e.message}")

        log_audit("equipment_add", actor, {"id": item_id, "name": item_name})
        return "Added"

    def upsert_item(self, partial):
        item_id = partial.get("id")
        changed = {key for key in partial if key != "id"}
        checked_only = changed == {"checked"}
        if not checked_only:
            self.require_admin("Only admin can edit item details.")

        if isinstance(item_id, str) and item_id.startswith("tmp_"):
            self.reload()
            raise SyncPending("Syncing item, please try again.")

        actor = self.actor_id
        patch, local = {}, {}
        for key in EDITABLE_FIELDS:
            if key not in partial:
                continue
            if key == "qty":
                value = clean_qty(partial[key])
            elif key == "checked":
                value = clean_bool(partial[key])
            else:
                value = clean_text(partial[key], max_length=2000)
            patch[EDITABLE_FIELDS[key]] = value
            local[key] = value

        now = utcnow()
        patch["updated_by"] = actor
        patch["updated_at"] = now
        previous = self.patch_local(item_id, {**local, "updated_by": self.actor_username, "updated_at": now})

        try:
            self.client.update(self.table, patch, [("id", "eq", item_id)])
        except DataClientError as e:
            if previous:
                self.restore(previous)
            raise DataClientError(f"Update error: {e.message}")

        log_audit("equipment_update", actor, {"id": item_id, "fields": sorted(local)})
        self.reload()
        return "Saved"

    def remove_item(self, item_id):
        self.require_admin("Only admin can delete items.")
        actor = self.actor_id
        index, removed = self.drop_local(item_id)
        try:
            self.client.delete(self.table, [("id", "eq", item_id)])
        except DataClientError as e:
            if removed:
                self.reinsert(index, removed)
            raise DataClientError(f"Delete error: {e.message}")

        log_audit("equipment_delete", actor, {"id": item_id})
        self.reload()
        return "Deleted"

    def set_all_checked(self, checked_value):
        actor = self.actor_id
        checked_value = bool(checked_value)
        previous = list(self.rows)
        now = utcnow()
        self.rows = [{**row, "checked": checked_value, "updated_at": now,
                      "updated_by": self.actor_username} for row in self.rows]

        try:
            self.client.update(self.table, {"checked": checked_value, "updated_by": actor, "updated_at": now},
                               [("id", "not_null", None)])
            total = self.client.count(self.table)
            changed = self.client.count(self.table, [("checked", "eq", checked_value)]) if total else 0
        except DataClientError as e:
            self.rows = previous
            raise DataClientError(f"Bulk update error: {e.message}")

        # Rows exist but none carry the new value: row policies refused the write
        if total and not changed:
            self.rows = previous
            raise DataClientError("Policy blocks shared updates.", status_code=403)

        log_audit("equipment_check_all" if checked_value else "equipment_reset", actor, {"rows": total})
        self.reload()
        return "All checked" if checked_value else "Reset"

    def mark_all_checked(self):
        return self.set_all_checked(True)

    def reset_checks(self):
        return self.set_all_checked(False)

    def export_json(self, today=None):
        self.require_admin()
        today = today or utcnow().date()
        filename = f"inventory-{self.actor_username}-{today.isoformat()}.json"
        return filename, json.dumps([serialize(row) for row in self.rows], indent=2)

    def import_json(self, text):
        """Replace the local rows with an exported document; nothing is written back."""
        self.require_admin()
        try:
            parsed = json.loads(text or "")
        except ValueError:
            parsed = None
        if not isinstance(parsed, list):
            raise ValidationError("Import failed")

        username = self.actor_username
        self.rows = [{
            "id": str(entry.get("id") or new_row_id()),
            "name": str(entry.get("name") or "Untitled"),
            "tag": str(entry.get("tag") or ""),
            "location": str(entry.get("location") or ""),
            "qty": clean_qty(entry.get("qty")),
            "checked": bool(entry.get("checked")),
            "note": str(entry.get("note") or ""),
            "created_by": str(entry.get("created_by") or username),
            "created_at": _coerce_time(entry.get("created_at")),
            "updated_by": str(entry.get("updated_by") or username),
            "updated_at": _coerce_time(entry.get("updated_at")),
        } for entry in parsed if isinstance(entry, dict)]
        return "Imported"
