# routes/api.py
from flask import Blueprint, jsonify, request, current_app, Response
from flask_login import login_required, current_user

from services.consumables_service import ConsumablesViewModel
from services.db import get_data_client
from services.errors import ValidationError
from services.feedback_service import FeedbackViewModel
from services.inventory_service import InventoryViewModel, SORT_MODES, STATUS_FILTERS
from services.notification_service import low_stock_notifier
from services.search_service import global_search, jump_target
from services.validation_service import clean_int, request_data
from services.view_state import serialize

api_bp = Blueprint("api", __name__, url_prefix="/api")

OVERVIEW_LOW_LIMIT = 5


def _equipment():
    vm = InventoryViewModel(get_data_client(), current_user)
    vm.load()
    return vm


def _consumables():
    client = get_data_client()
    vm = ConsumablesViewModel(client, current_user,
                              notifier=low_stock_notifier(client, current_app.config),
                              locations=current_app.config.get("CONSUMABLE_LOCATIONS"))
    vm.load()
    return vm


def _feedback():
    vm = FeedbackViewModel(get_data_client(), current_user,
                           limit=current_app.config.get("FEEDBACK_LIMIT", 200))
    vm.load()
    return vm


def _rows(rows):
    return [serialize(row) for row in rows]


def _equipment_body(vm, message=None):
    body = {"items": _rows(vm.rows), "stats": vm.stats}
    if message:
        body["message"] = message
    return body


def _consumables_body(vm, message=None):
    body = {"consumables": _rows(vm.rows), "stats": vm.stats}
    if message:
        body["message"] = message
    return body


# Equipment

@api_bp.route("/equipment", methods=["GET"])
@login_required
def list_equipment():
    """Equipment page; admins only"""
    vm = InventoryViewModel(get_data_client(), current_user)
    vm.require_admin()
    vm.load()
    status = request.args.get("status", "all")
    sort = request.args.get("sort", "recent")
    if status not in STATUS_FILTERS:
        raise ValidationError(f"Unknown status filter: {status}", "status")
    if sort not in SORT_MODES:
        raise ValidationError(f"Unknown sort: {sort}", "sort")
    return jsonify({
        "items": _rows(vm.filtered(request.args.get("q", ""), status, sort)),
        "stats": vm.stats,
    })


@api_bp.route("/equipment", methods=["POST"])
@login_required
def add_equipment():
    vm = _equipment()
    message = vm.add_item(request_data())
    return jsonify(_equipment_body(vm, message)), 201


@api_bp.route("/equipment/<item_id>", methods=["PATCH"])
@login_required
def update_equipment(item_id):
    vm = _equipment()
    message = vm.upsert_item({**request_data(), "id": item_id})
    return jsonify(_equipment_body(vm, message))


@api_bp.route("/equipment/<item_id>", methods=["DELETE"])
@login_required
def delete_equipment(item_id):
    vm = _equipment()
    message = vm.remove_item(item_id)
    return jsonify(_equipment_body(vm, message))


@api_bp.route("/equipment/check-all", methods=["POST"])
@login_required
def check_all_equipment():
    vm = _equipment()
    message = vm.mark_all_checked()
    return jsonify(_equipment_body(vm, message))


@api_bp.route("/equipment/reset", methods=["POST"])
@login_required
def reset_equipment():
    vm = _equipment()
    message = vm.reset_checks()
    return jsonify(_equipment_body(vm, message))


@api_bp.route("/equipment/export", methods=["GET"])
@login_required
def export_equipment():
    vm = _equipment()
    filename, document = vm.export_json()
    return Response(document, mimetype="application/json",
                    headers={"Content-Disposition": f"attachment; filename={filename}"})


@api_bp.route("/equipment/import", methods=["POST"])
@login_required
def import_equipment():
    """Parse an exported document and hand back the cleaned rows; nothing is stored"""
    upload = request.files.get("file")
    text = upload.read().decode("utf-8", errors="replace") if upload else request.get_data(as_text=True)
    vm = InventoryViewModel(get_data_client(), current_user)
    message = vm.import_json(text)
    return jsonify(_equipment_body(vm, message))


# Consumables

@api_bp.route("/consumables", methods=["GET"])
@login_required
def list_consumables():
    vm = _consumables()
    location = request.args.get("location", "")
    body = _consumables_body(vm)
    body["locations"] = vm.locations
    if location:
        body["consumables"] = _rows(vm.by_location(location))
    return jsonify(body)


@api_bp.route("/consumables", methods=["POST"])
@login_required
def add_consumable():
    vm = _consumables()
    message = vm.add_consumable(request_data())
    return jsonify(_consumables_body(vm, message)), 201


@api_bp.route("/consumables/<consumable_id>/adjust", methods=["POST"])
@login_required
def adjust_consumable(consumable_id):
    data = request_data()
    delta = clean_int(data.get("delta"))
    if not delta:
        raise ValidationError("delta must be a non-zero integer", "delta")
    vm = _consumables()
    message = vm.adjust_consumable(consumable_id, delta)
    if message is None:
        return jsonify({"error": "Consumable not found"}), 404
    return jsonify(_consumables_body(vm, message))


@api_bp.route("/consumables/<consumable_id>", methods=["DELETE"])
@login_required
def delete_consumable(consumable_id):
    vm = _consumables()
    message = vm.remove_consumable(consumable_id)
    return jsonify(_consumables_body(vm, message))


# Feedback

@api_bp.route("/feedback", methods=["GET"])
@login_required
def list_feedback():
    vm = _feedback()
    return jsonify({"feedback": _rows(vm.rows)})


@api_bp.route("/feedback", methods=["POST"])
@login_required
def submit_feedback():
    vm = _feedback()
    message = vm.submit(request_data().get("message"))
    return jsonify({"message": message, "feedback": _rows(vm.rows)}), 201


@api_bp.route("/feedback/<feedback_id>", methods=["PATCH"])
@login_required
def update_feedback(feedback_id):
    vm = _feedback()
    message = vm.toggle_resolved(feedback_id, request_data().get("resolved"))
    return jsonify({"message": message, "feedback": _rows(vm.rows)})


# Overview and search

@api_bp.route("/overview", methods=["GET"])
@login_required
def overview():
    vm = _consumables()
    stats = vm.stats
    is_admin = current_user.is_admin()
    body = {
        "stats": stats,
        "low_stock": _rows(vm.low_rows()[:OVERVIEW_LOW_LIMIT]),
        "status": "Oh no, check in what needs to be refilled" if stats["low"]
        else "Great job, everything is in good quantity",
        "is_admin": is_admin,
    }
    # Recent activity is an admin panel
    if is_admin:
        body["recent"] = _rows(vm.recent())
    return jsonify(body)


@api_bp.route("/search", methods=["GET"])
@login_required
def search():
    is_admin = current_user.is_admin()
    items = _equipment().rows if is_admin else []
    results = global_search(items, _consumables().rows, request.args.get("q", ""), is_admin,
                            limit=current_app.config.get("SEARCH_RESULT_LIMIT", 8))
    return jsonify({"results": results})


@api_bp.route("/search/jump", methods=["POST"])
@login_required
def search_jump():
    data = request_data()
    if not data.get("id") or data.get("page") not in ("equipment", "consumables"):
        raise ValidationError("A search result is required")
    return jsonify(jump_target(data, current_user.is_admin()))
