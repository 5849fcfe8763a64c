import json

import pytest

from app import create_app


@pytest.fixture
def brevo(monkeypatch, response_factory):
    sent = []

    def fake_post(url, headers=None, json=None, timeout=None):
        sent.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return response_factory(201)

    monkeypatch.setattr("services.email_service.requests.post", fake_post)
    return sent


def stock(db, **overrides):
    row = {"id": "c1", "name": "AA batteries", "unit": "pcs", "location": "Scientia",
           "on_hand": 3, "min_level": 2, **overrides}
    db.insert("consumables_items", row)


# Auth

def test_signup_and_login(http, db):
    response = http.post("/auth/signup", json={"name": "Sam", "username": "sam", "email": "sam@example.org",
                                               "password": "pw-1"})
    assert response.status_code == 201
    assert response.get_json() == {"message": "Signed up. Now log in."}

    response = http.post("/auth/login", json={"username": "sam", "password": "pw-1"})
    body = response.get_json()
    assert response.status_code == 200
    assert body["user"]["username"] == "sam"
    assert body["user"]["is_admin"] is False
    assert body["csrf_token"]
    assert db.tables["user_profiles"][0]["real_email"] == "sam@example.org"

    assert http.get("/auth/session").get_json()["user"]["username"] == "sam"


def test_bad_login(http):
    response = http.post("/auth/login", json={"username": "ghost", "password": "nope"})
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid login credentials"}


def test_numeric_password_in_json(http):
    response = http.post("/auth/signup", json={"name": "Sam", "username": "sam", "email": "sam@example.org",
                                               "password": 12345})
    assert response.status_code == 201

    response = http.post("/auth/login", json={"username": "sam", "password": 12345})
    assert response.status_code == 200
    response = http.post("/auth/login", json={"username": "sam", "password": 54321})
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid login credentials"}


def test_signup_validation_error(http):
    response = http.post("/auth/signup", data={"name": "Sam", "username": "sam", "email": "x", "password": "p"})
    assert response.status_code == 400
    assert response.get_json() == {"error": "Enter a valid email address"}


def test_anonymous_requests_get_session_expired(http):
    assert http.get("/auth/session").get_json() == {"user": None}
    response = http.get("/api/consumables")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Session expired. Please log in again."}


def test_logout(as_staff):
    assert as_staff.post("/auth/logout").status_code == 200
    assert as_staff.get("/api/overview").status_code == 401


def test_healthz(http):
    assert http.get("/healthz").get_json()["status"] == "ok"


# Equipment

def test_equipment_is_admin_only(as_staff):
    response = as_staff.get("/api/equipment")
    assert response.status_code == 403
    assert response.get_json() == {"error": "You don't have privilege, please contact admin"}


def test_equipment_crud(as_admin, db):
    response = as_admin.post("/api/equipment", json={"name": "Projector", "location": "Clancy", "qty": 2})
    assert response.status_code == 201
    body = response.get_json()
    assert body["message"] == "Added"
    item_id = body["items"][0]["id"]

    response = as_admin.patch(f"/api/equipment/{item_id}", json={"checked": True})
    assert response.get_json()["message"] == "Saved"
    assert response.get_json()["stats"] == {"total": 1, "checked": 1, "missing": 0}

    listing = as_admin.get("/api/equipment?status=missing").get_json()
    assert listing["items"] == []

    response = as_admin.delete(f"/api/equipment/{item_id}")
    assert response.get_json()["message"] == "Deleted"
    assert db.tables["inventory_items"] == []


def test_equipment_rejects_unknown_sort(as_admin):
    response = as_admin.get("/api/equipment?sort=random")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Unknown sort: random"}


def test_staff_can_check_items(as_staff, db):
    db.insert("inventory_items", {"id": "i1", "item_name": "Ladder", "checked": False, "qty": 1})
    assert as_staff.patch("/api/equipment/i1", json={"checked": True}).status_code == 200
    assert db.tables["inventory_items"][0]["checked"] is True

    response = as_staff.patch("/api/equipment/i1", json={"name": "Step ladder"})
    assert response.status_code == 403
    assert response.get_json() == {"error": "Only admin can edit item details."}

    assert as_staff.post("/api/equipment/reset").get_json()["message"] == "Reset"


@pytest.mark.parametrize("value", ["false", "0", "off", ""])
def test_form_unchecking_stores_false(as_staff, db, value):
    db.insert("inventory_items", {"id": "i1", "item_name": "Ladder", "checked": True, "qty": 1})
    response = as_staff.patch("/api/equipment/i1", data={"checked": value})
    assert response.status_code == 200
    assert db.tables["inventory_items"][0]["checked"] is False


def test_form_checking_stores_true(as_staff, db):
    db.insert("inventory_items", {"id": "i1", "item_name": "Ladder", "checked": False, "qty": 1})
    as_staff.patch("/api/equipment/i1", data={"checked": "on"})
    assert db.tables["inventory_items"][0]["checked"] is True


def test_pending_row_conflict(as_admin):
    response = as_admin.patch("/api/equipment/tmp_1", json={"checked": True})
    assert response.status_code == 409
    assert response.get_json() == {"error": "Syncing item, please try again."}


def test_export_and_import(as_admin, db):
    db.insert("inventory_items", {"id": "i1", "item_name": "Ladder", "checked": True, "qty": 1,
                                  "created_by": "u-x"})
    response = as_admin.get("/api/equipment/export")
    assert response.mimetype == "application/json"
    assert "attachment; filename=inventory-admin-" in response.headers["Content-Disposition"]
    exported = json.loads(response.get_data(as_text=True))
    assert exported[0]["name"] == "Ladder"

    response = as_admin.post("/api/equipment/import", data=json.dumps([{"name": "Tripod"}]),
                             content_type="application/json")
    body = response.get_json()
    assert body["message"] == "Imported"
    assert [row["name"] for row in body["items"]] == ["Tripod"]
    assert len(db.tables["inventory_items"]) == 1

    response = as_admin.post("/api/equipment/import", data="garbage", content_type="text/plain")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Import failed"}


# Consumables and alerts

def test_consumables_listing_by_location(as_staff, db):
    stock(db)
    stock(db, id="c2", name="Tape", location="Clancy")
    body = as_staff.get("/api/consumables?location=Clancy").get_json()
    assert [row["id"] for row in body["consumables"]] == ["c2"]
    assert body["locations"] == ["Clancy", "Scientia", "Science Theatre"]
    assert body["stats"]["total"] == 2


def test_adjust_validation(as_admin, db):
    stock(db)
    response = as_admin.post("/api/consumables/c1/adjust", json={"delta": 0})
    assert response.status_code == 400
    response = as_admin.post("/api/consumables/nope/adjust", json={"delta": -1})
    assert response.status_code == 404
    assert response.get_json() == {"error": "Consumable not found"}


def test_admin_crossing_sends_alert(as_admin, db, brevo):
    stock(db)
    response = as_admin.post("/api/consumables/c1/adjust", json={"delta": -1})
    body = response.get_json()
    assert response.status_code == 200
    assert body["message"] == "Low stock notification sent to 1 admin(s)"
    assert body["stats"]["low"] == 1

    assert len(brevo) == 1
    assert brevo[0]["headers"]["api-key"] == "test-brevo-key"
    assert brevo[0]["json"]["to"] == [{"email": "ada@example.org"}]
    assert brevo[0]["json"]["subject"] == "LOW STOCK ALERT: AA batteries"
    assert db.tables["notification_logs"][0]["status"] == "sent"


def test_staff_decrement_sends_nothing(as_staff, db, brevo):
    stock(db)
    body = as_staff.post("/api/consumables/c1/adjust", json={"delta": -1}).get_json()
    assert body["message"] == "No email trigger: you are not admin."
    assert brevo == []


def test_overview(as_staff, db):
    stock(db)
    body = as_staff.get("/api/overview").get_json()
    assert body["status"] == "Great job, everything is in good quantity"
    assert body["low_stock"] == []

    stock(db, id="c2", name="Tape", on_hand=0, min_level=1)
    body = as_staff.get("/api/overview").get_json()
    assert body["status"] == "Oh no, check in what needs to be refilled"
    assert [row["id"] for row in body["low_stock"]] == ["c2"]
    assert "recent" not in body


def test_admin_overview_caps_low_list_and_shows_recent(as_admin, db):
    for n in range(7):
        stock(db, id=f"c{n}", name=f"Tape {n}", on_hand=0, min_level=1)
    body = as_admin.get("/api/overview").get_json()
    assert body["stats"]["low"] == 7
    assert len(body["low_stock"]) == 5
    assert [row["id"] for row in body["recent"]] == ["c6", "c5", "c4", "c3", "c2"]


# Feedback and search

def test_feedback_round(as_staff, db):
    response = as_staff.post("/api/feedback", json={"message": "Bin is full"})
    assert response.status_code == 201
    assert response.get_json()["message"] == "Feedback submitted"
    feedback_id = db.tables["feedback_entries"][0]["id"]

    response = as_staff.patch(f"/api/feedback/{feedback_id}", json={"resolved": True})
    assert response.status_code == 403


def test_form_marks_feedback_unresolved(as_admin, db):
    db.insert("feedback_entries", {"id": "f1", "message": "Bin is full", "sender_user_id": "u-x",
                                   "sender_username": "kim", "resolved": True})
    response = as_admin.patch("/api/feedback/f1", data={"resolved": "false"})
    assert response.get_json()["message"] == "Marked unresolved"
    assert db.tables["feedback_entries"][0]["resolved"] is False

    response = as_admin.patch("/api/feedback/f1", data={"resolved": "true"})
    assert response.get_json()["message"] == "Marked resolved"
    assert db.tables["feedback_entries"][0]["resolved"] is True


def test_search(as_staff, db):
    stock(db)
    db.insert("inventory_items", {"id": "i1", "item_name": "AA charger", "qty": 1})
    results = as_staff.get("/api/search?q=aa").get_json()["results"]
    assert [r["page"] for r in results] == ["consumables"]

    response = as_staff.post("/api/search/jump", json={"id": "i1", "page": "equipment"})
    assert response.status_code == 403


def test_admin_search_includes_equipment(as_admin, db):
    stock(db)
    db.insert("inventory_items", {"id": "i1", "item_name": "AA charger", "qty": 1})
    results = as_admin.get("/api/search?q=aa").get_json()["results"]
    assert [r["page"] for r in results] == ["equipment", "consumables"]


# Low-stock function endpoint

PAYLOAD = {"consumable_id": "c1", "name": "AA batteries", "on_hand": 2, "min_level": 2,
           "location": "Scientia", "unit": "pcs", "updated_by_name": "Ada"}


def test_function_preflight(http):
    response = http.options("/functions/notify-low-stock")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "ok"
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_function_rejects_other_methods(http):
    response = http.get("/functions/notify-low-stock")
    assert response.status_code == 405
    assert response.get_json() == {"error": "Method not allowed"}


def test_function_requires_authorization(http):
    response = http.post("/functions/notify-low-stock", json=PAYLOAD,
                         headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_function_with_bearer_secret(http, db, brevo):
    db.insert("user_profiles", {"user_id": "u1", "real_email": "ada@example.org", "is_admin": True})
    response = http.post("/functions/notify-low-stock", json=PAYLOAD,
                         headers={"Authorization": "Bearer hook-secret"})
    assert response.status_code == 200
    assert response.get_json()["sent_to"] == ["ada@example.org"]
    assert response.headers["Access-Control-Allow-Origin"] == "*"

    response = http.post("/functions/notify-low-stock", json={"name": "x"},
                         headers={"Authorization": "Bearer hook-secret"})
    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields"}


def test_function_as_signed_in_admin(as_admin, brevo):
    response = as_admin.post("/functions/notify-low-stock", json=PAYLOAD)
    assert response.status_code == 200
    assert response.get_json()["sent_to"] == ["ada@example.org"]


# CSRF

@pytest.fixture
def guarded(db):
    app = create_app({"TESTING": True, "SECRET_KEY": "test-secret", "CSRF_ENABLED": True, "LOG_FILE": ""},
                     data_client=db)
    return app.test_client()


def test_csrf_token_required_on_writes(guarded, login_as):
    token = login_as(guarded, "sam").get_json()["csrf_token"]

    response = guarded.post("/api/feedback", json={"message": "Hi"})
    assert response.status_code == 403
    assert "CSRF token validation failed" in response.get_json()["error"]

    response = guarded.post("/api/feedback", json={"message": "Hi"}, headers={"X-CSRF-Token": token})
    assert response.status_code == 201
