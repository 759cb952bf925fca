import app as app_module
from rule_engine import InvalidRuleTable


def create(client, **payload):
    return client.post("/api/consultations", json=payload)


def test_requires_login(client):
    resp = create(client, weight=70, height=175, body_fat_percentage=15)
    assert resp.status_code == 401


def test_full_consultation_male(user_client):
    resp = create(user_client, weight=70, height=175, body_fat_percentage=15, notes="first visit")
    assert resp.status_code == 201
    data = resp.get_json()["data"]

    assert data["bmi"] == 22.86
    assert data["bmi_category"] == "B2"
    assert data["body_fat_category"] == "L2"
    assert data["bmi_display"] == "Ideal"
    assert data["body_fat_display"] == "Normal"
    assert data["program"]["code"] == "P2"
    assert data["rule"] is not None
    assert data["is_default"] is False
    assert data["is_bmi_only"] is False
    assert data["consultation_type"] == "complete"
    assert data["status"] == "active"
    assert data["notes"] == "first visit"


def test_same_reading_for_female_uses_female_thresholds(female_client):
    resp = create(female_client, weight=70, height=175, body_fat_percentage=15)
    data = resp.get_json()["data"]
    assert data["body_fat_category"] == "L1"
    assert data["program"]["code"] == "P6"


def test_bmi_only_consultation(user_client):
    resp = create(user_client, weight=45, height=170)
    assert resp.status_code == 201
    data = resp.get_json()["data"]

    assert data["bmi_category"] == "B1"
    assert data["body_fat_category"] is None
    assert data["body_fat_display"] == "Not measured"
    assert data["is_bmi_only"] is True
    assert data["consultation_type"] == "bmi_only"
    # BMI-only table, not Underweight+anything from the full table
    assert data["program"]["code"] == "P1"
    assert data["rule"] is None
    assert data["is_default"] is False


def test_unmapped_pair_records_default_program(user_client):
    # obese with low body fat has no rule
    resp = create(user_client, weight=100, height=170, body_fat_percentage=8)
    assert resp.status_code == 201
    data = resp.get_json()["data"]

    assert data["bmi_category"] == "B4"
    assert data["body_fat_category"] == "L1"
    assert data["program"]["code"] == "P2"
    assert data["is_default"] is True
    assert data["rule"] is None


def test_validation_bounds(user_client):
    resp = create(user_client, weight=0, height=175, body_fat_percentage=80)
    assert resp.status_code == 400
    fields = {e["field"] for e in resp.get_json()["errors"]}
    assert fields == {"weight", "body_fat_percentage"}

    resp = create(user_client, weight="heavy", height=175)
    assert resp.status_code == 400

    resp = user_client.post("/api/consultations", data="not json")
    assert resp.status_code == 400


def test_rule_reassignment_changes_later_results(user_client, admin_client, program_ids, rule_ids):
    rule_id = rule_ids[("B2", "L2")]
    resp = admin_client.put(f"/api/rules/{rule_id}", json={"program_id": program_ids["P8"]})
    assert resp.status_code == 200

    data = create(user_client, weight=70, height=175, body_fat_percentage=15).get_json()["data"]
    assert data["program"]["code"] == "P8"
    assert data["rule"]["id"] == rule_id


def test_deactivated_rule_falls_back(user_client, admin_client, rule_ids):
    rule_id = rule_ids[("B3", "L2")]
    assert admin_client.patch(f"/api/rules/{rule_id}/toggle").status_code == 200

    data = create(user_client, weight=85, height=175, body_fat_percentage=15).get_json()["data"]
    assert data["bmi_category"] == "B3"
    assert data["program"]["code"] == "P2"
    assert data["is_default"] is True


def test_history_is_private_and_paginated(user_client, female_client):
    for weight in (60, 70, 80):
        create(user_client, weight=weight, height=175)
    other = create(female_client, weight=55, height=160).get_json()["data"]

    resp = user_client.get("/api/consultations?limit=2")
    body = resp.get_json()["data"]
    assert body["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
    assert len(body["items"]) == 2

    page2 = user_client.get("/api/consultations?limit=2&page=2").get_json()["data"]
    assert len(page2["items"]) == 1

    assert user_client.get(f"/api/consultations/{other['id']}").status_code == 404


def test_update_and_delete(user_client):
    cid = create(user_client, weight=70, height=175).get_json()["data"]["id"]

    resp = user_client.put(f"/api/consultations/{cid}", json={"status": "completed", "notes": "done"})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["status"] == "completed"
    assert data["notes"] == "done"

    resp = user_client.put(f"/api/consultations/{cid}", json={"status": "archived"})
    assert resp.status_code == 400

    completed = user_client.get("/api/consultations?status=completed").get_json()["data"]
    assert completed["pagination"]["total"] == 1

    assert user_client.delete(f"/api/consultations/{cid}").status_code == 200
    assert user_client.get(f"/api/consultations/{cid}").status_code == 404


def test_admin_listing_and_stats(user_client, female_client, admin_client):
    create(user_client, weight=70, height=175, body_fat_percentage=15)
    create(user_client, weight=70, height=175, body_fat_percentage=15)
    create(female_client, weight=70, height=175, body_fat_percentage=15)

    assert user_client.get("/api/consultations/admin").status_code == 403

    listing = admin_client.get("/api/consultations/admin?search=sari").get_json()["data"]
    assert listing["pagination"]["total"] == 1
    assert listing["items"][0]["user"]["email"] == "sari@fitrule.io"

    stats = admin_client.get("/api/consultations/stats").get_json()["data"]
    assert stats["total"] == 3
    assert stats["today"] == 3
    assert stats["active_users"] == 2
    assert stats["program_stats"][0] == {"program": {"code": "P2", "name": "Muscle Gain Program"}, "count": 2}
    assert stats["program_stats"][1]["program"]["code"] == "P6"


def test_bmi_only_consultation_survives_broken_rule_table(user_client, monkeypatch):
    def broken(db):
        raise InvalidRuleTable("duplicate rule for B2-L2")

    monkeypatch.setattr(app_module, "load_rule_table", broken)

    resp = create(user_client, weight=70, height=175)
    assert resp.status_code == 201
    assert resp.get_json()["data"]["program"]["code"] == "P2"

    resp = create(user_client, weight=70, height=175, body_fat_percentage=15)
    assert resp.status_code == 500
    assert resp.get_json()["message"] == "Rule configuration is invalid."
