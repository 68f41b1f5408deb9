"""
Tests: Promotion & template HTTP API.

Focus is the transport contract: caller header handling, status codes for
each typed engine error and the JSON error envelope.  Business rules are
covered in the service-level test modules.
"""

import pytest

from badger.models import db as _db
from badger.models.promotion import PromotionBadge


@pytest.fixture()
def template(make_template):
    return make_template([("technical", "gold", 1)], name="Engineer I to II")


@pytest.fixture()
def promo(member, template, make_promotion):
    return make_promotion(member, template)


# ── Health ───────────────────────────────────────────────────────────────────


def test_health_ok(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_health_live_checks_database(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    assert res.get_json()["database"]["status"] == "ok"


# ── Caller identity ──────────────────────────────────────────────────────────


def test_missing_caller_header_is_401(client, promo):
    res = client.get(f"/api/v1/promotions/{promo.id}")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_other_users_promotion_reads_as_404(client, headers, other_member, promo):
    res = client.get(f"/api/v1/promotions/{promo.id}", headers=headers(other_member.id))
    assert res.status_code == 404


def test_admin_can_read_any_promotion(client, headers, admin, promo):
    res = client.get(f"/api/v1/promotions/{promo.id}", headers=headers(admin.id))
    assert res.status_code == 200
    assert res.get_json()["template"]["name"] == "Engineer I to II"


# ── Create / list / delete ───────────────────────────────────────────────────


def test_create_promotion_returns_201(client, headers, member, template):
    res = client.post("/api/v1/promotions", json={"template_id": template.id},
                      headers=headers(member.id))
    assert res.status_code == 201
    assert res.get_json()["status"] == "draft"


def test_create_promotion_requires_template_id(client, headers, member):
    res = client.post("/api/v1/promotions", json={}, headers=headers(member.id))
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


def test_create_promotion_unknown_template_is_404(client, headers, member):
    res = client.post("/api/v1/promotions", json={"template_id": "nope"},
                      headers=headers(member.id))
    assert res.status_code == 404


def test_list_promotions_is_scoped_to_caller(
    client, headers, member, other_member, admin, template, make_promotion,
):
    make_promotion(member, template)
    make_promotion(other_member, template)

    mine = client.get("/api/v1/promotions", headers=headers(member.id)).get_json()
    everyone = client.get("/api/v1/promotions", headers=headers(admin.id)).get_json()

    assert mine["pagination"]["total"] == 1
    assert mine["data"][0]["created_by"] == member.id
    assert everyone["pagination"]["total"] == 2


def test_list_promotions_rejects_bad_status_filter(client, headers, member):
    res = client.get("/api/v1/promotions?status=bogus", headers=headers(member.id))
    assert res.status_code == 400


def test_delete_promotion_returns_204(client, headers, member, promo):
    res = client.delete(f"/api/v1/promotions/{promo.id}", headers=headers(member.id))
    assert res.status_code == 204


# ── Badges ───────────────────────────────────────────────────────────────────


def test_add_and_remove_badges(client, headers, member, promo, make_badge):
    ba = make_badge(member)
    url = f"/api/v1/promotions/{promo.id}/badges"

    res = client.post(url, json={"badge_application_ids": [ba]}, headers=headers(member.id))
    assert res.status_code == 200
    assert res.get_json()["added_count"] == 1

    res = client.delete(url, json={"badge_application_ids": [ba]}, headers=headers(member.id))
    assert res.status_code == 200
    assert res.get_json()["removed_count"] == 1


def test_add_badges_requires_ids(client, headers, member, promo):
    res = client.post(f"/api/v1/promotions/{promo.id}/badges", json={},
                      headers=headers(member.id))
    assert res.status_code == 400


def test_add_badges_conflict_is_409(
    client, headers, member, template, promo, make_badge, make_promotion,
):
    other = make_promotion(member, template)
    ba = make_badge(member)
    client.post(f"/api/v1/promotions/{other.id}/badges",
                json={"badge_application_ids": [ba]}, headers=headers(member.id))

    res = client.post(f"/api/v1/promotions/{promo.id}/badges",
                      json={"badge_application_ids": [ba]}, headers=headers(member.id))

    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_CONFLICT_RESERVATION"
    assert body["details"]["badge_application_id"] == ba


def test_add_badges_by_stranger_is_403(client, headers, other_member, promo, make_badge):
    res = client.post(f"/api/v1/promotions/{promo.id}/badges",
                      json={"badge_application_ids": [make_badge(other_member)]},
                      headers=headers(other_member.id))
    assert res.status_code == 403


def test_remove_unreserved_badge_is_404(client, headers, member, promo, make_badge):
    res = client.delete(f"/api/v1/promotions/{promo.id}/badges",
                        json={"badge_application_ids": [make_badge(member)]},
                        headers=headers(member.id))
    assert res.status_code == 404


def test_non_json_body_is_415(client, headers, member, promo):
    res = client.post(f"/api/v1/promotions/{promo.id}/badges", data="ids=1",
                      content_type="text/plain", headers=headers(member.id))
    assert res.status_code == 415


# ── Validation & lifecycle ───────────────────────────────────────────────────


def test_validation_endpoint(client, headers, member, promo, make_badge):
    res = client.get(f"/api/v1/promotions/{promo.id}/validation", headers=headers(member.id))
    assert res.status_code == 200
    assert res.get_json()["all_satisfied"] is False


def test_submit_ineligible_is_409_with_missing_rules(client, headers, member, promo):
    res = client.post(f"/api/v1/promotions/{promo.id}/submit", headers=headers(member.id))

    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_ELIGIBILITY_FAILED"
    assert body["details"]["missing"][0]["deficit"] == 1


def test_full_approval_flow(client, headers, member, admin, promo, make_badge):
    ba = make_badge(member)
    client.post(f"/api/v1/promotions/{promo.id}/badges",
                json={"badge_application_ids": [ba]}, headers=headers(member.id))

    res = client.post(f"/api/v1/promotions/{promo.id}/submit", headers=headers(member.id))
    assert res.status_code == 200
    assert res.get_json()["status"] == "submitted"

    res = client.post(f"/api/v1/promotions/{promo.id}/approve", json={"note": "ok"},
                      headers=headers(member.id))
    assert res.status_code == 403

    res = client.post(f"/api/v1/promotions/{promo.id}/approve", json={"note": "ok"},
                      headers=headers(admin.id))
    assert res.status_code == 200
    assert res.get_json()["status"] == "approved"
    assert PromotionBadge.query.filter_by(badge_application_id=ba).one().consumed is True

    res = client.post(f"/api/v1/promotions/{promo.id}/approve", headers=headers(admin.id))
    assert res.status_code == 409
    assert res.get_json()["details"]["current_status"] == "approved"


def test_reject_without_reason_is_400(client, headers, member, admin, promo, make_badge):
    ba = make_badge(member)
    client.post(f"/api/v1/promotions/{promo.id}/badges",
                json={"badge_application_ids": [ba]}, headers=headers(member.id))
    client.post(f"/api/v1/promotions/{promo.id}/submit", headers=headers(member.id))

    res = client.post(f"/api/v1/promotions/{promo.id}/reject", json={},
                      headers=headers(admin.id))

    assert res.status_code == 400
    _db.session.expire_all()
    assert PromotionBadge.query.filter_by(promotion_id=promo.id).count() == 1


# ── Templates ────────────────────────────────────────────────────────────────


def test_list_templates_filters_inactive_by_default(client, make_template):
    make_template([("technical", "gold", 1)], name="Active")
    make_template([("technical", "gold", 1)], name="Retired", is_active=False)

    active = client.get("/api/v1/promotion-templates").get_json()
    everything = client.get("/api/v1/promotion-templates?is_active=all").get_json()

    assert [t["name"] for t in active["data"]] == ["Active"]
    assert everything["pagination"]["total"] == 2


def test_get_template_detail_and_404(client, template):
    res = client.get(f"/api/v1/promotion-templates/{template.id}")
    assert res.status_code == 200
    assert res.get_json()["rules"] == [{"category": "technical", "level": "gold", "count": 1}]

    assert client.get("/api/v1/promotion-templates/missing").status_code == 404


def test_error_body_carries_request_id(client, headers, member):
    res = client.get("/api/v1/promotions/missing",
                     headers={**headers(member.id), "X-Request-ID": "req-123"})

    assert res.status_code == 404
    assert res.headers["X-Request-ID"] == "req-123"
    assert res.get_json()["request_id"] == "req-123"


# ── Malformed bodies ─────────────────────────────────────────────────────────


@pytest.mark.parametrize("template_id", [5, ["tpl"], {"id": "tpl"}, True])
def test_create_promotion_non_string_template_id_is_400(client, headers, member, template_id):
    res = client.post("/api/v1/promotions", json={"template_id": template_id},
                      headers=headers(member.id))

    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


@pytest.mark.parametrize("suffix, method", [
    ("badges", "post"),
    ("badges", "delete"),
    ("approve", "post"),
    ("reject", "post"),
])
def test_array_body_is_400(client, headers, admin, promo, suffix, method):
    call = getattr(client, method)
    res = call(f"/api/v1/promotions/{promo.id}/{suffix}", json=["x"], headers=headers(admin.id))

    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
