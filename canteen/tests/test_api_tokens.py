"""
餐券API集成测试
测试餐券、套餐、选餐和组织相关的API端点
"""

from datetime import date

import pytest

from ..core.exceptions import AuthorizationError
from ..core.security import SecurityManager

API = "/api/v1"


def member_body(member, **extra):
    body = {"memberId": member.member_id, "memberType": member.member_type.value}
    body.update(extra)
    return body


class TestTokensAPI:
    """餐券API测试"""

    def test_ensure_tokens(self, client, member, breakfast_package):
        response = client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))

        assert response.status_code == 200
        created = response.json()["created"]
        assert len(created) == 1
        assert created[0]["meal_type"] == "BREAKFAST"
        assert created[0]["status"] == "PENDING"
        assert created[0]["token_no"] == 1

        again = client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))
        assert again.json() == {"created": []}

    def test_ensure_no_active_package(self, client, member):
        response = client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "NO_ACTIVE_PACKAGE"

    def test_ensure_out_of_validity(self, client, db_helper, member, organization):
        db_helper.create_package(member, organization, breakfast={"total": 30}, valid_until=date(2024, 2, 28))

        response = client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))

        assert response.status_code == 400
        assert response.json()["error_code"] == "DATE_OUT_OF_VALIDITY"

    @pytest.mark.parametrize("body", [
        {"memberType": "student", "date": "2024-03-01"},
        {"memberId": "S1001", "memberType": "alien", "date": "2024-03-01"},
        {"memberId": "S1001", "memberType": "student", "date": "not-a-date"},
    ])
    def test_ensure_rejects_invalid_request(self, client, body):
        """请求校验在访问存储之前完成"""
        response = client.post(f"{API}/tokens/ensure", json=body)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_ensure_range(self, client, member, breakfast_package):
        response = client.post(
            f"{API}/tokens/ensure-range", json=member_body(member, startDate="2024-12-31", days=2)
        )

        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["created"] == 1
        assert results[1]["error_code"] == "DATE_OUT_OF_VALIDITY"

    def test_skip_and_skip_again(self, client, member, breakfast_package):
        client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))

        body = member_body(member, date="2024-03-01", mealType="breakfast", action="skip")
        response = client.post(f"{API}/tokens/skip", json=body)

        assert response.status_code == 200
        data = response.json()
        assert data["token"]["status"] == "CANCELLED"
        assert data["token"]["cancelled_at"] is not None
        assert data["message"] == "Meal skipped successfully"

        again = client.post(f"{API}/tokens/skip", json=body)
        assert again.status_code == 400
        assert again.json()["error_code"] == "INVALID_TRANSITION"
        assert again.json()["message"] == "Cannot skip a meal that is already cancelled"

    def test_skip_invalid_action(self, client, member, breakfast_package):
        body = member_body(member, date="2024-03-01", mealType="breakfast", action="postpone")
        response = client.post(f"{API}/tokens/skip", json=body)

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_skip_requires_action(self, client, member, breakfast_package):
        client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))

        body = member_body(member, date="2024-03-01", mealType="breakfast")
        response = client.post(f"{API}/tokens/skip", json=body)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_skip_missing_token(self, client, member, breakfast_package):
        body = member_body(member, date="2024-03-01", mealType="DINNER", action="cancel")
        response = client.post(f"{API}/tokens/skip", json=body)

        assert response.status_code == 404
        assert response.json()["error_code"] == "TOKEN_NOT_FOUND"

    def test_collect_and_list(self, client, member, breakfast_package):
        created = client.post(
            f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01")
        ).json()["created"]

        response = client.post(f"{API}/tokens/{created[0]['id']}/collect")
        assert response.status_code == 200
        assert response.json()["token"]["status"] == "COLLECTED"

        listing = client.get(f"{API}/tokens", params={"memberId": member.member_id})
        assert listing.status_code == 200
        data = listing.json()
        assert data["stats"]["collected"] == 1
        assert data["tokens"][0]["id"] == created[0]["id"]

        package = client.get(
            f"{API}/package", params={"memberId": member.member_id, "memberType": "student"}
        ).json()["package"]
        assert package["meals"]["breakfast"]["consumed"] == 6
        assert package["meals"]["breakfast"]["remaining"] == 24

    def test_collect_quota_exhausted(self, client, db_helper, member, organization):
        db_helper.create_package(member, organization, lunch={"total": 1, "consumed": 1})
        created = client.post(
            f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01")
        ).json()["created"]

        response = client.post(f"{API}/tokens/{created[0]['id']}/collect")

        assert response.status_code == 409
        assert response.json()["error_code"] == "QUOTA_EXHAUSTED"

    def test_expire(self, client, db_helper, member, breakfast_package):
        client.post(f"{API}/tokens/ensure", json=member_body(member, date="2024-03-01"))

        response = client.post(f"{API}/tokens/expire", json={"now": "2024-03-01T10:00:00"})

        assert response.status_code == 200
        assert response.json()["expired"] == 1
        assert db_helper.get_tokens(member)[0]["status"] == "EXPIRED"

    def test_get_token_not_found(self, client):
        response = client.get(f"{API}/tokens/4242")
        assert response.status_code == 404


class TestPackageAndSelectionAPI:
    """套餐、选餐和组织API测试"""

    def test_package_absent(self, client, member):
        response = client.get(f"{API}/package", params={"memberId": member.member_id, "memberType": "student"})

        assert response.status_code == 200
        assert response.json() == {"package": None}

    def test_selection_roundtrip(self, client, member):
        response = client.post(f"{API}/selections", json=member_body(member, selections=[
            {"date": "2024-03-02", "breakfast": False, "lunch": True},
        ]))
        assert response.status_code == 200
        stored = response.json()["selections"][0]
        assert stored["breakfast_needed"] is False

        listing = client.get(f"{API}/selections", params={
            "memberId": member.member_id, "memberType": "student", "startDate": "2024-03-01",
        })
        assert [s["date"] for s in listing.json()["selections"]] == ["2024-03-02"]

        deleted = client.delete(f"{API}/selections", params={"id": stored["id"]})
        assert deleted.json() == {"success": True}

        missing = client.delete(f"{API}/selections", params={"id": stored["id"]})
        assert missing.status_code == 404

    def test_selection_store_not_configured(self, client, db_helper, member):
        db_helper.drop_selections_table()

        listing = client.get(f"{API}/selections", params={"memberId": member.member_id, "memberType": "student"})
        assert listing.status_code == 200
        assert listing.json() == {"selections": []}

        response = client.post(f"{API}/selections", json=member_body(member, selections=[{"date": "2024-03-02"}]))
        assert response.status_code == 503
        assert response.json()["error_code"] == "SELECTIONS_NOT_CONFIGURED"

    def test_organization_meal_times(self, client, organization):
        response = client.get(f"{API}/organizations/{organization}/meal-times", params={"date": "2024-03-01"})

        assert response.status_code == 200
        org = response.json()["organization"]
        assert org["meal_times"]["lunch"]["start"] == "12:00"
        assert org["meal_times"]["lunch"]["skip_deadline"] == "2024-03-01T11:30:00"

    def test_organization_not_found(self, client):
        response = client.get(f"{API}/organizations/999/meal-times")
        assert response.status_code == 404
        assert response.json()["error_code"] == "ORGANIZATION_NOT_FOUND"

    def test_health(self, client):
        assert client.get("/").status_code == 200


class TestAccessKey:
    """访问口令测试"""

    def test_open_when_not_configured(self):
        assert SecurityManager(access_keys=[]).verify_access_key(None) == ""

    def test_rejects_wrong_key(self):
        manager = SecurityManager(access_keys=["secret-1", "secret-2"])

        assert manager.verify_access_key("secret-2") == "secret-2"
        with pytest.raises(AuthorizationError):
            manager.verify_access_key("guess")
        with pytest.raises(AuthorizationError):
            manager.verify_access_key(None)

    def test_endpoint_requires_key(self, client, monkeypatch):
        from ..core import security

        monkeypatch.setattr(security, "security_manager", SecurityManager(access_keys=["secret"]))

        denied = client.get(f"{API}/organizations/1/meal-times")
        assert denied.status_code == 403
        assert denied.json()["error_code"] == "PERMISSION_DENIED"
