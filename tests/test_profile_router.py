import pytest


@pytest.fixture
def user(make_profile):
    return make_profile(email="profile@tianji.test")


class TestProfileRoutes:
    """자료 완성도 라우터 테스트"""

    def test_update_fields_grants_rewards(self, client, user, auth_headers):
        # When
        response = client.put(
            "/api/v1/profile/completeness",
            json={"mbti": "INTJ", "currentStatus": "忙碌"},
            headers=auth_headers(user),
        )

        # Then
        assert response.status_code == 200
        data = response.json()
        assert data["completeness"] == 30
        assert data["coins_granted"] == 5 + 5 + 10
        assert {e["type"] for e in data["reward_events"]} == {
            "COIN_GRANTED",
            "THRESHOLD_REACHED",
            "COMPLETENESS_INCREASED",
        }

    def test_unsent_fields_are_kept(self, client, user, auth_headers):
        """보내지 않은 필드는 기존 값 유지"""
        headers = auth_headers(user)
        client.put("/api/v1/profile/completeness", json={"profession": "教师"}, headers=headers)

        client.put("/api/v1/profile/completeness", json={"wishes": ["健康"]}, headers=headers)
        card = client.get("/api/v1/profile/completeness", headers=headers)

        assert card.json()["completeness"] == 30
        assert card.json()["breakdown"]["profession"]["filled"] is True

    def test_birth_date_sync(self, client, user, auth_headers):
        response = client.put(
            "/api/v1/profile/birth-date",
            json={"birthDate": "1992-08-15", "gender": "male"},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        assert response.json()["completeness"] == 40
        assert response.json()["coins_granted"] == 10

    def test_invalid_gender(self, client, user, auth_headers):
        response = client.put(
            "/api/v1/profile/birth-date",
            json={"birthDate": "1992-08-15", "gender": "unknown"},
            headers=auth_headers(user),
        )
        assert response.status_code == 422


class TestSubscriptionRoutes:
    """구독 라우터 테스트"""

    def test_subscribe_pay_and_cancel(self, client, user, auth_headers):
        """구독 생성 → 모의 결제 → 취소해도 만료일까지 등급 유지"""
        # Given
        headers = auth_headers(user)
        created = client.post("/api/v1/subscription/create", json={"tier": "premium"}, headers=headers)
        order_id = created.json()["order_id"]

        # When
        paid = client.post("/api/v1/payment/mock/success", json={"orderId": order_id}, headers=headers)
        status = client.get("/api/v1/subscription/status", headers=headers)
        cancelled = client.post("/api/v1/subscription/cancel", headers=headers)

        # Then
        assert created.status_code == 200
        assert paid.status_code == 200
        assert status.json()["tier"] == "premium"
        assert status.json()["status"] == "active"
        assert cancelled.json()["tier"] == "premium"
        assert cancelled.json()["auto_renew"] is False

    def test_unknown_tier_rejected(self, client, user, auth_headers):
        response = client.post(
            "/api/v1/subscription/create", json={"tier": "diamond"}, headers=auth_headers(user)
        )
        assert response.status_code == 422
