from unittest.mock import Mock

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from tianjiapi.core.auth_middleware import CurrentUser, get_current_user
from tianjiapi.core.exceptions import ConcurrencyConflictError
from tianjiapi.services.coin_service import CoinService


@pytest.fixture
def user(make_profile, db, settings, clock):
    """일반 잔액 10 을 가진 사용자"""
    profile = make_profile(email="user@tianji.test")
    CoinService(db, settings, clock).grant(profile.id, 10, "테스트 충전")
    return profile


class TestCoinRoutes:
    """코인 라우터 테스트"""

    def test_deduct(self, client, user, auth_headers):
        """기능 사용료 차감 테스트"""
        # When
        response = client.post(
            "/api/v1/coins/deduct",
            json={"featureType": "star_chart", "price": 4},
            headers=auth_headers(user),
        )

        # Then
        assert response.status_code == 200
        data = response.json()
        assert data["remaining_balance"] == 6
        assert data["transaction_id"]

    def test_deduct_insufficient_funds(self, client, user, auth_headers):
        """잔액 부족은 400 과 BALANCE_001 봉투"""
        # When
        response = client.post(
            "/api/v1/coins/deduct",
            json={"featureType": "star_chart", "price": 11},
            headers=auth_headers(user),
        )

        # Then
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "BALANCE_001"
        assert body["error"]["details"]["available"] == 10

    def test_deduct_invalid_price(self, client, user, auth_headers):
        """0 이하 가격은 422 검증 오류"""
        response = client.post(
            "/api/v1/coins/deduct",
            json={"featureType": "star_chart", "price": 0},
            headers=auth_headers(user),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_001"

    def test_requires_token(self, client):
        """토큰 없이 호출하면 401"""
        response = client.get("/api/v1/coins/balance")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_001"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get(
            "/api/v1/coins/balance", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_balance_and_transactions(self, client, user, auth_headers):
        # Given
        headers = auth_headers(user)
        client.post(
            "/api/v1/coins/deduct",
            json={"feature_type": "bazi_report", "price": 3},
            headers=headers,
        )

        # When
        balance = client.get("/api/v1/coins/balance", headers=headers)
        history = client.get("/api/v1/coins/transactions?limit=1", headers=headers)

        # Then
        assert balance.status_code == 200
        assert balance.json()["tianji_coins_balance"] == 7
        assert history.status_code == 200
        data = history.json()
        assert data["total_count"] == 2
        assert data["has_next"] is True
        assert data["transactions"][0]["coins_amount"] == -3

    def test_registration_bonus_twice(self, client, user, auth_headers):
        """가입 보너스 두 번째 수령은 409"""
        headers = auth_headers(user)

        first = client.post("/api/v1/coins/registration-bonus", headers=headers)
        second = client.post("/api/v1/coins/registration-bonus", headers=headers)
        status = client.get("/api/v1/coins/registration-bonus/status", headers=headers)

        assert first.status_code == 200
        assert first.json()["new_balance"] == 30
        assert second.status_code == 409
        assert status.json()["granted"] is True

    def test_integrity_my(self, client, user, auth_headers):
        response = client.get("/api/v1/coins/integrity/my", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["status"] == "OK"

    def test_concurrency_conflict_is_retryable(self, app, client, user, auth_headers):
        """동시 요청 충돌은 409 CONCURRENCY_001"""
        # Given
        mock_service = Mock()
        mock_service.deduct.side_effect = ConcurrencyConflictError()
        app.container.services.coin_service.override(providers.Object(mock_service))

        # When
        response = client.post(
            "/api/v1/coins/deduct",
            json={"featureType": "star_chart", "price": 1},
            headers=auth_headers(user),
        )

        # Then
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONCURRENCY_001"
        mock_service.deduct.assert_called_once_with(user.id, "star_chart", 1)
        app.container.services.coin_service.reset_override()

    def test_unexpected_error_envelope(self, app, user, auth_headers):
        """처리되지 않은 예외는 500 INTERNAL 봉투"""
        # Given
        mock_service = Mock()
        mock_service.get_balance.side_effect = RuntimeError("boom")
        app.container.services.coin_service.override(providers.Object(mock_service))
        client = TestClient(app, raise_server_exceptions=False)

        # When
        response = client.get("/api/v1/coins/balance", headers=auth_headers(user))

        # Then
        assert response.status_code == 500
        assert response.json()["success"] is False
        app.container.services.coin_service.reset_override()

    def test_balance_with_overridden_auth(self, app, client, user):
        """인증 의존성을 교체하면 토큰 없이 호출 가능"""
        # Given
        app.dependency_overrides[get_current_user] = lambda: CurrentUser(id=user.id)

        # When
        response = client.get("/api/v1/coins/balance")

        # Then
        assert response.status_code == 200
        assert response.json()["tianji_coins_balance"] == 10
        app.dependency_overrides.clear()
