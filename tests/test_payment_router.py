import pytest

from tianjiapi.models.profile import Profile


@pytest.fixture
def user(make_profile):
    return make_profile(email="buyer@tianji.test")


def create_order(client, headers, coins=100, amount=9.9, **extra):
    payload = {"amount": amount, "coinsAmount": coins, **extra}
    response = client.post("/api/v1/payment/orders", json=payload, headers=headers)
    assert response.status_code == 200
    return response.json()


class TestPaymentRoutes:
    """결제 라우터 테스트"""

    def test_create_order(self, client, user, auth_headers):
        # When
        order = create_order(client, auth_headers(user), packType="small")

        # Then
        assert order["status"] == "pending"
        assert order["payment_url"].endswith(f"orderId={order['order_id']}")

    def test_callback_completed_twice(self, db, client, user, auth_headers):
        """같은 완료 콜백을 두 번 받아도 코인은 한 번만 지급"""
        # Given
        order = create_order(client, auth_headers(user), coins=1000, amount=98)
        payload = {"orderId": order["order_id"], "status": "completed", "paymentProvider": "alipay"}

        # When
        first = client.post("/api/v1/payment/callback", json=payload)
        second = client.post("/api/v1/payment/callback", json=payload)

        # Then
        assert first.status_code == 200
        assert first.json()["coins_granted"] == 1000
        assert second.status_code == 200
        assert second.json()["already_processed"] is True
        assert second.json()["new_balance"] == 1000
        assert db.get(Profile, user.id).tianji_coins_balance == 1000

    def test_callback_on_failed_order(self, client, user, auth_headers):
        """실패한 주문에 완료 콜백이 오면 409 ORDER_002"""
        # Given
        order = create_order(client, auth_headers(user))
        client.post("/api/v1/payment/callback", json={"orderId": order["order_id"], "status": "failed"})

        # When
        response = client.post(
            "/api/v1/payment/callback", json={"orderId": order["order_id"], "status": "completed"}
        )

        # Then
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ORDER_002"

    def test_callback_unknown_status(self, client, user, auth_headers):
        order = create_order(client, auth_headers(user))
        response = client.post(
            "/api/v1/payment/callback", json={"orderId": order["order_id"], "status": "refunded"}
        )
        assert response.status_code == 422

    def test_callback_unknown_order(self, client):
        response = client.post(
            "/api/v1/payment/callback", json={"orderId": "missing", "status": "completed"}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORDER_001"

    def test_mock_success_and_order_queries(self, client, user, auth_headers):
        # Given
        headers = auth_headers(user)
        order = create_order(client, headers)

        # When
        paid = client.post("/api/v1/payment/mock/success", json={"orderId": order["order_id"]}, headers=headers)
        orders = client.get("/api/v1/payment/orders?status=completed", headers=headers)
        detail = client.get(f"/api/v1/payment/orders/{order['order_id']}", headers=headers)

        # Then
        assert paid.status_code == 200
        assert paid.json()["new_balance"] == 100
        assert orders.json()["total_count"] == 1
        assert detail.json()["status"] == "completed"

    def test_other_users_order_not_visible(self, client, user, make_profile, auth_headers):
        order = create_order(client, auth_headers(user))
        stranger = make_profile()

        response = client.get(f"/api/v1/payment/orders/{order['order_id']}", headers=auth_headers(stranger))

        assert response.status_code == 404

    def test_mock_disabled(self, client, settings, user, auth_headers):
        """모의 결제가 꺼져 있으면 403"""
        # Given
        headers = auth_headers(user)
        order = create_order(client, headers)
        settings.ENABLE_MOCK_PAYMENTS = False

        # When
        response = client.post("/api/v1/payment/mock/success", json={"orderId": order["order_id"]}, headers=headers)

        # Then
        assert response.status_code == 403
