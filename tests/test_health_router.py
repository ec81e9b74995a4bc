from unittest.mock import Mock

from dependency_injector import providers
from sqlalchemy.exc import OperationalError


class TestHealthRoutes:
    """헬스체크 라우터 테스트"""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok", "error": None}

    def test_database_down(self, app, client):
        """DB 연결 실패 시 unhealthy 응답"""
        # Given
        broken_session = Mock()
        broken_session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        app.container.repositories.get_db.override(providers.Object(broken_session))

        # When
        response = client.get("/health")

        # Then
        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "error"

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
