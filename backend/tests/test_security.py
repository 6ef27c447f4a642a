"""Security middleware and helper tests"""
import pytest
from unittest.mock import patch, Mock
from fastapi import status

from app.core.config import settings
from app.core.security import validate_origin_referer, get_client_identifier
from app.db.redis import check_rate_limit, get_session, get_csrf_token
from app.services.auth_service import login_user, logout_user


def _request(headers=None, host="203.0.113.9"):
    request = Mock()
    request.headers = headers or {}
    request.client = Mock(host=host)
    return request


@pytest.mark.critical
class TestRateLimiting:
    """Fixed-window rate limiting"""
    
    def test_allows_until_limit(self, mock_redis):
        with patch.object(settings, "RATE_LIMIT_REQUESTS", 3):
            results = [check_rate_limit("ip:1.2.3.4") for _ in range(4)]
        assert results == [True, True, True, False]
    
    def test_strict_bucket_is_separate(self, mock_redis):
        with patch.object(settings, "RATE_LIMIT_STRICT_REQUESTS", 1):
            assert check_rate_limit("ip:1.2.3.4", strict=True) is True
            assert check_rate_limit("ip:1.2.3.4", strict=True) is False
            assert check_rate_limit("ip:1.2.3.4") is True
    
    def test_window_expiry_is_set(self, mock_redis):
        check_rate_limit("ip:5.6.7.8")
        assert 0 < mock_redis.ttl("ratelimit:ip:5.6.7.8") <= settings.RATE_LIMIT_WINDOW
    
    def test_middleware_returns_429(self, authenticated_client):
        with patch.object(settings, "RATE_LIMIT_STRICT_REQUESTS", 0):
            response = authenticated_client.post("/api/tokens/daily-bonus")
        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.json() == {"error": "Rate limit exceeded. Please try again later."}


@pytest.mark.critical
class TestOriginValidation:
    """Origin/Referer checks on state-changing requests"""
    
    def test_allowed_origin(self):
        assert validate_origin_referer(_request({"Origin": settings.FRONTEND_URL})) is True
    
    def test_foreign_origin(self):
        assert validate_origin_referer(_request({"Origin": "https://evil.example"})) is False
    
    def test_allowed_referer(self):
        assert validate_origin_referer(_request({"Referer": settings.FRONTEND_URL + "/rewards"})) is True
    
    def test_missing_headers_outside_development(self):
        with patch.object(settings, "ENVIRONMENT", "production"):
            assert validate_origin_referer(_request()) is False
    
    def test_middleware_blocks_foreign_origin(self, authenticated_client, test_user, db_session):
        response = authenticated_client.post(
            "/api/tokens/spend",
            json={"amount": 10, "type": "skip_queue"},
            headers={"Origin": "https://evil.example"}
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Invalid origin or referer"}


@pytest.mark.high
class TestSessions:
    """Session lifecycle in Redis"""
    
    def test_login_creates_session(self, test_user, db_session, mock_redis):
        result = login_user(test_user.email, "TestPassword123!", db_session)
        assert get_session(result["session_id"]) == test_user.id
        assert result["user"]["tokenBalance"] == 50
    
    def test_logout_clears_session_and_csrf(self, test_user, db_session, mock_redis):
        session_id = login_user(test_user.email, "TestPassword123!", db_session)["session_id"]
        mock_redis.setex(f"csrf:{session_id}", 60, "token")
        
        logout_user(session_id)
        assert get_session(session_id) is None
        assert get_csrf_token(session_id) is None
    
    def test_authenticated_requests_store_only_session_state(self, authenticated_client, mock_redis):
        authenticated_client.get("/api/tokens/balance")
        prefixes = {key.split(":", 1)[0] for key in mock_redis.keys("*")}
        assert prefixes <= {"session", "csrf", "ratelimit"}
        assert mock_redis.keys("activity:*") == []

    def test_client_identifier(self):
        assert get_client_identifier(_request(), "abc") == "session:abc"
        assert get_client_identifier(_request({"X-Forwarded-For": "198.51.100.7, 10.0.0.1"})) == "ip:198.51.100.7"
        assert get_client_identifier(_request()) == "ip:203.0.113.9"
