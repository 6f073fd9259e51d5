"""Tests for authentication service"""

from datetime import timedelta

from orgtree.services.auth_service import AuthService


class TestAuthService:
    """Test suite for AuthService"""

    def test_create_access_token(self):
        """Test access token carries the user claims"""
        token = AuthService.create_access_token("user-123", "test@example.com", tenant_id="acme")

        payload = AuthService.validate_token(token)

        assert payload["sub"] == "user-123"
        assert payload["email"] == "test@example.com"
        assert payload["tenant_id"] == "acme"
        assert payload["iss"] == "orgtree-api"
        assert payload["type"] == "access"

    def test_wrong_token_type(self):
        token = AuthService.generate_token({"sub": "user-123"}, token_type="refresh")

        assert AuthService.validate_token(token, token_type="access") is None
        assert AuthService.validate_token(token, token_type="refresh")["sub"] == "user-123"

    def test_expired_token(self):
        token = AuthService.generate_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-10))

        assert AuthService.decode_token(token) is None

    def test_malformed_token(self):
        assert AuthService.decode_token("not.a.token") is None
        assert AuthService.validate_token("garbage") is None
