"""Tests for login, registration and password reset."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from zaffa.auth import AuthService, AuthStatus
from zaffa.cache import LocalCache
from zaffa.config import AuthConfig
from zaffa.sheet import SheetClient, SheetError


@pytest.fixture
def cache():
    """Create an in-memory LocalCache."""
    cache = LocalCache(":memory:")
    cache.connect()
    yield cache
    cache.close()


@pytest.fixture
def mock_client():
    """Create a mock SheetClient that accepts credentials."""
    client = MagicMock(spec=SheetClient)
    client.authenticate = AsyncMock(return_value={"status": "success"})
    client.register = AsyncMock(return_value={"status": "success"})
    client.reset_password = AsyncMock(return_value={"status": "success"})
    client.fetch_playlists = AsyncMock(return_value=[{"id": "1", "username": "alice"}])
    return client


@pytest.fixture
def auth(mock_client, cache):
    config = AuthConfig(admin_username="boss", admin_password="hunter22")
    return AuthService(mock_client, cache, config)


class TestLogin:
    """Tests for logging in."""

    @pytest.mark.asyncio
    async def test_success_stores_identity(self, auth, cache, mock_client):
        result = await auth.login("  alice ", "secret1")

        assert result.status == AuthStatus.SUCCESS
        assert result.username == "alice"
        assert cache.current_user == "alice"
        assert cache.is_admin is False
        mock_client.authenticate.assert_awaited_once_with("alice", "secret1")

    @pytest.mark.asyncio
    async def test_password_never_cached(self, auth, cache):
        await auth.login("alice", "secret1")

        for key in cache.keys():
            assert "secret1" not in str(cache.get(key))

    @pytest.mark.asyncio
    async def test_success_prefetches_rows(self, auth):
        result = await auth.login("alice", "secret1")

        assert result.prefetched == [{"id": "1", "username": "alice"}]

    @pytest.mark.asyncio
    async def test_prefetch_failure_is_not_fatal(self, auth, mock_client):
        mock_client.fetch_playlists.side_effect = SheetError("offline")

        result = await auth.login("alice", "secret1")

        assert result.ok
        assert result.prefetched is None

    @pytest.mark.asyncio
    async def test_empty_fields_rejected(self, auth, mock_client):
        result = await auth.login("alice", "   ")

        assert result.status == AuthStatus.INVALID
        mock_client.authenticate.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_shortcut(self, auth, cache, mock_client):
        """Test configured admin credentials log in without a network call."""
        result = await auth.login("boss", "hunter22")

        assert result.is_admin is True
        assert cache.is_admin is True
        mock_client.authenticate.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_admin_when_unconfigured(self, mock_client, cache):
        auth = AuthService(mock_client, cache, AuthConfig())
        mock_client.authenticate.return_value = {"status": "error"}

        result = await auth.login("boss", "hunter22")

        assert result.status == AuthStatus.DENIED
        mock_client.authenticate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_attempts_counted_until_reset_required(self, auth, cache, mock_client):
        mock_client.authenticate.return_value = {"status": "error"}

        first = await auth.login("alice", "wrong")
        second = await auth.login("alice", "wrong")
        third = await auth.login("alice", "wrong")

        assert first.status == AuthStatus.DENIED
        assert "1 of 3" in first.message
        assert second.status == AuthStatus.DENIED
        assert third.status == AuthStatus.RESET_REQUIRED
        assert cache.current_user is None

    @pytest.mark.asyncio
    async def test_transport_error(self, auth, mock_client):
        mock_client.authenticate.side_effect = SheetError("offline")

        result = await auth.login("alice", "secret1")

        assert result.status == AuthStatus.ERROR
        assert auth.failed_attempts == 0


class TestRegisterAndReset:
    """Tests for account creation and password reset."""

    @pytest.mark.asyncio
    async def test_register_logs_in(self, auth, cache, mock_client):
        result = await auth.register("carol", "secret1", "secret1")

        assert result.ok
        assert cache.current_user == "carol"
        mock_client.register.assert_awaited_once_with("carol", "secret1")

    @pytest.mark.asyncio
    async def test_register_validation(self, auth, mock_client):
        missing = await auth.register("carol", "", "")
        mismatch = await auth.register("carol", "secret1", "secret2")
        short = await auth.register("carol", "abc", "abc")

        assert missing.status == AuthStatus.INVALID
        assert mismatch.status == AuthStatus.INVALID
        assert short.status == AuthStatus.INVALID
        assert "6" in short.message
        mock_client.register.assert_not_called()

    @pytest.mark.asyncio
    async def test_register_rejected_by_sheet(self, auth, cache, mock_client):
        mock_client.register.return_value = {"status": "error", "message": "User exists"}

        result = await auth.register("carol", "secret1", "secret1")

        assert result.status == AuthStatus.DENIED
        assert result.message == "User exists"
        assert cache.current_user is None

    @pytest.mark.asyncio
    async def test_reset_password(self, auth, cache, mock_client):
        mock_client.authenticate.return_value = {"status": "error"}
        await auth.login("alice", "wrong")

        result = await auth.reset_password("alice", "newpass1", "newpass1")

        assert result.ok
        assert auth.failed_attempts == 0
        assert cache.current_user is None
        mock_client.reset_password.assert_awaited_once_with("alice", "newpass1")


class TestLogout:
    """Tests for logging out."""

    @pytest.mark.asyncio
    async def test_logout_clears_identity_and_lists(self, auth, cache):
        await auth.login("alice", "secret1")
        cache.set("cachedPlaylists_alice", [])

        auth.logout()

        assert cache.current_user is None
        assert cache.keys("cachedPlaylists_") == []
