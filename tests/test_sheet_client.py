"""Tests for the sheet HTTP client."""

import json
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from zaffa.records import Playlist
from zaffa.sheet import SheetClient, SheetCommandError, SheetError

ENDPOINT = "https://script.google.com/macros/s/test/exec"


def mock_response(status_code=200, data=None, text=""):
    """Create a mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if data is None:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = data
    return response


def sent_payload(mock_http):
    """Decode the JSON command passed to the last POST."""
    return json.loads(mock_http.post.call_args.kwargs["content"])


class TestSheetClientInit:
    """Tests for client setup."""

    @pytest.mark.asyncio
    async def test_http_client_follows_redirects(self):
        """Test the Apps Script redirect hop is followed."""
        client = SheetClient(ENDPOINT, timeout=12.0)

        with patch("zaffa.sheet.client.httpx.AsyncClient") as mock_cls:
            await client._get_client()

        mock_cls.assert_called_once_with(timeout=12.0, follow_redirects=True)

    @pytest.mark.asyncio
    async def test_close(self):
        client = SheetClient(ENDPOINT)
        mock_http = AsyncMock()
        client._client = mock_http

        await client.close()

        mock_http.aclose.assert_awaited_once()
        assert client._client is None


class TestFetchPlaylists:
    """Tests for the GET side."""

    @pytest.mark.asyncio
    async def test_returns_rows(self):
        client = SheetClient(ENDPOINT)
        rows = [{"id": "1", "date": "2099-01-01"}]

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=mock_response(200, rows))
            mock_get.return_value = mock_http

            assert await client.fetch_playlists() == rows
            mock_http.get.assert_awaited_once_with(ENDPOINT)

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=mock_response(500, text="boom"))
            mock_get.return_value = mock_http

            with pytest.raises(SheetError, match="HTTP 500"):
                await client.fetch_playlists()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=mock_response(200, text="<html>"))
            mock_get.return_value = mock_http

            with pytest.raises(SheetError, match="Invalid JSON"):
                await client.fetch_playlists()

    @pytest.mark.asyncio
    async def test_non_array_raises(self):
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=mock_response(200, {"status": "error"}))
            mock_get.return_value = mock_http

            with pytest.raises(SheetError, match="JSON array"):
                await client.fetch_playlists()

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(side_effect=httpx.ConnectError("unreachable"))
            mock_get.return_value = mock_http

            with pytest.raises(SheetError, match="Request failed"):
                await client.fetch_playlists()

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
            mock_get.return_value = mock_http

            with pytest.raises(SheetError, match="timeout"):
                await client.fetch_playlists()

    @pytest.mark.asyncio
    async def test_no_endpoint_configured(self):
        client = SheetClient("")

        with pytest.raises(SheetError, match="No sheet endpoint"):
            await client.fetch_playlists()


class TestCommands:
    """Tests for the POST side."""

    @pytest.mark.asyncio
    async def test_post_sends_plain_text_json(self):
        """Test commands go out as a JSON string with a text/plain type."""
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=mock_response(200, {"status": "success"}))
            mock_get.return_value = mock_http

            await client.delete_playlist("42")

            kwargs = mock_http.post.call_args.kwargs
            assert kwargs["headers"] == {"Content-Type": "text/plain;charset=utf-8"}
            assert sent_payload(mock_http) == {"action": "delete", "id": "42"}

    @pytest.mark.asyncio
    async def test_add_payload(self):
        client = SheetClient(ENDPOINT)
        playlist = Playlist(id="123", date="2099-01-01", songs=["a", "b"], notes="x")

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(
                return_value=mock_response(200, {"status": "success", "id": "srv-1"})
            )
            mock_get.return_value = mock_http

            result = await client.add_playlist(playlist)

            payload = sent_payload(mock_http)

        assert result["id"] == "srv-1"
        assert payload["action"] == "add"
        assert payload["id"] == "123"
        assert json.loads(payload["songs"]) == ["a", "b"]
        assert payload["notes"] == "'x"

    @pytest.mark.asyncio
    async def test_edit_payload_carries_changes(self):
        client = SheetClient(ENDPOINT)
        playlist = Playlist(id="9", date="2099-01-01", location="Ajman")

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=mock_response(200, {"status": "success"}))
            mock_get.return_value = mock_http

            await client.edit_playlist(playlist, {"location": "Ajman"})

            payload = sent_payload(mock_http)

        assert payload["action"] == "edit"
        assert payload["id"] == "9"
        assert payload["changes"] == {"location": "Ajman"}
        assert payload["location"] == "Ajman"
        assert "password" not in payload

    @pytest.mark.asyncio
    async def test_edit_changes_match_record_encoding(self):
        """Test changed notes and songs are encoded like the record fields."""
        client = SheetClient(ENDPOINT)
        playlist = Playlist(id="9", date="2099-01-01", songs=["b", "a"], notes="12/05")

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=mock_response(200, {"status": "success"}))
            mock_get.return_value = mock_http

            await client.edit_playlist(playlist, {"notes": "12/05", "songs": ["b", "a"]})

            payload = sent_payload(mock_http)

        assert payload["changes"]["notes"] == payload["notes"] == "'12/05"
        assert payload["changes"]["songs"] == payload["songs"]
        assert json.loads(payload["changes"]["songs"]) == ["b", "a"]

    @pytest.mark.asyncio
    async def test_failure_status_raises_command_error(self):
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(
                return_value=mock_response(200, {"status": "error", "message": "nope"})
            )
            mock_get.return_value = mock_http

            with pytest.raises(SheetCommandError, match="nope") as exc_info:
                await client.archive(["1", "2"])

            assert sent_payload(mock_http) == {"action": "archive", "ids": ["1", "2"]}

        assert exc_info.value.result["status"] == "error"

    @pytest.mark.asyncio
    async def test_authenticate_returns_result_without_raising(self):
        """Test auth commands hand back the status for the caller to judge."""
        client = SheetClient(ENDPOINT)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=mock_response(200, {"status": "error"}))
            mock_get.return_value = mock_http

            result = await client.authenticate("alice", "secret")

            assert sent_payload(mock_http)["action"] == "authenticate"

        assert result == {"status": "error"}
