"""Client for the spreadsheet web app that stores bookings.

The backend is a single endpoint: GET returns every row as a JSON array,
POST takes a JSON command (selected by its ``action`` field) and answers
with a JSON object carrying a ``status``.
"""

import json
import logging
from typing import Any

import httpx

from ..records import Playlist

logger = logging.getLogger(__name__)


class SheetError(Exception):
    """Transport or format failure talking to the sheet."""


class SheetCommandError(SheetError):
    """The sheet answered, but with a non-success status."""

    def __init__(self, message: str, result: dict[str, Any] | None = None):
        super().__init__(message)
        self.result = result or {}


class SheetClient:
    """Async client for the booking sheet endpoint.

    No retries are made: every failure is terminal for that attempt.
    """

    def __init__(self, endpoint_url: str, timeout: float = 30.0):
        """Initialize the sheet client.

        Args:
            endpoint_url: Web app URL serving both GET and POST.
            timeout: Request timeout in seconds.
        """
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            # Apps Script answers through a redirect to googleusercontent.com
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, content: str | None = None) -> Any:
        if not self.endpoint_url:
            raise SheetError("No sheet endpoint configured")

        client = await self._get_client()
        try:
            if method == "GET":
                response = await client.get(self.endpoint_url)
            else:
                response = await client.post(
                    self.endpoint_url,
                    content=content,
                    headers={"Content-Type": "text/plain;charset=utf-8"},
                )
        except httpx.TimeoutException as e:
            raise SheetError(f"Request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise SheetError(f"Request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise SheetError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise SheetError(f"Invalid JSON response: {e}") from e

    async def fetch_playlists(self) -> list[dict[str, Any]]:
        """Fetch every row of the sheet.

        Returns:
            Raw row objects, undecoded.

        Raises:
            SheetError: On transport failure or a non-array response.
        """
        data = await self._send("GET")
        if not isinstance(data, list):
            raise SheetError(f"Expected a JSON array, got {type(data).__name__}")
        logger.debug(f"Fetched {len(data)} rows")
        return data

    async def post(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a command and return the response object.

        The status is not checked here; see ``run``.
        """
        data = await self._send("POST", json.dumps(payload, ensure_ascii=False))
        if not isinstance(data, dict):
            raise SheetError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    async def run(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a command and require ``status == "success"``.

        Raises:
            SheetCommandError: If the sheet reports a failure.
            SheetError: On transport failure.
        """
        result = await self.post(payload)
        if result.get("status") != "success":
            message = result.get("message") or f"{payload.get('action')} failed"
            raise SheetCommandError(message, result)
        return result

    # ==================== Commands ====================

    async def authenticate(self, username: str, password: str) -> dict[str, Any]:
        return await self.post(
            {"action": "authenticate", "username": username, "password": password}
        )

    async def register(self, username: str, password: str) -> dict[str, Any]:
        return await self.post(
            {"action": "register", "username": username, "password": password}
        )

    async def reset_password(self, username: str, password: str) -> dict[str, Any]:
        return await self.post(
            {"action": "resetPassword", "username": username, "password": password}
        )

    async def add_playlist(
        self, playlist: Playlist, notes_as_text: bool = True
    ) -> dict[str, Any]:
        """Create a row. The playlist id is the client's temporary id."""
        payload = playlist.to_wire(notes_as_text)
        payload["action"] = "add"
        return await self.run(payload)

    async def edit_playlist(
        self,
        playlist: Playlist,
        changes: dict[str, Any],
        notes_as_text: bool = True,
    ) -> dict[str, Any]:
        """Update a row; ``changes`` holds the fields that differ.

        Changed values are encoded the same way as the full record
        fields, so notes carry the text prefix and songs go out as a
        JSON string in both places.
        """
        wire = playlist.to_wire(notes_as_text)
        payload: dict[str, Any] = {
            "action": "edit",
            "id": playlist.id,
            "changes": {key: wire.get(key, value) for key, value in changes.items()},
        }
        payload.update(wire)
        return await self.run(payload)

    async def delete_playlist(self, playlist_id: str) -> dict[str, Any]:
        return await self.run({"action": "delete", "id": playlist_id})

    async def archive(self, ids: list[str]) -> dict[str, Any]:
        return await self.run({"action": "archive", "ids": list(ids)})
