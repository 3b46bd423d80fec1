"""FastAPI web dashboard application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from ..actions import ActionResult, ActionStatus, check_date_availability
from ..app import BookingApp
from ..config import Config
from ..records import Playlist

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"

# Placeholder id for drafts; add_playlist assigns the real temporary id
DRAFT_ID = "draft"


class PlaylistBody(BaseModel):
    """Booking form fields, using the sheet's column names."""

    date: str | None = None
    location: str | None = None
    phoneNumber: str | None = None
    brideZaffa: str | None = None
    groomZaffa: str | None = None
    songs: list[str] | None = None
    notes: str | None = None


def _action_response(result: ActionResult) -> dict[str, Any]:
    if result.status == ActionStatus.REJECTED:
        raise HTTPException(status_code=400, detail=result.message)
    if result.status == ActionStatus.FAILED:
        raise HTTPException(status_code=502, detail=result.message)
    return {"status": result.status.value, "id": result.playlist_id}


def create_app(
    config: Config,
    booking: BookingApp | None = None,
    start_sync: bool = True,
) -> FastAPI:
    """Create the FastAPI dashboard application.

    Args:
        config: Application configuration.
        booking: Wired components of the logged-in session, or None when
            nobody is logged in.
        start_sync: Start background polling for the app's lifetime.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if booking and start_sync:
            booking.engine.initialize()
            await booking.scheduler.start()
        yield
        if booking:
            await booking.close()

    app = FastAPI(
        title="Zaffa Dashboard",
        description="Wedding zaffa booking list",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store references for route handlers
    app.state.config = config
    app.state.booking = booking

    # Set up Jinja2 templates
    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

    def require_booking() -> BookingApp:
        if booking is None:
            raise HTTPException(status_code=401, detail="Not logged in")
        return booking

    # ==================== HTML Routes ====================

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        """Booking list page."""
        context: dict[str, Any] = {"page": "index", "user": None, "cards": []}

        if booking:
            context["user"] = booking.session.username
            context["is_admin"] = booking.session.is_admin
            context["cards"] = booking.presenter.cards
            context["welcome_link"] = booking.celebration.visible_link

        return templates.TemplateResponse(request, "index.html", context)

    # ==================== API Routes (JSON) ====================

    @app.get("/api/playlists")
    async def api_playlists() -> dict[str, Any]:
        """Current bookings, as rendered."""
        current = require_booking()
        playlists = [p.to_dict() for p in current.session.playlists]
        return {
            "user": current.session.username,
            "is_admin": current.session.is_admin,
            "count": len(playlists),
            "playlists": playlists,
        }

    @app.post("/api/playlists")
    async def api_add_playlist(body: PlaylistBody) -> dict[str, Any]:
        current = require_booking()
        fields = body.model_dump(exclude_none=True)
        draft = Playlist.from_dict({**fields, "id": DRAFT_ID})
        return _action_response(await current.actions.add_playlist(draft))

    @app.patch("/api/playlists/{playlist_id}")
    async def api_edit_playlist(playlist_id: str, body: PlaylistBody) -> dict[str, Any]:
        """Edit a booking; omitted fields keep their current value."""
        current = require_booking()
        existing = current.session.find(current.session.resolve_id(playlist_id))
        if existing is None:
            raise HTTPException(status_code=404, detail="Booking not found")

        merged = existing.to_dict()
        merged.update(body.model_dump(exclude_unset=True, exclude_none=True))
        updated = Playlist.from_dict(merged)
        return _action_response(
            await current.actions.update_playlist(existing.id, updated)
        )

    @app.delete("/api/playlists/{playlist_id}")
    async def api_delete_playlist(playlist_id: str) -> dict[str, Any]:
        current = require_booking()
        return _action_response(await current.actions.delete_playlist(playlist_id))

    @app.get("/api/archive")
    async def api_archive() -> dict[str, Any]:
        """Past bookings kept locally."""
        current = require_booking()
        archive = [p.to_dict() for p in current.cache.load_archive()]
        return {"count": len(archive), "playlists": archive}

    @app.post("/api/sync")
    async def api_sync() -> dict[str, Any]:
        """Run a reconciliation pass now."""
        current = require_booking()
        result = await current.engine.sync_once(force=True)
        if result is None:
            return {"synced": False}
        return {
            "synced": True,
            "fetched": result.fetched_count,
            "current": len(result.current),
            "archived": len(result.archived),
            "pruned": len(result.pruned_ids),
        }

    @app.get("/api/date-availability")
    async def api_date_availability(
        date: str = "", editing_id: str | None = None
    ) -> dict[str, Any]:
        current = require_booking()
        availability = check_date_availability(current.session, date, editing_id)
        return {"date": date, "availability": availability.value}

    @app.get("/api/alerts")
    async def api_alerts() -> dict[str, Any]:
        """Pending user-facing messages; reading them clears them."""
        if booking is None:
            return {"alerts": []}
        return {"alerts": booking.presenter.drain_alerts()}

    @app.get("/api/welcome")
    async def api_welcome() -> dict[str, Any]:
        current = require_booking()
        link = current.celebration.refresh(current.session)
        return {"visible": link is not None, "link": link}

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring.

        Always returns 200 OK even if components are unavailable.
        """
        health: dict[str, Any] = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "session": booking is not None,
                "sheet_configured": bool(config.sheet.endpoint_url),
            },
        }

        if booking:
            health["components"]["scheduler"] = booking.scheduler.state.value
            health["components"]["playlist_count"] = len(booking.session.playlists)
            try:
                health["components"]["cache"] = booking.cache.get_stats()
            except Exception as e:
                health["components"]["cache_error"] = str(e)

        return health

    return app
