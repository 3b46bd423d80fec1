"""CLI entry point for Zaffa."""

import argparse
import asyncio
import getpass
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .actions import ActionStatus
from .app import BookingApp, build_app, build_session
from .auth import AuthService
from .cache import LocalCache
from .config import Config, load_config
from .records import Playlist, decode_records
from .sheet import SheetClient, SheetError
from .sync.reconcile import reconcile_offline


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data, ensure_ascii=False)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data, ensure_ascii=False)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )

    # httpx logs every request at info
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ==================== Helpers ====================


def _open_cache(config: Config) -> LocalCache:
    cache = LocalCache(config.cache.db_path)
    cache.connect()
    return cache


def _client(config: Config) -> SheetClient:
    return SheetClient(config.sheet.endpoint_url, timeout=config.sheet.timeout_seconds)


def _prompt_password(args: argparse.Namespace, confirm: bool = False) -> tuple[str, str]:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    if not confirm:
        return password, password
    confirmation = getpass.getpass("Confirm password: ") if args.password is None else password
    return password, confirmation


def _format_playlist(playlist: Playlist, show_user: bool = False) -> str:
    event_date = playlist.event_date
    lines = [
        f"[{playlist.id}] {event_date.isoformat() if event_date else '(no date)'} - {playlist.location}",
        f"    Phone: {playlist.phone_number}",
        f"    Bride zaffa: {playlist.bride_zaffa}",
        f"    Groom zaffa: {playlist.groom_zaffa}",
    ]
    if playlist.songs:
        lines.append(f"    Songs: {', '.join(playlist.songs)}")
    if playlist.notes:
        lines.append(f"    Notes: {playlist.notes}")
    if show_user:
        lines.append(f"    User: {playlist.username}")
    return "\n".join(lines)


def _print_playlists(playlists: list[Playlist], as_json: bool, show_user: bool) -> None:
    if as_json:
        print(json.dumps([p.to_dict() for p in playlists], indent=2, ensure_ascii=False))
        return
    if not playlists:
        print("No bookings.")
        return
    for playlist in playlists:
        print(_format_playlist(playlist, show_user))


def _draft_from_args(args: argparse.Namespace, base: Playlist | None = None) -> Playlist:
    """Build a playlist from CLI flags; unset flags keep ``base`` values."""
    playlist = base.copy() if base else Playlist(id="draft")
    overrides = {
        "date": args.date,
        "location": args.location,
        "phone_number": args.phone,
        "bride_zaffa": args.bride,
        "groom_zaffa": args.groom,
        "notes": args.notes,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    if args.song is not None:
        changes["songs"] = list(args.song)
    return playlist.copy(**changes)


async def _open_app(config: Config, cache: LocalCache) -> BookingApp | None:
    session = build_session(config, cache)
    if session is None:
        print("Not logged in. Run 'zaffa login' first.", file=sys.stderr)
        return None
    return build_app(config, cache, _client(config), session)


def _report_alerts(app: BookingApp) -> None:
    for alert in app.presenter.drain_alerts():
        print(alert, file=sys.stderr)


# ==================== Auth Commands ====================


async def cmd_login(args: argparse.Namespace) -> int:
    """Log in and cache the initial booking list."""
    config = load_config(args.config)
    cache = _open_cache(config)
    client = _client(config)

    try:
        auth = AuthService(client, cache, config.auth)
        password, _ = _prompt_password(args)
        result = await auth.login(args.username, password)
        if not result.ok:
            print(result.message, file=sys.stderr)
            return 1

        if result.prefetched is not None:
            session = build_session(config, cache)
            reconcile_offline(session, decode_records(result.prefetched))

        role = "administrator" if result.is_admin else "user"
        print(f"Logged in as {result.username} ({role})")
        return 0
    finally:
        await client.close()
        cache.close()


async def cmd_register(args: argparse.Namespace) -> int:
    """Create an account and log in."""
    config = load_config(args.config)
    cache = _open_cache(config)
    client = _client(config)

    try:
        auth = AuthService(client, cache, config.auth)
        password, confirmation = _prompt_password(args, confirm=True)
        result = await auth.register(args.username, password, confirmation)
        if not result.ok:
            print(result.message, file=sys.stderr)
            return 1

        if result.prefetched is not None:
            session = build_session(config, cache)
            reconcile_offline(session, decode_records(result.prefetched))

        print(f"Account created. Logged in as {result.username}")
        return 0
    finally:
        await client.close()
        cache.close()


async def cmd_reset_password(args: argparse.Namespace) -> int:
    """Set a new password for an account."""
    config = load_config(args.config)
    cache = _open_cache(config)
    client = _client(config)

    try:
        auth = AuthService(client, cache, config.auth, prefetch=False)
        password, confirmation = _prompt_password(args, confirm=True)
        result = await auth.reset_password(args.username, password, confirmation)
        print(result.message, file=sys.stderr if not result.ok else sys.stdout)
        return 0 if result.ok else 1
    finally:
        await client.close()
        cache.close()


def cmd_logout(args: argparse.Namespace) -> int:
    """Forget the logged-in identity and cached lists."""
    config = load_config(args.config)
    cache = _open_cache(config)
    try:
        cache.clear_identity()
        print("Logged out")
        return 0
    finally:
        cache.close()


# ==================== Booking Commands ====================


async def cmd_status(args: argparse.Namespace) -> int:
    """Show identity, cache and sheet reachability."""
    config = load_config(args.config)
    cache = _open_cache(config)
    client = _client(config)

    try:
        status_data = {
            "timestamp": datetime.now().isoformat(),
            "cache": cache.get_stats(),
            "sheet": {
                "endpoint_url": config.sheet.endpoint_url,
                "configured": bool(config.sheet.endpoint_url),
                "apps_script": config.sheet.is_apps_script,
            },
        }

        try:
            rows = await client.fetch_playlists()
            status_data["sheet"]["reachable"] = True
            status_data["sheet"]["row_count"] = len(rows)
        except SheetError as e:
            status_data["sheet"]["reachable"] = False
            status_data["sheet"]["error"] = str(e)

        if args.as_json:
            print(json.dumps(status_data, indent=2, ensure_ascii=False))
            return 0

        stats = status_data["cache"]
        sheet = status_data["sheet"]
        print("Zaffa Status Check")
        print("==================")
        user = stats["current_user"] or "(not logged in)"
        print(f"User: {user}{' (administrator)' if stats['is_admin'] else ''}")
        print(f"Cache: {stats['db_path']}")
        print(f"  Cached scopes: {', '.join(stats['cached_scopes']) or 'none'}")
        print(f"  Archived bookings: {stats['archive_count']}")
        print()
        print(f"Sheet ({sheet['endpoint_url'] or 'not configured'}):")
        if sheet["reachable"]:
            print("  Status: Reachable")
            print(f"  Rows: {sheet['row_count']}")
        else:
            print("  Status: Not reachable")
            print(f"  Error: {sheet['error']}")
        return 0
    finally:
        await client.close()
        cache.close()


async def cmd_sync(args: argparse.Namespace) -> int:
    """Run one reconciliation pass."""
    config = load_config(args.config)
    cache = _open_cache(config)
    app = await _open_app(config, cache)
    if app is None:
        cache.close()
        return 1

    try:
        result = await app.engine.sync_once(force=True)
        if result is None:
            print("Sync failed, keeping cached data", file=sys.stderr)
            return 1
        print(
            f"Synced {result.fetched_count} rows: {len(result.current)} current, "
            f"{len(result.archived)} archived, {len(result.pruned_ids)} pruned"
        )
        return 0
    finally:
        await app.close()
        cache.close()


async def cmd_list(args: argparse.Namespace) -> int:
    """Print the current bookings."""
    config = load_config(args.config)
    cache = _open_cache(config)
    app = await _open_app(config, cache)
    if app is None:
        cache.close()
        return 1

    try:
        if args.refresh:
            if await app.engine.sync_once(force=True) is None:
                print("Sync failed, showing cached data", file=sys.stderr)
                app.engine.initialize()
        else:
            app.engine.initialize()
        _print_playlists(app.session.playlists, args.as_json, app.session.is_admin)
        return 0
    finally:
        await app.close()
        cache.close()


def cmd_archive(args: argparse.Namespace) -> int:
    """Print the locally archived past bookings."""
    config = load_config(args.config)
    cache = _open_cache(config)
    try:
        _print_playlists(cache.load_archive(), args.as_json, show_user=False)
        return 0
    finally:
        cache.close()


async def cmd_add(args: argparse.Namespace) -> int:
    """Create a booking."""
    config = load_config(args.config)
    cache = _open_cache(config)
    app = await _open_app(config, cache)
    if app is None:
        cache.close()
        return 1

    try:
        app.engine.initialize()
        result = await app.actions.add_playlist(_draft_from_args(args))
        _report_alerts(app)
        if not result.ok:
            return 1
        print(f"Added booking {result.playlist_id}")
        return 0
    finally:
        await app.close()
        cache.close()


async def cmd_edit(args: argparse.Namespace) -> int:
    """Edit a booking; unspecified fields keep their value."""
    config = load_config(args.config)
    cache = _open_cache(config)
    app = await _open_app(config, cache)
    if app is None:
        cache.close()
        return 1

    try:
        # Fresh server copy so the diff is computed against it
        if await app.engine.sync_once(force=True) is None:
            app.engine.initialize()

        existing = app.session.find(args.id)
        if existing is None:
            print(f"Booking {args.id} not found", file=sys.stderr)
            return 1

        result = await app.actions.update_playlist(args.id, _draft_from_args(args, existing))
        _report_alerts(app)
        if not result.ok:
            return 1
        print("No changes" if result.status == ActionStatus.UNCHANGED else f"Updated booking {args.id}")
        return 0
    finally:
        await app.close()
        cache.close()


async def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a booking."""
    config = load_config(args.config)
    cache = _open_cache(config)
    app = await _open_app(config, cache)
    if app is None:
        cache.close()
        return 1

    try:
        if await app.engine.sync_once(force=True) is None:
            app.engine.initialize()
        result = await app.actions.delete_playlist(args.id)
        _report_alerts(app)
        if not result.ok:
            return 1
        print(f"Deleted booking {args.id}")
        return 0
    finally:
        await app.close()
        cache.close()


async def cmd_watch(args: argparse.Namespace) -> int:
    """Poll the sheet and print changes as they arrive."""
    config = load_config(args.config)
    cache = _open_cache(config)
    app = await _open_app(config, cache)
    if app is None:
        cache.close()
        return 1

    def on_synced(session) -> None:
        diff = app.presenter.last_diff
        if not diff.changed:
            return
        print(
            f"[{datetime.now().strftime('%H:%M:%S')}] "
            f"+{len(diff.added)} ~{len(diff.updated)} -{len(diff.removed)} "
            f"({len(session.playlists)} bookings)"
        )
        if link := app.celebration.visible_link:
            print(f"  Welcome link: {link}")

    # Subscribed after the presenter, so last_diff is current
    app.session.subscribe(on_synced)

    print(f"Watching bookings every {config.sync.interval_seconds}s (Ctrl-C to stop)")
    try:
        app.engine.initialize()
        await app.scheduler.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")
    finally:
        await app.close()
        cache.close()

    return 0


async def cmd_dashboard(args: argparse.Namespace) -> int:
    """Start the web dashboard."""
    config = load_config(args.config)

    from .dashboard import create_app

    import uvicorn

    cache = _open_cache(config)
    session = build_session(config, cache)
    booking = build_app(config, cache, _client(config), session) if session else None

    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port

    print("Starting Zaffa Dashboard")
    print(f"User: {session.username if session else '(not logged in)'}")
    print(f"URL: http://{host}:{port}")

    app = create_app(config, booking=booking)

    try:
        verbose = getattr(args, "verbose", False)
        config_uvicorn = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        cache.close()

    return 0


def _add_booking_fields(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--date", help="Event date (YYYY-MM-DD)")
    parser.add_argument("--location", help="Event location")
    parser.add_argument("--phone", help="Contact phone number")
    parser.add_argument("--bride", help="Bride zaffa")
    parser.add_argument("--groom", help="Groom zaffa")
    parser.add_argument(
        "--song",
        action="append",
        help="Song to play (repeat in order; replaces the whole list)",
    )
    parser.add_argument("--notes", help="Free-form notes")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="zaffa",
        description="Wedding zaffa booking client backed by a shared spreadsheet",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Auth commands
    login_parser = subparsers.add_parser("login", help="Log in")
    login_parser.add_argument("username")
    login_parser.add_argument("-p", "--password", default=None, help="Password (prompted if omitted)")
    login_parser.set_defaults(func=cmd_login)

    register_parser = subparsers.add_parser("register", help="Create an account")
    register_parser.add_argument("username")
    register_parser.add_argument("-p", "--password", default=None, help="Password (prompted if omitted)")
    register_parser.set_defaults(func=cmd_register)

    reset_parser = subparsers.add_parser("reset-password", help="Reset an account password")
    reset_parser.add_argument("username")
    reset_parser.add_argument("-p", "--password", default=None, help="New password (prompted if omitted)")
    reset_parser.set_defaults(func=cmd_reset_password)

    logout_parser = subparsers.add_parser("logout", help="Log out and clear cached lists")
    logout_parser.set_defaults(func=cmd_logout)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check identity and sheet status")
    status_parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Booking commands
    sync_parser = subparsers.add_parser("sync", help="Fetch and reconcile once")
    sync_parser.set_defaults(func=cmd_sync)

    list_parser = subparsers.add_parser("list", help="Show current bookings")
    list_parser.add_argument("--refresh", action="store_true", help="Sync before listing")
    list_parser.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=cmd_list)

    archive_parser = subparsers.add_parser("archive", help="Show archived past bookings")
    archive_parser.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")
    archive_parser.set_defaults(func=cmd_archive)

    add_parser = subparsers.add_parser("add", help="Create a booking")
    _add_booking_fields(add_parser)
    add_parser.set_defaults(func=cmd_add)

    edit_parser = subparsers.add_parser("edit", help="Edit a booking")
    edit_parser.add_argument("id", help="Booking id")
    _add_booking_fields(edit_parser)
    edit_parser.set_defaults(func=cmd_edit)

    delete_parser = subparsers.add_parser("delete", help="Delete a booking")
    delete_parser.add_argument("id", help="Booking id")
    delete_parser.set_defaults(func=cmd_delete)

    watch_parser = subparsers.add_parser("watch", help="Poll and print changes")
    watch_parser.set_defaults(func=cmd_watch)

    # Dashboard command
    dashboard_parser = subparsers.add_parser("dashboard", help="Start the web dashboard")
    dashboard_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to run dashboard on (default: from config, 8080)",
    )
    dashboard_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind dashboard to (default: from config, 127.0.0.1)",
    )
    dashboard_parser.set_defaults(func=cmd_dashboard)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        try:
            return asyncio.run(func(args))
        except KeyboardInterrupt:
            return 130
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
