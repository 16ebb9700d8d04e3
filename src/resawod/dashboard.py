"""Read-only status page for the running scheduler.

Serves ``GET /`` and ``GET /health``. The page shows the configured slots, the
scheduler table, the watcher status and each user's live bookings and
waiting list. Runs a ThreadingHTTPServer in a daemon thread next to the
asyncio scheduler; scheduler state is only ever read through StatusTable
snapshots, and live data is fetched per request on a fresh gateway per user.
"""

import asyncio
import html
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from resawod.config import BookingConfig, SlotConfig, UserConfig
from resawod.dates import WEEKDAYS
from resawod.errors import ResawodError
from resawod.gateway import GatewayFactory
from resawod.logging import get_logger
from resawod.models import BookingEntry
from resawod.status import SchedulerEntry, StatusTable
from resawod.watcher import fetch_capacity

logger = get_logger(__name__)


@dataclass
class UserDashboard:
    """Live bookings of one user, or the error that prevented fetching them."""

    name: str
    bookings: list[BookingEntry] = field(default_factory=list)
    waiting_list: list[BookingEntry] = field(default_factory=list)
    error: str | None = None


def _with_counts(entry: BookingEntry, capacity: dict[str, tuple[int, int]]) -> BookingEntry:
    if entry.id not in capacity:
        return entry
    inscribed, cap = capacity[entry.id]
    return entry.model_copy(update={"inscribed": inscribed, "capacity": cap})


async def collect_user_dashboard(user: UserConfig, factory: GatewayFactory) -> UserDashboard:
    gateway = factory()
    try:
        try:
            await gateway.login(user.login, user.password)
        except ResawodError as e:
            logger.warning("dashboard_login_failed", user=user.name, error=str(e))
            return UserDashboard(user.name, error=f"Login failed: {e}")
        try:
            bookings = await gateway.get_bookings()
        except ResawodError as e:
            logger.warning("dashboard_bookings_failed", user=user.name, error=str(e))
            return UserDashboard(user.name, error=f"Failed to fetch bookings: {e}")

        # Waiting-list entries carry no counts; take them from the slot lists
        waiting = bookings.waiting_list
        if waiting:
            capacity = await fetch_capacity(gateway, {e.date for e in waiting})
            waiting = [_with_counts(e, capacity) for e in waiting]
        return UserDashboard(user.name, bookings=list(bookings.bookings), waiting_list=waiting)
    finally:
        await gateway.close()


async def collect_user_dashboards(
    users: Sequence[UserConfig], factory: GatewayFactory
) -> list[UserDashboard]:
    """Fetch every user's bookings in turn; one user's failure stays in its section."""
    return [await collect_user_dashboard(user, factory) for user in users]


def _cell(value: str, css: str | None = None) -> str:
    attr = f" class='{css}'" if css else ""
    return f"<td{attr}>{html.escape(value)}</td>"


def _table(headers: Sequence[str], rows: Sequence[str]) -> str:
    head = "".join(f"<th>{h}</th>" for h in headers)
    return f"<table><tr>{head}</tr>{''.join(rows)}</table>"


def render_slots_table(slots: Mapping[str, SlotConfig]) -> str:
    if not slots:
        return "<p class='empty'>No slots configured.</p>"
    rows = [
        "<tr>"
        + _cell(day.capitalize())
        + _cell(slots[day].time)
        + _cell(slots[day].activity_filter or "")
        + "</tr>"
        for day in WEEKDAYS
        if day in slots
    ]
    return _table(("Day", "Time", "Activity"), rows)


def render_scheduler_table(entries: list[SchedulerEntry]) -> str:
    if not entries:
        return "<p>No scheduled bookings.</p>"
    rows = [
        "<tr>"
        + "".join(
            _cell(value)
            for value in (e.user_name, e.day, e.time, e.target_date, e.books_at, e.status)
        )
        + "</tr>"
        for e in entries
    ]
    return _table(("User", "Day", "Time", "Target date", "Books at", "Status"), rows)


def _entry_cells(e: BookingEntry) -> str:
    return _cell(e.start) + _cell(e.end) + _cell(e.name or "?")


def render_bookings_table(entries: list[BookingEntry]) -> str:
    if not entries:
        return "<p class='empty'>No upcoming bookings.</p>"
    rows = []
    for e in entries:
        places = "" if e.inscribed is None or e.capacity is None else f"{e.inscribed}/{e.capacity}"
        rows.append(f"<tr>{_entry_cells(e)}{_cell(places, 'capacity')}</tr>")
    return _table(("Start", "End", "Activity", "Capacity"), rows)


def render_waiting_table(entries: list[BookingEntry]) -> str:
    if not entries:
        return "<p class='empty'>Not on any waiting lists.</p>"
    rows = []
    for e in entries:
        if e.inscribed is None or e.capacity is None:
            places, css = "", "capacity"
        else:
            free = max(e.capacity - e.inscribed, 0)
            places = f"{e.inscribed}/{e.capacity} ({free} free)"
            css = "capacity available" if free else "capacity full"
        rows.append(f"<tr>{_entry_cells(e)}{_cell(places, css)}</tr>")
    return _table(("Start", "End", "Activity", "Capacity"), rows)


def render_user_section(user: UserDashboard) -> str:
    name = html.escape(user.name)
    if user.error is not None:
        return f"<section><h2>{name}</h2><div class='error'>{html.escape(user.error)}</div></section>"
    return (
        f"<section><h2>{name}</h2>"
        f"<h3>Bookings</h3>{render_bookings_table(user.bookings)}"
        f"<h3>Waiting List</h3>{render_waiting_table(user.waiting_list)}"
        "</section>"
    )


def render_page(
    entries: list[SchedulerEntry],
    last_check: datetime | None,
    now: datetime,
    *,
    slots: Mapping[str, SlotConfig] | None = None,
    users: Sequence[UserDashboard] = (),
) -> str:
    watcher = (
        f"last check {last_check.strftime('%Y-%m-%d %H:%M:%S')}"
        if last_check
        else "waiting for first check"
    )
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        "<title>RESAWOD scheduler</title></head><body>"
        "<h1>RESAWOD scheduler</h1>"
        f"<p><small>Rendered {now.strftime('%Y-%m-%d %H:%M:%S %Z')}</small></p>"
        f"<p>Waiting-list watcher: {html.escape(watcher)}</p>"
        f"<h2>Configured Slots</h2>{render_slots_table(slots or {})}"
        f"<h2>Scheduled Bookings</h2>{render_scheduler_table(entries)}"
        f"{''.join(render_user_section(u) for u in users)}"
        "</body></html>"
    )


def make_handler(
    status: StatusTable,
    tz: tzinfo,
    config: BookingConfig | None = None,
    gateway_factory: GatewayFactory | None = None,
) -> type[BaseHTTPRequestHandler]:
    class DashboardHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path == "/health":
                self._send(200, "text/plain", b"ok")
                return
            if self.path != "/":
                self.send_response(404)
                self.end_headers()
                return
            users = []
            if config is not None and gateway_factory is not None and config.users:
                # Request threads have no event loop of their own
                users = asyncio.run(collect_user_dashboards(config.users, gateway_factory))
            page = render_page(
                status.snapshot(),
                status.last_watcher_check,
                datetime.now(tz),
                slots=config.slots if config is not None else None,
                users=users,
            )
            self._send(200, "text/html; charset=utf-8", page.encode("utf-8"))

        def _send(self, code: int, content_type: str, body: bytes) -> None:
            self.send_response(code)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            logger.debug("dashboard_request", client=self.client_address[0], line=format % args)

    return DashboardHandler


def start_dashboard(
    status: StatusTable,
    tz: tzinfo,
    host: str,
    port: int,
    config: BookingConfig | None = None,
    gateway_factory: GatewayFactory | None = None,
) -> ThreadingHTTPServer:
    """Bind the status page and serve it from a daemon thread.

    Raises:
        OSError: If the address cannot be bound.
    """
    server = ThreadingHTTPServer(
        (host, port), make_handler(status, tz, config, gateway_factory)
    )
    thread = threading.Thread(target=server.serve_forever, name="dashboard", daemon=True)
    thread.start()
    logger.info("dashboard_listening", url=f"http://{host}:{port}")
    return server
