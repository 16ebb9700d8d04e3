"""Command-line entry point.

Run with: resawod serve                   # scheduler + watcher + status page
Book:     resawod book tuesday,friday     # next occurrence, first user in config
All:      resawod book --multi-users      # every user's configured days
Dry run:  resawod book tuesday --dry-run  # find slots without booking
List:     resawod bookings --user alice@example.com
IDs:      resawod discover               # account ids and activity categories

Exit codes:
  0 = success
  1 = error (message on stderr)
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import date, datetime
from functools import partial

from dotenv import load_dotenv

from resawod import dates
from resawod.booking import attempt_slot_booking, find_slot
from resawod.client import NubappClient
from resawod.config import (
    BookingConfig,
    Settings,
    SlotConfig,
    UserConfig,
    get_settings,
    load_config,
)
from resawod.dashboard import start_dashboard
from resawod.errors import ConfigError, ResawodError
from resawod.gateway import GatewayFactory
from resawod.ledger import BookedSlotLedger
from resawod.logging import get_logger, setup_logging
from resawod.models import BookingEntry
from resawod.slot_task import outcome_status
from resawod.status import StatusTable
from resawod.supervisor import Scheduler

logger = get_logger(__name__)


def make_gateway_factory(config: BookingConfig, settings: Settings) -> GatewayFactory:
    return partial(
        NubappClient,
        config.app.application_id,
        config.app.category_activity_id,
        api_base=settings.api_base,
        timeout=settings.request_timeout_seconds,
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="resawod",
        description="Automatically book recurring training slots on Nubapp.",
    )
    parser.add_argument(
        "-c", "--config", default=None, help="Path to the TOML config (default: RESAWOD_CONFIG_PATH)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the scheduler, watcher and status page")
    serve.add_argument("--host", default=None, help="Status page host")
    serve.add_argument("--port", type=int, default=None, help="Status page port")

    book = sub.add_parser("book", help="Book the next occurrence of the given days now")
    book.add_argument("days", nargs="?", help='Comma-separated days, e.g. "tuesday,friday"')
    book.add_argument("-m", "--multi-users", action="store_true", help="All users from config")
    book.add_argument("-u", "--user", help="Login (defaults to the first user in config)")
    book.add_argument("-p", "--password", help="Password (defaults to the first user in config)")
    book.add_argument("-d", "--dry-run", action="store_true", help="Find slots but do not book")

    bookings = sub.add_parser("bookings", help="Show a user's bookings and waiting list")
    bookings.add_argument("-u", "--user", help="Login (defaults to the first user in config)")
    bookings.add_argument("-p", "--password", help="Password (defaults to the first user in config)")

    discover = sub.add_parser("discover", help="Show account ids and activity categories")
    discover.add_argument("-u", "--user", help="Login (defaults to the first user in config)")
    discover.add_argument("-p", "--password", help="Password (defaults to the first user in config)")
    discover.add_argument("--application-id", help="Override the application id from config")

    return parser.parse_args(argv)


def resolve_user(config: BookingConfig, login: str | None, password: str | None) -> UserConfig:
    """Build credentials from flags, falling back to the first configured user."""
    first = config.users[0] if config.users else None
    if first is None and (login is None or password is None):
        raise ConfigError("No users in config and no --user/--password provided")
    login = login or first.login
    known = next((u for u in config.users if u.login == login), None)
    if password is None:
        password = known.password if known else first.password
    return UserConfig(
        name=known.name if known else login,
        login=login,
        password=password,
        slots=list(known.slots) if known else [],
    )


def _format_table(rows: list[list[str]], headers: list[str]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows]
    return "\n".join([header_line, separator, *row_lines])


def _booking_rows(entries: list[BookingEntry]) -> list[list[str]]:
    def places(e: BookingEntry) -> str:
        if e.inscribed is None or e.capacity is None:
            return "?"
        return f"{e.inscribed}/{e.capacity}"

    return [[e.start, e.end, e.name or "?", places(e)] for e in entries]


async def run_serve(args: argparse.Namespace, settings: Settings, config: BookingConfig) -> None:
    tz = settings.tz
    status = StatusTable()
    factory = make_gateway_factory(config, settings)
    scheduler = Scheduler(
        config,
        gateway_factory=factory,
        ledger=BookedSlotLedger(settings.resolved_state_file()),
        status=status,
        tz=tz,
        retry_delay=settings.retry_delay_seconds,
        watcher_active_interval=settings.watcher_active_interval_seconds,
        watcher_idle_interval=settings.watcher_idle_interval_seconds,
    )
    server = start_dashboard(
        status,
        tz,
        args.host or settings.host,
        args.port or settings.port,
        config=config,
        gateway_factory=factory,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.shutdown)
        except NotImplementedError:
            # Windows event loops lack signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass

    try:
        await scheduler.run()
    except asyncio.CancelledError:
        pass
    finally:
        server.shutdown()


async def _dry_run(
    factory: GatewayFactory, user: UserConfig, day_name: str, slot: SlotConfig, target: date
) -> str:
    gateway = factory()
    try:
        await gateway.login(user.login, user.password)
        found = find_slot(await gateway.get_slots(target), slot.time, slot.activity_filter)
    finally:
        await gateway.close()
    if found is None:
        return f"[DRY RUN] No slot at {slot.time} on {target} for {user.name}"
    return (
        f"[DRY RUN] Would book {day_name} {target} for {user.name} "
        f"(slot ID: {found.id}, {found.name or '?'})"
    )


async def run_book(args: argparse.Namespace, settings: Settings, config: BookingConfig) -> None:
    if args.multi_users:
        users = list(config.users)
    elif args.days:
        user = resolve_user(config, args.user, args.password)
        days = [d.strip().lower() for d in args.days.split(",") if d.strip()]
        if not days:
            raise ConfigError("No days specified")
        users = [user.model_copy(update={"slots": days})]
    else:
        raise ConfigError(
            "Specify days to book (e.g. `book tuesday`) or --multi-users for all users"
        )

    factory = make_gateway_factory(config, settings)
    today = datetime.now(settings.tz).date()
    for i, user in enumerate(users):
        logger.info("processing_user", user=user.name)
        for day_name in user.slots:
            weekday = dates.parse_weekday(day_name)
            slot = config.slot_for(day_name)
            if weekday is None or slot is None:
                logger.warning("skipping_day", user=user.name, day=day_name)
                continue
            target = dates.next_weekday(today, weekday)
            try:
                if args.dry_run:
                    print(await _dry_run(factory, user, day_name, slot, target))
                    continue
                outcome = await attempt_slot_booking(
                    factory, user, slot.time, slot.activity_filter, target
                )
                print(f"{user.name} {day_name} {target} {slot.time}: {outcome_status(outcome)}")
            except ResawodError as e:
                logger.error("booking_error", user=user.name, day=day_name, error=str(e))
        if i < len(users) - 1:
            logger.info("waiting_before_next_user", seconds=5)
            await asyncio.sleep(5)


async def run_bookings(args: argparse.Namespace, settings: Settings, config: BookingConfig) -> None:
    user = resolve_user(config, args.user, args.password)
    gateway = make_gateway_factory(config, settings)()
    try:
        await gateway.login(user.login, user.password)
        bookings = await gateway.get_bookings()
    finally:
        await gateway.close()

    headers = ["Start", "End", "Activity", "Places"]
    print(f"Bookings for {user.name}:")
    print(_format_table(_booking_rows(bookings.bookings), headers))
    if bookings.waiting_list:
        print(f"\nWaiting list for {user.name}:")
        print(_format_table(_booking_rows(bookings.waiting_list), headers))


# (label, claim) pairs printed by `discover`
_ACCOUNT_CLAIMS = (
    ("application_id", "id_application"),
    ("user_id", "id_user"),
    ("username", "username"),
)


def _category_rows(categories: list[dict]) -> list[list[str]]:
    rows = []
    for category in categories:
        cat_id = category.get("id_category_activity", category.get("id"))
        name = category.get("name") or category.get("title") or "?"
        rows.append(["?" if cat_id is None else str(cat_id), str(name)])
    return rows


async def run_discover(args: argparse.Namespace, settings: Settings, config: BookingConfig) -> None:
    user = resolve_user(config, args.user, args.password)
    # The category is what we are looking for, so none is known yet
    client = NubappClient(
        args.application_id or config.app.application_id,
        "0",
        api_base=settings.api_base,
        timeout=settings.request_timeout_seconds,
    )
    try:
        print(f"Logging in as {user.login}...")
        await client.login(user.login, user.password)
        claims = client.claims
        print("\nAccount:")
        for label, claim in _ACCOUNT_CLAIMS:
            if claims.get(claim) is not None:
                print(f"  {label}: {claims[claim]}")
        if args.verbose:
            print(json.dumps(claims, indent=2))

        print("\nActivity categories:")
        try:
            categories = await client.get_categories()
        except ResawodError as e:
            print(f"  Could not fetch categories: {e}")
        else:
            if categories:
                print(_format_table(_category_rows(categories), ["ID", "Name"]))
            else:
                print("  No categories returned. Re-run with -v for details.")
    finally:
        await client.close()

    print("\nUse these values under [app] in your config.")


COMMANDS = {
    "serve": run_serve,
    "book": run_book,
    "bookings": run_bookings,
    "discover": run_discover,
}


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _parse_args(argv)
    settings = get_settings()
    if args.config:
        settings = settings.model_copy(update={"config_path": args.config})
    setup_logging(
        json_output=settings.log_json,
        log_level="DEBUG" if args.verbose else settings.log_level,
    )
    try:
        config = load_config(settings.config_path)
        asyncio.run(COMMANDS[args.command](args, settings, config))
    except KeyboardInterrupt:
        pass
    except (ResawodError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
