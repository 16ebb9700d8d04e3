"""HTTP client for the Nubapp booking API used by RESAWOD gyms.

The API is a set of PHP endpoints taking form-encoded POST bodies and
answering JSON. Login returns a JWT whose payload carries ``id_user``, which
every later call must echo back alongside the bearer token.

requests is blocking, so each public coroutine runs its request in a worker
thread via asyncio.to_thread() and never blocks the event loop.
"""

import asyncio
import base64
import json
from datetime import date
from typing import Any

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from resawod.errors import (
    AuthenticationError,
    RateLimitError,
    TransientError,
)
from resawod.gateway import BookingGateway
from resawod.logging import get_logger
from resawod.models import ActionResult, Bookings, Slot

logger = get_logger(__name__)

API_BASE = "https://sport.nubapp.com/api/v4"
BOX_ORIGIN = "https://box.resawod.com"
APP_VERSION = "5.13.06"
BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:147.0) "
    "Gecko/20100101 Firefox/147.0"
)

LOGIN_PATH = "/login"
SLOTS_PATH = "/activities/getActivitiesCalendar.php"
BOOKINGS_PATH = "/users/getUserFutureBookings.php"
BOOK_PATH = "/activities/bookActivityCalendar.php"
WAITING_LIST_PATH = "/activities/bookWaitingActivityCalendar.php"
CATEGORIES_PATH = "/categories/getCategories.php"


def decode_token_claims(token: str) -> dict[str, Any] | None:
    """Decode the (unverified) JWT payload, or None if it is not a JSON object."""
    parts = token.split(".")
    if len(parts) < 2:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (ValueError, TypeError):
        return None
    return claims if isinstance(claims, dict) else None


def decode_id_user(token: str) -> str | None:
    """Extract ``id_user`` from the JWT payload."""
    claims = decode_token_claims(token)
    if claims is None or claims.get("id_user") is None:
        return None
    return str(claims["id_user"])


def extract_slot_list(body: dict[str, Any]) -> list[Any]:
    """Find the slot array inside a getActivitiesCalendar response.

    The array sits under ``data.activities_calendar`` or, on older gyms,
    under ``data.<DD-MM-YYYY>``; some responses return it bare.
    """
    data = body.get("data", body)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if "activities_calendar" in data:
            return data["activities_calendar"] or []
        for value in data.values():
            if isinstance(value, list):
                return value
    return []


class NubappClient(BookingGateway):
    """Authenticated Nubapp session for a single user."""

    def __init__(
        self,
        application_id: str,
        category_activity_id: str,
        *,
        api_base: str = API_BASE,
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.application_id = application_id
        self.category_activity_id = category_activity_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.token: str | None = None
        self.id_user: str | None = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": BROWSER_UA,
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/x-www-form-urlencoded",
            "Origin": BOX_ORIGIN,
            "Referer": f"{BOX_ORIGIN}/",
            "Nubapp-Origin": "user_apps",
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "cross-site",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _require_user(self) -> str:
        if self.id_user is None:
            raise AuthenticationError("No id_user available - login first")
        return self.id_user

    def _post(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """POST a form body and decode the JSON answer.

        Raises:
            TransientError: Connection failure, timeout, 5xx, or non-JSON body.
            RateLimitError: HTTP 429.
            AuthenticationError: HTTP 401/403.
        """
        url = f"{self.api_base}{path}"
        try:
            resp = self.session.post(
                url, data=data, headers=self._headers(), timeout=self.timeout
            )
        except requests.Timeout as e:
            raise TransientError(f"Request to {path} timed out: {e}") from e
        except requests.RequestException as e:
            raise TransientError(f"Request to {path} failed: {e}") from e

        logger.debug("api_response", path=path, status=resp.status_code, body=resp.text)

        if resp.status_code == 429:
            raise RateLimitError(f"Rate limited on {path}")
        if resp.status_code in (401, 403):
            raise AuthenticationError(f"{path} rejected credentials ({resp.status_code})")
        if resp.status_code >= 500:
            raise TransientError(f"{path} returned {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise TransientError(
                f"Failed to parse {path} response (status {resp.status_code}): {resp.text[:200]}"
            ) from e
        if not isinstance(body, dict):
            raise TransientError(f"Unexpected {path} response: {body!r}")
        return body

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(5),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    def _login_sync(self, login: str, password: str) -> None:
        body = self._post(LOGIN_PATH, {"username": login, "password": password})
        token = body.get("token")
        if token is None and isinstance(body.get("data"), dict):
            token = body["data"].get("token")
        if not token:
            logger.error("authentication_failed", login=login, reason="no_token")
            raise AuthenticationError(
                f"Login failed for {login}: {body.get('message') or 'no token in response'}"
            )
        self.token = token
        self.id_user = decode_id_user(token)
        if self.id_user is None:
            raise AuthenticationError(f"Login token for {login} carries no id_user")
        logger.info("authentication_succeeded", login=login, id_user=self.id_user)

    def _get_slots_sync(self, day: date) -> list[Slot]:
        id_user = self._require_user()
        api_date = day.strftime("%d-%m-%Y")
        body = self._post(
            SLOTS_PATH,
            {
                "app_version": APP_VERSION,
                "id_application": self.application_id,
                "start_timestamp": api_date,
                "end_timestamp": api_date,
                "id_user": id_user,
                "id_category_activity": self.category_activity_id,
            },
        )
        try:
            slots = [Slot.model_validate(item) for item in extract_slot_list(body)]
        except ValueError as e:
            raise TransientError(f"Malformed slot list for {api_date}: {e}") from e
        logger.debug("slots_fetched", date=day.isoformat(), count=len(slots))
        return slots

    def _get_bookings_sync(self) -> Bookings:
        id_user = self._require_user()
        body = self._post(
            BOOKINGS_PATH,
            {
                "app_version": APP_VERSION,
                "id_application": self.application_id,
                "id_user": id_user,
                "limit": "50",
                "include_waiting_list": "true",
            },
        )
        data = body.get("data") or {}
        if not isinstance(data, dict):
            data = {}
        try:
            return Bookings.model_validate(data)
        except ValueError as e:
            raise TransientError(f"Malformed bookings response: {e}") from e

    def _book_sync(self, path: str, slot_id: str, extra: dict[str, str]) -> ActionResult:
        id_user = self._require_user()
        body = self._post(
            path,
            {
                "app_version": APP_VERSION,
                "id_application": self.application_id,
                "id_activity_calendar": slot_id,
                "id_user": id_user,
                "action_by": id_user,
                **extra,
            },
        )
        return ActionResult.model_validate(body)

    async def login(self, login: str, password: str) -> None:
        await asyncio.to_thread(self._login_sync, login, password)

    async def get_slots(self, day: date) -> list[Slot]:
        return await asyncio.to_thread(self._get_slots_sync, day)

    async def get_bookings(self) -> Bookings:
        return await asyncio.to_thread(self._get_bookings_sync)

    async def book(self, slot_id: str) -> ActionResult:
        return await asyncio.to_thread(
            self._book_sync, BOOK_PATH, slot_id, {"n_guests": "0", "booked_on": "3"}
        )

    async def book_waiting_list(self, slot_id: str) -> ActionResult:
        return await asyncio.to_thread(self._book_sync, WAITING_LIST_PATH, slot_id, {})

    def _get_categories_sync(self) -> list[dict[str, Any]]:
        body = self._post(
            CATEGORIES_PATH,
            {"app_version": APP_VERSION, "id_application": self.application_id},
        )
        data = body.get("data")
        if not isinstance(data, list):
            logger.warning("categories_unexpected_shape", body=body)
            return []
        return [item for item in data if isinstance(item, dict)]

    @property
    def claims(self) -> dict[str, Any]:
        """Claims carried by the login token (empty before login)."""
        if self.token is None:
            return {}
        return decode_token_claims(self.token) or {}

    async def get_categories(self) -> list[dict[str, Any]]:
        """Activity categories of the application, used to find category ids."""
        return await asyncio.to_thread(self._get_categories_sync)

    async def close(self) -> None:
        self.session.close()
