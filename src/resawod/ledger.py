"""Booked-slot ledger: the scheduler's only persisted state.

A key ``"{login}:{YYYY-MM-DD}:{slot time}"`` is recorded once a slot
occurrence has been handled (booked, found already booked, or waiting-listed)
so a restarted process never books it twice. The file is a JSON array of
strings, rewritten in full on every insertion.
"""

import json
import threading
from datetime import date
from pathlib import Path

from resawod.logging import get_logger

logger = get_logger(__name__)


def slot_key(login: str, target: date, slot_time: str) -> str:
    return f"{login}:{target.isoformat()}:{slot_time}"


class BookedSlotLedger:
    """Thread-safe set of handled slot keys backed by a JSON file.

    The lock covers the in-memory mutation and the synchronous write-back,
    never a network call.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._keys: set[str] = set()

    def load(self) -> set[str]:
        """Replace the in-memory set with the file's contents.

        A missing, unreadable or malformed file yields an empty set.
        """
        keys = self._read()
        with self._lock:
            self._keys = keys
        logger.info("ledger_loaded", path=str(self.path), count=len(keys))
        return set(keys)

    def _read(self) -> set[str]:
        if not self.path.exists():
            return set()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("ledger_read_failed", path=str(self.path), error=str(e))
            return set()
        if not isinstance(data, list) or not all(isinstance(k, str) for k in data):
            logger.warning("ledger_malformed", path=str(self.path))
            return set()
        return set(data)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def insert_and_persist(self, key: str) -> None:
        """Add ``key`` and rewrite the file.

        A failed write is logged; the in-memory set stays authoritative for
        the running process.
        """
        with self._lock:
            self._keys.add(key)
            payload = json.dumps(sorted(self._keys), indent=2, ensure_ascii=False)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(payload, encoding="utf-8")
            except OSError as e:
                logger.error(
                    "ledger_save_failed", path=str(self.path), key=key, error=str(e)
                )

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
