"""
Caller-side send history and draft storage.

The send endpoint is stateless: it never reads or writes anything here.
These helpers are for the *caller* (a CLI, a desktop wrapper, a test
harness) that wants to remember which recipients it already mailed from an
account and to keep an unsent form around between runs.

Both stores sit on a tiny key-value interface (get / set / clear) so the
backing store can be swapped: InMemoryStore for tests and short-lived
processes, JsonFileStore for a single local JSON file.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from pydantic import ValidationError

from app.models.history import Draft, SendRecord

logger = logging.getLogger(__name__)

SEND_HISTORY_KEY = "email-send-history"
DRAFT_KEY = "email-form-data"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def clear(self, key: str) -> None: ...


class InMemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def clear(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    All keys in one JSON object on disk.

    A missing or unreadable file reads as empty; writes replace the file.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def clear(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class SendHistory:
    """{account, recipient, last_sent} records, one per account/recipient pair."""

    def __init__(self, store: KeyValueStore, key: str = SEND_HISTORY_KEY):
        self._store = store
        self._key = key

    def _records(self) -> list[SendRecord]:
        raw = self._store.get(self._key) or []
        records: list[SendRecord] = []
        for item in raw:
            try:
                records.append(SendRecord.model_validate(item))
            except ValidationError:
                logger.warning(f"Skipping malformed send-history entry: {item!r}")
        return records

    def _write(self, records: list[SendRecord]) -> None:
        self._store.set(self._key, [r.model_dump(mode="json") for r in records])

    def record_batch(
        self,
        account: str,
        recipients: Iterable[str],
        sent_at: Optional[datetime] = None,
    ) -> None:
        """Upsert last_sent for each recipient mailed from ``account``."""
        sent_at = sent_at or datetime.now(timezone.utc)
        records = self._records()
        index = {(r.account, r.recipient): i for i, r in enumerate(records)}
        for recipient in recipients:
            pos = index.get((account, recipient))
            if pos is not None:
                records[pos] = records[pos].model_copy(update={"last_sent": sent_at})
            else:
                index[(account, recipient)] = len(records)
                records.append(SendRecord(account=account, recipient=recipient, last_sent=sent_at))
        self._write(records)

    def last_sent_map(self, account: str) -> dict[str, datetime]:
        return {r.recipient: r.last_sent for r in self._records() if r.account == account}

    def find_conflicts(self, account: str, recipients: Iterable[str]) -> list[SendRecord]:
        """Prior records for recipients that ``account`` has already mailed, in input order."""
        previous = {r.recipient: r for r in self._records() if r.account == account}
        return [previous[r] for r in recipients if r in previous]

    def entries(self, account: Optional[str] = None, search: Optional[str] = None) -> list[SendRecord]:
        """Records newest first, optionally for one account and filtered by recipient substring."""
        records = [r for r in self._records() if account is None or r.account == account]
        if search and search.strip():
            needle = search.strip().lower()
            records = [r for r in records if needle in r.recipient.lower()]
        return sorted(records, key=lambda r: r.last_sent, reverse=True)

    def clear(self, account: Optional[str] = None) -> None:
        """Forget one account's history, or everything when account is None."""
        if account is None:
            self._store.clear(self._key)
            return
        self._write([r for r in self._records() if r.account != account])


class DraftStore:
    def __init__(self, store: KeyValueStore, key: str = DRAFT_KEY):
        self._store = store
        self._key = key

    def save(self, draft: Draft) -> None:
        self._store.set(self._key, draft.model_dump(mode="json"))

    def load(self) -> Draft:
        """The saved draft, or an empty one if nothing usable is stored."""
        raw = self._store.get(self._key)
        if not raw:
            return Draft()
        try:
            return Draft.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed saved draft")
            return Draft()

    def clear(self) -> None:
        self._store.clear(self._key)
