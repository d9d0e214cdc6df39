"""Durable paste storage.

Pastes live in memory and on disk in two files:

* the snapshot (``PASTES_FILE``), a JSON array of ``{id, content, createdAt}``
  records in creation order;
* the log (snapshot path + ``.log``), one JSON record per line, appended and
  fsynced on every creation.

Startup reads the snapshot, replays the log, and folds the log back into the
snapshot. A record is durable once its log line is synced, so a crash never
loses a paste whose id was returned to a caller.
"""

import json
import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pastebox.config import get_settings
from pastebox.exceptions import PasteNotFound, PersistenceFailure
from pastebox.services.tokens import MAX_ID_ATTEMPTS, new_record_id

logger = logging.getLogger("pastebox")


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Paste:
    """Immutable text snippet."""

    id: str
    content: str
    created_at: datetime

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "createdAt": format_timestamp(self.created_at)}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Paste":
        if not isinstance(record["id"], str):
            raise TypeError("paste id must be a string")
        content = record.get("content")
        # Older files hold pastes created without a body, or with a non-string one
        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        return cls(id=record["id"], content=content, created_at=parse_timestamp(record["createdAt"]))


class PasteStore:
    """In-memory paste collection backed by an append-only log and a snapshot."""

    def __init__(
        self,
        path: str | Path,
        compact_threshold: int = 1000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path = Path(path)
        self.log_path = self.path.with_name(self.path.name + ".log")
        self.compact_threshold = compact_threshold
        self.clock = clock
        self.state = "loading"
        self._pastes: dict[str, Paste] = {}
        self._log_entries = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pastes)

    # ------------------------------------------------------------------ load

    def _read_snapshot(self) -> list[Paste]:
        if not self.path.exists():
            return []
        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(records, list):
                raise TypeError("snapshot is not a JSON array")
            return [Paste.from_record(record) for record in records]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceFailure(f"Unreadable paste snapshot {self.path}: {e}") from e

    def _read_log(self) -> tuple[list[Paste], bool]:
        """Return logged pastes and whether a torn final line was dropped."""
        if not self.log_path.exists():
            return [], False
        try:
            raw = self.log_path.read_bytes()
        except OSError as e:
            raise PersistenceFailure(f"Unreadable paste log {self.log_path}: {e}") from e

        lines = raw.split(b"\n")
        # Everything before the final newline is complete; anything after it is a partial append
        complete, tail = lines[:-1], lines[-1]
        pastes = []
        for lineno, line in enumerate(complete, start=1):
            if not line.strip():
                continue
            try:
                pastes.append(Paste.from_record(json.loads(line.decode("utf-8"))))
            except (ValueError, KeyError, TypeError) as e:
                raise PersistenceFailure(f"Corrupt paste log {self.log_path} at line {lineno}: {e}") from e

        torn = bool(tail.strip())
        if torn:
            logger.warning("Dropping incomplete final record in paste log %s (%d bytes)", self.log_path, len(tail))
        return pastes, torn

    def load(self) -> int:
        """Read the snapshot and log into memory. Raises PersistenceFailure on unreadable data."""
        with self._lock:
            self.state = "loading"
            snapshot = self._read_snapshot()
            logged, torn = self._read_log()

            self._pastes = {}
            for paste in snapshot + logged:
                # A crash between snapshot write and log truncation leaves duplicates
                self._pastes.setdefault(paste.id, paste)
            self._log_entries = len(logged)

            if logged or torn:
                try:
                    self._compact_locked()
                except OSError as e:
                    raise PersistenceFailure(f"Paste compaction failed: {e}") from e
            self.state = "ready"

        logger.info("Loaded %d pastes from %s (%d replayed from log)", len(self._pastes), self.path, len(logged))
        return len(self._pastes)

    # --------------------------------------------------------------- compact

    def _compact_locked(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        records = [paste.to_record() for paste in self._pastes.values()]
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(records, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)
        with open(self.log_path, "wb") as f:
            os.fsync(f.fileno())
        self._log_entries = 0
        logger.info("Compacted paste store: %d pastes written to %s", len(records), self.path)

    def compact(self) -> None:
        """Rewrite the snapshot with every paste and empty the log."""
        with self._lock:
            try:
                self._compact_locked()
            except OSError as e:
                raise PersistenceFailure(f"Paste compaction failed: {e}") from e

    # ------------------------------------------------------------ operations

    def _new_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            paste_id = new_record_id()
            if paste_id not in self._pastes:
                return paste_id
        raise PersistenceFailure("Could not allocate a unique paste id")

    def _append(self, paste: Paste) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = (json.dumps(paste.to_record(), ensure_ascii=False) + "\n").encode("utf-8")
        with open(self.log_path, "ab") as f:
            start = f.tell()
            try:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
            except OSError:
                f.truncate(start)
                raise

    def create(self, content: str) -> Paste:
        """Store a new paste. Returns only after the paste is durable on disk."""
        with self._lock:
            now = self.clock()
            # Stored with millisecond precision; keep the in-memory copy identical
            created_at = now.replace(microsecond=now.microsecond // 1000 * 1000)
            paste = Paste(id=self._new_id(), content=content, created_at=created_at)
            try:
                self._append(paste)
            except OSError as e:
                logger.error("Error saving paste %s to %s: %s", paste.id, self.log_path, e)
                raise PersistenceFailure() from e
            self._pastes[paste.id] = paste
            self._log_entries += 1

            if self.compact_threshold and self._log_entries >= self.compact_threshold:
                try:
                    self._compact_locked()
                except OSError:
                    # The paste is already in the log; compaction is retried on the next creation
                    logger.exception("Paste compaction failed")
        return paste

    def get(self, paste_id: str) -> Paste:
        paste = self._pastes.get(paste_id)
        if paste is None:
            raise PasteNotFound()
        return paste


_paste_store: PasteStore | None = None


def get_paste_store() -> PasteStore:
    """Get singleton paste store instance. The application lifespan loads it."""
    global _paste_store
    if _paste_store is None:
        settings = get_settings()
        _paste_store = PasteStore(settings.PASTES_FILE, compact_threshold=settings.PASTE_COMPACT_THRESHOLD)
    return _paste_store
