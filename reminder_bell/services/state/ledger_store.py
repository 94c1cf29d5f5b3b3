"""
Send-state ledger for exactly-once reminder bookkeeping.
Persists one SentRecord per calendar event in a single JSON document that is
re-read on every query and rewritten in full on every commit.
"""

import os
import shutil
import tempfile
from pathlib import Path

from pydantic import ValidationError

from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.reminder_domain import Ledger, SentRecord

logger = get_logger(__name__)


class PersistenceError(Exception):
    """Raised when the ledger cannot be durably written."""

    def __init__(self, message: str, path: Path | None = None, event_id: str | None = None):
        super().__init__(message)
        self.path = path
        self.event_id = event_id


class DuplicateRecordError(PersistenceError):
    """Raised when a record for the event is already in the ledger."""


class LedgerStore:
    """
    File-backed send-state store.

    Single writer (the dispatch orchestrator). Every read goes to disk so a
    crash between two runs can never leave a stale view behind.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._unreadable = False

    def _load(self) -> Ledger:
        """Load the ledger; missing or unreadable files degrade to an empty ledger."""
        if not self.path.exists():
            self._unreadable = False
            return Ledger()

        try:
            ledger = Ledger.model_validate_json(self.path.read_text(encoding="utf-8"))
            self._unreadable = False
            return ledger
        except (OSError, ValueError, ValidationError) as e:
            self._unreadable = True
            logger.warning(
                "Could not load ledger, starting fresh",
                path=str(self.path),
                error=str(e),
                error_type=type(e).__name__,
            )
            return Ledger()

    def is_pending(self, event_id: str) -> bool:
        """Return True iff no SentRecord exists for event_id."""
        return not self._load().contains(event_id)

    def history(self) -> list[SentRecord]:
        """Return all committed records in commit order."""
        return [record.model_copy(deep=True) for record in self._load().sent_reminders]

    def commit(self, record: SentRecord) -> None:
        """
        Append a record and durably rewrite the ledger.

        Raises:
            DuplicateRecordError: If the event is already recorded
            PersistenceError: If the ledger cannot be written
        """
        ledger = self._load()
        if ledger.contains(record.event_id):
            raise DuplicateRecordError(
                f"Event {record.event_id} is already in the ledger",
                path=self.path,
                event_id=record.event_id,
            )

        if self._unreadable:
            self._keep_unreadable_copy()

        ledger.sent_reminders.append(record)
        self._write(ledger, event_id=record.event_id)

        logger.info(
            "Marked event as sent",
            event_id=record.event_id,
            title=record.title,
            ledger_size=len(ledger.sent_reminders),
        )

    def _write(self, ledger: Ledger, event_id: str | None = None) -> None:
        """Write the document to a temp file, fsync, then atomically replace."""
        payload = ledger.model_dump_json(indent=2)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error(
                "Failed to save ledger",
                path=str(self.path),
                event_id=event_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError(
                f"Failed to write ledger {self.path}: {e}", path=self.path, event_id=event_id
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def _keep_unreadable_copy(self) -> None:
        """Copy an unparseable ledger aside before it gets overwritten."""
        backup = self.path.with_name(self.path.name + ".corrupt")
        try:
            shutil.copy2(self.path, backup)
            logger.warning("Unreadable ledger preserved", backup=str(backup))
        except OSError as e:
            logger.warning("Could not preserve unreadable ledger", error=str(e))
