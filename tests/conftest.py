from datetime import UTC, datetime

import pytest

from reminder_bell.infrastructure.audit import OutcomeLogger
from reminder_bell.models.domain.contact_domain import Contact
from reminder_bell.models.domain.reminder_domain import ReminderEvent
from reminder_bell.services.contacts.directory import ContactDirectory
from reminder_bell.services.state.ledger_store import LedgerStore, PersistenceError
from reminder_bell.services.transport.base import (
    USABLE_STATES,
    InitializationError,
    PreconditionError,
    SessionState,
)


class FakeTransport:
    """Recording chat transport; no browser involved."""

    def __init__(
        self,
        missing_chats: set[str] | None = None,
        failing_sends: set[str] | None = None,
        init_error: Exception | None = None,
    ):
        self.missing_chats = missing_chats or set()
        self.failing_sends = failing_sends or set()
        self.init_error = init_error
        self.calls: list[tuple] = []
        self.sent: list[tuple[str, str]] = []
        self._state = SessionState.UNINITIALIZED
        self._selected: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_usable(self) -> bool:
        return self._state in USABLE_STATES

    async def initialize(self) -> None:
        self.calls.append(("initialize",))
        if self.init_error is not None:
            self._state = SessionState.CLOSED
            raise self.init_error
        self._state = SessionState.READY

    async def locate_conversation(self, identifier: str) -> bool:
        if not self.is_usable:
            raise PreconditionError("session not ready", state=self._state)
        self.calls.append(("locate", identifier))
        if identifier in self.missing_chats:
            self._state = SessionState.READY
            self._selected = None
            return False
        self._state = SessionState.CONVERSATION_SELECTED
        self._selected = identifier
        return True

    async def send_text(self, text: str) -> bool:
        if self._state != SessionState.CONVERSATION_SELECTED:
            raise PreconditionError("no conversation selected", state=self._state)
        self.calls.append(("send", self._selected, text))
        if self._selected in self.failing_sends:
            return False
        self.sent.append((self._selected, text))
        return True

    async def pace(self) -> float:
        self.calls.append(("pace",))
        return 0.0

    async def close(self) -> None:
        self.calls.append(("close",))
        if self._state != SessionState.UNINITIALIZED:
            self._state = SessionState.CLOSED

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def located(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "locate"]


class FailingLedgerStore(LedgerStore):
    """Ledger whose commits fail for selected event ids."""

    def __init__(self, path, failing_ids: set[str]):
        super().__init__(path)
        self.failing_ids = failing_ids

    def _write(self, ledger, event_id=None):
        if event_id in self.failing_ids:
            raise PersistenceError("disk full", path=self.path, event_id=event_id)
        super()._write(ledger, event_id=event_id)


class FakeCalendar:
    def __init__(self, events=None, error: Exception | None = None):
        self.events = events or []
        self.error = error
        self.windows = []

    async def fetch_upcoming_events(self, window):
        self.windows.append(window)
        if self.error is not None:
            raise self.error
        return list(self.events)


@pytest.fixture
def transport_factory():
    return FakeTransport


@pytest.fixture
def calendar_factory():
    return FakeCalendar


@pytest.fixture
def failing_ledger(tmp_path):
    def _make(failing_ids: set[str]):
        return FailingLedgerStore(tmp_path / "state.json", failing_ids)

    return _make


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def ready_transport():
    transport = FakeTransport()
    transport._state = SessionState.READY
    return transport


@pytest.fixture
def directory():
    return ContactDirectory(
        [
            Contact(name="Ann", phone="972501111111"),
            Contact(name="Carol", phone="972503333333", type="staff"),
            Contact(name="Dana Levi", phone="972504444444"),
        ]
    )


@pytest.fixture
def ledger(tmp_path):
    return LedgerStore(tmp_path / "state.json")


@pytest.fixture
def outcome_logger(tmp_path):
    return OutcomeLogger(tmp_path / "outcomes.jsonl")


@pytest.fixture
def make_event():
    def _make(event_id: str = "E1", recipients=("Ann", "Bob"), title: str = "Parent meeting"):
        return ReminderEvent(
            event_id=event_id,
            title=title,
            scheduled_at=datetime(2026, 2, 2, 15, 0, tzinfo=UTC),
            recipients=list(recipients),
        )

    return _make


@pytest.fixture
def init_error():
    return InitializationError("QR code was not scanned in time", stage="handshake")
