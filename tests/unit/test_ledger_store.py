"""
Tests for the send-state ledger.
"""

import json

import pytest

from reminder_bell.models.domain.reminder_domain import (
    RecipientOutcome,
    RecipientResult,
    SentRecord,
)
from reminder_bell.services.state.ledger_store import (
    DuplicateRecordError,
    LedgerStore,
    PersistenceError,
)


def _record(event_id: str = "E1") -> SentRecord:
    return SentRecord(
        event_id=event_id,
        title="Parent meeting",
        results=[
            RecipientResult(recipient="Ann", outcome=RecipientOutcome.DELIVERED),
            RecipientResult(recipient="Bob", outcome=RecipientOutcome.RECIPIENT_UNRESOLVED),
        ],
        summary_delivered=True,
    )


def test_missing_ledger_means_everything_pending(ledger):
    assert ledger.is_pending("E1") is True
    assert ledger.history() == []


def test_commit_persists_and_marks_event_sent(ledger):
    ledger.commit(_record("E1"))

    assert ledger.is_pending("E1") is False
    assert ledger.is_pending("E2") is True

    on_disk = json.loads(ledger.path.read_text(encoding="utf-8"))
    assert [r["event_id"] for r in on_disk["sent_reminders"]] == ["E1"]
    assert on_disk["sent_reminders"][0]["results"][1]["outcome"] == "recipient_unresolved"


def test_new_store_instance_sees_committed_records(ledger):
    ledger.commit(_record("E1"))

    reopened = LedgerStore(ledger.path)

    assert reopened.is_pending("E1") is False
    assert [r.event_id for r in reopened.history()] == ["E1"]


def test_is_pending_reads_latest_disk_state(ledger):
    """Another writer's commit is visible without reopening the store."""
    assert ledger.is_pending("E1") is True

    LedgerStore(ledger.path).commit(_record("E1"))

    assert ledger.is_pending("E1") is False


def test_history_preserves_commit_order(ledger):
    for event_id in ("E3", "E1", "E2"):
        ledger.commit(_record(event_id))

    assert [r.event_id for r in ledger.history()] == ["E3", "E1", "E2"]


def test_duplicate_commit_is_rejected(ledger):
    ledger.commit(_record("E1"))

    with pytest.raises(DuplicateRecordError):
        ledger.commit(_record("E1"))

    assert len(ledger.history()) == 1


def test_corrupted_ledger_degrades_to_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = LedgerStore(path)

    assert store.is_pending("E1") is True
    assert store.history() == []


def test_commit_over_corrupted_ledger_keeps_a_copy(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = LedgerStore(path)

    store.commit(_record("E1"))

    assert (tmp_path / "state.json.corrupt").read_text(encoding="utf-8") == "{not json"
    assert store.is_pending("E1") is False


def test_commit_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = LedgerStore(blocker / "state.json")

    with pytest.raises(PersistenceError) as exc:
        store.commit(_record("E1"))

    assert exc.value.event_id == "E1"
    assert store.is_pending("E1") is True


def test_history_returns_copies(ledger):
    ledger.commit(_record("E1"))

    history = ledger.history()
    history[0].title = "changed"

    assert ledger.history()[0].title == "Parent meeting"
