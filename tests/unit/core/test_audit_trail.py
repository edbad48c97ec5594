"""
Tests for the audit trail bound to therapy and medication records.

Covers:
- One entry per create/update/deactivate, newest first
- Old/new values and notes per change kind
- Atomicity: a failed audit write leaves neither the change nor an entry
- Immutable categories have no history
"""

import sqlite3

import pytest

from core.domain.errors import NotFoundError, StorageError, ValidationError
from core.domain.models import ChangeKind, RecordCategory
from core.services.audit_trail import DEFAULT_NOTES
from core.services.record_store import RecordStore
from tests.support import NOW, FrozenClock


async def create_medication(store: RecordStore) -> int:
    result = await store.create(
        RecordCategory.MEDICATIONS,
        {
            "subject_id": "amani",
            "name": "Hydroxyurea",
            "dosage": "500mg",
            "start_date": "2024-01-10",
        },
    )
    return result.unwrap()


class TestAuditHistory:
    async def test_full_lifecycle_is_recorded_newest_first(
        self, store: RecordStore, clock: FrozenClock
    ) -> None:
        record_id = await create_medication(store)
        clock.advance(days=1)
        (await store.update(RecordCategory.MEDICATIONS, record_id, {"dosage": "750mg"})).unwrap()
        clock.advance(days=1)
        (await store.deactivate(RecordCategory.MEDICATIONS, record_id, "Daktari ameacha")).unwrap()

        history = (await store.history(RecordCategory.MEDICATIONS, record_id)).unwrap()

        assert [e.change_kind for e in history] == [
            ChangeKind.DEACTIVATED,
            ChangeKind.UPDATED,
            ChangeKind.CREATED,
        ]
        deactivated, updated, created = history

        assert created.old_value is None
        assert created.new_value["dosage"] == "500mg"
        assert created.note == DEFAULT_NOTES[ChangeKind.CREATED]
        assert created.changed_at == NOW

        assert updated.old_value["dosage"] == "500mg"
        assert updated.new_value["dosage"] == "750mg"
        assert updated.note == DEFAULT_NOTES[ChangeKind.UPDATED]

        assert deactivated.old_value == {"active": True}
        assert deactivated.new_value == {"active": False}
        assert deactivated.note == "Daktari ameacha"

        for entry in history:
            assert entry.category is RecordCategory.THERAPY_HISTORY
            assert entry.record_category is RecordCategory.MEDICATIONS
            assert entry.record_id == record_id

    async def test_deactivation_without_reason_uses_default_note(
        self, store: RecordStore
    ) -> None:
        record_id = await create_medication(store)
        (await store.deactivate(RecordCategory.MEDICATIONS, record_id)).unwrap()

        history = (await store.history(RecordCategory.MEDICATIONS, record_id)).unwrap()

        assert history[0].note == DEFAULT_NOTES[ChangeKind.DEACTIVATED]

    async def test_same_timestamp_orders_by_newest_entry(self, store: RecordStore) -> None:
        record_id = await create_medication(store)
        (await store.update(RecordCategory.MEDICATIONS, record_id, {"dosage": "1g"})).unwrap()

        history = (await store.history(RecordCategory.MEDICATIONS, record_id)).unwrap()

        assert [e.change_kind for e in history] == [ChangeKind.UPDATED, ChangeKind.CREATED]
        assert history[0].id > history[1].id

    async def test_history_is_per_record(self, store: RecordStore) -> None:
        first = await create_medication(store)
        second = await create_medication(store)
        (await store.update(RecordCategory.MEDICATIONS, second, {"dosage": "1g"})).unwrap()

        assert len((await store.history(RecordCategory.MEDICATIONS, first)).unwrap()) == 1
        assert len((await store.history(RecordCategory.MEDICATIONS, second)).unwrap()) == 2

    async def test_history_of_missing_record(self, store: RecordStore) -> None:
        result = await store.history(RecordCategory.THERAPY, 77)
        assert isinstance(result.unwrap_err(), NotFoundError)

    async def test_immutable_category_has_no_history(self, store: RecordStore) -> None:
        result = await store.history(RecordCategory.LAB_RESULTS, 1)
        assert isinstance(result.unwrap_err(), ValidationError)

    async def test_repository_view_for_mutable_category(self, store: RecordStore) -> None:
        therapy = store.repository(RecordCategory.THERAPY)
        assert therapy.mutable

        record_id = (
            await therapy.create(
                {"subject_id": "amani", "medication_name": "Depakine", "dosage": "150mg"}
            )
        ).unwrap()
        (await therapy.update(record_id, {"timing": {"asubuhi": "150mg"}})).unwrap()

        history = (await therapy.history(record_id)).unwrap()
        assert history[0].new_value["timing"] == {"asubuhi": "150mg"}


class TestAuditAtomicity:
    """A failed audit append must roll back the domain write with it."""

    @pytest.fixture
    def failing_audit(self, store: RecordStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(store.backend, "insert_audit_entry", broken)

    async def test_failed_update_keeps_prior_record_and_history(
        self, store: RecordStore, monkeypatch: pytest.MonkeyPatch, clock: FrozenClock
    ) -> None:
        record_id = await create_medication(store)
        clock.advance(hours=2)

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        with monkeypatch.context() as patch:
            patch.setattr(store.backend, "insert_audit_entry", broken)
            result = await store.update(RecordCategory.MEDICATIONS, record_id, {"dosage": "1g"})

        assert isinstance(result.unwrap_err(), StorageError)
        record = (await store.get(RecordCategory.MEDICATIONS, record_id)).unwrap()
        assert record.get("dosage") == "500mg"
        assert record.last_modified == NOW
        history = (await store.history(RecordCategory.MEDICATIONS, record_id)).unwrap()
        assert [e.change_kind for e in history] == [ChangeKind.CREATED]

    async def test_failed_create_leaves_nothing(
        self, store: RecordStore, failing_audit: None
    ) -> None:
        result = await store.create(
            RecordCategory.THERAPY,
            {"subject_id": "amani", "medication_name": "Depakine", "dosage": "150mg"},
        )

        assert isinstance(result.unwrap_err(), StorageError)
        assert (await store.query(RecordCategory.THERAPY, "amani")).unwrap() == []

    async def test_failed_deactivate_keeps_record_active(
        self, store: RecordStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        record_id = await create_medication(store)

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk full")

        monkeypatch.setattr(store.backend, "insert_audit_entry", broken)
        result = await store.deactivate(RecordCategory.MEDICATIONS, record_id, "stop")

        assert isinstance(result.unwrap_err(), StorageError)
        record = (await store.get(RecordCategory.MEDICATIONS, record_id)).unwrap()
        assert record.active is True
        assert record.deactivated_at is None
