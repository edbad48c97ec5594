"""
Tests for the service composition root.

Covers:
- Component wiring from one AppConfig
- Session lifecycle (open, migrate, close)
- Allergy analysis over the trailing diary window
- Elimination plans saved as records
- Invalid diary entries rejected on write and reported on read
"""

from datetime import date

import pytest

from core.config import AnalyticsConfig, AppConfig, StorageConfig
from core.domain.errors import ValidationError
from core.domain.models import RecordCategory
from core.services.health_tracker import HealthTrackerService
from tests.support import NOW, FrozenClock

SUBJECT = "amani"


async def add_diary_day(
    tracker: HealthTrackerService, day: str, foods: list[str], reactions=(), severity=None
) -> None:
    payload = {"subject_id": SUBJECT, "date": day, "foods": foods, "reactions": list(reactions)}
    if severity:
        payload["severity"] = severity
    (await tracker.store.create(RecordCategory.FOOD_DIARY_ENTRIES, payload)).unwrap()


class TestComposition:
    def test_components_share_configuration(self, storage_config: StorageConfig) -> None:
        config = AppConfig(
            storage=storage_config, analytics=AnalyticsConfig(elimination_gap_days=5)
        )
        service = HealthTrackerService(config)

        assert service.store.backend is service.backend
        assert service.store.audit_trail is service.audit_trail
        assert service.reports.store is service.store
        assert service.reports.engine is service.engine
        assert service.allergy_analyzer.config.elimination_gap_days == 5

    async def test_session_opens_and_closes_storage(
        self, storage_config: StorageConfig, clock: FrozenClock
    ) -> None:
        service = HealthTrackerService(AppConfig(storage=storage_config), clock=clock)

        async with service.session() as active:
            assert active is service
            assert service.backend.schema_version() == service.registry.current_version

        with pytest.raises(RuntimeError):
            service.backend.conn

    async def test_repository_is_bound_to_category(self, tracker: HealthTrackerService) -> None:
        repository = tracker.repository(RecordCategory.TRANSFUSIONS)
        created = await repository.create({"subject_id": SUBJECT, "date": "2024-06-01"})
        record_id = created.unwrap()

        record = (await repository.get(record_id)).unwrap()
        assert record.category is RecordCategory.TRANSFUSIONS
        assert not repository.mutable


class TestAllergies:
    async def test_analysis_uses_trailing_window(self, tracker: HealthTrackerService) -> None:
        # outside the default 30-day window
        await add_diary_day(tracker, "2024-04-01", ["samaki"], ["upele"], "mild")
        await add_diary_day(tracker, "2024-04-02", ["samaki"], ["upele"], "mild")
        for day in ("2024-06-10", "2024-06-11", "2024-06-12"):
            await add_diary_day(tracker, day, ["karanga"], ["upele"], "moderate")
        await add_diary_day(tracker, "2024-06-13", ["wali"])

        analysis = (await tracker.analyze_allergies(SUBJECT)).unwrap()

        assert analysis.total_days_count == 4
        assert [s.food for s in analysis.suspicious] == ["karanga"]
        assert analysis.safe == ["wali"]

        wider = (await tracker.analyze_allergies(SUBJECT, days_back=90)).unwrap()
        assert {s.food for s in wider.suspicious} == {"karanga", "samaki"}

    async def test_plan_is_saved_as_record(self, tracker: HealthTrackerService) -> None:
        for day in ("2024-06-10", "2024-06-11"):
            await add_diary_day(tracker, day, ["maziwa"], ["kuhara"], "mild")
        analysis = (await tracker.analyze_allergies(SUBJECT)).unwrap()

        plan = (await tracker.create_elimination_plan(SUBJECT, analysis.suspicious)).unwrap()

        assert plan.start_date == date(2024, 6, 15)
        assert [item.food for item in plan.items] == ["maziwa"]
        saved = (await tracker.store.query(RecordCategory.ELIMINATION_PLANS, SUBJECT)).unwrap()
        assert len(saved) == 1
        assert saved[0].get("items")[0]["food"] == "maziwa"
        assert saved[0].get("start_date") == "2024-06-15"

    async def test_empty_or_unsaved_plans_are_not_stored(
        self, tracker: HealthTrackerService
    ) -> None:
        empty = (await tracker.create_elimination_plan(SUBJECT, [])).unwrap()
        assert empty.items == []

        for day in ("2024-06-10", "2024-06-11"):
            await add_diary_day(tracker, day, ["mayai"], ["upele"], "mild")
        analysis = (await tracker.analyze_allergies(SUBJECT)).unwrap()
        draft = await tracker.create_elimination_plan(SUBJECT, analysis.suspicious, save=False)
        assert draft.unwrap().items

        saved = (await tracker.store.query(RecordCategory.ELIMINATION_PLANS, SUBJECT)).unwrap()
        assert saved == []

    async def test_unreadable_stored_entry_is_returned_as_error(
        self, tracker: HealthTrackerService
    ) -> None:
        # rows from older databases were only checked for required fields
        store = tracker.store
        spec = store.registry.spec(RecordCategory.FOOD_DIARY_ENTRIES)
        data = {"subject_id": SUBJECT, "date": "2024-06-10", "foods": ["wali", ""]}
        row = store._build_row(spec, data, created_at=NOW, active=None, last_modified=NOW)
        with store.backend.transaction() as conn:
            store.backend.insert_record(conn, row)

        result = await tracker.analyze_allergies(SUBJECT)

        error = result.unwrap_err()
        assert isinstance(error, ValidationError)
        assert "foods" in str(error)

    async def test_invalid_entry_is_rejected_on_create(self, tracker: HealthTrackerService) -> None:
        diary = tracker.repository(RecordCategory.FOOD_DIARY_ENTRIES)

        result = await diary.create(
            {"subject_id": SUBJECT, "date": "2024-06-10", "foods": ["wali"], "severity": "very bad"}
        )

        assert result.unwrap_err().fields == ["severity"]
        analysis = (await tracker.analyze_allergies(SUBJECT)).unwrap()
        assert analysis.total_days_count == 0
