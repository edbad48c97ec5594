"""
Composition root for the chronic-disease tracker.

Wires storage, record store, analytics, allergy analysis and reports from
one AppConfig. The service owns the storage lifecycle: use session() so the
database is opened before any operation and closed afterwards.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import date, datetime

import structlog
from pydantic import ValidationError as PydanticValidationError

from core.config import AppConfig, get_config
from core.domain.dates import DateLike, utc_now
from core.domain.errors import ValidationError
from core.domain.models import CategoryPayload, FoodDiaryEntry, QueryWindow, RecordCategory
from core.domain.schema import SchemaRegistry
from core.services.allergy_analysis import (
    AllergyAnalysis,
    AllergyAnalyzer,
    EliminationPlan,
    SuspiciousFood,
)
from core.services.analytics import AnalyticsEngine
from core.services.audit_trail import AuditTrail
from core.services.record_store import CategoryRepository, RecordStore, Result, StoreResult
from core.services.reports import Report, ReportGenerator
from core.services.storage import SQLiteBackend

logger = structlog.get_logger(__name__)


class HealthTrackerService:
    """
    Main service that orchestrates the tracker's components.

    Components are built explicitly and shared by reference; there is no
    module-level singleton.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or get_config()
        self.clock = clock
        self.logger = logger.bind(component="health_tracker")

        self._init_storage()
        self._init_analytics()
        self._init_reports()

    def _init_storage(self) -> None:
        self.registry = SchemaRegistry()
        self.backend = SQLiteBackend(self.config.storage, self.registry)
        self.audit_trail = AuditTrail(self.backend, self.registry)
        self.store = RecordStore(self.backend, self.registry, self.audit_trail, clock=self.clock)
        self.logger.info("storage_initialized", path=self.config.storage.path)

    def _init_analytics(self) -> None:
        self.engine = AnalyticsEngine(self.config.analytics)
        self.allergy_analyzer = AllergyAnalyzer(self.config.analytics)
        self.logger.info("analytics_initialized")

    def _init_reports(self) -> None:
        self.reports = ReportGenerator(self.store, self.engine, clock=self.clock)
        self.logger.info("reports_initialized")

    @asynccontextmanager
    async def session(self) -> AsyncIterator["HealthTrackerService"]:
        """Open storage (migrating if needed) for the duration of the block."""
        await asyncio.to_thread(self.backend.open)
        self.logger.info("tracker_session_started")
        try:
            yield self
        finally:
            await asyncio.to_thread(self.backend.close)
            self.logger.info("tracker_session_ended")

    def repository(self, category: RecordCategory) -> CategoryRepository:
        return self.store.repository(category)

    async def record(self, entry: CategoryPayload) -> StoreResult[int]:
        """Store a typed adapter payload under its category."""
        return await self.store.create(entry.category, entry.to_payload())

    # ============ REPORTS ============

    async def generate_report(
        self,
        subject_id: str,
        start_date: DateLike | None = None,
        end_date: DateLike | None = None,
    ) -> StoreResult[Report]:
        return await self.reports.generate_report(subject_id, start_date, end_date)

    # ============ ALLERGIES ============

    async def analyze_allergies(
        self, subject_id: str, days_back: int | None = None
    ) -> StoreResult[AllergyAnalysis]:
        """Analyze the subject's food diary over a trailing window of days."""
        days = self.config.analytics.allergy_history_days if days_back is None else days_back
        result = await self.store.query(
            RecordCategory.FOOD_DIARY_ENTRIES, subject_id, window=QueryWindow(days_back=days)
        )
        if result.is_err():
            return Result.err(result.unwrap_err())

        try:
            entries = [FoodDiaryEntry.from_record(r) for r in result.unwrap()]
        except PydanticValidationError as e:
            self.logger.warning("diary_entry_invalid", subject_id=subject_id, error=str(e))
            return Result.err(ValidationError(f"Food diary entry is invalid: {e}"))
        return Result.ok(self.allergy_analyzer.analyze(entries))

    async def create_elimination_plan(
        self,
        subject_id: str,
        suspicious: list[SuspiciousFood],
        save: bool = True,
        start: date | None = None,
    ) -> StoreResult[EliminationPlan]:
        """Build a plan starting today (or `start`) and optionally store it."""
        plan = self.allergy_analyzer.create_elimination_plan(
            suspicious, start=start or self.clock().date()
        )
        if save and plan.items:
            payload = {"subject_id": subject_id, **plan.model_dump(mode="json")}
            saved = await self.store.create(RecordCategory.ELIMINATION_PLANS, payload)
            if saved.is_err():
                return Result.err(saved.unwrap_err())
            self.logger.info(
                "elimination_plan_saved",
                subject_id=subject_id,
                record_id=saved.unwrap(),
                items=len(plan.items),
            )
        return Result.ok(plan)
