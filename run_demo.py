"""
End-to-end demo of the tracker pipeline.

Exercises:
1. Configuration loading
2. Typed adapter payloads stored through the record store
3. Audited therapy changes and their history
4. Report generation with alerts
5. Food-allergy analysis and an elimination plan

Run with: uv run python run_demo.py
"""

import asyncio
import os
import tempfile
from datetime import UTC, date, datetime, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.epilepsy.domain import DevelopmentCheckpoint, SeizureEvent, TherapyMedication
from adapters.sickle_cell.domain import AnnualExam, LabResult, Transfusion
from core.config import StorageConfig, configure_logging, get_config
from core.domain.models import BaselineProfile, RecordCategory
from core.presentation import audit_note, render_allergies, render_report
from core.services.health_tracker import HealthTrackerService

console = Console()
SUBJECT = "amani"


async def seed(tracker: HealthTrackerService, today: date) -> int:
    """Store a few weeks of history; returns the therapy record id."""
    for days_ago, hour, triggers in [(2, 7, ["homa"]), (9, 7, ["usingizi"]), (16, 21, ["homa"])]:
        moment = datetime.combine(today - timedelta(days=days_ago), datetime.min.time())
        (
            await tracker.record(
                SeizureEvent(
                    subject_id=SUBJECT,
                    date_time=moment.replace(hour=hour, tzinfo=UTC),
                    duration="2 min",
                    triggers=triggers,
                )
            )
        ).unwrap()

    for days_ago, value in [(60, 8.5), (30, 7.6), (3, 6.4)]:
        (
            await tracker.record(
                LabResult(
                    subject_id=SUBJECT,
                    date=today - timedelta(days=days_ago),
                    test_type="hb",
                    value=value,
                    unit="g/dL",
                )
            )
        ).unwrap()

    for months_ago in range(0, 44, 2):
        (
            await tracker.record(
                Transfusion(subject_id=SUBJECT, date=today - timedelta(days=30 * months_ago))
            )
        ).unwrap()

    (
        await tracker.record(
            AnnualExam(
                subject_id=SUBJECT,
                date=today - timedelta(days=380),
                exam_type="tcd",
                next_scheduled=today - timedelta(days=15),
            )
        )
    ).unwrap()
    (await tracker.record(DevelopmentCheckpoint(subject_id=SUBJECT, speech=True))).unwrap()
    (
        await tracker.store.upsert_baseline(
            BaselineProfile(subject_id=SUBJECT, normal_hb=8.5, hb_std_dev=0.8, current_weight=25)
        )
    ).unwrap()

    for days_ago, foods, reactions, severity in [
        (1, ["Maziwa", "ugali"], ["upele"], "moderate"),
        (2, ["ugali", "maharage"], [], None),
        (3, ["maziwa", "wali"], ["upele", "kuwashwa"], "mild"),
        (4, ["maziwa"], ["upele"], "moderate"),
        (5, ["wali", "ndizi"], [], None),
    ]:
        (
            await tracker.repository(RecordCategory.FOOD_DIARY_ENTRIES).create(
                {
                    "subject_id": SUBJECT,
                    "date": today - timedelta(days=days_ago),
                    "foods": [{"name": f} for f in foods],
                    "reactions": reactions,
                    "severity": severity,
                }
            )
        ).unwrap()

    therapy = tracker.repository(RecordCategory.THERAPY)
    therapy_id = (
        await tracker.record(
            TherapyMedication(
                subject_id=SUBJECT,
                medication_name="Depakine",
                dosage="150mg",
                timing={"asubuhi": "150mg", "jioni": "150mg"},
            )
        )
    ).unwrap()
    (await therapy.update(therapy_id, {"dosage": "200mg"})).unwrap()
    return therapy_id


async def main() -> None:
    config = get_config()
    configure_logging(config.logging)
    language = config.presentation.language

    with tempfile.TemporaryDirectory() as workdir:
        config = config.model_copy(
            update={"storage": StorageConfig(path=os.path.join(workdir, "demo.db"))}
        )
        tracker = HealthTrackerService(config)

        async with tracker.session():
            today = tracker.clock().date()
            console.print(Panel("Seeding records", style="blue"))
            therapy_id = await seed(tracker, today)

            history = (
                await tracker.repository(RecordCategory.THERAPY).history(therapy_id)
            ).unwrap()
            table = Table(title="Therapy history")
            table.add_column("When", style="cyan")
            table.add_column("Change", style="magenta")
            table.add_column("Note", style="green")
            for entry in history:
                table.add_row(
                    entry.changed_at.isoformat(timespec="seconds"),
                    entry.change_kind.value,
                    audit_note(entry.note, language),
                )
            console.print(table)

            report = (
                await tracker.generate_report(SUBJECT, start_date=today - timedelta(days=90))
            ).unwrap()
            render_report(report, language, console)

            analysis = (await tracker.analyze_allergies(SUBJECT)).unwrap()
            plan = (
                await tracker.create_elimination_plan(SUBJECT, analysis.suspicious)
            ).unwrap()
            render_allergies(analysis, plan, language, console)


if __name__ == "__main__":
    asyncio.run(main())
