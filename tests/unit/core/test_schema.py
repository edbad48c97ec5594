"""
Tests for the schema registry and migrations.

Covers:
- Every category has exactly one CategorySpec
- Mutable categories and their audit target
- Index declarations
- Migration planning and persisted versions
"""

import sqlite3

import pytest

from core.config import StorageConfig
from core.domain.models import RecordCategory
from core.domain.schema import MIGRATIONS, IndexField, SchemaRegistry
from core.services.storage import SQLiteBackend


class TestSchemaRegistry:
    def test_every_category_has_a_spec(self) -> None:
        registry = SchemaRegistry()
        assert set(registry.categories()) == set(RecordCategory)
        for category in RecordCategory:
            assert registry.spec(category).category is category

    def test_mutable_categories_are_therapy_and_medications(self) -> None:
        registry = SchemaRegistry()
        assert set(registry.mutable_categories()) == {
            RecordCategory.THERAPY,
            RecordCategory.MEDICATIONS,
        }
        for category in registry.mutable_categories():
            spec = registry.spec(category)
            assert spec.audit_category is RecordCategory.THERAPY_HISTORY
            assert IndexField.ACTIVE in spec.indices

    def test_type_index_only_where_declared(self) -> None:
        registry = SchemaRegistry()
        lab = registry.spec(RecordCategory.LAB_RESULTS)
        assert lab.type_field == "test_type"
        assert IndexField.TYPE in lab.indices
        assert IndexField.TYPE not in registry.spec(RecordCategory.TRANSFUSIONS).indices

    def test_required_fields_always_include_subject(self) -> None:
        registry = SchemaRegistry()
        for category in RecordCategory:
            assert registry.spec(category).all_required[0] == "subject_id"

    def test_audit_and_baseline_are_not_directly_creatable(self) -> None:
        registry = SchemaRegistry()
        assert not registry.spec(RecordCategory.THERAPY_HISTORY).creatable
        assert not registry.spec(RecordCategory.BASELINE_PROFILE).creatable


class TestMigrations:
    def test_pending_migrations_from_scratch_are_in_order(self) -> None:
        registry = SchemaRegistry()
        versions = [v for v, _ in registry.pending_migrations(0)]
        assert versions == sorted(MIGRATIONS)

    def test_nothing_pending_at_current_version(self) -> None:
        registry = SchemaRegistry()
        assert registry.pending_migrations(registry.current_version) == []

    def test_newer_persisted_version_is_rejected(self) -> None:
        registry = SchemaRegistry()
        with pytest.raises(RuntimeError):
            registry.pending_migrations(registry.current_version + 1)

    def test_open_migrates_a_fresh_file(self, backend: SQLiteBackend) -> None:
        assert backend.schema_version() == SchemaRegistry.current_version

    def test_migration_from_older_version_runs_once(self, tmp_path) -> None:
        path = tmp_path / "old.db"
        # Simulate a file left at version 1
        conn = sqlite3.connect(path)
        for statement in MIGRATIONS[1]:
            conn.execute(statement)
        conn.execute("CREATE TABLE schema_meta (version INTEGER NOT NULL)")
        conn.execute("INSERT INTO schema_meta (version) VALUES (1)")
        conn.commit()
        conn.close()

        backend = SQLiteBackend(StorageConfig(path=str(path)))
        backend.open()
        try:
            assert backend.schema_version() == SchemaRegistry.current_version
            tables = {
                row[0]
                for row in backend.conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                )
            }
            assert "baseline_profiles" in tables
        finally:
            backend.close()

        # Reopening does not re-run anything
        backend.open()
        try:
            count = backend.conn.execute("SELECT COUNT(*) FROM schema_meta").fetchone()[0]
            assert count == 1
        finally:
            backend.close()
