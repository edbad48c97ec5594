"""
Core services for the application.

This package contains the persistence layer (storage backend, record store,
audit trail), the pure analytics, and the report and allergy surfaces
composed by HealthTrackerService.
"""

from .allergy_analysis import AllergyAnalyzer
from .analytics import AnalyticsEngine
from .audit_trail import AuditTrail
from .health_tracker import HealthTrackerService
from .record_store import CategoryRepository, RecordStore, Result
from .reports import ReportGenerator
from .storage import SQLiteBackend

__all__ = [
    "AllergyAnalyzer",
    "AnalyticsEngine",
    "AuditTrail",
    "CategoryRepository",
    "HealthTrackerService",
    "RecordStore",
    "ReportGenerator",
    "Result",
    "SQLiteBackend",
]
