"""Error taxonomy for the record store."""

from enum import Enum


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"


class RecordStoreError(Exception):
    def __init__(self, message: str, category: ErrorCategory) -> None:
        self.message = message
        self.category = category
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class ValidationError(RecordStoreError):
    """Missing or malformed field, or an operation the category does not allow."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        self.fields = fields or []
        super().__init__(message, ErrorCategory.VALIDATION)


class NotFoundError(RecordStoreError):
    def __init__(self, category: str, record_id: int | str) -> None:
        self.record_category = category
        self.record_id = record_id
        super().__init__(f"{category} record {record_id} not found", ErrorCategory.NOT_FOUND)


class StorageError(RecordStoreError):
    """The persistence transaction was rejected. Nothing from it was committed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.STORAGE)
