from .api import compare_and_update, create, delete, get, set_default_backend
from .decorators import retry_on_conflict
from .exceptions import (
    ConcurrencyConflict,
    RecordNotFound,
    StorageFailure,
    VersionedStoreError,
)
from .records import Record

__all__ = [
    "create",
    "get",
    "compare_and_update",
    "delete",
    "set_default_backend",
    "retry_on_conflict",
    "Record",
    "VersionedStoreError",
    "RecordNotFound",
    "ConcurrencyConflict",
    "StorageFailure",
]
