"""
Typed store errors.

Every store and handle operation raises one of these instead of leaking
driver exceptions. The CLI layer maps ``exit_code`` to a process exit status.
"""
from typing import List, Optional


class StoreError(Exception):
    """Base store exception."""

    exit_code: int = 1

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail or message
        super().__init__(self.message)


class NotFoundError(StoreError):
    """Entity not found, or not owned by the caller."""

    exit_code = 2

    def __init__(self, message: str = "Entity not found"):
        super().__init__(message)


class ConflictError(StoreError):
    """Unique constraint violation (user name already taken)."""

    exit_code = 3

    def __init__(self, message: str = "Entity already exists"):
        super().__init__(message)


class ValidationFailedError(StoreError):
    """Input rejected by validation. Nothing was persisted."""

    exit_code = 4

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[str]] = None,
    ):
        self.errors = errors or []
        detail = "; ".join(self.errors) if self.errors else None
        super().__init__(message, detail)


class ReferentialViolationError(StoreError):
    """Reference to an entity that does not exist or belongs to someone else."""

    exit_code = 5

    def __init__(self, message: str = "Referenced entity is not available"):
        super().__init__(message)


class StorageFailureError(StoreError):
    """Engine level failure: I/O, schema migration or transaction error."""

    exit_code = 10

    def __init__(self, message: str = "Storage failure", detail: Optional[str] = None):
        super().__init__(message, detail)


class OperationCancelledError(StoreError):
    """The query context was cancelled or its deadline passed."""

    exit_code = 11

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)
