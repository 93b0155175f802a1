"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - raise a TransactionAbort subclass so the
    # transaction runner and the API layer know how to report it.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class TransactionAbort(DomainException):
    """Expected rejection of a unit of work.

    Carries the status code and payload the caller should see. The transaction
    runner rolls back and re-raises it without logging it as a failure.

    Example:
        raise TransactionAbort(409, {"error": "A list with this name already exists"})
    """

    status_code: int = 400

    def __init__(
        self,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        if status_code is not None:
            self.status_code = status_code
        self.payload: dict[str, Any] = dict(payload or {})
        self.payload.setdefault("error", "Request rejected")
        super().__init__(str(self.payload["error"]))


class ValidationError(TransactionAbort):
    """Input validation failed (empty name, year out of range, missing field).

    HTTP Status: 400
    """

    status_code = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(payload={"error": message, **extra})


class EntityNotFoundException(TransactionAbort):
    """Raised when a list, group or item is absent or not owned by the user.

    HTTP Status: 404
    """

    status_code = 404

    # entity_type and entity_id are kept separately so handlers can log them structured.
    def __init__(
        self, entity_type: str, entity_id: Any, message: str | None = None
    ) -> None:
        super().__init__(payload={"error": message or f"{entity_type} not found"})
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateEntityException(TransactionAbort):
    """Raised when a name is already taken within its scope.

    HTTP Status: 409
    """

    status_code = 409

    def __init__(self, entity_type: str, entity_id: Any, message: str) -> None:
        super().__init__(payload={"error": message})
        self.entity_type = entity_type
        self.entity_id = entity_id


class YearLockedError(TransactionAbort):
    """A year-lock rule denied the mutation.

    HTTP Status: 403

    The payload names the year and the denied action, e.g.
    {"error": "Cannot reorder list items: Main list for year 2022 is locked",
     "yearLocked": True, "year": 2022, "action": "reorder list items"}
    """

    status_code = 403

    def __init__(self, year: int | None, action: str, message: str) -> None:
        super().__init__(
            payload={
                "error": message,
                "yearLocked": True,
                "year": year,
                "action": action,
            }
        )
        self.year = year
        self.action = action


class MainListProtectedError(TransactionAbort):
    """A main list cannot be deleted until its main status is revoked.

    HTTP Status: 403
    """

    status_code = 403

    def __init__(self, message: str = "Cannot delete main list. Unset main status first.") -> None:
        super().__init__(payload={"error": message})


__all__ = [
    "DomainException",
    "TransactionAbort",
    "ValidationError",
    "EntityNotFoundException",
    "DuplicateEntityException",
    "YearLockedError",
    "MainListProtectedError",
]
