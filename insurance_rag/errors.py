"""Error taxonomy for ingestion and retrieval.

Every error carries a human-readable message plus a ``kind`` tag so that API
boundaries can hand callers a plain value (see ``to_dict``) instead of an
exception:

- ValidationError: a candidate record (or call) is malformed.
- DuplicateError: a uniqueness rule would be violated.
- MissingReferenceError: a referenced insurer/document does not exist.
- StorageError: the store was unreachable or rejected a statement.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldViolation:
    """A single field-level validation failure."""
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class InsuranceRagError(Exception):
    """Base exception for all ingestion/retrieval errors."""

    kind = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Tagged error value for API boundaries."""
        return {"kind": self.kind, "message": self.message, "details": self.details}


class ValidationError(InsuranceRagError):
    """Raised when a candidate record fails field validation."""

    kind = "validation"

    def __init__(self, message: str, violations: Optional[List[FieldViolation]] = None) -> None:
        self.violations = list(violations or [])
        details = {"violations": [{"field": v.field, "message": v.message} for v in self.violations]}
        super().__init__(message, details)

    @classmethod
    def from_violations(cls, entity: str, violations: List[FieldViolation]) -> "ValidationError":
        joined = "; ".join(str(v) for v in violations)
        return cls(f"Invalid {entity}: {joined}", violations)


class DuplicateError(InsuranceRagError):
    """Raised when a record with the same unique key already exists."""

    kind = "duplicate"

    def __init__(self, message: str, existing_id: Any) -> None:
        self.existing_id = existing_id
        super().__init__(message, {"existing_id": str(existing_id)})


class MissingReferenceError(InsuranceRagError):
    """Raised when a referenced insurer or document does not exist."""

    kind = "reference"

    def __init__(self, message: str, entity: str, reference_id: Any) -> None:
        self.entity = entity
        self.reference_id = reference_id
        super().__init__(message, {"entity": entity, "reference_id": str(reference_id)})


class StorageError(InsuranceRagError):
    """Raised when the underlying store fails; always chained from the cause."""

    kind = "storage"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        details = {"cause": f"{type(cause).__name__}: {cause}"} if cause is not None else {}
        super().__init__(message, details)
