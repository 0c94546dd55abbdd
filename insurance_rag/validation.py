"""Record validation.

Pure, side-effect-free checks run before any write. Each validate_* function takes a
candidate (a schema instance or a plain mapping) and returns the list of field-level
violations; an empty list means the record is valid. The parse_* variants return the
typed record or raise ValidationError.
"""
from typing import Any, List, Mapping, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from insurance_rag.errors import FieldViolation, ValidationError
from insurance_rag.schemas import ChunkCreate, DocumentCreate, InsurerCreate

ModelT = TypeVar("ModelT", bound=BaseModel)
Candidate = Union[BaseModel, Mapping[str, Any]]


def _field_name(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(p) for p in loc) if loc else "__root__"


def _coerce(model: Type[ModelT], candidate: Candidate) -> Tuple[Union[ModelT, None], List[FieldViolation]]:
    # instances are re-checked: model_construct and attribute assignment skip validation
    if isinstance(candidate, BaseModel):
        candidate = candidate.model_dump()
    if not isinstance(candidate, Mapping):
        return None, [FieldViolation("__root__", f"expected a mapping, got {type(candidate).__name__}")]
    try:
        return model.model_validate(dict(candidate)), []
    except PydanticValidationError as exc:
        return None, [FieldViolation(_field_name(e["loc"]), e["msg"]) for e in exc.errors()]


def validate_insurer(candidate: Candidate) -> List[FieldViolation]:
    return _coerce(InsurerCreate, candidate)[1]


def validate_document(candidate: Candidate) -> List[FieldViolation]:
    return _coerce(DocumentCreate, candidate)[1]


def validate_chunk(candidate: Candidate) -> List[FieldViolation]:
    """Check required fields, the fixed embedding dimensionality, a non-negative
    chunk_index and a positive token_count (when supplied)."""
    return _coerce(ChunkCreate, candidate)[1]


def _parse(model: Type[ModelT], entity: str, candidate: Candidate) -> ModelT:
    record, violations = _coerce(model, candidate)
    if violations:
        raise ValidationError.from_violations(entity, violations)
    return record


def parse_insurer(candidate: Candidate) -> InsurerCreate:
    return _parse(InsurerCreate, "insurer", candidate)


def parse_document(candidate: Candidate) -> DocumentCreate:
    return _parse(DocumentCreate, "document", candidate)


def parse_chunk(candidate: Candidate) -> ChunkCreate:
    return _parse(ChunkCreate, "chunk", candidate)
