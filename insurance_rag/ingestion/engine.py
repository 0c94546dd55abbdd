"""Ingestion engine: validated, deduplicated inserts of insurers, documents and chunks.

Single-record inserts follow validate -> check -> write and raise on the first failure;
nothing reaches the store when a check fails. Each write is one transaction, so a
failed write leaves no partial state.

bulk_insert_chunks validates every chunk up front, resolves each batch's document owners
in one query, writes the chunks that pass in their own transaction, and records
failures instead of raising. A failed batch never stops the following batches.
"""
import logging
from typing import Any, Callable, Iterable, List, Optional, Tuple

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from insurance_rag import queries
from insurance_rag.config import settings
from insurance_rag.db import Database
from insurance_rag.errors import DuplicateError, MissingReferenceError, StorageError, ValidationError
from insurance_rag.ingestion.batching import BulkInsertAccumulator, partition
from insurance_rag.models import Document, DocumentChunk, Insurer
from insurance_rag.obs import span
from insurance_rag.schemas import (
    BulkInsertSummary,
    ChunkCreate,
    ChunkRecord,
    DocumentRecord,
    InsurerRecord,
)
from insurance_rag.validation import Candidate, parse_chunk, parse_document, parse_insurer

logger = logging.getLogger(__name__)


def _chunk_row(chunk: ChunkCreate) -> dict:
    return {
        "document_id": chunk.document_id,
        "insurer_id": chunk.insurer_id,
        "chunk_text": chunk.chunk_text,
        "chunk_index": chunk.chunk_index,
        "embedding": chunk.embedding,
        "token_count": chunk.token_count,
        "meta": chunk.metadata,
    }


class IngestionEngine:
    """Writes insurer -> document -> chunk records through a shared Database."""

    def __init__(self, db: Database, default_batch_size: Optional[int] = None):
        self.db = db
        self.default_batch_size = default_batch_size or settings.BULK_BATCH_SIZE

    def insert_insurer(self, data: Candidate) -> InsurerRecord:
        """Insert a new insurer.

        Args:
            data: InsurerCreate or mapping with at least ``name``.

        Returns:
            InsurerRecord: The stored record including its generated id.

        Raises:
            ValidationError: Missing or blank name.
            DuplicateError: An insurer with exactly this name exists.
            StorageError: The check or the write failed in the store.
        """
        record = parse_insurer(data)
        try:
            with self.db.session_scope() as session:
                existing_id = queries.insurer_exists(session, record.name)
                if existing_id is not None:
                    logger.warning("Rejected duplicate insurer name=%r existing_id=%s", record.name, existing_id)
                    raise DuplicateError(
                        f'Insurer with name "{record.name}" already exists (ID: {existing_id})', existing_id
                    )
                row = Insurer(
                    name=record.name,
                    description=record.description,
                    website=record.website,
                    insurance_types=list(record.insurance_types),
                    contact_email=record.contact_email,
                    contact_phone=record.contact_phone,
                )
                session.add(row)
                session.flush()
                stored = InsurerRecord.model_validate(row)
        except IntegrityError as exc:
            # a concurrent insert won the race past the pre-check
            existing_id = self._lookup_existing(queries.insurer_exists, record.name)
            if existing_id is None:
                raise StorageError(f"Failed to insert insurer {record.name!r}", exc) from exc
            raise DuplicateError(
                f'Insurer with name "{record.name}" already exists (ID: {existing_id})', existing_id
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert insurer {record.name!r}", exc) from exc
        logger.info("Inserted insurer name=%r id=%s", stored.name, stored.id)
        return stored

    def insert_document(self, data: Candidate) -> DocumentRecord:
        """Insert a document owned by an existing insurer.

        The owning insurer is checked before title uniqueness: a missing insurer is a
        reference error even if the title would also clash.

        Raises:
            ValidationError: Missing insurer_id or title.
            MissingReferenceError: The insurer does not exist.
            DuplicateError: The insurer already has a document with this title.
            StorageError: The store failed.
        """
        record = parse_document(data)
        try:
            with self.db.session_scope() as session:
                if queries.insurer_by_id(session, record.insurer_id) is None:
                    logger.warning("Rejected document %r: unknown insurer %s", record.title, record.insurer_id)
                    raise MissingReferenceError(
                        f'Insurer with ID "{record.insurer_id}" does not exist', "insurer", record.insurer_id
                    )
                existing_id = queries.document_title_exists(session, record.insurer_id, record.title)
                if existing_id is not None:
                    logger.warning("Rejected duplicate document title=%r insurer=%s", record.title, record.insurer_id)
                    raise DuplicateError(
                        f'Document with title "{record.title}" already exists for this insurer (ID: {existing_id})',
                        existing_id,
                    )
                row = Document(
                    insurer_id=record.insurer_id,
                    title=record.title,
                    insurance_type=record.insurance_type,
                    document_type=record.document_type,
                    source_url=record.source_url,
                    file_path=record.file_path,
                    language=record.language or settings.DEFAULT_LANGUAGE,
                    meta=dict(record.metadata),
                )
                session.add(row)
                session.flush()
                stored = DocumentRecord.model_validate(row)
        except IntegrityError as exc:
            existing_id = self._lookup_existing(queries.document_title_exists, record.insurer_id, record.title)
            if existing_id is None:
                raise StorageError(f"Failed to insert document {record.title!r}", exc) from exc
            raise DuplicateError(
                f'Document with title "{record.title}" already exists for this insurer (ID: {existing_id})',
                existing_id,
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert document {record.title!r}", exc) from exc
        logger.info("Inserted document title=%r id=%s insurer=%s", stored.title, stored.id, stored.insurer_id)
        return stored

    def insert_document_chunk(self, data: Candidate) -> ChunkRecord:
        """Insert one chunk after checking its document and insurer references.

        Chunks are not deduplicated; repeated text within a document is allowed.

        Raises:
            ValidationError: Missing fields, wrong embedding dimensionality, negative
                chunk_index or non-positive token_count.
            MissingReferenceError: Unknown document or insurer, or the insurer does
                not own the document.
            StorageError: The store failed.
        """
        record = parse_chunk(data)
        try:
            with self.db.session_scope() as session:
                document = queries.document_by_id(session, record.document_id)
                if document is None:
                    raise MissingReferenceError(
                        f'Document with ID "{record.document_id}" does not exist', "document", record.document_id
                    )
                if queries.insurer_by_id(session, record.insurer_id) is None:
                    raise MissingReferenceError(
                        f'Insurer with ID "{record.insurer_id}" does not exist', "insurer", record.insurer_id
                    )
                if document.insurer_id != record.insurer_id:
                    raise MissingReferenceError(
                        f'Document "{record.document_id}" does not belong to insurer "{record.insurer_id}"',
                        "insurer",
                        record.insurer_id,
                    )
                row = DocumentChunk(**_chunk_row(record))
                session.add(row)
                session.flush()
                stored = ChunkRecord.model_validate(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert chunk {record.chunk_index} of {record.document_id}", exc) from exc
        logger.debug("Inserted chunk id=%s document=%s index=%d", stored.id, stored.document_id, stored.chunk_index)
        return stored

    def bulk_insert_chunks(self, chunks: Iterable[Any], batch_size: Optional[int] = None) -> BulkInsertSummary:
        """Insert many chunks in batches, tolerating partial failure.

        Args:
            chunks: ChunkCreate instances or mappings, in insertion order.
            batch_size: Chunks per batch write; defaults to settings.BULK_BATCH_SIZE.

        Returns:
            BulkInsertSummary: total == inserted + failed == len(chunks). Malformed chunks
            and chunks whose document is unknown or owned by another insurer are reported
            one entry each; failed batch writes one entry per batch.

        Raises:
            ValidationError: Only for a non-positive batch_size.

        Notes:
            Re-running after a partial failure re-inserts chunks from batches that
            already succeeded; chunk deduplication is the caller's responsibility.
        """
        items = list(chunks)
        size = self.default_batch_size if batch_size is None else batch_size
        batches = list(partition(items, size))
        acc = BulkInsertAccumulator()

        for number, start, batch in batches:
            valid: List[Tuple[int, ChunkCreate]] = []
            for offset, candidate in enumerate(batch):
                position = start + offset
                try:
                    valid.append((position, parse_chunk(candidate)))
                except ValidationError as exc:
                    acc.record_invalid(number, position, f"Chunk at index {position}: {exc.message}")
            if valid:
                self._write_batch(acc, number, valid)

        summary = acc.summary()
        logger.info(
            "Bulk insert finished: total=%d inserted=%d failed=%d batches=%d",
            summary.total, summary.inserted, summary.failed, len(batches),
        )
        return summary

    def _write_batch(self, acc: BulkInsertAccumulator, number: int, valid: List[Tuple[int, ChunkCreate]]) -> None:
        with span("ingestion.bulk_batch", {"batch": number, "rows": len(valid)}):
            try:
                with self.db.session_scope() as session:
                    owners = queries.document_owners(session, {chunk.document_id for _, chunk in valid})
            except SQLAlchemyError as exc:
                self._record_failed_batch(acc, number, [position for position, _ in valid], exc)
                return

            accepted: List[Tuple[int, ChunkCreate]] = []
            for position, chunk in valid:
                owner = owners.get(chunk.document_id)
                if owner is None:
                    reason = f'Document with ID "{chunk.document_id}" does not exist'
                elif owner != chunk.insurer_id:
                    reason = f'Document "{chunk.document_id}" does not belong to insurer "{chunk.insurer_id}"'
                else:
                    accepted.append((position, chunk))
                    continue
                acc.record_invalid(number, position, f"Chunk at index {position}: {reason}", kind="reference")
            if not accepted:
                return

            try:
                with self.db.session_scope() as session:
                    session.execute(insert(DocumentChunk), [_chunk_row(chunk) for _, chunk in accepted])
            except SQLAlchemyError as exc:
                self._record_failed_batch(acc, number, [position for position, _ in accepted], exc)
                return
        acc.record_inserted(len(accepted))

    @staticmethod
    def _record_failed_batch(
        acc: BulkInsertAccumulator, number: int, positions: List[int], exc: SQLAlchemyError
    ) -> None:
        reason = str(getattr(exc, "orig", None) or exc).strip()
        logger.warning("Batch %d (%d-%d) failed: %s", number, positions[0], positions[-1], reason)
        acc.record_batch_failure(number, positions, reason)

    def _lookup_existing(self, check: Callable[..., Any], *args: Any) -> Any:
        """Re-run a uniqueness check in a fresh session after a constraint violation."""
        try:
            with self.db.session_scope() as session:
                return check(session, *args)
        except SQLAlchemyError:
            logger.warning("Lookup after constraint violation failed", exc_info=True)
            return None
