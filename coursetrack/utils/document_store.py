# ==============================================================================
# utils/document_store.py - Generic document store on top of SQLAlchemy
# ==============================================================================

"""
A small collection/id keyed document store backed by the ``documents`` table.

Every record is a JSON object. Writes go through ``batch_write`` which applies
all operations inside one transaction, so a batch either lands completely or
not at all. Operations may carry an ``expected_version``; the write only
succeeds if the stored version still matches (``0`` means "must not exist").
``Create`` is a conditional put that fails when the id is already taken.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from sqlalchemy import delete as sql_delete, select, update as sql_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coursetrack.exceptions import (
    ConcurrentModificationError,
    CourseTrackBaseException,
    DuplicateDocumentError,
    NotFoundError,
    handle_store_error,
)
from coursetrack.models import Document
from coursetrack.utils.logging import log_database_operation

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


@dataclass(frozen=True)
class Put:
    """Create-or-replace."""
    collection: str
    doc_id: str
    data: Record
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class Create:
    """Create-only; fails with DuplicateDocumentError if the id exists."""
    collection: str
    doc_id: str
    data: Record


@dataclass(frozen=True)
class Update:
    """Shallow merge of ``fields`` into an existing document."""
    collection: str
    doc_id: str
    fields: Record = field(default_factory=dict)
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class Delete:
    collection: str
    doc_id: str
    expected_version: Optional[int] = None


Operation = Union[Put, Create, Update, Delete]


def _now():
    return datetime.now(timezone.utc)


def _to_record(doc: Document) -> Record:
    record = copy.deepcopy(doc.data)
    record["id"] = doc.doc_id
    record["_version"] = doc.version
    return record


def _strip_meta(data: Record) -> Record:
    return {k: v for k, v in data.items() if k not in ("id", "_version")}


class DocumentStore:
    """CRUD + atomic batch writes over the ``documents`` table"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @log_database_operation(logger, "get document")
    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        """Return the record or None when it does not exist."""
        try:
            with self.session_factory() as db:
                doc = db.get(Document, (collection, doc_id))
                return _to_record(doc) if doc is not None else None
        except SQLAlchemyError as e:
            raise handle_store_error(e, f"get {collection}/{doc_id}")

    def get_version(self, collection: str, doc_id: str) -> int:
        """Current version of a document, 0 when it does not exist."""
        record = self.get(collection, doc_id)
        return record["_version"] if record else 0

    @log_database_operation(logger, "query documents")
    def query(self, collection: str, **field_equals: Any) -> List[Record]:
        """All records of ``collection`` whose fields equal the given values."""
        try:
            with self.session_factory() as db:
                docs = db.execute(
                    select(Document).where(Document.collection == collection).order_by(Document.doc_id)
                ).scalars().all()
                records = [_to_record(doc) for doc in docs]
        except SQLAlchemyError as e:
            raise handle_store_error(e, f"query {collection}")

        return [
            record for record in records
            if all(record.get(key) == value for key, value in field_equals.items())
        ]

    # ------------------------------------------------------------------
    # Single writes
    # ------------------------------------------------------------------

    def put(self, collection: str, doc_id: str, record: Record, expected_version: Optional[int] = None) -> None:
        self.batch_write([Put(collection, doc_id, record, expected_version)])

    def create(self, collection: str, doc_id: str, record: Record) -> None:
        self.batch_write([Create(collection, doc_id, record)])

    def update(self, collection: str, doc_id: str, partial: Record, expected_version: Optional[int] = None) -> None:
        self.batch_write([Update(collection, doc_id, partial, expected_version)])

    def delete(self, collection: str, doc_id: str, expected_version: Optional[int] = None) -> None:
        self.batch_write([Delete(collection, doc_id, expected_version)])

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    @log_database_operation(logger, "batch write")
    def batch_write(self, operations: Iterable[Operation]) -> None:
        """Apply all operations in one transaction."""
        operations = list(operations)
        if not operations:
            return

        db = self.session_factory()
        try:
            for op in operations:
                self._apply(db, op)
            db.commit()
            logger.debug(f"Committed batch of {len(operations)} operations")
        except CourseTrackBaseException:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise handle_store_error(e, "batch write")
        finally:
            db.close()

    def _apply(self, db: Session, op: Operation) -> None:
        if isinstance(op, Create):
            self._insert(db, op.collection, op.doc_id, op.data, on_conflict="duplicate")
        elif isinstance(op, Put):
            self._put(db, op)
        elif isinstance(op, Update):
            self._update(db, op)
        elif isinstance(op, Delete):
            self._delete(db, op)
        else:
            raise TypeError(f"Unsupported store operation: {op!r}")

    def _insert(self, db: Session, collection: str, doc_id: str, data: Record, on_conflict: str,
                expected_version: Optional[int] = None) -> None:
        if self._current(db, collection, doc_id) is not None:
            if on_conflict == "duplicate":
                raise DuplicateDocumentError(collection, doc_id)
            raise ConcurrentModificationError(collection, doc_id, expected_version)

        now = _now()
        db.add(Document(
            collection=collection,
            doc_id=doc_id,
            data=_strip_meta(data),
            version=1,
            created_at=now,
            updated_at=now,
        ))
        try:
            db.flush()
        except IntegrityError:
            if on_conflict == "duplicate":
                raise DuplicateDocumentError(collection, doc_id)
            raise ConcurrentModificationError(collection, doc_id, expected_version)

    def _current(self, db: Session, collection: str, doc_id: str) -> Optional[Document]:
        return db.execute(
            select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
        ).scalar_one_or_none()

    def _check_version(self, current: Optional[Document], collection: str, doc_id: str,
                       expected_version: Optional[int]) -> None:
        if expected_version is None:
            return
        actual = current.version if current is not None else 0
        if actual != expected_version:
            raise ConcurrentModificationError(collection, doc_id, expected_version)

    def _conditional_update(self, db: Session, current: Document, data: Record) -> None:
        result = db.execute(
            sql_update(Document)
            .where(
                Document.collection == current.collection,
                Document.doc_id == current.doc_id,
                Document.version == current.version,
            )
            .values(data=data, version=current.version + 1, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(current.collection, current.doc_id, current.version)
        db.expire(current)

    def _put(self, db: Session, op: Put) -> None:
        current = self._current(db, op.collection, op.doc_id)
        self._check_version(current, op.collection, op.doc_id, op.expected_version)
        if current is None:
            self._insert(db, op.collection, op.doc_id, op.data, on_conflict="conflict",
                         expected_version=op.expected_version)
        else:
            self._conditional_update(db, current, _strip_meta(op.data))

    def _update(self, db: Session, op: Update) -> None:
        current = self._current(db, op.collection, op.doc_id)
        if current is None:
            raise NotFoundError(f"{op.collection}/{op.doc_id}")
        self._check_version(current, op.collection, op.doc_id, op.expected_version)
        merged = copy.deepcopy(current.data)
        merged.update(_strip_meta(op.fields))
        self._conditional_update(db, current, merged)

    def _delete(self, db: Session, op: Delete) -> None:
        current = self._current(db, op.collection, op.doc_id)
        self._check_version(current, op.collection, op.doc_id, op.expected_version)
        if current is None:
            return
        result = db.execute(
            sql_delete(Document)
            .where(
                Document.collection == op.collection,
                Document.doc_id == op.doc_id,
                Document.version == current.version,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(op.collection, op.doc_id, current.version)
        db.expunge(current)
