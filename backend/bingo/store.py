"""
Document store used by the game services.

The store is the only place game documents are persisted. It offers
key/value document access, predicate queries and change subscriptions.

Invariants:
- Every write bumps the document's ``version``
- ``update(..., expected_version=n)`` is a compare-and-swap on that version
- Subscribers are notified after a write is committed
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

from flask import current_app

logger = logging.getLogger(__name__)


# =========================
# Exceptions
# =========================

class StoreError(Exception):
    """Base exception for document store errors."""
    retryable: bool = True


class DocumentNotFound(StoreError):
    retryable = False


class VersionConflict(StoreError):
    """The document changed since the caller read it."""
    retryable = True


# =========================
# References, queries, subscriptions
# =========================

class DocumentRef(NamedTuple):
    collection: str
    id: str


class Query(NamedTuple):
    collection: str
    where: Optional[Callable[[dict], bool]] = None
    order_by: Optional[str] = None
    descending: bool = False

    def matches(self, document: dict) -> bool:
        return self.where is None or bool(self.where(document))

    def apply(self, documents) -> List[dict]:
        results = [d for d in documents if self.matches(d)]
        if self.order_by:
            results.sort(key=lambda d: (d.get(self.order_by) is None, d.get(self.order_by)),
                         reverse=self.descending)
        return results


class Subscription:
    """Handle returned by ``DocumentStore.subscribe``."""

    def __init__(self, store: 'DocumentStore', target: Union[DocumentRef, Query],
                 callback: Callable[[Any], None], on_error: Optional[Callable[[Exception], None]] = None):
        self.store = store
        self.target = target
        self.callback = callback
        self.on_error = on_error
        self.active = True

    @property
    def collection(self) -> str:
        return self.target.collection

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.store._remove_subscription(self)

    def deliver(self) -> None:
        """Push the current snapshot of the target to the callback."""
        if not self.active:
            return
        try:
            if isinstance(self.target, DocumentRef):
                snapshot = self.store.get_or_none(self.target)
            else:
                snapshot = self.store.query(self.target)
            self.callback(snapshot)
        except Exception as exc:
            if self.on_error is None:
                logger.exception(f"[subscription-error] target={self.target}")
            else:
                self.on_error(exc)


# =========================
# DocumentStore interface
# =========================

class DocumentStore(ABC):

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._subscriptions_lock = RLock()

    # -------------------------------------------------
    # Documents
    # -------------------------------------------------

    def document(self, collection: str, doc_id: Optional[str] = None) -> DocumentRef:
        """Reference to a document; a fresh id is generated when none is given."""
        return DocumentRef(collection, doc_id or uuid.uuid4().hex)

    @abstractmethod
    def get(self, ref: DocumentRef) -> dict:
        """Return a copy of the document.

        Raises:
            DocumentNotFound: If the document does not exist.
        """

    def get_or_none(self, ref: DocumentRef) -> Optional[dict]:
        try:
            return self.get(ref)
        except DocumentNotFound:
            return None

    @abstractmethod
    def set(self, ref: DocumentRef, data: dict) -> dict:
        """Create or fully replace a document. Returns the stored copy."""

    @abstractmethod
    def update(self, ref: DocumentRef, changes: dict, expected_version: Optional[int] = None) -> dict:
        """Merge ``changes`` into the top level of an existing document.

        Raises:
            DocumentNotFound: If the document does not exist.
            VersionConflict: If ``expected_version`` does not match.
        """

    @abstractmethod
    def delete(self, ref: DocumentRef) -> None:
        """Remove a document. Deleting a missing document is a no-op."""

    @abstractmethod
    def query(self, query: Query) -> List[dict]:
        """Return copies of the matching documents."""

    # -------------------------------------------------
    # Subscriptions
    # -------------------------------------------------

    def subscribe(self, target: Union[DocumentRef, Query], callback: Callable[[Any], None],
                  on_error: Optional[Callable[[Exception], None]] = None) -> Subscription:
        """Subscribe to a document or a query.

        The callback receives the current snapshot right away and again after
        every write to the collection: a document (or None once deleted) for
        a DocumentRef, a list of documents for a Query.
        """
        subscription = Subscription(self, target, callback, on_error)
        with self._subscriptions_lock:
            self._subscriptions.append(subscription)
        subscription.deliver()
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _notify(self, ref: DocumentRef) -> None:
        with self._subscriptions_lock:
            targets = [
                s for s in self._subscriptions
                if s.collection == ref.collection
                and (not isinstance(s.target, DocumentRef) or s.target == ref)
            ]
        for subscription in targets:
            subscription.deliver()

    @property
    def subscription_count(self) -> int:
        with self._subscriptions_lock:
            return len(self._subscriptions)


# =========================
# In-memory implementation
# =========================

class MemoryDocumentStore(DocumentStore):
    """Thread-safe in-memory store. Data is lost on restart."""

    def __init__(self):
        super().__init__()
        self._collections: Dict[str, Dict[str, dict]] = {}
        self._lock = RLock()

    def get(self, ref: DocumentRef) -> dict:
        with self._lock:
            document = self._collections.get(ref.collection, {}).get(ref.id)
            if document is None:
                raise DocumentNotFound(f"{ref.collection}/{ref.id}")
            return copy.deepcopy(document)

    def set(self, ref: DocumentRef, data: dict) -> dict:
        with self._lock:
            collection = self._collections.setdefault(ref.collection, {})
            previous = collection.get(ref.id)
            document = copy.deepcopy(data)
            document['version'] = (previous['version'] + 1) if previous else 1
            collection[ref.id] = document
            stored = copy.deepcopy(document)
        self._notify(ref)
        return stored

    def update(self, ref: DocumentRef, changes: dict, expected_version: Optional[int] = None) -> dict:
        with self._lock:
            current = self._collections.get(ref.collection, {}).get(ref.id)
            if current is None:
                raise DocumentNotFound(f"{ref.collection}/{ref.id}")
            if expected_version is not None and current['version'] != expected_version:
                raise VersionConflict(
                    f"{ref.collection}/{ref.id} is at version {current['version']}, expected {expected_version}"
                )
            document = {**current, **copy.deepcopy(changes)}
            document['version'] = current['version'] + 1
            self._collections[ref.collection][ref.id] = document
            stored = copy.deepcopy(document)
        self._notify(ref)
        return stored

    def delete(self, ref: DocumentRef) -> None:
        with self._lock:
            removed = self._collections.get(ref.collection, {}).pop(ref.id, None)
        if removed is not None:
            self._notify(ref)

    def query(self, query: Query) -> List[dict]:
        with self._lock:
            documents = copy.deepcopy(list(self._collections.get(query.collection, {}).values()))
        return query.apply(documents)

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()


# =========================
# SQLAlchemy implementation
# =========================

class SqlDocumentStore(DocumentStore):
    """Stores documents as JSON rows in the ``document`` table.

    Subscriptions are process-local: they fire for writes made through this
    store instance.
    """

    def __init__(self, db):
        super().__init__()
        self.db = db

    @property
    def _model(self):
        from bingo.models import Document
        return Document

    def _row(self, ref: DocumentRef):
        return self._model.query.filter_by(collection=ref.collection, id=ref.id).first()

    @staticmethod
    def _snapshot(row) -> dict:
        document = copy.deepcopy(row.data or {})
        document['version'] = row.version
        return document

    def get(self, ref: DocumentRef) -> dict:
        row = self._row(ref)
        if row is None:
            raise DocumentNotFound(f"{ref.collection}/{ref.id}")
        return self._snapshot(row)

    def set(self, ref: DocumentRef, data: dict) -> dict:
        document = copy.deepcopy(data)
        document.pop('version', None)
        row = self._row(ref)
        try:
            if row is None:
                row = self._model(collection=ref.collection, id=ref.id, data=document, version=1)
                self.db.session.add(row)
            else:
                row.data = document
                row.version = row.version + 1
                row.updated_at = datetime.now(timezone.utc)
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        stored = self._snapshot(row)
        self._notify(ref)
        return stored

    def update(self, ref: DocumentRef, changes: dict, expected_version: Optional[int] = None) -> dict:
        row = self._row(ref)
        if row is None:
            raise DocumentNotFound(f"{ref.collection}/{ref.id}")
        current_version = row.version
        if expected_version is not None and current_version != expected_version:
            raise VersionConflict(
                f"{ref.collection}/{ref.id} is at version {current_version}, expected {expected_version}"
            )
        merged = {**(row.data or {}), **copy.deepcopy(changes)}
        merged.pop('version', None)
        try:
            # Conditional write: only succeeds if nobody bumped the version in between
            updated = self._model.query.filter_by(
                collection=ref.collection, id=ref.id, version=current_version
            ).update(
                {'data': merged, 'version': current_version + 1, 'updated_at': datetime.now(timezone.utc)},
                synchronize_session=False,
            )
            if updated == 0:
                self.db.session.rollback()
                raise VersionConflict(f"{ref.collection}/{ref.id} changed during update")
            self.db.session.commit()
        except VersionConflict:
            raise
        except Exception:
            self.db.session.rollback()
            raise
        self.db.session.expire_all()
        stored = dict(merged, version=current_version + 1)
        self._notify(ref)
        return stored

    def delete(self, ref: DocumentRef) -> None:
        row = self._row(ref)
        if row is None:
            return
        try:
            self.db.session.delete(row)
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        self._notify(ref)

    def query(self, query: Query) -> List[dict]:
        rows = self._model.query.filter_by(collection=query.collection).all()
        return query.apply(self._snapshot(row) for row in rows)


def create_store(app, db) -> DocumentStore:
    """Build the store selected by ``DOCUMENT_STORE`` ('sql' or 'memory')."""
    kind = (app.config.get('DOCUMENT_STORE') or 'sql').lower()
    if kind == 'memory':
        return MemoryDocumentStore()
    if kind == 'sql':
        return SqlDocumentStore(db)
    raise ValueError(f"Unknown DOCUMENT_STORE: {kind}")


def get_store() -> DocumentStore:
    """Store bound to the current Flask app."""
    return current_app.extensions['document_store']
