"""Document store backed by a single SQLAlchemy table.

Collections are plain path strings (``games``, ``games/<id>/players``), every
document is a JSON object addressed by ``(collection, key)``. Subscribers are
notified after each committed write, both on the document path and on its
collection.
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from livequiz import db
from livequiz.errors import NotFoundError, TransientStoreError
from livequiz.models import Document

Listener = Callable[[str, Optional[dict]], None]

# Attempts for a partial update racing other writers of the same document
MAX_UPDATE_ATTEMPTS = 5

_stamp_lock = threading.Lock()
_last_stamp = 0.0


def _stamp() -> float:
    """Wall-clock time, strictly increasing within the process so insertion order is total."""
    global _last_stamp
    with _stamp_lock:
        _last_stamp = max(time.time(), _last_stamp + 1e-6)
        return _last_stamp


def doc_path(collection: str, key: str) -> str:
    return f"{collection}/{key}"


class DocumentStore:

    def init_app(self, app) -> None:
        app.extensions['document_store'] = self
        app.extensions['document_store_listeners'] = {}

    # ---- reads ----

    def get(self, collection: str, key: str) -> Optional[dict]:
        with self._guard(f"get {doc_path(collection, key)}"):
            row = db.session.get(Document, (collection, key), populate_existing=True)
        return row.to_dict() if row else None

    def query(self, collection: str, predicate: Optional[Callable[[dict], bool]] = None) -> List[Tuple[str, dict]]:
        """Return ``(key, doc)`` pairs of a collection in insertion order."""
        stmt = (
            db.select(Document)
            .filter_by(collection=collection)
            .order_by(Document.created_at, Document.key)
            .execution_options(populate_existing=True)
        )
        with self._guard(f"query {collection}"):
            rows = db.session.execute(stmt).scalars().all()
        result = []
        for row in rows:
            data = row.to_dict()
            if predicate is None or predicate(data):
                result.append((row.key, data))
        return result

    # ---- writes ----

    def put(self, collection: str, key: str, doc: dict) -> dict:
        """Create or fully replace a document."""
        now = _stamp()
        data = dict(doc)
        with self._guard(f"put {doc_path(collection, key)}"):
            if not self._replace(collection, key, data, now):
                try:
                    self._insert(collection, key, data, now)
                except IntegrityError:
                    # Another writer created it after the replace missed
                    db.session.rollback()
                    self._replace(collection, key, data, now)
            db.session.commit()
        self._notify(collection, key, data)
        return data

    def create(self, collection: str, key: str, doc: dict) -> bool:
        """Insert only if absent. Returns False when the key already exists."""
        now = _stamp()
        data = dict(doc)
        with self._guard(f"create {doc_path(collection, key)}"):
            try:
                self._insert(collection, key, data, now)
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                return False
        self._notify(collection, key, data)
        return True

    def update(self, collection: str, key: str, partial: dict, expect: Optional[dict] = None) -> Optional[dict]:
        """Merge ``partial`` into an existing document.

        ``expect`` is a precondition on current field values; when it does not
        hold nothing is written and None is returned. Concurrent writers of the
        same document are detected through the row version and the merge is
        retried against the fresh state.
        """
        path = doc_path(collection, key)
        for _ in range(MAX_UPDATE_ATTEMPTS):
            with self._guard(f"update {path}"):
                row = db.session.get(Document, (collection, key), populate_existing=True)
                if row is None:
                    raise NotFoundError(f"{path} not found")
                current = row.to_dict()
                if expect and any(current.get(field) != value for field, value in expect.items()):
                    return None
                merged = {**current, **partial}
                result = db.session.execute(
                    db.update(Document)
                    .where(
                        Document.collection == collection,
                        Document.key == key,
                        Document.version == row.version,
                    )
                    .values(data=merged, version=row.version + 1, updated_at=time.time())
                    .execution_options(synchronize_session=False)
                )
                db.session.commit()
            if result.rowcount == 1:
                self._notify(collection, key, merged)
                return merged
            current_app.logger.info(f"[store-conflict] {path} retrying update")
        raise TransientStoreError(f"{path} is being written concurrently, try again")

    def delete(self, collection: str, key: str) -> None:
        with self._guard(f"delete {doc_path(collection, key)}"):
            result = db.session.execute(
                db.delete(Document)
                .where(Document.collection == collection, Document.key == key)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        if result.rowcount:
            self._notify(collection, key, None)

    # ---- subscriptions ----

    def subscribe(self, resource: str, callback: Listener) -> Callable[[], None]:
        """Call ``callback(path, doc)`` whenever ``resource`` changes.

        ``resource`` is either a document path or a collection. Deleted
        documents are reported with ``doc=None``.
        """
        listeners: Dict[str, List[Listener]] = current_app.extensions['document_store_listeners']
        listeners.setdefault(resource, []).append(callback)

        def unsubscribe() -> None:
            bucket = listeners.get(resource, [])
            if callback in bucket:
                bucket.remove(callback)
            if not bucket:
                listeners.pop(resource, None)

        return unsubscribe

    def _notify(self, collection: str, key: str, data: Optional[dict]) -> None:
        listeners: Dict[str, List[Listener]] = current_app.extensions['document_store_listeners']
        path = doc_path(collection, key)
        for resource in (path, collection):
            for callback in list(listeners.get(resource, ())):
                try:
                    callback(path, data)
                except Exception:
                    current_app.logger.exception(f"[store-listener] {resource} callback failed")

    def _replace(self, collection: str, key: str, data: dict, now: float) -> bool:
        result = db.session.execute(
            db.update(Document)
            .where(Document.collection == collection, Document.key == key)
            .values(data=data, version=Document.version + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _insert(self, collection: str, key: str, data: dict, now: float) -> None:
        db.session.execute(db.insert(Document).values(
            collection=collection, key=key, data=data, version=1, created_at=now, updated_at=now,
        ))

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[store-error] {action}: {exc}")
            raise TransientStoreError(f"Store unavailable during {action}") from exc


store = DocumentStore()
