"""Facades over Firestore and Firebase Storage used by the deletion workflow.

Steps only talk to `DocumentStore` and `BlobStore`, so tests can swap in
in-memory doubles. The Firestore and Storage implementations are thin
wrappers around the `firebase_admin` clients.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import unquote, urlparse

from deletion_config import BATCH_CAPACITY, get_default_storage_bucket_name

DELETE = "delete"
UPDATE = "update"

SUPPORTED_OPERATORS = ("==", "array_contains")


class StoreError(Exception):
    """Base error raised by the store facades."""


class BatchCapacityError(StoreError):
    """Raised when a batch holds more operations than one atomic commit allows."""


class BlobNotFoundError(StoreError):
    """Raised when the referenced blob does not exist."""


@dataclass
class DocumentHandle:
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def collection(self) -> str:
        return self.path.rsplit("/", 1)[0]


@dataclass
class BatchOperation:
    kind: str
    path: str
    fields: Optional[Dict[str, Any]] = None

    @classmethod
    def delete(cls, path: str) -> "BatchOperation":
        return cls(DELETE, path)

    @classmethod
    def update(cls, path: str, fields: Dict[str, Any]) -> "BatchOperation":
        return cls(UPDATE, path, dict(fields))


def check_batch_size(operations: List[BatchOperation], max_batch_size: int) -> None:
    if len(operations) > max_batch_size:
        raise BatchCapacityError(
            f"Batch of {len(operations)} operations exceeds capacity {max_batch_size}"
        )


class DocumentStore:
    """Operations the deletion workflow needs from the document database."""

    def query(
        self,
        collection: str,
        field: Optional[str] = None,
        value: Any = None,
        op: str = "==",
    ) -> List[DocumentHandle]:
        raise NotImplementedError

    def commit_batch(
        self, operations: List[BatchOperation], max_batch_size: int = BATCH_CAPACITY
    ) -> None:
        raise NotImplementedError

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def listen(
        self,
        collection: str,
        field: str,
        value: Any,
        callback: Callable[[List[DocumentHandle]], None],
    ) -> Callable[[], None]:
        raise NotImplementedError


class BlobStore:
    def delete(self, reference: str) -> None:
        raise NotImplementedError


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client=None):
        if client is None:
            from firebase_admin import firestore

            client = firestore.client()
        self._db = client

    def _query_ref(self, collection, field, value, op):
        if op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        ref = self._db.collection(collection)
        if field is not None:
            ref = ref.where(field, op, value)
        return ref

    @staticmethod
    def _to_handle(snapshot) -> DocumentHandle:
        return DocumentHandle(path=snapshot.reference.path, data=snapshot.to_dict() or {})

    def query(self, collection, field=None, value=None, op="=="):
        ref = self._query_ref(collection, field, value, op)
        return [self._to_handle(doc) for doc in ref.stream()]

    def commit_batch(self, operations, max_batch_size=BATCH_CAPACITY):
        check_batch_size(operations, max_batch_size)
        if not operations:
            return
        batch = self._db.batch()
        for operation in operations:
            doc_ref = self._db.document(operation.path)
            if operation.kind == DELETE:
                batch.delete(doc_ref)
            elif operation.kind == UPDATE:
                batch.update(doc_ref, operation.fields)
            else:
                raise ValueError(f"Unknown batch operation: {operation.kind}")
        batch.commit()

    def get(self, path):
        snapshot = self._db.document(path).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def set(self, path, fields, merge=False):
        self._db.document(path).set(fields, merge=merge)

    def update(self, path, fields):
        self._db.document(path).update(fields)

    def delete(self, path):
        # Firestore treats deleting a missing document as success.
        self._db.document(path).delete()

    def listen(self, collection, field, value, callback):
        ref = self._query_ref(collection, field, value, "==")

        def on_snapshot(docs, changes, read_time):
            try:
                callback([self._to_handle(doc) for doc in docs])
            except Exception as e:
                logging.error(f"Snapshot listener for {collection} failed: {e}")

        watch = ref.on_snapshot(on_snapshot)
        return watch.unsubscribe


def parse_blob_reference(reference: str, default_bucket: Optional[str] = None):
    """Split a Storage reference URL into (bucket, object_path).

    Accepts gs:// URLs, Firebase download URLs and storage.googleapis.com URLs.
    A bare object path is resolved against `default_bucket`.
    """
    if not reference or not reference.strip():
        raise ValueError("Empty blob reference")

    parsed = urlparse(reference.strip())

    if parsed.scheme == "gs":
        bucket = parsed.netloc
        path = parsed.path.lstrip("/")
    elif parsed.scheme in ("http", "https") and parsed.netloc == "firebasestorage.googleapis.com":
        # /v0/b/<bucket>/o/<url-encoded object path>
        parts = parsed.path.split("/")
        if len(parts) < 6 or parts[1] != "v0" or parts[2] != "b" or parts[4] != "o":
            raise ValueError(f"Unrecognized Firebase Storage URL: {reference}")
        bucket = parts[3]
        path = unquote("/".join(parts[5:]))
    elif parsed.scheme in ("http", "https") and parsed.netloc == "storage.googleapis.com":
        bucket, _, path = parsed.path.lstrip("/").partition("/")
        path = unquote(path)
    elif not parsed.scheme:
        bucket = default_bucket
        path = reference.strip().lstrip("/")
    else:
        raise ValueError(f"Unrecognized blob reference: {reference}")

    if not bucket or not path:
        raise ValueError(f"Blob reference is missing a bucket or object path: {reference}")
    return bucket, path


class FirebaseStorageBlobStore(BlobStore):
    def __init__(self, default_bucket: Optional[str] = None, bucket_factory=None):
        self._default_bucket = default_bucket or get_default_storage_bucket_name()
        if bucket_factory is None:
            from firebase_admin import storage

            bucket_factory = storage.bucket
        self._bucket_factory = bucket_factory

    def delete(self, reference):
        from google.api_core.exceptions import NotFound

        bucket_name, path = parse_blob_reference(reference, self._default_bucket)
        blob = self._bucket_factory(bucket_name).blob(path)
        try:
            blob.delete()
        except NotFound as e:
            raise BlobNotFoundError(f"gs://{bucket_name}/{path} does not exist") from e
