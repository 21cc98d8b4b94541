import copy
import threading

import pytest

from stores import (
    BlobNotFoundError,
    BlobStore,
    DELETE,
    DocumentHandle,
    DocumentStore,
    StoreError,
    check_batch_size,
)

# Firestore's hard limit, above the workflow's own capacity.
FAKE_STORE_LIMIT = 500


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed DocumentStore with failure injection by collection path."""

    def __init__(self):
        self.docs = {}
        self.fail_queries = set()
        self.fail_commits = set()
        self.fail_deletes = set()
        self.commits = []
        self._lock = threading.Lock()

    def add(self, path, data):
        self.docs[path] = copy.deepcopy(data)

    def paths_in(self, collection):
        return sorted(p for p in self.docs if p.rsplit("/", 1)[0] == collection)

    def query(self, collection, field=None, value=None, op="=="):
        if collection in self.fail_queries:
            raise StoreError(f"query on {collection} failed")
        with self._lock:
            matches = []
            for path in self.paths_in(collection):
                data = self.docs[path]
                if field is None:
                    matches.append(path)
                elif op == "==" and data.get(field) == value:
                    matches.append(path)
                elif op == "array_contains" and value in (data.get(field) or []):
                    matches.append(path)
            return [DocumentHandle(path, copy.deepcopy(self.docs[path])) for path in matches]

    def commit_batch(self, operations, max_batch_size=FAKE_STORE_LIMIT):
        check_batch_size(operations, min(max_batch_size, FAKE_STORE_LIMIT))
        with self._lock:
            for op in operations:
                if op.path.rsplit("/", 1)[0] in self.fail_commits:
                    raise StoreError(f"commit touching {op.path} failed")
                if op.kind != DELETE and op.path not in self.docs:
                    raise StoreError(f"no document to update: {op.path}")
            for op in operations:
                if op.kind == DELETE:
                    self.docs.pop(op.path, None)
                else:
                    self.docs[op.path].update(copy.deepcopy(op.fields))
            self.commits.append(list(operations))

    def get(self, path):
        data = self.docs.get(path)
        return copy.deepcopy(data) if data is not None else None

    def set(self, path, fields, merge=False):
        if merge and path in self.docs:
            self.docs[path].update(copy.deepcopy(fields))
        else:
            self.docs[path] = copy.deepcopy(fields)

    def update(self, path, fields):
        if path not in self.docs:
            raise StoreError(f"no document to update: {path}")
        self.docs[path].update(copy.deepcopy(fields))

    def delete(self, path):
        if path in self.fail_deletes:
            raise StoreError(f"delete of {path} failed")
        self.docs.pop(path, None)

    def listen(self, collection, field, value, callback):
        callback(self.query(collection, field, value))
        return lambda: None


class InMemoryBlobStore(BlobStore):
    def __init__(self, refs=()):
        self.refs = set(refs)
        self.deleted = []

    def delete(self, reference):
        if reference not in self.refs:
            raise BlobNotFoundError(f"{reference} does not exist")
        self.refs.remove(reference)
        self.deleted.append(reference)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()
