"""Shared fixtures for shell tests.

FakeDocumentStore is an in-memory stand-in for FirestoreClient with the
same method contract: (field, op, value) filters on dotted paths,
orderings, limits, atomic batches and partial updates.
"""

import copy
import operator
from datetime import datetime, timezone

import pytest

from alertflow.core.errors import BatchTooLargeError, DocumentNotFoundError, StorageError
from alertflow.shell.firestore_client import MAX_BATCH_WRITES


_MISSING = object()

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _lookup(data, path):
    value = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _assign(data, path, value):
    parts = path.split(".")
    target = data
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value


class FakeDocumentStore:
    """In-memory document store.

    Set `failing` to a set of method names to make those calls raise
    StorageError before touching any data.
    """

    def __init__(self):
        self.collections = {}
        self.failing = set()
        self.calls = []

    def _check(self, method):
        self.calls.append(method)
        if method in self.failing:
            raise StorageError(f"{method} failed")

    def _collection(self, name):
        return self.collections.setdefault(name, {})

    def add_many(self, collection, docs):
        self._check("add_many")
        if len(docs) > MAX_BATCH_WRITES:
            raise BatchTooLargeError("batch too large")
        coll = self._collection(collection)
        for doc_id, data in docs.items():
            coll[doc_id] = copy.deepcopy(data)
        return list(docs)

    def query(self, collection, filters=(), order_by=(), limit=None):
        self._check("query")
        rows = []
        for doc_id, data in self._collection(collection).items():
            matched = True
            for path, op, expected in filters:
                value = _lookup(data, path)
                if value is _MISSING:
                    matched = False
                    break
                try:
                    if not _OPERATORS[op](value, expected):
                        matched = False
                        break
                except TypeError:
                    matched = False
                    break
            if matched:
                rows.append((doc_id, copy.deepcopy(data)))

        for path, direction in reversed(list(order_by)):
            rows.sort(key=lambda row: _lookup(row[1], path), reverse=direction == "desc")

        if limit is not None:
            rows = rows[:limit]
        return rows

    def get(self, collection, doc_id):
        self._check("get")
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def set(self, collection, doc_id, data, merge=False):
        self._check("set")
        coll = self._collection(collection)
        if merge and doc_id in coll:
            coll[doc_id].update(copy.deepcopy(data))
        else:
            coll[doc_id] = copy.deepcopy(data)

    def update(self, collection, doc_id, fields):
        self._check("update")
        coll = self._collection(collection)
        if doc_id not in coll:
            raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist")
        for path, value in fields.items():
            _assign(coll[doc_id], path, copy.deepcopy(value))

    def update_many(self, collection, updates):
        self._check("update_many")
        coll = self._collection(collection)
        missing = [doc_id for doc_id in updates if doc_id not in coll]
        if missing:
            raise StorageError(f"documents do not exist: {missing}")
        for doc_id, fields in updates.items():
            for path, value in fields.items():
                _assign(coll[doc_id], path, copy.deepcopy(value))
        return len(updates)


class Clock:
    """Settable clock for stores and the orchestrator."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def document_store():
    """Empty in-memory document store."""
    return FakeDocumentStore()


@pytest.fixture
def clock():
    """Clock fixed at 2025-06-04 14:30 UTC."""
    return Clock(datetime(2025, 6, 4, 14, 30, 0, tzinfo=timezone.utc))
