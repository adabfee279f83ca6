"""Firestore Client - Imperative Shell.

This module is the document-store adapter used by the alert store and the
subscriber directory. It offers batched atomic writes, filtered range
queries and partial updates. Uses Google Cloud Firestore.

All I/O is contained here; every Firestore failure is converted into
StorageError so callers never see library exceptions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from alertflow.core.errors import BatchTooLargeError, DocumentNotFoundError, StorageError


logger = logging.getLogger(__name__)


# Firestore rejects commits with more writes than this
MAX_BATCH_WRITES = 500

_DIRECTIONS = {
    "asc": firestore.Query.ASCENDING,
    "desc": firestore.Query.DESCENDING,
}


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """
    project_id: str | None = None
    database: str | None = None


class FirestoreClient:
    """Document store backed by Firestore.

    This is part of the imperative shell - it handles database I/O.

    Filters are (field, op, value) tuples using Firestore operators
    ("==", "!=", "<", "<=", ">", ">="); field paths may be dotted.
    Orderings are (field, "asc" | "desc") tuples.
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore client.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs = {}
            if self.config.project_id:
                kwargs['project'] = self.config.project_id
            if self.config.database:
                kwargs['database'] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def add_many(
        self,
        collection: str,
        docs: dict[str, dict[str, Any]],
    ) -> list[str]:
        """Write several documents in one atomic batch.

        Either every document is committed or none is.

        Args:
            collection: Collection name
            docs: Mapping of document ID to document fields

        Returns:
            IDs of the written documents, in input order

        Raises:
            BatchTooLargeError: If the batch exceeds MAX_BATCH_WRITES (nothing written)
            StorageError: If the commit fails (nothing written)
        """
        if not docs:
            return []

        if len(docs) > MAX_BATCH_WRITES:
            raise BatchTooLargeError(
                f"Batch of {len(docs)} documents exceeds the {MAX_BATCH_WRITES}-write limit"
            )

        logger.info("Writing %d documents to %s", len(docs), collection)

        try:
            batch = self.client.batch()
            coll = self.client.collection(collection)
            for doc_id, data in docs.items():
                batch.set(coll.document(doc_id), data)
            batch.commit()
        except google_exceptions.GoogleAPIError as e:
            logger.error("Failed to write batch to %s: %s", collection, str(e))
            raise StorageError(f"Failed to write {len(docs)} documents to {collection}") from e

        return list(docs)

    def query(
        self,
        collection: str,
        filters: Iterable[tuple[str, str, Any]] = (),
        order_by: Iterable[tuple[str, str]] = (),
        limit: int | None = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        """Run a filtered, ordered query.

        Args:
            collection: Collection name
            filters: (field, op, value) conditions, all of which must hold
            order_by: (field, direction) orderings, applied in sequence
            limit: Maximum number of documents to return

        Returns:
            List of (document ID, fields) tuples

        Raises:
            StorageError: If the query fails
        """
        try:
            query = self.client.collection(collection)
            for field_path, op, value in filters:
                query = query.where(filter=FieldFilter(field_path, op, value))
            for field_path, direction in order_by:
                query = query.order_by(field_path, direction=_DIRECTIONS[direction])
            if limit is not None:
                query = query.limit(limit)

            return [(doc.id, doc.to_dict() or {}) for doc in query.stream()]

        except google_exceptions.GoogleAPIError as e:
            logger.error("Query on %s failed: %s", collection, str(e))
            raise StorageError(f"Query on {collection} failed") from e

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Fetch one document, or None if it does not exist.

        Raises:
            StorageError: If the read fails
        """
        try:
            doc = self.client.collection(collection).document(doc_id).get()
        except google_exceptions.GoogleAPIError as e:
            logger.error("Failed to read %s/%s: %s", collection, doc_id, str(e))
            raise StorageError(f"Failed to read {collection}/{doc_id}") from e

        if not doc.exists:
            return None
        return doc.to_dict() or {}

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or overwrite one document.

        Raises:
            StorageError: If the write fails
        """
        try:
            self.client.collection(collection).document(doc_id).set(data, merge=merge)
        except google_exceptions.GoogleAPIError as e:
            logger.error("Failed to write %s/%s: %s", collection, doc_id, str(e))
            raise StorageError(f"Failed to write {collection}/{doc_id}") from e

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Update fields of an existing document.

        Dotted keys update nested fields.

        Raises:
            DocumentNotFoundError: If the document does not exist
            StorageError: If the update fails
        """
        try:
            self.client.collection(collection).document(doc_id).update(fields)
        except google_exceptions.NotFound as e:
            raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist") from e
        except google_exceptions.GoogleAPIError as e:
            logger.error("Failed to update %s/%s: %s", collection, doc_id, str(e))
            raise StorageError(f"Failed to update {collection}/{doc_id}") from e

    def update_many(
        self,
        collection: str,
        updates: dict[str, dict[str, Any]],
    ) -> int:
        """Apply partial updates to several documents in atomic batches.

        Updates are committed in batches of at most MAX_BATCH_WRITES; each
        batch is all-or-nothing. Callers must only submit updates that
        are safe to repeat, since an earlier batch stays committed if a
        later one fails.

        Args:
            collection: Collection name
            updates: Mapping of document ID to fields to update

        Returns:
            Number of documents updated

        Raises:
            StorageError: If a commit fails
        """
        if not updates:
            return 0

        items = list(updates.items())
        coll = self.client.collection(collection)
        committed = 0

        for start in range(0, len(items), MAX_BATCH_WRITES):
            chunk = items[start:start + MAX_BATCH_WRITES]
            try:
                batch = self.client.batch()
                for doc_id, fields in chunk:
                    batch.update(coll.document(doc_id), fields)
                batch.commit()
            except google_exceptions.GoogleAPIError as e:
                logger.error(
                    "Failed to update batch in %s after %d documents: %s",
                    collection,
                    committed,
                    str(e),
                )
                raise StorageError(f"Failed to update documents in {collection}") from e
            committed += len(chunk)

        logger.info("Updated %d documents in %s", committed, collection)
        return committed
