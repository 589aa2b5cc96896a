"""
In-memory implementation of the document store.

Useful for tests and local runs when no table is configured. Data is not
persisted across process restarts; each instance owns its own data.
"""

import copy
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from prodigy_hub.dal import REVISION_KEY, BaseDocumentStore, ConditionalCheckFailedError, WriteRequest
from prodigy_hub.handlers.utils.observability import logger


class InMemoryDocumentStore(BaseDocumentStore):
    """Store documents in local memory, with the same revision checks as DynamoDB."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._collections.get(collection, {}).get(document_id)
            return copy.deepcopy(document) if document is not None else None

    def list_documents(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(document) for document in self._collections.get(collection, {}).values()]

    def transact_write(self, writes: List[WriteRequest]) -> List[Dict[str, Any]]:
        with self._lock:
            # check every condition before applying anything
            for write in writes:
                current = self._collections.get(write.collection, {}).get(write.document_id)
                if write.expected_revision is None and current is not None:
                    raise ConditionalCheckFailedError(
                        collection=write.collection,
                        condition=f"document '{write.document_id}' already exists",
                    )
                if write.expected_revision is not None:
                    current_revision = current.get(REVISION_KEY) if current is not None else None
                    if current_revision != write.expected_revision:
                        raise ConditionalCheckFailedError(
                            collection=write.collection,
                            condition=(
                                f"document '{write.document_id}' at revision {current_revision}, "
                                f"expected {write.expected_revision}"
                            ),
                        )

            stored = []
            for write in writes:
                document = copy.deepcopy(write.document)
                document[REVISION_KEY] = (write.expected_revision or 0) + 1
                self._collections.setdefault(write.collection, {})[write.document_id] = document
                stored.append(copy.deepcopy(document))

        logger.debug("In-memory transaction applied", extra={
            "writes": [(write.collection, write.document_id) for write in writes],
        })
        return stored

    def delete_document(self, collection: str, document_id: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(document_id, None) is not None

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            document_count = sum(len(documents) for documents in self._collections.values())
        return {
            "status": "healthy",
            "backend": "memory",
            "document_count": document_count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
