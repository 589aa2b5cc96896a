"""
Data Access Layer (DAL) for ProdigyHub.

Documents are JSON compatible dictionaries grouped in collections (one per
resource type) and keyed by ``id``. Every stored document carries a revision
number under ``REVISION_KEY``; writes state the revision they expect so that
concurrent writers against the same document cannot both succeed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from prodigy_hub.handlers.utils.errors import (
    BaseServiceError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
)

REVISION_KEY = '_revision'


class DALError(BaseServiceError):
    """Base exception for Data Access Layer errors."""

    def __init__(
        self,
        message: str,
        operation: str,
        collection: str,
        error_code: str = "DAL_ERROR",
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        context: Optional[ErrorContext] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=severity,
            category=ErrorCategory.INFRASTRUCTURE,
            context=context,
            retry_after=retry_after,
            user_message="A database error occurred. Please try again later.",
        )
        self.operation = operation
        self.collection = collection


class ConditionalCheckFailedError(DALError):
    """Raised when a write's expected revision does not match the stored one."""

    def __init__(
        self,
        collection: str,
        condition: str,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message=f"Conditional check failed: {condition}",
            operation="conditional_write",
            collection=collection,
            error_code="CONDITIONAL_CHECK_FAILED",
            severity=ErrorSeverity.MEDIUM,
            context=context,
        )
        self.condition = condition


@dataclass(frozen=True)
class WriteRequest:
    """One document write of a transaction.

    ``expected_revision`` of ``None`` means the document must not exist yet.
    """

    collection: str
    document: Dict[str, Any]
    expected_revision: Optional[int] = None

    @property
    def document_id(self) -> str:
        return self.document['id']


class BaseDocumentStore(ABC):
    """Abstract base class for document store implementations."""

    @abstractmethod
    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Get a document by id, or None."""
        pass

    @abstractmethod
    def list_documents(self, collection: str) -> List[Dict[str, Any]]:
        """All documents of a collection."""
        pass

    @abstractmethod
    def transact_write(self, writes: List[WriteRequest]) -> List[Dict[str, Any]]:
        """Apply all writes or none of them.

        Returns:
            The stored documents, each with its new revision

        Raises:
            ConditionalCheckFailedError: If any expected revision does not match
        """
        pass

    @abstractmethod
    def delete_document(self, collection: str, document_id: str) -> bool:
        """Delete a document, returning whether it existed."""
        pass

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """Report the store's health."""
        pass

    def put_document(
        self,
        collection: str,
        document: Dict[str, Any],
        expected_revision: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Write a single document (see ``transact_write``)."""
        return self.transact_write([WriteRequest(collection, document, expected_revision)])[0]


def get_document_store(backend: str, table_name: Optional[str] = None, **kwargs: Any) -> BaseDocumentStore:
    """Factory function to build a document store.

    Args:
        backend: ``dynamodb`` or ``memory``
        table_name: DynamoDB table name, required for the ``dynamodb`` backend
        kwargs: Extra arguments for the DynamoDB handler (region_name, endpoint_url)

    Returns:
        Configured document store
    """
    if backend == 'memory':
        from prodigy_hub.dal.inmemory_handler import InMemoryDocumentStore
        return InMemoryDocumentStore()

    if backend == 'dynamodb':
        if not table_name:
            raise ValueError('table_name is required for the dynamodb backend')
        from prodigy_hub.dal.dynamodb_handler import DynamoDBDocumentStore
        return DynamoDBDocumentStore(table_name=table_name, **kwargs)

    raise ValueError(f"Unknown document store backend '{backend}'")
