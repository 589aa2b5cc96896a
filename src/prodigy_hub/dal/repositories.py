"""
Typed repositories over the document store.

Each repository maps one TMF resource collection onto pydantic models and
carries the document revision on ``model.revision`` so that updates are
checked against concurrent writers.
"""

from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar

from prodigy_hub.dal import REVISION_KEY, BaseDocumentStore, WriteRequest
from prodigy_hub.handlers.utils.observability import logger, tracer
from prodigy_hub.logic.shaping import matches_filters, paginate, sort_newest_first
from prodigy_hub.models.cancel_product_order import CancelProductOrder, CancellationState
from prodigy_hub.models.common import TmfEntity, TmfResource
from prodigy_hub.models.hub import Event, Hub
from prodigy_hub.models.product_configuration import CheckProductConfiguration, QueryProductConfiguration
from prodigy_hub.models.product_order import ProductOrder

T = TypeVar('T', bound=TmfResource)


class DocumentRepository(Generic[T]):
    """Repository for one collection of TMF resources."""

    collection: str
    model: Type[T]
    sort_attribute = 'creationDate'

    def __init__(self, store: BaseDocumentStore) -> None:
        self.store = store

    def from_document(self, document: Dict[str, Any]) -> T:
        """Build the model of a stored document, keeping its revision."""
        data = dict(document)
        revision = data.pop(REVISION_KEY, 0)
        resource = self.model.model_validate(data)
        resource.revision = revision
        return resource

    def write_request(self, resource: T, create: bool = False) -> WriteRequest:
        """Build the conditional write for ``resource``.

        Args:
            resource: Resource to persist
            create: Whether the resource must not exist yet

        Returns:
            Write request expecting the resource's current revision
        """
        return WriteRequest(
            collection=self.collection,
            document=resource.to_document(),
            expected_revision=None if create else resource.revision,
        )

    @tracer.capture_method
    def find_by_id(self, resource_id: str) -> Optional[T]:
        document = self.store.get_document(self.collection, resource_id)
        return self.from_document(document) if document is not None else None

    def exists(self, resource_id: str) -> bool:
        return self.store.get_document(self.collection, resource_id) is not None

    @tracer.capture_method
    def create(self, resource: T) -> T:
        stored = self.store.transact_write([self.write_request(resource, create=True)])[0]
        logger.info(f"{self.model.__name__} created", extra={"id": resource.id})
        return self.from_document(stored)

    @tracer.capture_method
    def update(self, resource: T) -> T:
        stored = self.store.transact_write([self.write_request(resource)])[0]
        return self.from_document(stored)

    @tracer.capture_method
    def delete(self, resource_id: str) -> bool:
        deleted = self.store.delete_document(self.collection, resource_id)
        if deleted:
            logger.info(f"{self.model.__name__} deleted", extra={"id": resource_id})
        return deleted

    def find_all(self) -> List[T]:
        return [self.from_document(document) for document in self.store.list_documents(self.collection)]

    @tracer.capture_method
    def find_many(
        self,
        filters: Optional[Mapping[str, str]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[T], int]:
        """
        Find resources matching attribute filters, newest first.

        Args:
            filters: Dotted attribute filters (see ``matches_filters``)
            offset: Number of matches to skip
            limit: Maximum number of resources to return

        Returns:
            The page of resources and the total number of matches
        """
        documents = [
            document for document in self.store.list_documents(self.collection)
            if matches_filters(document, filters or {})
        ]
        documents = sort_newest_first(documents, self.sort_attribute)
        total = len(documents)
        page = paginate(documents, offset, limit if limit is not None else total)
        return [self.from_document(document) for document in page], total


class ProductOrderRepository(DocumentRepository[ProductOrder]):
    """Order Store."""

    collection = 'ProductOrder'
    model = ProductOrder

    @tracer.capture_method
    def update_fields(
        self,
        order_id: str,
        patch: Mapping[str, Any],
        expected_revision: Optional[int] = None,
    ) -> Optional[ProductOrder]:
        """Merge ``patch`` (TMF attribute names) into a stored order.

        With ``expected_revision`` the write fails if the order changed since that revision.
        """
        order = self.find_by_id(order_id)
        if order is None:
            return None
        document = {**order.to_document(), **patch, 'id': order.id}
        updated = ProductOrder.model_validate(document)
        updated.revision = order.revision if expected_revision is None else expected_revision
        return self.update(updated)


class CancelProductOrderRepository(DocumentRepository[CancelProductOrder]):
    """CancellationRequest Store."""

    collection = 'CancelProductOrder'
    model = CancelProductOrder

    @tracer.capture_method
    def find_one(self, order_id: str, states: Iterable[CancellationState]) -> Optional[CancelProductOrder]:
        """First cancellation request for ``order_id`` in one of ``states``."""
        wanted = {state.value for state in states}
        for document in self.store.list_documents(self.collection):
            if document.get('productOrder', {}).get('id') == order_id and document.get('state') in wanted:
                return self.from_document(document)
        return None

    def find_by_states(self, states: Iterable[CancellationState]) -> List[CancelProductOrder]:
        wanted = {state.value for state in states}
        return [
            self.from_document(document) for document in self.store.list_documents(self.collection)
            if document.get('state') in wanted
        ]


class CheckProductConfigurationRepository(DocumentRepository[CheckProductConfiguration]):
    """Configuration Request Store for check requests."""

    collection = 'CheckProductConfiguration'
    model = CheckProductConfiguration


class QueryProductConfigurationRepository(DocumentRepository[QueryProductConfiguration]):
    """Configuration Request Store for query requests."""

    collection = 'QueryProductConfiguration'
    model = QueryProductConfiguration


class HubRepository(DocumentRepository[Hub]):
    collection = 'Hub'
    model = Hub


class EventRepository(DocumentRepository[Event]):
    collection = 'Event'
    model = Event
    sort_attribute = 'eventTime'


class EntityRepository(DocumentRepository[TmfEntity]):
    """Store of one free-form TMF resource collection (catalog, inventory, qualification, topic)."""

    model = TmfEntity

    def __init__(self, store: BaseDocumentStore, collection: str, sort_attribute: str = 'creationDate') -> None:
        super().__init__(store)
        self.collection = collection
        self.sort_attribute = sort_attribute
