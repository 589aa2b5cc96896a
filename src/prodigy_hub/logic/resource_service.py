"""
Business Logic Layer for the TMF resources served as free-form documents.

The TMF620 catalog, TMF637 inventory, TMF679 qualification and TMF688 topic
resources share one lifecycle: a created record is completed from the
resource kind's shape and stamped, patches are merged (``null`` removes an
attribute), and every change is announced with a TMF notification.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from aws_lambda_powertools.metrics import MetricUnit

from prodigy_hub.dal import ConditionalCheckFailedError
from prodigy_hub.dal.repositories import EntityRepository
from prodigy_hub.events.event_publisher import EventSink
from prodigy_hub.events.event_schemas import entity_payload
from prodigy_hub.handlers.utils.errors import (
    ConcurrentModificationError,
    DuplicateIdError,
    ErrorContext,
    ResourceNotFoundError,
    ValidationError,
)
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer
from prodigy_hub.logic.shaping import Page, fill_defaults, select_fields, to_page
from prodigy_hub.models.common import TmfEntity, utc_now

# Attributes a merge patch never changes
IMMUTABLE_ATTRIBUTES = ('id', 'href', '@type')


@dataclass(frozen=True)
class ResourceKind:
    """How one TMF resource collection is shaped, stamped and exposed."""

    # path segment, e.g. productOffering
    name: str
    collection: str
    base_path: str
    shape: Mapping[str, Any]
    id_prefix: str = ''
    # server-set on create
    created_attributes: Tuple[str, ...] = ('creationDate',)
    # re-stamped on every patch
    updated_attribute: Optional[str] = None
    state_attribute: Optional[str] = None
    immutable_attributes: Tuple[str, ...] = ()
    required_attributes: Tuple[str, ...] = ()
    string_attributes: Tuple[str, ...] = ()
    # applied to the merged record after a patch
    patch_defaults: Mapping[str, Any] = field(default_factory=dict)
    notify: bool = True

    @property
    def type_name(self) -> str:
        return self.collection

    @property
    def path(self) -> str:
        return f"{self.base_path}/{self.name}"

    @property
    def sort_attribute(self) -> str:
        if self.created_attributes:
            return self.created_attributes[0]
        return self.updated_attribute or 'id'

    def new_id(self) -> str:
        return f"{self.id_prefix}{uuid.uuid4()}"


def _without_nulls(document: Mapping[str, Any]) -> Dict[str, Any]:
    return {name: value for name, value in document.items() if value is not None}


class ResourceService:
    """Create, read, patch and delete the resources of one kind."""

    def __init__(
        self,
        kind: ResourceKind,
        repository: EntityRepository,
        events: EventSink,
        on_create: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            kind: Shape and stamping rules of the resource
            repository: Store of the resource collection
            events: Event sink receiving the notifications
            on_create: Processing applied to a completed record before it is stored
            clock: Current time provider
        """
        self.kind = kind
        self.repository = repository
        self.events = events
        self.on_create = on_create
        self.clock = clock

    def _check_attributes(
        self,
        payload: Mapping[str, Any],
        context: Optional[ErrorContext],
        creating: bool,
    ) -> None:
        field_errors = []
        if creating:
            field_errors.extend(
                {"field": name, "message": f"Missing required field: {name}"}
                for name in self.kind.required_attributes
                if payload.get(name) in (None, '')
            )
        field_errors.extend(
            {"field": name, "message": f"{name} must be string"}
            for name in self.kind.string_attributes
            if payload.get(name) is not None and not isinstance(payload[name], str)
        )
        if field_errors:
            raise ValidationError(
                message=f"Invalid {self.kind.type_name}: {field_errors[0]['message']}",
                field_errors=field_errors,
                context=context,
            )

    def _publish(self, change: str, resource: TmfEntity) -> None:
        if self.kind.notify:
            self.events.publish(f"{self.kind.type_name}{change}Event", entity_payload(resource))

    @tracer.capture_method
    def create(self, payload: Mapping[str, Any], context: Optional[ErrorContext] = None) -> TmfEntity:
        """
        Create a resource, completing it with the kind's defaults.

        Args:
            payload: Attributes sent by the client
            context: Error context attached to rejections

        Returns:
            The stored resource

        Raises:
            ValidationError: If a required attribute is missing or mistyped
            DuplicateIdError: If the client supplied id is already used
        """
        self._check_attributes(payload, context, creating=True)
        kind = self.kind

        resource_id = payload.get('id') or kind.new_id()
        if payload.get('id') and self.repository.exists(resource_id):
            raise DuplicateIdError(kind.type_name, resource_id, context)

        now = self.clock().isoformat()
        document = _without_nulls(payload)
        for attribute in kind.created_attributes:
            document[attribute] = now
        if kind.updated_attribute:
            document[kind.updated_attribute] = now
        document = fill_defaults(document, kind.shape)
        document.update({'id': resource_id, 'href': f"{kind.path}/{resource_id}"})
        if not document.get('@type'):
            document['@type'] = kind.type_name

        if self.on_create is not None:
            document = self.on_create(document)

        try:
            resource = self.repository.create(TmfEntity.model_validate(document))
        except ConditionalCheckFailedError as e:
            raise DuplicateIdError(kind.type_name, resource_id, context) from e

        metrics.add_metric(name=f"{kind.type_name}Created", unit=MetricUnit.Count, value=1)
        self._publish("Create", resource)
        return resource

    def get(self, resource_id: str, fields: Optional[str] = None, context: Optional[ErrorContext] = None) -> Dict[str, Any]:
        resource = self.repository.find_by_id(resource_id)
        if resource is None:
            raise ResourceNotFoundError(self.kind.type_name, resource_id, context)
        return select_fields(resource.to_tmf_format(), fields)

    def list(
        self,
        filters: Optional[Mapping[str, str]] = None,
        fields: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Page:
        resources, total = self.repository.find_many(filters, offset, limit)
        return to_page(resources, total, fields)

    @tracer.capture_method
    def patch(
        self,
        resource_id: str,
        payload: Mapping[str, Any],
        context: Optional[ErrorContext] = None,
    ) -> TmfEntity:
        """
        Merge a patch into a resource; a ``null`` attribute is removed.

        Raises:
            ResourceNotFoundError: If the resource does not exist
            ValidationError: If an attribute is mistyped
            ConcurrentModificationError: If the resource changed meanwhile
        """
        kind = self.kind
        existing = self.repository.find_by_id(resource_id)
        if existing is None:
            raise ResourceNotFoundError(kind.type_name, resource_id, context)
        self._check_attributes(payload, context, creating=False)

        frozen = set(IMMUTABLE_ATTRIBUTES) | set(kind.immutable_attributes)
        changes = {name: value for name, value in payload.items() if name not in frozen}

        document = _without_nulls({**existing.to_document(), **changes})
        if kind.updated_attribute:
            document[kind.updated_attribute] = self.clock().isoformat()
        document = fill_defaults(document, kind.patch_defaults)

        updated = TmfEntity.model_validate(document)
        updated.revision = existing.revision
        try:
            updated = self.repository.update(updated)
        except ConditionalCheckFailedError as e:
            raise ConcurrentModificationError(kind.type_name, resource_id, context) from e

        logger.info(f"{kind.type_name} updated", extra={"id": resource_id, "attributes": sorted(changes)})
        self._publish("AttributeValueChange", updated)
        state = kind.state_attribute
        if state and existing.to_document().get(state) != updated.to_document().get(state):
            self._publish("StateChange", updated)
        return updated

    @tracer.capture_method
    def delete(self, resource_id: str, context: Optional[ErrorContext] = None) -> None:
        resource = self.repository.find_by_id(resource_id)
        if resource is None or not self.repository.delete(resource_id):
            raise ResourceNotFoundError(self.kind.type_name, resource_id, context)
        self._publish("Delete", resource)
