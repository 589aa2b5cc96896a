"""
TMF688 hub (listener registration) and event models.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, Optional

from pydantic import Field, field_validator

from prodigy_hub.models.common import TmfResource


class Hub(TmfResource):
    """A subscriber registration: events are POSTed to its callback."""

    type_: Annotated[str, Field(alias='@type')] = 'Hub'
    base_type: Annotated[str, Field(alias='@baseType')] = 'Hub'

    callback: Annotated[str, Field(
        min_length=1,
        description='URL that receives event notifications',
        examples=['https://listener.example.com/events'],
    )]

    query: Annotated[Optional[str], Field(
        description='Subscription filter, e.g. eventType=CancelProductOrderStateChangeEvent',
    )] = None

    creation_date: Optional[datetime] = None

    @field_validator('callback')
    @classmethod
    def validate_callback(cls, v: str) -> str:
        """Callbacks must be absolute http(s) URLs."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('callback must be an http(s) URL')
        return v

    def accepts(self, event_type: str) -> bool:
        """Whether an event of the given type matches the hub's query."""
        if not self.query:
            return True
        for clause in self.query.split('&'):
            name, _, value = clause.partition('=')
            if name.strip() == 'eventType' and value:
                return event_type in {part.strip() for part in value.split(',')}
        return True


class Event(TmfResource):
    """A domain event as stored and delivered to hubs."""

    type_: Annotated[str, Field(alias='@type')] = 'Event'
    event_id: str
    event_time: datetime
    event_type: str
    event: Dict[str, Any]
