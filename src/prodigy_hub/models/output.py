"""
Output models for API responses using Pydantic.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorOutput(BaseModel):
    """TMF Error resource returned for every failed request."""

    model_config = ConfigDict(populate_by_name=True)

    code: Annotated[str, Field(
        description='Application error code',
        examples=['CANCELLATION_NOT_ALLOWED', 'RESOURCE_NOT_FOUND'],
    )]

    reason: Annotated[str, Field(
        description='Human readable explanation suitable for clients',
    )]

    message: Annotated[str, Field(
        description='Detailed error message',
        examples=["ProductOrder in state 'completed' cannot be cancelled"],
    )]

    status: Annotated[str, Field(
        description='HTTP status code, as a string',
        examples=['400', '409'],
    )]

    error_id: Annotated[str, Field(
        alias='errorId',
        description='Unique identifier of this error occurrence, for log correlation',
    )]

    retry_after: Annotated[Optional[int], Field(alias='retryAfter')] = None
    details: Optional[Dict[str, Any]] = None
    field_errors: Annotated[Optional[List[Dict[str, Any]]], Field(alias='fieldErrors')] = None
    type_: Annotated[str, Field(alias='@type')] = 'Error'


class HealthCheckOutput(BaseModel):
    """Response model for the health check endpoint."""

    status: Annotated[str, Field(
        description='Health status of the service',
        examples=['healthy', 'unhealthy'],
    )]

    timestamp: Annotated[datetime, Field(
        description='Timestamp of the health check',
    )]

    version: Annotated[str, Field(
        description='Application version',
        examples=['1.0.0'],
    )]

    environment: Annotated[str, Field(
        description='Deployment environment',
        examples=['dev', 'staging', 'prod'],
    )]

    checks: Optional[Dict[str, Any]] = None
