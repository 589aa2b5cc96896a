"""
Environment variable models for type-safe configuration.
"""

from typing import Annotated, Literal, Optional

from aws_lambda_env_modeler import BaseModel, get_environment_variables
from pydantic import Field


class HandlerEnvVars(BaseModel):
    """Environment variables for ProdigyHub Lambda handlers."""

    # Document store
    STORE_BACKEND: Annotated[Literal['dynamodb', 'memory'], Field(
        description='Document store backend',
    )] = 'dynamodb'

    TABLE_NAME: Annotated[Optional[str], Field(
        description='DynamoDB table holding every TMF resource collection',
    )] = None

    AWS_REGION: Annotated[Optional[str], Field(
        description='AWS region for service deployment',
    )] = None

    DYNAMODB_ENDPOINT_URL: Annotated[Optional[str], Field(
        description='DynamoDB endpoint override, for local testing',
    )] = None

    # Base of the hrefs of generated placeholder references
    BASE_URL: Annotated[str, Field(
        description='Public base URL of the service',
    )] = 'http://localhost:3000'

    ENVIRONMENT: Annotated[str, Field(
        description='Deployment environment name',
        pattern=r'^(dev|staging|prod|test)$',
    )] = 'dev'

    APP_VERSION: Annotated[str, Field(
        description='Application version string',
    )] = '1.0.0'

    LOG_LEVEL: Annotated[str, Field(
        description='Log level for application logging',
        pattern=r'^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$',
    )] = 'INFO'

    # Cancellation resolution
    CANCELLATION_QUEUE_URL: Annotated[Optional[str], Field(
        description='SQS queue receiving cancellation resolution tasks; in-memory queue when unset',
    )] = None

    CANCELLATION_RESOLUTION_TIMEOUT_SECONDS: Annotated[int, Field(
        description='Age after which an unresolved cancellation is terminated',
        ge=1,
    )] = 3600

    CANCELLATION_MAX_ATTEMPTS: Annotated[int, Field(
        description='Maximum resolution attempts before a cancellation is terminated',
        ge=1,
        le=20,
    )] = 3

    # Events
    EVENT_BUS_NAME: Annotated[Optional[str], Field(
        description='EventBridge bus that also receives domain events',
    )] = None

    HUB_CALLBACK_TIMEOUT_SECONDS: Annotated[float, Field(
        description='Timeout of a hub callback delivery',
        gt=0,
        le=30,
    )] = 5.0

    # AppConfig, optional
    APPCONFIG_APPLICATION: Optional[str] = None
    APPCONFIG_ENVIRONMENT: Optional[str] = None
    APPCONFIG_PROFILE: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == 'prod'


def get_handler_env_vars() -> HandlerEnvVars:
    """
    Get typed environment variables for Lambda handlers.

    Returns:
        Validated environment variables model instance
    """
    return get_environment_variables(model=HandlerEnvVars)
