"""
Dynamic configuration models, fetched from AWS AppConfig.

Every attribute has a default so that the service runs unchanged when no
AppConfig profile is deployed.
"""

from typing import Annotated, List

from pydantic import BaseModel, Field


class CancellationPolicyConfiguration(BaseModel):
    """Thresholds of the default cancellation approval policy."""

    auto_approve_states: Annotated[List[str], Field(
        description='Order states whose cancellation is always approved',
    )] = ['acknowledged', 'pending']

    in_progress_grace_period_days: Annotated[int, Field(
        description='In-progress orders younger than this are approved',
        ge=0,
        le=365,
    )] = 7

    priority_keywords: Annotated[List[str], Field(
        description='Reason keywords (case-insensitive) that approve a cancellation',
    )] = ['urgent', 'error']


class ConfigurationValidationConfiguration(BaseModel):
    """Options of the product configuration validator."""

    enforce_max_cardinality: Annotated[bool, Field(
        description='Reject items selecting more values than maxCardinality allows',
    )] = False


class ServiceConfiguration(BaseModel):
    """Root of the AppConfig document."""

    cancellation_policy: CancellationPolicyConfiguration = CancellationPolicyConfiguration()
    configuration_validation: ConfigurationValidationConfiguration = ConfigurationValidationConfiguration()

    debug_mode: Annotated[bool, Field(
        description='Include error context details in API error responses',
    )] = False
