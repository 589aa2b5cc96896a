"""
Dynamic configuration utility for AWS AppConfig integration.

Configuration is fetched from AppConfig only when ``APPCONFIG_APPLICATION`` is
set; otherwise, and whenever fetching or parsing fails, the model defaults
apply. Parsed models are cached for five minutes.
"""

import json
import os
from typing import Type, TypeVar

from aws_lambda_powertools.utilities.parameters import get_app_config
from aws_lambda_powertools.utilities.parameters.exceptions import GetParameterError
from cachetools import TTLCache
from pydantic import BaseModel, ValidationError

from prodigy_hub.handlers.models.dynamic_configuration import ServiceConfiguration
from prodigy_hub.handlers.utils.observability import logger

T = TypeVar('T', bound=BaseModel)

_config_cache = TTLCache(maxsize=100, ttl=300)


def _fetch_configuration_data(application: str) -> dict:
    config_data = get_app_config(
        name=os.environ.get('APPCONFIG_PROFILE', 'service_configuration'),
        environment=os.environ.get('APPCONFIG_ENVIRONMENT', 'dev'),
        application=application,
        max_age=300,
    )
    if isinstance(config_data, bytes):
        config_data = config_data.decode('utf-8')
    if isinstance(config_data, str):
        config_data = json.loads(config_data)
    return config_data


def parse_configuration(model: Type[T], force_refresh: bool = False) -> T:
    """
    Parse dynamic configuration from AWS AppConfig using Pydantic model.

    Args:
        model: Pydantic model class to parse configuration into
        force_refresh: Whether to bypass the configuration cache

    Returns:
        Parsed configuration, or the model defaults when AppConfig is not
        configured or the configuration cannot be fetched or parsed
    """
    cache_key = f"config_{model.__name__}"

    if not force_refresh and cache_key in _config_cache:
        return _config_cache[cache_key]

    application = os.environ.get('APPCONFIG_APPLICATION')
    if not application:
        logger.debug(f'AppConfig not configured, using defaults for {model.__name__}')
        parsed_config = model()
        _config_cache[cache_key] = parsed_config
        return parsed_config

    try:
        parsed_config = model.model_validate(_fetch_configuration_data(application))
        logger.info(f'Successfully parsed configuration for {model.__name__}')
    except ValidationError as e:
        logger.error(f'Configuration validation error for {model.__name__}: {e}')
        parsed_config = model()
    except (GetParameterError, json.JSONDecodeError) as e:
        logger.error(f'Failed to fetch configuration from AppConfig: {e}')
        parsed_config = model()

    _config_cache[cache_key] = parsed_config
    return parsed_config


def get_service_configuration(force_refresh: bool = False) -> ServiceConfiguration:
    """Current service configuration."""
    return parse_configuration(ServiceConfiguration, force_refresh=force_refresh)


def is_debug_mode() -> bool:
    return get_service_configuration().debug_mode


def refresh_configuration() -> None:
    """
    Clear the configuration cache, so the next request fetches fresh data.
    """
    _config_cache.clear()
    logger.info('Configuration cache cleared, next request will fetch fresh data')
