"""
ProdigyHub service package.

TMF Open API resources served from AWS Lambda, following a three-layer
architecture:

- handlers: API and worker entry points, configuration and error handling
- logic: cancellation workflow, configuration checks and resource services
- dal: revision-checked document stores and repositories
- events: domain event publishing and the resolution task queue
- models: TMF resource and request models
"""

__version__ = "1.0.0"
