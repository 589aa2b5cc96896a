"""
Centralized observability utilities for the ProdigyHub handlers.

Configured AWS Lambda Powertools instances shared by the handler, logic and
data access layers.
"""

from aws_lambda_powertools.logging import Logger
from aws_lambda_powertools.metrics import Metrics
from aws_lambda_powertools.tracing import Tracer

# Metrics namespace for business KPIs
METRICS_NAMESPACE = 'ProdigyHub'

# Service name comes from "POWERTOOLS_SERVICE_NAME"
logger: Logger = Logger()

# Disabled by setting POWERTOOLS_TRACE_DISABLED to "true"
tracer: Tracer = Tracer()

# Business KPIs are published under this namespace
metrics = Metrics(namespace=METRICS_NAMESPACE)
