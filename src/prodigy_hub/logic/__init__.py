"""
Business Logic Layer: cancellation workflow, configuration validation and
the TMF resource services.
"""
