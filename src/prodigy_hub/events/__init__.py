"""
Domain events: TMF notification payloads, the publisher that stores and
delivers them, and the cancellation resolution task queues.
"""
