"""TMF resource, request and response models."""
