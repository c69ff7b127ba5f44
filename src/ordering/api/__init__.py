"""Ordering domain API package."""

from ordering.api.routes import request_validation_handler, router

__all__ = ["router", "request_validation_handler"]
