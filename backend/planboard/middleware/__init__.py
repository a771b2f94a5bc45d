"""Middleware package."""

from planboard.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
