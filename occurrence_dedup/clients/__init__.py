"""Convenience re-exports for singleton SDK accessors."""

from .http_client import get_session  # noqa: F401

__all__ = ["get_session"]
