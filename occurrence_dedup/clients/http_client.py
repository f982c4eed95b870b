"""Shared HTTP session for GBIF API calls and remote table downloads."""

from __future__ import annotations

import requests

from .. import __version__

_session: requests.Session | None = None


def get_session() -> requests.Session:
    """Return a singleton :class:`requests.Session` with the project user agent."""
    global _session
    if _session is None:
        _session = requests.Session()
        _session.headers["User-Agent"] = f"occurrence-dedup/{__version__}"
    return _session

__all__ = ["get_session"]
