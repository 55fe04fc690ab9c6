"""
VOD Archive error taxonomy.

Services convert every upstream failure into one of these before returning to
the HTTP layer, which maps ``status_code`` and ``kind`` onto the response.
"""
from __future__ import annotations

from typing import Optional


class VodArchiveError(Exception):
    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(VodArchiveError):
    """Base for failures that originate at the upstream origin."""

    kind = "upstream_error"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class UpstreamNotFound(UpstreamError):
    status_code = 404
    kind = "not_found"

    def __init__(self, message: str, url: Optional[str] = None, upstream_status: Optional[int] = None):
        super().__init__(message, url=url)
        self.upstream_status = upstream_status


class ChatUnavailable(UpstreamNotFound):
    kind = "chat_unavailable"


class UpstreamTransportError(UpstreamError):
    status_code = 500
    kind = "upstream_unreachable"


class MalformedUpstreamData(UpstreamError):
    status_code = 500
    kind = "malformed_upstream_data"


class StoreUnavailable(VodArchiveError):
    kind = "store_unavailable"


class InvalidRequest(VodArchiveError):
    status_code = 400
    kind = "invalid_request"
