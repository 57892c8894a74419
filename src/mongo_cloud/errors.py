"""Error taxonomy for the Atlas client.

Library code raises these; only the CLI turns them into exit codes.

- ``TransportError``: the request never produced a response (connect
  failure, timeout, reset).
- ``ApiError``: the remote answered with a non-success status.
  ``BadRequest`` (400) and ``NotFound`` (404) narrow it down.
- ``UsageError``: caller-supplied parameters are inconsistent; raised
  before any network call.
- ``DecodeError``: a body could not be decoded (bad JSON, non-gzip log).
"""

from __future__ import annotations

import json
from functools import cached_property
from typing import Any


class MongoCloudError(Exception):
    """Base class for every error raised by mongo_cloud."""


class ConfigError(MongoCloudError):
    """Raised for missing credentials or malformed configuration."""


class UsageError(MongoCloudError):
    """Raised when a caller passes an invalid combination of parameters."""


class DecodeError(MongoCloudError):
    """Raised when a response body cannot be decoded."""


class TransportError(MongoCloudError):
    """Raised when the HTTP exchange itself fails."""


class CacheError(MongoCloudError):
    """Raised when a record cannot be indexed by the identifier cache."""


class LogCollectionError(MongoCloudError):
    """Raised when a log collection job ends in an unexpected state."""


class LogCollectionTimeout(LogCollectionError):
    """Raised when a log collection job does not finish before the deadline."""


class ApiError(MongoCloudError):
    """The remote API answered with a non-success status.

    ``body`` is the raw response text; ``payload`` and ``error_code`` are
    parsed from it on first access.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str = "",
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.method = method
        self.url = url

    @cached_property
    def payload(self) -> dict[str, Any] | None:
        """The body parsed as a JSON object, or ``None`` if it is not one."""
        try:
            data = json.loads(self.body)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    @property
    def error_code(self) -> str | None:
        """The remote-defined ``errorCode`` (e.g. ``CLUSTER_NOT_FOUND``)."""
        if self.payload is None:
            return None
        return self.payload.get("errorCode")


class BadRequest(ApiError):
    """HTTP 400: the request was malformed or rejected by validation."""


class NotFound(ApiError):
    """HTTP 404: the addressed resource does not exist."""
