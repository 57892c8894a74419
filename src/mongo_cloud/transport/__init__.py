"""HTTP transport for the Atlas API."""

from mongo_cloud.transport.http import Transport, merge_query, redact, truncate

__all__ = [
    "Transport",
    "merge_query",
    "redact",
    "truncate",
]
