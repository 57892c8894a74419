"""Digest-authenticated HTTP transport for the Atlas API.

One ``Transport`` owns one ``httpx.Client``. The client is built on the
first request and reused afterwards, so the digest challenge is answered
once and the resulting nonce is replayed on every later request.

Responses with a status in 200..202 are returned as-is; anything else is
raised as a classified ``ApiError``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from mongo_cloud import __version__
from mongo_cloud.config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from mongo_cloud.errors import (
    ApiError,
    BadRequest,
    DecodeError,
    NotFound,
    TransportError,
    UsageError,
)
from mongo_cloud.models import Credentials

logger = logging.getLogger(__name__)

METHODS = frozenset({"GET", "POST", "PATCH", "DELETE"})
SUCCESS_STATUSES = range(200, 203)
LOG_LINE_LIMIT = 5000
USER_AGENT = f"MongoCloudClient/{__version__}"
REDACTED_KEYS = frozenset({"password"})
REDACTED = "********"

_ERROR_CLASSES: dict[int, type[ApiError]] = {
    400: BadRequest,
    404: NotFound,
}


def truncate(text: str, limit: int = LOG_LINE_LIMIT) -> str:
    """Clip *text* to *limit* characters, marking the cut with ``...``."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def redact(value: Any) -> Any:
    """Copy of a JSON payload with secret fields masked, for logging."""
    if isinstance(value, Mapping):
        return {
            k: REDACTED if k in REDACTED_KEYS else redact(v) for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def merge_query(url: str, params: Mapping[str, Any] | None) -> str:
    """Merge *params* into the query string already present in *url*.

    Supplied params win on key collision. ``None`` values are dropped and
    list values become repeated keys (``m=A&m=B``).
    """
    if not params:
        return url
    parts = urlsplit(url)
    supplied = {k for k, v in params.items() if v is not None}
    pairs = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in supplied
    ]
    for key, value in params.items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        pairs.extend((key, _query_value(v)) for v in values)
    return urlunsplit(parts._replace(query=urlencode(pairs)))


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class Transport:
    """Performs authenticated requests against one Atlas base URL.

    Usage::

        transport = Transport(credentials=Credentials(public_key="...", private_key="..."))
        response = transport.request("GET", "groups", {"itemsPerPage": 100})
    """

    def __init__(
        self,
        credentials: Credentials,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            credentials: API key pair used for digest auth.
            base_url: Versioned API root; relative paths are appended to it.
            timeout: Per-request timeout in seconds.
            user_agent: Value of the ``User-Agent`` header.
            transport: Optional httpx transport (tests pass a ``MockTransport``).
        """
        self._credentials = credentials
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def connection(self) -> httpx.Client:
        """The shared ``httpx.Client``, created on first use."""
        if self._client is None:
            self._client = httpx.Client(
                auth=httpx.DigestAuth(
                    self._credentials.public_key, self._credentials.private_key,
                ),
                headers={
                    "User-Agent": self._user_agent,
                    "Accept": "application/json",
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def resolve_url(self, path: str) -> str:
        """Turn an API path into an absolute URL.

        ``groups/x`` is relative to the versioned base URL, ``/nds/...`` is
        relative to the host, and absolute URLs pass through.
        """
        if path.startswith(("http://", "https://")):
            return path
        if path.startswith("/"):
            parts = urlsplit(self._base_url)
            return f"{parts.scheme}://{parts.netloc}{path}"
        return self._base_url + path

    def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | list[Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request and return the successful response.

        GET params go into the query string; for every other method they
        are sent as a JSON body. *headers* are added to the defaults.

        Raises:
            UsageError: Unsupported HTTP method.
            TransportError: Connection failure or timeout.
            BadRequest: Remote answered 400.
            NotFound: Remote answered 404.
            ApiError: Any other non-success status.
        """
        method = method.upper()
        if method not in METHODS:
            raise UsageError(f"Unsupported HTTP method: {method}")

        url = self.resolve_url(path)
        content: bytes | None = None
        headers = dict(headers or {})

        if method == "GET":
            if params is not None and not isinstance(params, Mapping):
                raise UsageError("GET params must be a mapping")
            url = merge_query(url, params)
        elif params is not None:
            payload = json.dumps(params)
            logger.info(
                "%s",
                truncate(f"Sending payload: {json.dumps(redact(params))} for {method} {url}"),
            )
            content = payload.encode("utf-8")
            headers["Content-Type"] = "application/json"

        try:
            response = self.connection.request(
                method, url, content=content, headers=headers,
            )
        except httpx.TransportError as exc:
            raise TransportError(f"Atlas {method} {url} failed: {exc}") from exc

        logger.debug("%s %s -> %d", method, url, response.status_code)

        if response.status_code not in SUCCESS_STATUSES:
            raise self._classify(method, url, response)
        return response

    def request_json(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | list[Any] | None = None,
    ) -> Any:
        """Like ``request`` but decodes the body as JSON (``None`` if empty)."""
        response = self.request(method, path, params)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(
                f"Atlas {method.upper()} {path} returned invalid JSON: {exc}"
            ) from exc

    @staticmethod
    def _classify(method: str, url: str, response: httpx.Response) -> ApiError:
        body = response.text
        error: str | None
        try:
            data = json.loads(body)
        except ValueError:
            error = body or None
        else:
            error = None
            if isinstance(data, dict) and data.get("error"):
                error = str(data["error"])
                if data.get("detail"):
                    error += f": {data['detail']}"

        msg = f"Atlas {method} {url} failed: {response.status_code}"
        if error:
            msg += f": {error}"

        cls = _ERROR_CLASSES.get(response.status_code, ApiError)
        return cls(msg, status=response.status_code, body=body, method=method, url=url)
