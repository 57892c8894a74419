"""Shared fixtures: an in-memory fake of the Atlas API on httpx.MockTransport."""

from __future__ import annotations

import json
from collections import defaultdict, deque
from typing import Any

import httpx
import pytest

from mongo_cloud.sdk.client import MongoCloudClient

API_PREFIX = "/api/atlas/v1.0/"


class FakeAtlas:
    """Route table of canned responses, keyed by (method, decoded path).

    Paths without a leading ``/`` are relative to the v1.0 API prefix.
    Several responses queued for one route are served in order; the last
    one repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], deque[tuple[int, bytes]]] = defaultdict(deque)
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json_body: Any = None,
        content: bytes | None = None,
    ) -> None:
        if not path.startswith("/"):
            path = API_PREFIX + path
        if content is None and json_body is not None:
            content = json.dumps(json_body).encode("utf-8")
        self.routes[(method, path)].append((status, content or b""))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(
                404, json={"error": "Not Found", "detail": f"no route for {request.url.path}"},
            )
        status, content = queue.popleft() if len(queue) > 1 else queue[0]
        return httpx.Response(status, content=content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def last_body(self) -> Any:
        return json.loads(self.requests[-1].content)

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


def page(results: list[dict[str, Any]]) -> dict[str, Any]:
    """Wrap *results* the way Atlas list endpoints do."""
    return {
        "links": [{"href": "https://cloud.mongodb.com/api/atlas/v1.0/x", "rel": "self"}],
        "results": results,
        "totalCount": len(results),
    }


@pytest.fixture()
def atlas() -> FakeAtlas:
    return FakeAtlas()


@pytest.fixture()
def client(atlas: FakeAtlas) -> MongoCloudClient:
    return MongoCloudClient(
        user="public-key", password="private-key", http_transport=atlas.transport,
    )
