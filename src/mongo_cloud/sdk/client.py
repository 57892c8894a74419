"""MongoCloudClient: one method per Atlas resource operation.

Composes the digest-auth ``Transport`` with the response normalizer and
applies the per-resource payload shaping (timestamps, defaults, enums).

Usage::

    from mongo_cloud import MongoCloudClient

    client = MongoCloudClient(user="PUBLIC", password="PRIVATE")
    for cluster in client.list_clusters(project_id="5f1a..."):
        print(cluster["name"], cluster["state_name"])
"""

from __future__ import annotations

import gzip
import logging
import zlib
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from functools import partial
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from mongo_cloud.config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from mongo_cloud.credentials import resolve_credentials
from mongo_cloud.errors import BadRequest, DecodeError, LogCollectionError, UsageError
from mongo_cloud.models import (
    CLUSTER_TYPE_RESOURCE,
    AccessListEntryCreate,
    DatabaseRole,
    DatabaseUserCreate,
    LogCollectionJobCreate,
    LogCollectionResourceType,
    LogName,
    log_filename,
)
from mongo_cloud.normalize import normalize
from mongo_cloud.transport.http import Transport

logger = logging.getLogger(__name__)

CLUSTER_ALREADY_REQUESTED_DELETION = "CLUSTER_ALREADY_REQUESTED_DELETION"
ITEMS_PER_PAGE = 500
ISO8601_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
GZIP_ACCEPT = {"Accept": "application/gzip"}

Payload = dict[str, Any]
Timestamp = datetime | str

_q = partial(quote, safe="")


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso8601_time(value: Timestamp | None) -> str | None:
    """Format a datetime as ``YYYY-MM-DDTHH:MM:SSZ``; strings pass through."""
    if value is None or isinstance(value, str):
        return value
    return _as_utc(value).strftime(ISO8601_FORMAT)


def to_epoch_seconds(value: datetime | int | str | None) -> int | str | None:
    """Log endpoints take epoch seconds; datetimes are converted."""
    if isinstance(value, datetime):
        return int(_as_utc(value).timestamp())
    return value


def _str_list(values: str | Sequence[str] | None) -> list[str]:
    # A bare string is one value, not a sequence of characters.
    if values is None:
        return []
    if isinstance(values, str):
        return [values]
    return list(values)


def decompress_gzip(body: bytes) -> str:
    try:
        return gzip.decompress(body).decode("utf-8", errors="replace")
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"Log payload is not valid gzip data: {exc}") from exc


class MongoCloudClient:
    """Public API for the Atlas management API.

    The underlying ``Transport`` (and its HTTP connection) is built on the
    first call and reused for the client's lifetime. Every JSON response is
    passed through ``normalize()``.
    """

    def __init__(
        self,
        user: str | None = None,
        password: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            user: API public key (falls back to ``MCLI_PUBLIC_API_KEY``).
            password: API private key (falls back to ``MCLI_PRIVATE_API_KEY``).
            base_url: Versioned API root (default Atlas v1.0).
            timeout: Per-request timeout in seconds.
            http_transport: Optional httpx transport, for tests.
        """
        self._user = user
        self._password = password
        self._base_url = base_url or DEFAULT_BASE_URL
        self._timeout = timeout
        self._http_transport = http_transport
        self._transport: Transport | None = None

    @property
    def transport(self) -> Transport:
        """The shared ``Transport``; credentials are resolved on first use."""
        if self._transport is None:
            self._transport = Transport(
                credentials=resolve_credentials(self._user, self._password),
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._http_transport,
            )
        return self._transport

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def __enter__(self) -> MongoCloudClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- Organizations ---

    def list_orgs(self) -> list[Payload]:
        return self._list("orgs")

    def get_org(self, id: str) -> Payload:
        return self._request_json("GET", f"orgs/{_q(id)}")

    # --- Projects ---

    def list_projects(self) -> list[Payload]:
        return self._list("groups")

    def get_project(self, id: str) -> Payload:
        return self._request_json("GET", f"groups/{_q(id)}")

    def get_project_by_name(self, name: str) -> Payload:
        return self._request_json("GET", f"groups/byName/{_q(name)}")

    def create_project(self, org_id: str, name: str) -> Payload:
        return self._request_json("POST", "groups", {"name": name, "orgId": org_id})

    def delete_project(self, id: str) -> Payload | None:
        return self._request_json("DELETE", f"groups/{_q(id)}")

    # --- Clusters ---

    def list_clusters(self, project_id: str) -> list[Payload]:
        return self._list(f"groups/{_q(project_id)}/clusters")

    def get_cluster(self, project_id: str, name: str) -> Payload:
        return self._request_json("GET", self._cluster_path(project_id, name))

    def get_cluster_internal(self, project_id: str, name: str) -> Payload:
        """Fetch the internal cluster descriptor (topology, deployment names).

        Requires an API key with internal privileges; anything else is
        rejected by the server and surfaces as an ``ApiError``.
        """
        return self._request_json("GET", self._internal_cluster_path(project_id, name))

    def get_cluster_replica_set_hardware(self, project_id: str, name: str) -> Payload:
        """Internal per-node hardware view. Requires internal privileges."""
        return self._request_json(
            "GET", self._internal_cluster_path(project_id, name) + "/replicaSetHardware",
        )

    def create_cluster(
        self,
        project_id: str,
        name: str,
        config: Mapping[str, Any] | None = None,
    ) -> Payload:
        """Create a cluster. *config* is passed through as the request body."""
        body = {**(config or {}), "name": name}
        return self._request_json("POST", f"groups/{_q(project_id)}/clusters", body)

    def update_cluster(
        self,
        project_id: str,
        name: str,
        config: Mapping[str, Any],
    ) -> Payload:
        return self._request_json("PATCH", self._cluster_path(project_id, name), dict(config))

    def reboot_cluster(self, project_id: str, name: str) -> Payload | None:
        """Reboot every node of a cluster. Requires internal privileges."""
        return self._request_json(
            "POST", self._internal_cluster_path(project_id, name) + "/reboot", {},
        )

    def failover_cluster(self, project_id: str, name: str) -> Payload | None:
        """Restart the primaries, forcing an election (test failover)."""
        return self._request_json(
            "POST", self._cluster_path(project_id, name) + "/restartPrimaries", {},
        )

    def delete_cluster(self, project_id: str, name: str) -> Payload | None:
        """Delete a cluster.

        Deleting a cluster that is already being deleted succeeds and
        returns ``None``; every other error propagates.
        """
        try:
            return self._request_json("DELETE", self._cluster_path(project_id, name))
        except BadRequest as exc:
            if exc.error_code != CLUSTER_ALREADY_REQUESTED_DELETION:
                raise
            logger.info("Cluster %s is already being deleted", name)
            return None

    # --- IP access lists ---

    def list_access_list_entries(self, project_id: str) -> list[Payload]:
        return self._list(f"groups/{_q(project_id)}/accessList")

    def get_access_list_entry(self, project_id: str, entry: str) -> Payload:
        return self._request_json("GET", f"groups/{_q(project_id)}/accessList/{_q(entry)}")

    def create_access_list_entry(
        self,
        project_id: str,
        cidr_block: str | None = None,
        ip_address: str | None = None,
        aws_security_group_id: str | None = None,
        comment: str | None = None,
        delete_after: Timestamp | None = None,
    ) -> Payload:
        """Add one access list entry. Only the supplied fields are sent."""
        entry = AccessListEntryCreate(
            cidr_block=cidr_block,
            ip_address=ip_address,
            aws_security_group_id=aws_security_group_id,
            comment=comment,
            delete_after=to_iso8601_time(delete_after),
        )
        return self._request_json(
            "POST", f"groups/{_q(project_id)}/accessList", [entry.to_wire()],
        )

    def delete_access_list_entry(self, project_id: str, entry: str) -> Payload | None:
        return self._request_json(
            "DELETE", f"groups/{_q(project_id)}/accessList/{_q(entry)}",
        )

    # --- Database users ---

    def list_db_users(self, project_id: str) -> list[Payload]:
        return self._list(f"groups/{_q(project_id)}/databaseUsers")

    def create_db_user(
        self,
        project_id: str,
        username: str,
        password: str,
        roles: Sequence[DatabaseRole | Mapping[str, Any]] | None = None,
    ) -> Payload:
        """Create a database user; defaults to ``atlasAdmin`` on ``admin``."""
        fields: dict[str, Any] = {"username": username, "password": password}
        try:
            if roles is not None:
                fields["roles"] = [
                    r if isinstance(r, DatabaseRole) else DatabaseRole.model_validate(r)
                    for r in roles
                ]
            user = DatabaseUserCreate(**fields)
        except ValidationError as exc:
            raise UsageError(f"Invalid database user: {exc}") from exc
        return self._request_json(
            "POST", f"groups/{_q(project_id)}/databaseUsers", user.to_wire(),
        )

    # --- Processes ---

    def list_processes(self, project_id: str) -> list[Payload]:
        return self._list(f"groups/{_q(project_id)}/processes")

    def get_process_measurements(
        self,
        project_id: str,
        process_id: str,
        granularity: str,
        period: str | None = None,
        start_time: Timestamp | None = None,
        end_time: Timestamp | None = None,
        metrics: str | Sequence[str] | None = None,
    ) -> Payload:
        """Fetch process measurements.

        *metrics* are sent as repeated ``m`` query parameters
        (``m=CONNECTIONS&m=OPCOUNTER_CMD``).
        """
        params = {
            "granularity": granularity,
            "period": period,
            "start": to_iso8601_time(start_time),
            "end": to_iso8601_time(end_time),
            "m": _str_list(metrics) or None,
        }
        return self._request_json(
            "GET",
            f"groups/{_q(project_id)}/processes/{_q(process_id)}/measurements",
            params,
        )

    def get_process_log(
        self,
        project_id: str,
        hostname: str,
        name: LogName,
        start_time: datetime | int | str | None = None,
        end_time: datetime | int | str | None = None,
        decompress: bool = False,
    ) -> bytes | str:
        """Download one process log file.

        Returns the raw gzip ``bytes``, or the decompressed text when
        *decompress* is set.

        Raises:
            DecodeError: *decompress* was set and the body is not gzip.
        """
        path = (
            f"groups/{_q(project_id)}/clusters/{_q(hostname)}"
            f"/logs/{_q(log_filename(name))}"
        )
        params = {
            "startDate": to_epoch_seconds(start_time),
            "endDate": to_epoch_seconds(end_time),
        }
        response = self.transport.request("GET", path, params, headers=GZIP_ACCEPT)
        if decompress:
            return decompress_gzip(response.content)
        return response.content

    # --- Log collection jobs ---

    def create_log_collection_job(
        self,
        project_id: str,
        cluster_name: str | None = None,
        resource_type: LogCollectionResourceType | str | None = None,
        resource_name: str | None = None,
        redacted: bool = False,
        file_size: int = 100_000_000,
        log_types: str | Sequence[str] | None = None,
    ) -> Payload:
        """Start a log collection job.

        Either *cluster_name* or both *resource_type* and *resource_name*
        must be given, never both. A cluster name is resolved through the
        internal cluster descriptor to the replica set or sharded cluster
        that backs it.

        Raises:
            UsageError: Conflicting or incomplete target parameters, invalid
                job settings (checked before any request), or a
                cluster topology that log collection does not support.
        """
        if cluster_name is not None:
            if resource_type is not None or resource_name is not None:
                raise UsageError(
                    "Pass either cluster_name or resource_type/resource_name, not both"
                )
        elif resource_type is None or resource_name is None:
            raise UsageError(
                "Log collection needs cluster_name or both resource_type and resource_name"
            )

        # Validated before the cluster lookup; the target is filled in after it.
        try:
            job = LogCollectionJobCreate(
                resource_type=(
                    str(resource_type).upper() if resource_type is not None
                    else LogCollectionResourceType.CLUSTER
                ),
                resource_name=resource_name or cluster_name,
                redacted=redacted,
                size_requested_per_file_bytes=file_size,
                log_types=_str_list(log_types) or ["MONGODB"],
            )
        except ValidationError as exc:
            raise UsageError(f"Invalid log collection job: {exc}") from exc

        if cluster_name is not None:
            target_type, target_name = self._log_collection_target(project_id, cluster_name)
            job = job.model_copy(
                update={"resource_type": target_type, "resource_name": target_name},
            )

        return self._request_json(
            "POST", f"groups/{_q(project_id)}/logCollectionJobs", job.to_wire(),
        )

    def get_log_collection_job(self, project_id: str, id: str) -> Payload:
        return self._request_json(
            "GET", f"groups/{_q(project_id)}/logCollectionJobs/{_q(id)}",
        )

    def list_log_collection_jobs(self, project_id: str) -> list[Payload]:
        return self._list(f"groups/{_q(project_id)}/logCollectionJobs")

    def download_log_collection_job(self, job: Mapping[str, Any]) -> bytes:
        """Fetch the archive of a finished job from its ``download_url``."""
        url = job.get("download_url")
        if not url:
            raise LogCollectionError(f"Log collection job {job.get('id')} has no download URL")
        return self.transport.request("GET", url, headers=GZIP_ACCEPT).content

    # --- helpers ---

    def _log_collection_target(
        self, project_id: str, cluster_name: str,
    ) -> tuple[LogCollectionResourceType, str]:
        info = self.get_cluster_internal(project_id, cluster_name)
        cluster_type = str(info.get("cluster_type", "")).upper()
        resource_type = CLUSTER_TYPE_RESOURCE.get(cluster_type)
        if resource_type is None:
            raise UsageError(
                f"Cluster {cluster_name} has unsupported topology: {cluster_type or 'unknown'}"
            )
        item_name = info.get("deployment_item_name")
        if not item_name:
            raise UsageError(f"Cluster {cluster_name} has no deployment item name")
        return resource_type, item_name

    @staticmethod
    def _cluster_path(project_id: str, name: str) -> str:
        return f"groups/{_q(project_id)}/clusters/{_q(name)}"

    @staticmethod
    def _internal_cluster_path(project_id: str, name: str) -> str:
        return f"/nds/clusters/{_q(project_id)}/{_q(name)}"

    def _request_json(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | list[Any] | None = None,
    ) -> Any:
        return normalize(self.transport.request_json(method, path, params))

    def _list(self, path: str) -> list[Payload]:
        """Collect ``results`` across every page of a list endpoint."""
        results: list[Payload] = []
        page = 1
        while True:
            data = self._request_json(
                "GET", path, {"pageNum": page, "itemsPerPage": ITEMS_PER_PAGE},
            ) or {}
            batch = data.get("results", [])
            results.extend(batch)
            total = data.get("total_count")
            if len(batch) < ITEMS_PER_PAGE or (total is not None and len(results) >= total):
                return results
            page += 1
