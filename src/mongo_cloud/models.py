"""Typed models for request payloads and the small enums the client exposes.

Responses are returned as plain normalized dicts (see ``normalize``);
the models here shape what we *send*:

- Credentials (API key pair)
- Access list entries
- Database users and roles
- Log collection jobs
- Log names (symbolic kinds or literal filenames)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class LogKind(enum.StrEnum):
    """Symbolic process log names accepted by ``get_process_log``."""

    MONGOD = "mongod"
    MONGOS = "mongos"
    MONGOD_AUDIT = "mongod-audit"
    MONGOS_AUDIT = "mongos-audit"

    @property
    def filename(self) -> str:
        return _LOG_FILENAMES[self]


_LOG_FILENAMES = {
    LogKind.MONGOD: "mongodb.gz",
    LogKind.MONGOS: "mongos.gz",
    LogKind.MONGOD_AUDIT: "mongodb-audit-log.gz",
    LogKind.MONGOS_AUDIT: "mongos-audit-log.gz",
}


@dataclass(frozen=True)
class LogFile:
    """A literal log filename, sent as-is."""

    filename: str


LogName = LogKind | LogFile | str


def log_filename(name: LogName) -> str:
    """Map a log name to the filename the logs endpoint expects.

    Strings matching a ``LogKind`` value are treated as that kind;
    any other string is a literal filename.
    """
    if isinstance(name, LogKind):
        return name.filename
    if isinstance(name, LogFile):
        return name.filename
    try:
        return LogKind(name).filename
    except ValueError:
        return name


class LogCollectionJobStatus(enum.StrEnum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    MARKED_FOR_EXPIRY = "marked_for_expiry"
    EXPIRED = "expired"

    @classmethod
    def parse(cls, value: str) -> LogCollectionJobStatus | None:
        """Case-insensitive lookup; ``None`` for statuses we do not know."""
        try:
            return cls(value.lower())
        except (AttributeError, ValueError):
            return None


class LogCollectionResourceType(enum.StrEnum):
    CLUSTER = "CLUSTER"
    REPLICASET = "REPLICASET"
    PROCESS = "PROCESS"


# Internal cluster topology -> resource type used by log collection jobs.
CLUSTER_TYPE_RESOURCE = {
    "REPLICASET": LogCollectionResourceType.REPLICASET,
    "SHARDED": LogCollectionResourceType.CLUSTER,
    "GEOSHARDED": LogCollectionResourceType.CLUSTER,
}


# --- Credentials ---


class Credentials(BaseModel):
    """Atlas programmatic API key pair, used for digest auth."""

    model_config = ConfigDict(frozen=True)

    public_key: str = Field(..., min_length=1)
    private_key: str = Field(..., min_length=1, repr=False)


# --- Request payloads ---


class _Payload(BaseModel):
    """Base for request bodies: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class AccessListEntryCreate(_Payload):
    cidr_block: str | None = Field(default=None, alias="cidrBlock")
    ip_address: str | None = Field(default=None, alias="ipAddress")
    aws_security_group_id: str | None = Field(default=None, alias="awsSecurityGroup")
    comment: str | None = None
    delete_after: str | None = Field(default=None, alias="deleteAfterDate")


class DatabaseRole(_Payload):
    role_name: str = Field(..., alias="roleName")
    database_name: str = Field(default="admin", alias="databaseName")


DEFAULT_DB_ROLES = (DatabaseRole(role_name="atlasAdmin", database_name="admin"),)


class DatabaseUserCreate(_Payload):
    username: str
    password: str
    database_name: str = Field(default="admin", alias="databaseName")
    roles: list[DatabaseRole] = Field(default_factory=lambda: list(DEFAULT_DB_ROLES))


class LogCollectionJobCreate(_Payload):
    resource_type: LogCollectionResourceType = Field(..., alias="resourceType")
    resource_name: str = Field(..., alias="resourceName")
    redacted: bool = False
    size_requested_per_file_bytes: int = Field(
        default=100_000_000, gt=0, alias="sizeRequestedPerFileBytes",
    )
    log_types: list[str] = Field(default_factory=lambda: ["MONGODB"], alias="logTypes")
