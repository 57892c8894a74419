"""mongo-cloud: a command-line client and library for the MongoDB Atlas API."""

__version__ = "0.4.0"

from mongo_cloud.cache.store import IdentifierCache
from mongo_cloud.config import CloudConfig, find_config, load_config, parse_cluster_config
from mongo_cloud.credentials import resolve_credentials
from mongo_cloud.errors import (
    ApiError,
    BadRequest,
    ConfigError,
    DecodeError,
    LogCollectionError,
    LogCollectionTimeout,
    MongoCloudError,
    NotFound,
    TransportError,
    UsageError,
)
from mongo_cloud.models import (
    Credentials,
    DatabaseRole,
    LogCollectionJobStatus,
    LogCollectionResourceType,
    LogFile,
    LogKind,
)
from mongo_cloud.normalize import normalize, normalize_key
from mongo_cloud.sdk.client import MongoCloudClient
from mongo_cloud.transport.http import Transport

__all__ = [
    "ApiError",
    "BadRequest",
    "CloudConfig",
    "ConfigError",
    "Credentials",
    "DatabaseRole",
    "DecodeError",
    "find_config",
    "IdentifierCache",
    "load_config",
    "LogCollectionError",
    "LogCollectionJobStatus",
    "LogCollectionResourceType",
    "LogCollectionTimeout",
    "LogFile",
    "LogKind",
    "MongoCloudClient",
    "MongoCloudError",
    "normalize",
    "normalize_key",
    "NotFound",
    "parse_cluster_config",
    "resolve_credentials",
    "Transport",
    "TransportError",
    "UsageError",
    "__version__",
]
