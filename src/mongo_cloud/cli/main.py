"""mongo-cloud CLI: command-line interface for the Atlas management API.

Commands:
    org         list | show
    project     list | show | create | delete
    cluster     list | show | show-internal | replica-set-hardware | create
                | update | reboot | failover | delete | log
    accesslist  list | show | add | delete
    dbuser      list | create
    proc        list | measurements | log | full-log
    logjob      create | show | list | wait

List commands populate the identifier cache so later invocations can
refer to projects and clusters by name.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import click

from mongo_cloud import __version__
from mongo_cloud.cache.store import IdentifierCache
from mongo_cloud.config import (
    CloudConfig,
    Settings,
    load_config,
    parse_cluster_config,
    resolve_settings,
)
from mongo_cloud.errors import BadRequest, MongoCloudError, NotFound, UsageError
from mongo_cloud.logs.download import download_full_log
from mongo_cloud.logs.jobs import download_log_collection_job, wait_for_log_collection_job
from mongo_cloud.models import DatabaseRole, LogKind
from mongo_cloud.sdk.client import MongoCloudClient

DATETIME = click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"])
IP_ADDRESS = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
CIDR_BLOCK = re.compile(r"^\d+\.\d+\.\d+\.\d+/\d+$")
LOG_TYPES = ["MONGODB", "FTDC", "AUTOMATION_AGENT", "MONITORING_AGENT", "BACKUP_AGENT"]


@dataclass
class CliState:
    """Per-invocation state shared by every command."""

    settings: Settings
    cache: IdentifierCache
    project: str | None = None
    cluster: str | None = None
    _client: MongoCloudClient | None = field(default=None, repr=False)

    @property
    def client(self) -> MongoCloudClient:
        if self._client is None:
            self._client = MongoCloudClient(
                user=self.settings.public_key,
                password=self.settings.private_key,
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class CloudGroup(click.Group):
    """Root group that reports library errors as click errors (exit 1)."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except MongoCloudError as exc:
            raise click.ClickException(str(exc)) from exc


pass_state = click.make_pass_decorator(CliState)


def _emit(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _done(verb: str, what: str) -> None:
    click.echo(click.style(verb, fg="green", bold=True) + f" — {what}")


def _load_cfg(config_path: str | None) -> CloudConfig:
    """Explicit --config must exist; auto-discovery never errors."""
    if config_path is not None:
        try:
            return load_config(config_path)
        except (OSError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc
    try:
        return load_config()
    except (OSError, ValueError):
        return CloudConfig()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _project_option(f: Any) -> Any:
    """``-p/--project`` on a subgroup overrides the root option."""

    def _store(ctx: click.Context, _param: click.Parameter, value: str | None) -> None:
        if value is not None:
            ctx.find_object(CliState).project = value

    return click.option(
        "-p", "--project", default=None, expose_value=False, callback=_store,
        help="Project ID or name",
    )(f)


def _resolve_project(state: CliState) -> str:
    """Turn --project (an id or a name) into a project id.

    Falls back to the project recorded for --cluster in the cache, then
    asks the API, trying the value as an id before trying it as a name.
    """
    project = state.project
    if project is None and state.cluster is not None:
        cluster_id = state.cache.resolve("cluster", "name", state.cluster)
        project = state.cache.parent("cluster", "project", cluster_id)
    if project is None:
        raise UsageError("Project id is required (--project)")

    cached = state.cache.resolve("project", "name", project)
    if cached != project:
        return cached

    try:
        state.client.get_project(project)
    except (NotFound, BadRequest):
        info = state.client.get_project_by_name(project)
        state.cache.record_identity("project", info, "name")
        return info["id"]
    return project


def _cluster_name(state: CliState, name: str | None) -> str:
    """Cluster argument or --cluster, mapped from an id to a name if cached."""
    name = name or state.cluster
    if not name:
        raise UsageError("Cluster name is required")
    return state.cache.lookup("cluster", "name", name)


def _log_file(name: str) -> str:
    """Symbolic log kinds map to their files; other names get a .gz suffix."""
    try:
        return LogKind(name).filename
    except ValueError:
        return name if name.endswith(".gz") else name + ".gz"


# --- Root group ---


@click.group(cls=CloudGroup)
@click.version_option(version=__version__)
@click.option("-U", "--user", default=None, help="API username (aka public key)")
@click.option("-P", "--password", default=None, help="API password (aka private key)")
@click.option("--base-url", default=None, help="Atlas API base URL")
@click.option("-p", "--project", default=None, help="Project ID or name")
@click.option("-c", "--cluster", default=None, help="Cluster ID or name")
@click.option("--cache-path", default=None, help="Identifier cache file")
@click.option("--config", "config_path", default=None, help="Path to mongo-cloud.yaml")
@click.option("-v", "--verbose", is_flag=True, help="Log every request")
@click.pass_context
def cli(
    ctx: click.Context,
    user: str | None,
    password: str | None,
    base_url: str | None,
    project: str | None,
    cluster: str | None,
    cache_path: str | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """mongo-cloud: manage MongoDB Atlas from the command line."""
    _configure_logging(verbose)
    settings = resolve_settings(
        _load_cfg(config_path),
        base_url=base_url,
        public_key=user,
        private_key=password,
        cache_path=cache_path,
    )
    # Closed (and flushed) when the context tears down, on success or error.
    cache = ctx.with_resource(IdentifierCache(settings.cache_path))
    state = CliState(settings=settings, cache=cache, project=project, cluster=cluster)
    ctx.call_on_close(state.close)
    ctx.obj = state


# --- org ---


@cli.group()
def org() -> None:
    """Organization commands."""


@org.command("list")
@pass_state
def org_list(state: CliState) -> None:
    """List organizations."""
    _emit(state.client.list_orgs())


@org.command("show")
@click.argument("org_id")
@pass_state
def org_show(state: CliState, org_id: str) -> None:
    """Show one organization."""
    _emit(state.client.get_org(org_id))


# --- project ---


@cli.group()
def project() -> None:
    """Project commands."""


@project.command("list")
@pass_state
def project_list(state: CliState) -> None:
    """List projects (and cache their names)."""
    infos = state.client.list_projects()
    state.cache.record_identity("project", infos, "name")
    _emit(infos)


@project.command("show")
@click.argument("project_ref", required=False)
@pass_state
def project_show(state: CliState, project_ref: str | None) -> None:
    """Show a project by id or name."""
    if project_ref is not None:
        state.project = project_ref
    _emit(state.client.get_project(_resolve_project(state)))


@project.command("create")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.option("--name", required=True, help="Project name to create")
@pass_state
def project_create(state: CliState, org_id: str, name: str) -> None:
    """Create a project in an organization."""
    info = state.client.create_project(org_id=org_id, name=name)
    state.cache.record_identity("project", info, "name")
    _emit(info)


@project.command("delete")
@click.argument("project_ref")
@pass_state
def project_delete(state: CliState, project_ref: str) -> None:
    """Delete a project by id or name."""
    state.project = project_ref
    project_id = _resolve_project(state)
    state.client.delete_project(project_id)
    _done("DELETED", f"project {project_ref}")


# --- cluster ---


@cli.group()
@_project_option
def cluster() -> None:
    """Cluster commands."""


@cluster.command("list")
@pass_state
def cluster_list(state: CliState) -> None:
    """List clusters in the project (and cache names and projects)."""
    infos = state.client.list_clusters(project_id=_resolve_project(state))
    state.cache.record_identity("cluster", infos, "name")
    state.cache.record_association("cluster", "project", infos, "project_id")
    _emit(infos)


@cluster.command("show")
@click.argument("name", required=False)
@pass_state
def cluster_show(state: CliState, name: str | None) -> None:
    """Show a cluster."""
    project_id = _resolve_project(state)
    _emit(state.client.get_cluster(project_id=project_id, name=_cluster_name(state, name)))


@cluster.command("show-internal")
@click.argument("name", required=False)
@pass_state
def cluster_show_internal(state: CliState, name: str | None) -> None:
    """Show the internal cluster descriptor (requires internal privileges)."""
    project_id = _resolve_project(state)
    _emit(state.client.get_cluster_internal(
        project_id=project_id, name=_cluster_name(state, name),
    ))


@cluster.command("replica-set-hardware")
@click.argument("name", required=False)
@pass_state
def cluster_replica_set_hardware(state: CliState, name: str | None) -> None:
    """Show per-node hardware (requires internal privileges)."""
    project_id = _resolve_project(state)
    _emit(state.client.get_cluster_replica_set_hardware(
        project_id=project_id, name=_cluster_name(state, name),
    ))


@cluster.command("create")
@click.option("--name", required=True, help="Cluster name to create")
@click.option(
    "--config", "config_text", default=None,
    help="Cluster configuration in YAML, or JSON prefixed with '?'",
)
@pass_state
def cluster_create(state: CliState, name: str, config_text: str | None) -> None:
    """Create a cluster."""
    config = parse_cluster_config(config_text) if config_text else {}
    info = state.client.create_cluster(
        project_id=_resolve_project(state), name=name, config=config,
    )
    _emit(info)


@cluster.command("update")
@click.argument("name", required=False)
@click.option(
    "--config", "config_text", required=True,
    help="Fields to change in YAML, or JSON prefixed with '?'",
)
@pass_state
def cluster_update(state: CliState, name: str | None, config_text: str) -> None:
    """Modify a cluster."""
    project_id = _resolve_project(state)
    _emit(state.client.update_cluster(
        project_id=project_id,
        name=_cluster_name(state, name),
        config=parse_cluster_config(config_text),
    ))


@cluster.command("reboot")
@click.argument("name", required=False)
@pass_state
def cluster_reboot(state: CliState, name: str | None) -> None:
    """Reboot every node of a cluster (requires internal privileges)."""
    project_id = _resolve_project(state)
    name = _cluster_name(state, name)
    state.client.reboot_cluster(project_id=project_id, name=name)
    _done("REBOOTING", f"cluster {name}")


@cluster.command("failover")
@click.argument("name", required=False)
@pass_state
def cluster_failover(state: CliState, name: str | None) -> None:
    """Restart the primaries of a cluster."""
    project_id = _resolve_project(state)
    name = _cluster_name(state, name)
    state.client.failover_cluster(project_id=project_id, name=name)
    _done("FAILOVER", f"cluster {name}")


@cluster.command("delete")
@click.argument("name", required=False)
@pass_state
def cluster_delete(state: CliState, name: str | None) -> None:
    """Delete a cluster (succeeds if it is already being deleted)."""
    project_id = _resolve_project(state)
    name = _cluster_name(state, name)
    state.client.delete_cluster(project_id=project_id, name=name)
    _done("DELETING", f"cluster {name}")


@cluster.command("log")
@click.argument("hostname")
@click.argument("log_name", default=LogKind.MONGOD.value)
@pass_state
def cluster_log(state: CliState, hostname: str, log_name: str) -> None:
    """Print a decompressed log of one cluster host."""
    text = state.client.get_process_log(
        project_id=_resolve_project(state),
        hostname=hostname,
        name=_log_file(log_name),
        decompress=True,
    )
    click.echo(text, nl=False)


# --- accesslist ---


@cli.group()
@_project_option
def accesslist() -> None:
    """IP access list commands."""


@accesslist.command("list")
@pass_state
def accesslist_list(state: CliState) -> None:
    """List access list entries."""
    _emit(state.client.list_access_list_entries(project_id=_resolve_project(state)))


@accesslist.command("show")
@click.argument("entry")
@pass_state
def accesslist_show(state: CliState, entry: str) -> None:
    """Show one entry (IP address, CIDR block or security group)."""
    _emit(state.client.get_access_list_entry(
        project_id=_resolve_project(state), entry=entry,
    ))


@accesslist.command("add")
@click.argument("target")
@click.option("--comment", default=None, help="Comment stored with the entry")
@click.option("--delete-after", type=DATETIME, default=None, help="Expiry time (UTC)")
@pass_state
def accesslist_add(
    state: CliState,
    target: str,
    comment: str | None,
    delete_after: datetime | None,
) -> None:
    """Allow TARGET: an IP address, a CIDR block, or an AWS security group."""
    params: dict[str, Any] = {"comment": comment, "delete_after": delete_after}
    if IP_ADDRESS.match(target):
        params["ip_address"] = target
    elif CIDR_BLOCK.match(target):
        params["cidr_block"] = target
    elif target.startswith("sg-"):
        params["aws_security_group_id"] = target
    else:
        raise UsageError(f"Not an IP address, CIDR block or security group: {target}")
    _emit(state.client.create_access_list_entry(project_id=_resolve_project(state), **params))


@accesslist.command("delete")
@click.argument("entry")
@pass_state
def accesslist_delete(state: CliState, entry: str) -> None:
    """Remove one entry."""
    state.client.delete_access_list_entry(project_id=_resolve_project(state), entry=entry)
    _done("DELETED", f"access list entry {entry}")


# --- dbuser ---


@cli.group()
@_project_option
def dbuser() -> None:
    """Database user commands."""


@dbuser.command("list")
@pass_state
def dbuser_list(state: CliState) -> None:
    """List database users."""
    _emit(state.client.list_db_users(project_id=_resolve_project(state)))


@dbuser.command("create")
@click.argument("username")
@click.argument("password")
@click.option(
    "--role", "roles", multiple=True,
    help="ROLE@DATABASE (repeatable; default atlasAdmin@admin)",
)
@pass_state
def dbuser_create(
    state: CliState,
    username: str,
    password: str,
    roles: tuple[str, ...],
) -> None:
    """Create a database user."""
    parsed: list[DatabaseRole] | None = None
    if roles:
        parsed = []
        for role in roles:
            role_name, _, database = role.partition("@")
            parsed.append(DatabaseRole(role_name=role_name, database_name=database or "admin"))
    _emit(state.client.create_db_user(
        project_id=_resolve_project(state),
        username=username,
        password=password,
        roles=parsed,
    ))


# --- proc ---


@cli.group()
@_project_option
def proc() -> None:
    """Process commands."""


@proc.command("list")
@pass_state
def proc_list(state: CliState) -> None:
    """List processes (and cache their hostnames)."""
    infos = state.client.list_processes(project_id=_resolve_project(state))
    state.cache.record_identity("proc", infos, "hostname")
    _emit(infos)


@proc.command("measurements")
@click.argument("process_id")
@click.option("--granularity", required=True, help="e.g. PT1M, PT5M, PT1H")
@click.option("--period", default=None, help="e.g. PT1H, P1D")
@click.option("--start", "start_time", type=DATETIME, default=None, help="Start time (UTC)")
@click.option("--end", "end_time", type=DATETIME, default=None, help="End time (UTC)")
@click.option("--metric", "metrics", multiple=True, help="Metric name (repeatable)")
@pass_state
def proc_measurements(
    state: CliState,
    process_id: str,
    granularity: str,
    period: str | None,
    start_time: datetime | None,
    end_time: datetime | None,
    metrics: tuple[str, ...],
) -> None:
    """Show measurements of a process."""
    _emit(state.client.get_process_measurements(
        project_id=_resolve_project(state),
        process_id=process_id,
        granularity=granularity.upper(),
        period=period.upper() if period else None,
        start_time=start_time,
        end_time=end_time,
        metrics=list(metrics) or None,
    ))


def _process_hostname(state: CliState, host: str) -> str:
    return state.cache.lookup("proc", "hostname", host)


@proc.command("log")
@click.argument("host")
@click.argument("log_name", default=LogKind.MONGOD.value)
@click.option("--start", "start_time", type=DATETIME, default=None, help="Start time (UTC)")
@click.option("--end", "end_time", type=DATETIME, default=None, help="End time (UTC)")
@pass_state
def proc_log(
    state: CliState,
    host: str,
    log_name: str,
    start_time: datetime | None,
    end_time: datetime | None,
) -> None:
    """Print a decompressed process log. HOST is a process id or hostname."""
    text = state.client.get_process_log(
        project_id=_resolve_project(state),
        hostname=_process_hostname(state, host),
        name=_log_file(log_name),
        start_time=start_time,
        end_time=end_time,
        decompress=True,
    )
    click.echo(text, nl=False)


@proc.command("full-log")
@click.argument("host")
@click.argument("log_name", default=LogKind.MONGOD.value)
@click.option("--start", "start_time", type=DATETIME, required=True, help="Start time (UTC)")
@click.option("--window", default=60, type=int, help="Minutes per request")
@pass_state
def proc_full_log(
    state: CliState,
    host: str,
    log_name: str,
    start_time: datetime,
    window: int,
) -> None:
    """Print a process log from --start up to now, one window at a time."""
    chunks = download_full_log(
        state.client,
        project_id=_resolve_project(state),
        hostname=_process_hostname(state, host),
        name=_log_file(log_name),
        start_time=start_time,
        window=timedelta(minutes=window),
    )
    for text in chunks:
        click.echo(text, nl=False)


# --- logjob ---


@cli.group()
@_project_option
def logjob() -> None:
    """Log collection job commands."""


@logjob.command("create")
@click.option("--resource-type", default=None, type=click.Choice(["CLUSTER", "REPLICASET", "PROCESS"], case_sensitive=False))
@click.option("--resource-name", default=None, help="Replica set, cluster or process name")
@click.option("--redacted", is_flag=True, help="Redact log contents")
@click.option("--file-size", default=100_000_000, type=int, help="Bytes requested per file")
@click.option("--log-type", "log_types", multiple=True, type=click.Choice(LOG_TYPES), help="Log type (repeatable)")
@click.option("--wait", is_flag=True, help="Wait for completion and download")
@click.option("--output", default=".", help="Download destination (with --wait)")
@pass_state
def logjob_create(
    state: CliState,
    resource_type: str | None,
    resource_name: str | None,
    redacted: bool,
    file_size: int,
    log_types: tuple[str, ...],
    wait: bool,
    output: str,
) -> None:
    """Start a log collection job for --cluster or an explicit resource."""
    project_id = _resolve_project(state)
    cluster_name = None
    if state.cluster is not None:
        cluster_name = state.cache.lookup("cluster", "name", state.cluster)
    job = state.client.create_log_collection_job(
        project_id=project_id,
        cluster_name=cluster_name,
        resource_type=resource_type,
        resource_name=resource_name,
        redacted=redacted,
        file_size=file_size,
        log_types=list(log_types) or None,
    )
    if not wait:
        _emit(job)
        return
    _wait_and_download(state, project_id, job["id"], output, timeout=None)


@logjob.command("show")
@click.argument("job_id")
@pass_state
def logjob_show(state: CliState, job_id: str) -> None:
    """Show a log collection job."""
    _emit(state.client.get_log_collection_job(project_id=_resolve_project(state), id=job_id))


@logjob.command("list")
@pass_state
def logjob_list(state: CliState) -> None:
    """List log collection jobs."""
    _emit(state.client.list_log_collection_jobs(project_id=_resolve_project(state)))


@logjob.command("wait")
@click.argument("job_id")
@click.option("--output", default=".", help="Download destination")
@click.option("--timeout", default=None, type=float, help="Give up after this many seconds")
@pass_state
def logjob_wait(state: CliState, job_id: str, output: str, timeout: float | None) -> None:
    """Wait for a log collection job and download its archive."""
    _wait_and_download(state, _resolve_project(state), job_id, output, timeout)


def _wait_and_download(
    state: CliState,
    project_id: str,
    job_id: str,
    output: str,
    timeout: float | None,
) -> None:
    job = wait_for_log_collection_job(
        state.client,
        project_id,
        job_id,
        poll_interval=state.settings.poll_interval,
        deadline=timeout,
    )
    path = download_log_collection_job(state.client, job, Path(output))
    _done("DOWNLOADED", str(path))
