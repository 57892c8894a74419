#!/usr/bin/env python3
"""Demo: collect and download the logs of one Atlas cluster.

Lists the clusters of a project, starts a log collection job for the
chosen cluster (resolved to its replica set or sharded cluster), waits
for it to finish and saves the archive in the current directory.

Requirements:
    pip install -e .

Usage:
    export MCLI_PUBLIC_API_KEY=...
    export MCLI_PRIVATE_API_KEY=...
    python examples/demo_log_collection.py <project-id> <cluster-name>
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from mongo_cloud import LogCollectionError, MongoCloudClient, MongoCloudError
from mongo_cloud.logs.jobs import download_log_collection_job, wait_for_log_collection_job

# ANSI colors
GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
BOLD = "\033[1m"
RESET = "\033[0m"


def main() -> None:
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    project_id, cluster_name = sys.argv[1:]

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    with MongoCloudClient() as client:
        print(f"{BOLD}Clusters in {project_id}{RESET}")
        for cluster in client.list_clusters(project_id=project_id):
            print(f"  {CYAN}{cluster['name']:<24}{RESET} {cluster.get('state_name', '?')}")

        try:
            job = client.create_log_collection_job(
                project_id=project_id,
                cluster_name=cluster_name,
                file_size=10_000_000,
            )
            print(f"\nStarted log collection job {BOLD}{job['id']}{RESET}")

            job = wait_for_log_collection_job(client, project_id, job["id"], deadline=900)
            path = download_log_collection_job(client, job, Path.cwd())
        except LogCollectionError as exc:
            print(f"{RED}Log collection failed:{RESET} {exc}")
            sys.exit(1)

    print(f"{GREEN}Saved{RESET} {path}")


if __name__ == "__main__":
    try:
        main()
    except MongoCloudError as exc:
        print(f"{RED}{exc}{RESET}")
        sys.exit(1)
