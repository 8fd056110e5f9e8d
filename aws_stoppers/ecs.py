"""Stopper: Amazon ECS services and their running tasks.

Per cluster (concurrently) -> per service (concurrently):
  1. UpdateService desiredCount=0
  2. ListTasks for the whole cluster
  3. StopTask for every task returned

Step 2 is cluster-wide, not scoped to the service being processed. A cluster
with several services therefore lists and stops the same running tasks once
per service. StopTask on an already stopping task is accepted, so the overlap
only costs extra API calls.

The category's worker cap bounds in-flight ECS API calls for the whole stage,
across all three fan-out levels.
"""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from typing import Any, List, Optional

from aws_stoppers.common import _logger, _name_from_arn, _safe_workers
from core.errors import classify
from core.fanout import FAILED, Outcome, fan_out
from core.pagination import paginate

CATEGORY = "ecs"


class _Gated:
    """Wraps an ECS client so each API call holds one slot of a shared semaphore."""

    def __init__(self, ecs, width: Optional[int]):
        self._ecs = ecs
        self._gate = threading.BoundedSemaphore(width) if width else None

    def _slot(self):
        return self._gate if self._gate is not None else nullcontext()

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._ecs, name)
        if not callable(attr):
            return attr

        def call(*args: Any, **kwargs: Any) -> Any:
            with self._slot():
                return attr(*args, **kwargs)

        return call


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def list_clusters(ecs) -> List[str]:
    return paginate(ecs.list_clusters, page_key="clusterArns", token_key="nextToken")


def list_services(ecs, cluster_arn: str) -> List[str]:
    return paginate(
        ecs.list_services, page_key="serviceArns", token_key="nextToken", cluster=cluster_arn
    )


def list_running_tasks(ecs, cluster_arn: str) -> List[str]:
    """Tasks of the cluster whose desired status is RUNNING (the ListTasks default)."""
    return paginate(
        ecs.list_tasks, page_key="taskArns", token_key="nextToken", cluster=cluster_arn
    )


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------

def _stop_task(ecs, cluster_arn: str, task_arn: str) -> None:
    ecs.stop_task(cluster=cluster_arn, task=task_arn)


def _stop_service(
    ecs, cluster_arn: str, service_arn: str, log: logging.Logger, workers: Optional[int]
) -> List[Outcome]:
    ecs.update_service(cluster=cluster_arn, service=service_arn, desiredCount=0)

    # Cluster-wide on purpose, see module docstring.
    try:
        tasks = list_running_tasks(ecs, cluster_arn)
    except Exception as exc:  # pylint: disable=broad-except
        kind = classify(exc)
        log.error(f"[{CATEGORY}] list_tasks {cluster_arn} failed ({kind.value}): {exc}")
        return [Outcome(CATEGORY, "list_tasks", cluster_arn, FAILED, exc, kind)]

    log.info(
        f"[{CATEGORY}] {_name_from_arn(service_arn)}: desiredCount=0, "
        f"{len(tasks)} running task(s) in {_name_from_arn(cluster_arn)}"
    )
    return fan_out(
        tasks,
        lambda task_arn: _stop_task(ecs, cluster_arn, task_arn),
        category=CATEGORY,
        action="stop_task",
        max_workers=workers,
        logger=log,
    )


def _sweep_cluster(
    ecs, cluster_arn: str, log: logging.Logger, workers: Optional[int]
) -> List[Outcome]:
    services = list_services(ecs, cluster_arn)
    log.debug(f"[{CATEGORY}] {_name_from_arn(cluster_arn)}: {len(services)} service(s)")
    return fan_out(
        services,
        lambda service_arn: _stop_service(ecs, cluster_arn, service_arn, log, workers),
        category=CATEGORY,
        action="update_service",
        max_workers=workers,
        logger=log,
    )


def stop_ecs_services(
    ecs,
    logger: Optional[logging.Logger] = None,
    max_workers: Optional[int] = None,
) -> List[Outcome]:
    """Scale every service to zero and stop the cluster's running tasks.

    Returns one ``list_services`` outcome per cluster followed by the outcomes
    of its services and tasks. A failing cluster or service does not hold
    back the others. At most ``workers`` ECS calls are in flight at once.
    """
    log = _logger(logger)
    workers = _safe_workers(ecs, CATEGORY, max_workers)
    gated = _Gated(ecs, workers)
    clusters = list_clusters(gated)
    log.info(f"[{CATEGORY}] {len(clusters)} cluster(s) discovered")

    return fan_out(
        clusters,
        lambda cluster_arn: _sweep_cluster(gated, cluster_arn, log, workers),
        category=CATEGORY,
        action="list_services",
        max_workers=workers,
        logger=log,
    )
