"""Stoppers: Amazon RDS instances and Aurora / Multi-AZ DB clusters.

- Only resources whose status is exactly ``available`` are targeted; anything
  already stopped, stopping, or in a transitional / error state is left alone
  because StopDB* would reject it.
- ``StopDBInstance`` answers ``InvalidParameterCombination`` for instances that
  cannot be stopped on their own (read replicas, cluster members). That
  rejection is treated as a skip; every other error is a failure.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from aws_stoppers.common import _logger, _safe_workers
from autostop_toolset import config as const
from core.fanout import Outcome, fan_out
from core.pagination import paginate

__all__ = [
    "discover_db_instances",
    "discover_db_clusters",
    "stop_db_instances",
    "stop_db_clusters",
]

CATEGORY = "rds"


# ----------------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------------

def discover_db_instances(rds) -> List[str]:
    """Identifiers of DB instances in the stoppable status."""
    instances = paginate(
        rds.describe_db_instances, page_key="DBInstances", token_key="Marker"
    )
    return [
        i["DBInstanceIdentifier"]
        for i in instances
        if i.get("DBInstanceStatus") == const.RDS_STOPPABLE_STATUS
        and i.get("DBInstanceIdentifier")
    ]


def discover_db_clusters(rds) -> List[str]:
    """Identifiers of DB clusters whose Status is exactly 'available'."""
    clusters = paginate(
        rds.describe_db_clusters, page_key="DBClusters", token_key="Marker"
    )
    return [
        c["DBClusterIdentifier"]
        for c in clusters
        if c.get("Status") == const.RDS_CLUSTER_STOPPABLE_STATUS
        and c.get("DBClusterIdentifier")
    ]


# ----------------------------------------------------------------------------
# Shutdown
# ----------------------------------------------------------------------------

def _stop_instance(rds, db_id: str) -> None:
    rds.stop_db_instance(DBInstanceIdentifier=db_id)


def _stop_cluster(rds, cluster_id: str) -> None:
    rds.stop_db_cluster(DBClusterIdentifier=cluster_id)


def stop_db_instances(
    rds,
    logger: Optional[logging.Logger] = None,
    max_workers: Optional[int] = None,
    benign_codes: Iterable[str] = const.RDS_INSTANCE_BENIGN_CODES,
) -> List[Outcome]:
    """Issue StopDBInstance for every available instance, concurrently."""
    log = _logger(logger)
    ids = discover_db_instances(rds)
    log.info(f"[{CATEGORY}] {len(ids)} available DB instance(s)")

    return fan_out(
        ids,
        lambda db_id: _stop_instance(rds, db_id),
        category=CATEGORY,
        action="stop_db_instance",
        max_workers=_safe_workers(rds, CATEGORY, max_workers),
        benign_codes=benign_codes,
        logger=log,
    )


def stop_db_clusters(
    rds,
    logger: Optional[logging.Logger] = None,
    max_workers: Optional[int] = None,
) -> List[Outcome]:
    """Issue StopDBCluster for every available cluster, concurrently."""
    log = _logger(logger)
    ids = discover_db_clusters(rds)
    log.info(f"[{CATEGORY}] {len(ids)} available DB cluster(s)")

    return fan_out(
        ids,
        lambda cluster_id: _stop_cluster(rds, cluster_id),
        category=CATEGORY,
        action="stop_db_cluster",
        max_workers=_safe_workers(rds, CATEGORY, max_workers),
        logger=log,
    )
