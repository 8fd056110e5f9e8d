"""Stopper: Amazon EC2 instances.

Discovery walks every reservation page and flattens its instances. No state
filter is applied: the single StopInstances call (Force=True) is issued for
every instance found and is expected to be harmless for ones already stopped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from aws_stoppers.common import _logger
from core.fanout import Outcome, fan_out
from core.pagination import collect, page_reader

CATEGORY = "ec2"


def _instances_of(page: Dict[str, Any]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for reservation in page.get("Reservations", []) or []:
        out.extend(reservation.get("Instances", []) or [])
    return out


def discover_instances(ec2) -> List[Dict[str, Any]]:
    """All instances across all DescribeInstances pages, in page order."""
    return collect(
        page_reader(
            ec2.describe_instances,
            page_key="Reservations",
            token_key="NextToken",
            extract=_instances_of,
        )
    )


def _force_stop(ec2, ids: List[str]) -> None:
    ec2.stop_instances(InstanceIds=ids, Force=True)


def stop_instances(ec2, logger: Optional[logging.Logger] = None) -> List[Outcome]:
    """Force-stop every discovered instance with one batched call."""
    log = _logger(logger)
    instances = discover_instances(ec2)
    ids = [i["InstanceId"] for i in instances if i.get("InstanceId")]
    log.info(f"[{CATEGORY}] {len(ids)} instance(s) discovered")
    if not ids:
        return []

    # One batch, one outcome keyed by the joined id list.
    return fan_out(
        [ids],
        lambda batch: _force_stop(ec2, batch),
        category=CATEGORY,
        action="stop_instances",
        key=",".join,
        max_workers=1,
        logger=log,
    )
