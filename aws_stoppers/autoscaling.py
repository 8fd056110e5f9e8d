"""Stopper: EC2 Auto Scaling groups (desired capacity -> 0)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from aws_stoppers.common import _logger, _safe_workers
from core.fanout import Outcome, fan_out
from core.pagination import paginate

CATEGORY = "autoscaling"


def discover_autoscaling_groups(autoscaling) -> List[Dict[str, Any]]:
    """Every Auto Scaling group in the region. No eligibility filter."""
    return paginate(
        autoscaling.describe_auto_scaling_groups,
        page_key="AutoScalingGroups",
        token_key="NextToken",
    )


def _zero_capacity(autoscaling, group: Dict[str, Any]) -> None:
    autoscaling.update_auto_scaling_group(
        AutoScalingGroupName=group["AutoScalingGroupName"],
        DesiredCapacity=0,
    )


def stop_autoscaling_groups(
    autoscaling,
    logger: Optional[logging.Logger] = None,
    max_workers: Optional[int] = None,
) -> List[Outcome]:
    """Set DesiredCapacity=0 on every group, already-zero ones included."""
    log = _logger(logger)
    groups = discover_autoscaling_groups(autoscaling)
    log.info(f"[{CATEGORY}] {len(groups)} group(s) discovered")

    return fan_out(
        groups,
        lambda g: _zero_capacity(autoscaling, g),
        category=CATEGORY,
        action="set_desired_capacity",
        key=lambda g: g.get("AutoScalingGroupName", ""),
        max_workers=_safe_workers(autoscaling, CATEGORY, max_workers),
        logger=log,
    )
