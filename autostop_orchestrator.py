#!/usr/bin/env python3
"""
AutoStop - idle-period shutdown job for AWS compute resources.

Overview
--------
One stateless pass that discovers running compute resources in a region and
drives them to a stopped / zero-capacity state so they stop billing:

  1. Auto Scaling groups   -> DesiredCapacity = 0 (every group)
  2. EC2 instances         -> one StopInstances(Force=True) for all instances
  3. RDS DB clusters       -> StopDBCluster for clusters in 'available'
  4. RDS DB instances      -> StopDBInstance for instances in 'available'
                              (InvalidParameterCombination is skipped)
  5. ECS services / tasks  -> desiredCount = 0, then StopTask for running tasks

Stages run in that order; each stage fans out its commands concurrently and
is joined before the next stage starts. By default the first stage with a
failure ends the run by re-raising that failure. With continue-on-error every
stage runs and a single ShutdownError lists all failures at the end.

Nothing is restarted, persisted or priced. Triggering (EventBridge schedule,
cron...) and credentials belong to the hosting runtime.

Usage
-----
- Lambda: handler ``autostop_orchestrator.lambda_handler``.
- CLI:    ``python autostop_orchestrator.py --region eu-west-1``.
- Tune fan-out width and behaviour with the AUTOSTOP_* env vars
  (see autostop_toolset/config.py).
"""

#region Imports SECTION

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional

import boto3  # type: ignore

from autostop_toolset import config as settings
from autostop_toolset.config import SDK_CONFIG
from aws_stoppers import config as stoppers_config
from aws_stoppers import autoscaling as asg_stop
from aws_stoppers import ec2 as ec2_stop
from aws_stoppers import ecs as ecs_stop
from aws_stoppers import rds as rds_stop
from core.errors import ShutdownError, classify
from core.fanout import FAILED, Outcome, failed
#endregion

LOGGER = logging.getLogger("autostop")
LOGGER.addHandler(logging.NullHandler())


#region ENGINE SECTION

def init_clients(region: Optional[str] = None) -> Dict[str, Any]:
    """Create the boto3 clients used by the stages (once per process)."""
    region = region or settings.REGION or None
    return {
        name: boto3.client(name, region_name=region, config=SDK_CONFIG)
        for name in settings.SERVICES
    }


@dataclass(frozen=True)
class Stage:
    """One shutdown step: a stopper function bound to the client it needs.

    ``client`` doubles as the outcome category of the stage.
    """

    name: str
    client: str
    fn: Callable[..., List[Outcome]]


# Fixed order; categories are independent but the order is kept deterministic.
STAGES: List[Stage] = [
    Stage("autoscaling_groups", "autoscaling", asg_stop.stop_autoscaling_groups),
    Stage("ec2_instances", "ec2", ec2_stop.stop_instances),
    Stage("rds_clusters", "rds", rds_stop.stop_db_clusters),
    Stage("rds_instances", "rds", rds_stop.stop_db_instances),
    Stage("ecs_services", "ecs", ecs_stop.stop_ecs_services),
]


class StageProfiler:
    """
    Collects per-stage metrics (duration, command counts, ok/error) and logs them.
    """
    def __init__(self):
        self.records: list[dict[str, Any]] = []
        self.run_start = datetime.now(timezone.utc)

    def add(self, *, stage: str, seconds: float, outcomes: List[Outcome]):
        statuses = [o.status for o in outcomes]
        self.records.append({
            "Stage": stage,
            "Seconds": round(seconds, 3),
            "Commands": len(outcomes),
            "Skipped": statuses.count("skipped"),
            "Failed": statuses.count(FAILED),
            "EndedAtUTC": datetime.now(timezone.utc).isoformat(),
        })

    def log_summary(self, logger: Optional[logging.Logger] = None):
        log = logger or LOGGER
        if not self.records:
            log.info("[PROFILE] No stages ran.")
            return
        log.info("[PROFILE] %d stage(s) since %s:", len(self.records), self.run_start.isoformat())
        for rec in self.records:
            log.info("  %-20s  %6.2fs  commands=%-5d  skipped=%-4d  failed=%d",
                     rec["Stage"], rec["Seconds"], rec["Commands"],
                     rec["Skipped"], rec["Failed"])


def run_stage(profiler: StageProfiler,
              stage: Stage,
              clients: Dict[str, Any],
              logger: Optional[logging.Logger] = None) -> List[Outcome]:
    """
    Run one stage and time it. A discovery error (the stopper raising before
    it could fan out) is turned into a single failed outcome for the stage,
    filed under the same category as the stage's command outcomes.
    """
    log = logger or LOGGER
    t0 = perf_counter()
    try:
        outcomes = stage.fn(clients[stage.client], logger=log)
    except Exception as exc:  # pylint: disable=broad-except
        log.error(f"[{stage.name}] discovery failed: {exc}")
        outcomes = [Outcome(stage.client, "discover", "*", FAILED, exc, classify(exc))]
    dt = perf_counter() - t0
    profiler.add(stage=stage.name, seconds=dt, outcomes=outcomes)
    log.info("[PROFILE] %-20s  %6.2fs  commands=%d  failed=%d",
             stage.name, dt, len(outcomes), len(failed(outcomes)))
    return outcomes


def run_autostop(clients: Dict[str, Any],
                 *,
                 continue_on_error: Optional[bool] = None,
                 profiler: Optional[StageProfiler] = None,
                 stages: Optional[List[Stage]] = None,
                 logger: Optional[logging.Logger] = None) -> List[Outcome]:
    """
    Run every stage in order and return all outcomes.

    A stage is always joined before its failures are looked at, so every
    command of the stage has been issued. Then:
      - halt mode (default): re-raise the stage's first failure; later stages
        do not run.
      - continue mode: keep going and raise ShutdownError after the last stage.
    """
    log = logger or LOGGER
    keep_going = settings.CONTINUE_ON_ERROR if continue_on_error is None else continue_on_error
    profiler = profiler or StageProfiler()
    stoppers_config.setup(
        logger=log,
        max_workers={c: settings.workers_for(c) for c in settings.SERVICES},
    )

    all_outcomes: List[Outcome] = []
    failures: List[Outcome] = []
    try:
        for stage in stages or STAGES:
            outcomes = run_stage(profiler, stage, clients, logger=log)
            all_outcomes.extend(outcomes)
            stage_failures = failed(outcomes)
            if not stage_failures:
                continue
            for f in stage_failures:
                log.error(f"[{stage.name}] {f.describe()}")
            if not keep_going:
                raise stage_failures[0].error  # type: ignore[misc]
            failures.extend(stage_failures)
    finally:
        profiler.log_summary(log)

    if failures:
        raise ShutdownError(failures)
    return all_outcomes

#endregion


#region ENTRY POINTS

def _configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=settings.LOG_FORMAT,
    )


def run() -> None:
    """Zero-argument entry point: stop everything in the configured region."""
    _configure_logging()
    clients = init_clients()
    run_autostop(clients)
    LOGGER.info("[autostop] run complete")


def lambda_handler(event: Any = None, context: Any = None) -> None:  # pylint: disable=unused-argument
    """AWS Lambda entry point; failures propagate to the Lambda runtime."""
    run()


def _parse_args(argv: List[str]) -> argparse.Namespace:
    """Parse command-line arguments for a manual run."""
    parser = argparse.ArgumentParser(
        description=(
            "Stop EC2 instances, RDS instances/clusters and ECS services, and scale "
            "Auto Scaling groups to zero in one region."
        )
    )
    parser.add_argument(
        "--region",
        default=settings.REGION or None,
        help="AWS region (default: AUTOSTOP_REGION / AWS_REGION).",
    )
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        default=settings.CONTINUE_ON_ERROR,
        help="Run every stage even if an earlier one failed.",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint. Returns process exit code."""
    args = _parse_args(list(sys.argv[1:] if argv is None else argv))
    _configure_logging(args.log_level)
    try:
        run_autostop(init_clients(args.region), continue_on_error=args.continue_on_error)
    except ShutdownError as err:
        LOGGER.error(f"[main] {err}")
        return 1
    except Exception as err:  # pylint: disable=broad-except
        LOGGER.exception(f"[main] Fatal error: {err}")
        return 1
    return 0

#endregion


if __name__ == "__main__":
    sys.exit(main())
