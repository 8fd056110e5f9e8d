"""Offline tests for :mod:`autostop_orchestrator`.

Fake boto3-like clients (see ``aws_stoppers/tests/fake_aws.py``) are injected
in place of real clients, so no credentials or network are needed.

Test coverage highlights:
- Stage order is fixed and every stage is joined before the next one.
- Halt mode re-raises the first failure and skips later stages.
- Continue mode runs every stage and raises one ShutdownError.
- Benign RDS rejections never fail a run.
- A second run against already stopped resources is clean.
- Entry points (``run``, ``lambda_handler``, ``main``) wire clients and exit codes.

Run with::

    python -m pytest test_autostop_orchestrator.py
"""

from __future__ import annotations

import logging
import unittest
from typing import Any, Dict
from unittest import mock

import autostop_orchestrator as orchestrator
from aws_stoppers.tests.fake_aws import (
    FakeAutoScaling,
    FakeEC2,
    FakeECS,
    FakeRDS,
    client_error,
)
from core.errors import PaginationError, ShutdownError


def _fleet() -> Dict[str, Any]:
    """One resource of every kind, all running."""
    return {
        "autoscaling": FakeAutoScaling([[{"AutoScalingGroupName": "web", "DesiredCapacity": 2}]]),
        "ec2": FakeEC2([[{"Instances": [{"InstanceId": "i-1"}, {"InstanceId": "i-2"}]}]]),
        "rds": FakeRDS(
            instance_pages=[[
                {"DBInstanceIdentifier": "db-primary", "DBInstanceStatus": "available"},
                {"DBInstanceIdentifier": "db-replica", "DBInstanceStatus": "available"},
            ]],
            cluster_pages=[[{"DBClusterIdentifier": "aurora", "Status": "available"}]],
        ),
        "ecs": FakeECS({
            "arn:cluster/a": {"services": ["arn:service/a/web"], "tasks": ["arn:task/a/1"]},
        }),
    }


class _Recorder:
    """Stage stand-in that records the order it ran in."""

    def __init__(self, log, name, error=None):
        self.log, self.name, self.error = log, name, error

    def __call__(self, client, logger=None):
        self.log.append(self.name)
        if self.error is not None:
            raise self.error
        return []


class TestStageOrder(unittest.TestCase):
    def test_default_stage_order(self):
        self.assertEqual(
            [s.name for s in orchestrator.STAGES],
            ["autoscaling_groups", "ec2_instances", "rds_clusters",
             "rds_instances", "ecs_services"],
        )

    def test_full_run_stops_everything(self):
        clients = _fleet()
        clients["rds"].fail_on(
            "stop_db_instance", "db-replica", client_error("InvalidParameterCombination")
        )

        outcomes = orchestrator.run_autostop(clients, continue_on_error=False)

        self.assertTrue(all(o.ok for o in outcomes))
        self.assertEqual(clients["autoscaling"].capacity, {"web": 0})
        self.assertEqual(clients["ec2"].state, {"i-1": "stopped", "i-2": "stopped"})
        self.assertEqual(len(clients["rds"].called("stop_db_cluster")), 1)
        self.assertEqual(
            sorted(c["DBInstanceIdentifier"] for c in clients["rds"].called("stop_db_instance")),
            ["db-primary", "db-replica"],
        )
        self.assertEqual(clients["ecs"].desired, {"arn:service/a/web": 0})
        self.assertEqual(clients["ecs"].stopped, ["arn:task/a/1"])
        skipped = [o.resource_id for o in outcomes if o.status == "skipped"]
        self.assertEqual(skipped, ["db-replica"])


class TestFailurePolicy(unittest.TestCase):
    def test_halt_mode_reraises_first_failure_and_stops(self):
        clients = _fleet()
        denied = client_error("AccessDenied", "StopDBCluster", status=403)
        clients["rds"].fail_on("stop_db_cluster", "aurora", denied)

        with self.assertRaises(Exception) as ctx:
            orchestrator.run_autostop(clients, continue_on_error=False)

        self.assertIs(ctx.exception, denied)
        # stages before the failure ran, later stages did not
        self.assertEqual(clients["autoscaling"].capacity, {"web": 0})
        self.assertEqual(clients["rds"].called("describe_db_instances"), [])
        self.assertEqual(clients["ecs"].calls, [])

    def test_continue_mode_runs_all_stages_then_aggregates(self):
        clients = _fleet()
        clients["rds"].fail_on("stop_db_cluster", "aurora", client_error("AccessDenied"))
        clients["ecs"].fail_on("stop_task", "arn:task/a/1", client_error("ClusterNotFoundException"))

        with self.assertRaises(ShutdownError) as ctx:
            orchestrator.run_autostop(clients, continue_on_error=True)

        failures = ctx.exception.failures
        self.assertEqual(
            [(f.category, f.resource_id) for f in failures],
            [("rds", "aurora"), ("ecs", "arn:task/a/1")],
        )
        self.assertEqual(clients["ecs"].desired, {"arn:service/a/web": 0})
        self.assertEqual(len(clients["rds"].called("stop_db_instance")), 2)

    def test_discovery_error_is_a_stage_failure(self):
        log = []
        boom = PaginationError("tok", 2)
        stages = [
            orchestrator.Stage("first", "ec2", _Recorder(log, "first")),
            orchestrator.Stage("broken", "ec2", _Recorder(log, "broken", boom)),
            orchestrator.Stage("last", "ec2", _Recorder(log, "last")),
        ]

        with self.assertRaises(PaginationError):
            orchestrator.run_autostop({"ec2": None}, continue_on_error=False, stages=stages)
        self.assertEqual(log, ["first", "broken"])

        log.clear()
        with self.assertRaises(ShutdownError) as ctx:
            orchestrator.run_autostop({"ec2": None}, continue_on_error=True, stages=stages)
        self.assertEqual(log, ["first", "broken", "last"])
        self.assertEqual(ctx.exception.failures[0].action, "discover")
        self.assertEqual(ctx.exception.failures[0].category, "ec2")

    def test_discovery_and_command_failures_share_category(self):
        clients = _fleet()
        clients["rds"].fail_on("describe_db_clusters", "", client_error("AccessDenied"))
        clients["rds"].fail_on("stop_db_instance", "db-primary", client_error("AccessDenied"))

        with self.assertRaises(ShutdownError) as ctx:
            orchestrator.run_autostop(clients, continue_on_error=True)

        self.assertEqual(
            [(f.category, f.action) for f in ctx.exception.failures],
            [("rds", "discover"), ("rds", "stop_db_instance")],
        )
        self.assertIn("failed in: rds", str(ctx.exception))

    def test_env_default_used_when_flag_not_given(self):
        clients = _fleet()
        clients["autoscaling"].fail_on("update_auto_scaling_group", "web",
                                       client_error("ValidationError"))
        with mock.patch.object(orchestrator.settings, "CONTINUE_ON_ERROR", True):
            with self.assertRaises(ShutdownError):
                orchestrator.run_autostop(clients)
        self.assertEqual(len(clients["ecs"].called("update_service")), 1)


class TestIdempotence(unittest.TestCase):
    def test_second_run_is_clean(self):
        clients = _fleet()
        orchestrator.run_autostop(clients)
        second = orchestrator.run_autostop(clients)

        self.assertTrue(all(o.ok for o in second))
        # VMs and ASGs are re-issued unconditionally; RDS has nothing left to stop
        self.assertEqual(len(clients["ec2"].called("stop_instances")), 2)
        self.assertEqual(len(clients["autoscaling"].called("update_auto_scaling_group")), 2)
        self.assertEqual(len(clients["rds"].called("stop_db_instance")), 2)
        self.assertEqual(len(clients["rds"].called("stop_db_cluster")), 1)


class TestProfiler(unittest.TestCase):
    def test_profiler_records_each_stage(self):
        profiler = orchestrator.StageProfiler()
        orchestrator.run_autostop(_fleet(), profiler=profiler)
        self.assertEqual(
            [r["Stage"] for r in profiler.records],
            [s.name for s in orchestrator.STAGES],
        )
        ecs = profiler.records[-1]
        self.assertEqual((ecs["Commands"], ecs["Failed"]), (3, 0))

    def test_log_summary_without_records(self):
        with self.assertLogs("autostop", level=logging.INFO) as cap:
            orchestrator.StageProfiler().log_summary()
        self.assertIn("No stages ran", cap.output[0])


class TestEntryPoints(unittest.TestCase):
    def test_lambda_handler_returns_none(self):
        clients = _fleet()
        with mock.patch.object(orchestrator, "init_clients", return_value=clients):
            self.assertIsNone(orchestrator.lambda_handler({}, None))
        self.assertEqual(clients["autoscaling"].capacity, {"web": 0})

    def test_run_propagates_failure(self):
        clients = _fleet()
        clients["ec2"].fail_on("stop_instances", "i-1,i-2", client_error("UnauthorizedOperation"))
        with mock.patch.object(orchestrator, "init_clients", return_value=clients):
            with self.assertRaises(Exception) as ctx:
                orchestrator.run()
        self.assertIn("UnauthorizedOperation", str(ctx.exception))

    def test_main_exit_codes(self):
        with mock.patch.object(orchestrator, "init_clients", return_value=_fleet()) as init:
            self.assertEqual(orchestrator.main(["--region", "eu-west-1"]), 0)
        init.assert_called_once_with("eu-west-1")

        broken = _fleet()
        broken["rds"].fail_on("stop_db_cluster", "aurora", client_error("AccessDenied"))
        with mock.patch.object(orchestrator, "init_clients", return_value=broken):
            self.assertEqual(orchestrator.main(["--continue-on-error"]), 1)
            self.assertEqual(orchestrator.main([]), 1)

    def test_init_clients_builds_every_service(self):
        with mock.patch.object(orchestrator.boto3, "client") as factory:
            clients = orchestrator.init_clients("eu-west-3")
        self.assertEqual(sorted(clients), ["autoscaling", "ec2", "ecs", "rds"])
        for call in factory.call_args_list:
            self.assertEqual(call.kwargs["region_name"], "eu-west-3")
            self.assertIs(call.kwargs["config"], orchestrator.SDK_CONFIG)


if __name__ == "__main__":
    unittest.main(verbosity=2)
