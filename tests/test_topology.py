"""
Unit tests for the release pipeline topology and its execution order
"""

import unittest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.pipeline.buildspec import DATABASE_URL_PATH, IMAGE_PATH
from modules.pipeline.topology import (
    AWAITING_APPROVAL,
    FAILED,
    REJECTED,
    SUCCEEDED,
    Action,
    Stage,
    build_release_topology,
    trace_execution,
    validate_topology,
)

COMMIT = "a1b2c3d4e5f6"
DATABASE_URLS = {
    "test": "jdbc:mysql://test-db/petclinic",
    "prod": "jdbc:mysql://prod-db/petclinic",
}


def deployed(trace, env):
    return {operation["path"]: operation["value"] for operation in trace.deployments[env]}


class TestReleaseTopology(unittest.TestCase):
    """Test the shape of the release pipeline"""

    def setUp(self):
        self.stages = build_release_topology(["test", "prod"])

    def test_stage_order(self):
        self.assertEqual(
            [stage.name for stage in self.stages],
            ["Source", "Build", "Manifest", "TestDeploy", "ProdApproval", "ProdDeploy"]
        )

    def test_architecture_builds_run_concurrently(self):
        build = self.stages[1]

        self.assertEqual([action.name for action in build.actions], ["x86", "arm64"])
        self.assertEqual({action.run_order for action in build.actions}, {1})

    def test_manifest_waits_for_every_architecture(self):
        manifest = self.stages[2].actions[0]

        self.assertEqual(manifest.depends_on, ("Build.x86", "Build.arm64"))

    def test_first_environment_has_no_approval(self):
        approvals = [stage.name for stage in self.stages if stage.name.endswith("Approval")]

        self.assertEqual(approvals, ["ProdApproval"])
        self.assertEqual(self.stages[4].actions[0].name, "ReleaseToProd")

    def test_single_environment(self):
        stages = build_release_topology(["test"])

        self.assertEqual([stage.name for stage in stages], ["Source", "Build", "Manifest", "TestDeploy"])

    def test_empty_inputs_are_rejected(self):
        with self.assertRaises(ValueError):
            build_release_topology([])
        with self.assertRaises(ValueError):
            build_release_topology(["test"], architectures=())


class TestValidateTopology(unittest.TestCase):
    """Test ordering invariants"""

    source = Stage("Source", (Action("GitHub", "Source", "CodeStarSourceConnection", "source",
                                     outputs=("source_output",)),))

    def test_no_stages(self):
        with self.assertRaises(ValueError):
            validate_topology([])

    def test_approval_first(self):
        approval = Stage("Approval", (Action("Release", "Approval", "Manual", "approval"),))
        with self.assertRaises(ValueError):
            validate_topology([approval, self.source])

    def test_input_before_output(self):
        build = Stage("Build", (Action("x86", "Build", "CodeBuild", "arch_build", inputs=("source_output",)),))
        with self.assertRaises(ValueError):
            validate_topology([build, self.source])

    def test_dependency_in_same_stage(self):
        build = Stage("Build", (
            Action("x86", "Build", "CodeBuild", "arch_build", inputs=("source_output",)),
            Action("manifest", "Build", "CodeBuild", "manifest", inputs=("source_output",),
                   depends_on=("Build.x86",)),
        ))
        with self.assertRaises(ValueError):
            validate_topology([self.source, build])

    def test_duplicate_names(self):
        with self.assertRaises(ValueError):
            validate_topology([self.source, self.source])

        build = Stage("Build", (
            Action("x86", "Build", "CodeBuild", "arch_build"),
            Action("x86", "Build", "CodeBuild", "arch_build"),
        ))
        with self.assertRaises(ValueError):
            validate_topology([self.source, build])

    def test_empty_stage(self):
        with self.assertRaises(ValueError):
            validate_topology([self.source, Stage("Build", ())])


class TestTraceExecution(unittest.TestCase):
    """Test how a commit moves through the pipeline"""

    def setUp(self):
        self.stages = build_release_topology(["test", "prod"])

    def test_commit_halts_at_approval(self):
        trace = trace_execution(self.stages, COMMIT, database_urls=DATABASE_URLS)

        self.assertEqual(trace.status, AWAITING_APPROVAL)
        self.assertEqual(trace.halted_stage, "ProdApproval")
        self.assertEqual(trace.images, ["repo:a1b2c3d4-x86", "repo:a1b2c3d4-arm64", "repo:a1b2c3d4"])
        self.assertEqual(deployed(trace, "test"), {
            IMAGE_PATH: "repo:a1b2c3d4",
            DATABASE_URL_PATH: "jdbc:mysql://test-db/petclinic",
        })
        self.assertNotIn("prod", trace.deployments)

    def test_approved_release_reaches_production(self):
        trace = trace_execution(
            self.stages, COMMIT,
            approvals={"ProdApproval": True},
            database_urls=DATABASE_URLS
        )

        self.assertEqual(trace.status, SUCCEEDED)
        self.assertIsNone(trace.halted_stage)
        self.assertEqual(deployed(trace, "prod"), {
            IMAGE_PATH: "repo:a1b2c3d4",
            DATABASE_URL_PATH: "jdbc:mysql://prod-db/petclinic",
        })
        self.assertEqual(trace.actions_run[-2:], ["ProdApproval.ReleaseToProd", "ProdDeploy.ToCluster"])

    def test_rejected_release_never_reaches_production(self):
        trace = trace_execution(
            self.stages, COMMIT,
            approvals={"ProdApproval": False},
            database_urls=DATABASE_URLS
        )

        self.assertEqual(trace.status, REJECTED)
        self.assertEqual(trace.halted_stage, "ProdApproval")
        self.assertNotIn("ProdDeploy.ToCluster", trace.actions_run)

    def test_arm64_failure_skips_manifest(self):
        trace = trace_execution(self.stages, COMMIT, failed=["Build.arm64"])

        self.assertEqual(trace.status, FAILED)
        self.assertEqual(trace.halted_stage, "Build")
        self.assertEqual(trace.actions_run, ["Source.GitHub", "Build.x86", "Build.arm64"])
        self.assertEqual(trace.images, ["repo:a1b2c3d4-x86"])
        self.assertNotIn("Manifest.Create", trace.actions_run)

    def test_production_rollout_failure(self):
        trace = trace_execution(
            self.stages, COMMIT,
            failed=["ProdDeploy.ToCluster"],
            approvals={"ProdApproval": True},
            database_urls=DATABASE_URLS
        )

        self.assertEqual(trace.status, FAILED)
        self.assertEqual(trace.halted_stage, "ProdDeploy")
        self.assertEqual(trace.actions_run.count("ProdApproval.ReleaseToProd"), 1)
        self.assertNotIn("prod", trace.deployments)

    def test_deploy_without_database_url(self):
        with self.assertRaisesRegex(ValueError, "prod"):
            trace_execution(
                self.stages, COMMIT,
                approvals={"ProdApproval": True},
                database_urls={"test": DATABASE_URLS["test"]}
            )

    def test_invalid_commit(self):
        with self.assertRaises(ValueError):
            trace_execution(self.stages, "HEAD")


if __name__ == '__main__':
    unittest.main()
