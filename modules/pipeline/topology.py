"""
Release pipeline topology

The pipeline is described as plain data first and only then translated into
CodePipeline resources, so its ordering guarantees can be checked without a
cloud account:

    Source -> Build (one action per architecture, concurrent)
           -> Manifest (after every architecture build)
           -> <Env>Deploy for the first environment
           -> <Env>Approval -> <Env>Deploy for every further environment

`trace_execution` replays how the pipeline engine walks this topology for a
single commit, given which actions fail and which approvals are granted.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .buildspec import ARCHITECTURES, image_patch_operations, image_tag, short_sha

SOURCE_ARTIFACT = "source_output"

# Action kinds
SOURCE = "source"
ARCH_BUILD = "arch_build"
MANIFEST = "manifest"
DEPLOY = "deploy"
APPROVAL = "approval"

# Execution outcomes
SUCCEEDED = "Succeeded"
FAILED = "Failed"
AWAITING_APPROVAL = "AwaitingApproval"
REJECTED = "Rejected"


@dataclass(frozen=True)
class Action:
    """One pipeline action.

    Attributes:
        name: Action name, unique within its stage.
        category: CodePipeline action category (Source, Build, Approval).
        provider: CodePipeline action provider.
        kind: What the action does, one of the action kinds above.
        target: Architecture of a build or environment of a deploy/approval.
        project: Key of the CodeBuild project the action runs.
        inputs: Artifacts consumed.
        outputs: Artifacts produced.
        depends_on: "<Stage>.<Action>" names that must succeed first.
        run_order: Actions with the same run order in a stage run concurrently.
    """

    name: str
    category: str
    provider: str
    kind: str
    target: Optional[str] = None
    project: Optional[str] = None
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()
    run_order: int = 1


@dataclass(frozen=True)
class Stage:
    name: str
    actions: Tuple[Action, ...]

    def qualified(self, action: Action) -> str:
        return f"{self.name}.{action.name}"


@dataclass
class ExecutionTrace:
    """Outcome of walking the topology for one commit."""

    commit: str
    status: str = SUCCEEDED
    halted_stage: Optional[str] = None
    actions_run: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    deployments: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)


def stage_title(env: str) -> str:
    return env[:1].upper() + env[1:]


def build_release_topology(environments: Sequence[str],
                           architectures: Sequence[str] = ARCHITECTURES) -> Tuple[Stage, ...]:
    """
    Describe the release pipeline for the given environments, in order

    Raises:
        ValueError: if environments or architectures are empty
    """
    if not environments:
        raise ValueError("At least one deploy environment is required")
    if not architectures:
        raise ValueError("At least one architecture is required")

    stages = [
        Stage("Source", (
            Action("GitHub", "Source", "CodeStarSourceConnection", SOURCE, outputs=(SOURCE_ARTIFACT,)),
        )),
        Stage("Build", tuple(
            Action(arch, "Build", "CodeBuild", ARCH_BUILD, target=arch, project=f"build-{arch}",
                   inputs=(SOURCE_ARTIFACT,))
            for arch in architectures
        )),
        Stage("Manifest", (
            Action("Create", "Build", "CodeBuild", MANIFEST, project="manifest",
                   inputs=(SOURCE_ARTIFACT,),
                   depends_on=tuple(f"Build.{arch}" for arch in architectures)),
        )),
    ]

    for i, env in enumerate(environments):
        title = stage_title(env)
        if i > 0:
            stages.append(Stage(f"{title}Approval", (
                Action(f"ReleaseTo{title}", "Approval", "Manual", APPROVAL, target=env),
            )))
        stages.append(Stage(f"{title}Deploy", (
            Action("ToCluster", "Build", "CodeBuild", DEPLOY, target=env, project=f"deploy-{env}",
                   inputs=(SOURCE_ARTIFACT,), depends_on=("Manifest.Create",)),
        )))

    return validate_topology(stages)


def validate_topology(stages: Iterable[Stage]) -> Tuple[Stage, ...]:
    """
    Check ordering invariants of a topology

    Every consumed artifact and every dependency must come from a strictly
    earlier stage, so a stage can never start before what it needs exists.

    Raises:
        ValueError: on the first violated invariant
    """
    stages = tuple(stages)
    if not stages:
        raise ValueError("Pipeline has no stages")
    if any(action.kind == APPROVAL for action in stages[0].actions):
        raise ValueError("Pipeline cannot start with an approval")

    seen_stages = set()
    produced = set()
    completed = set()
    for stage in stages:
        if stage.name in seen_stages:
            raise ValueError(f"Duplicate stage name: {stage.name}")
        if not stage.actions:
            raise ValueError(f"Stage {stage.name} has no actions")
        seen_stages.add(stage.name)

        names = [action.name for action in stage.actions]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate action names in stage {stage.name}: {names}")

        for action in stage.actions:
            missing = [artifact for artifact in action.inputs if artifact not in produced]
            if missing:
                raise ValueError(f"{stage.qualified(action)} consumes {missing} before they are produced")
            early = [dep for dep in action.depends_on if dep not in completed]
            if early:
                raise ValueError(f"{stage.qualified(action)} depends on {early}, which do not run in an earlier stage")

        produced.update(artifact for action in stage.actions for artifact in action.outputs)
        completed.update(stage.qualified(action) for action in stage.actions)

    return stages


def trace_execution(stages: Sequence[Stage], commit: str,
                    repository: str = "repo",
                    failed: Iterable[str] = (),
                    approvals: Optional[Dict[str, bool]] = None,
                    database_urls: Optional[Dict[str, str]] = None) -> ExecutionTrace:
    """
    Walk the topology the way the pipeline engine runs it

    Stages run one after another. Inside a stage, actions sharing a run order
    run concurrently and all of them finish even if one fails; the stage then
    fails and the execution stops there. An approval with no decision leaves
    the execution waiting; a rejected one stops it.

    Args:
        stages: Topology from build_release_topology
        commit: Triggering commit identifier
        repository: Image repository used in tags
        failed: "<Stage>.<Action>" names whose run fails
        approvals: Approval stage name -> decision
        database_urls: Environment -> database URL patched into the workload

    Returns:
        ExecutionTrace describing what ran and where the execution ended

    Raises:
        ValueError: if commit is malformed or a deploy runs for an environment
            missing from database_urls
    """
    failed = set(failed)
    approvals = approvals or {}
    database_urls = database_urls or {}
    sha = short_sha(commit)
    trace = ExecutionTrace(commit=commit)

    for stage in stages:
        for run_order in sorted({action.run_order for action in stage.actions}):
            group = [action for action in stage.actions if action.run_order == run_order]
            stage_failed = False
            for action in group:
                qualified = stage.qualified(action)
                if action.kind == APPROVAL:
                    decision = approvals.get(stage.name)
                    if decision is None:
                        trace.status = AWAITING_APPROVAL
                        trace.halted_stage = stage.name
                        return trace
                    trace.actions_run.append(qualified)
                    if not decision:
                        trace.status = REJECTED
                        trace.halted_stage = stage.name
                        return trace
                    continue

                trace.actions_run.append(qualified)
                if qualified in failed:
                    stage_failed = True
                    continue

                if action.kind == ARCH_BUILD:
                    trace.images.append(image_tag(repository, sha, action.target))
                elif action.kind == MANIFEST:
                    trace.images.append(image_tag(repository, sha))
                elif action.kind == DEPLOY:
                    if action.target not in database_urls:
                        raise ValueError(f"No database URL for environment {action.target}")
                    trace.deployments[action.target] = image_patch_operations(
                        image_tag(repository, sha), database_urls[action.target]
                    )

            if stage_failed:
                trace.status = FAILED
                trace.halted_stage = stage.name
                return trace

    return trace
