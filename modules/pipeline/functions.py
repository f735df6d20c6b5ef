"""
Pipeline Module Functions
Translates the release topology into a CodePipeline with CodeBuild projects
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, List, Optional, Sequence

from .buildspec import (
    ARCHITECTURES,
    DEPLOY_DIR,
    ROLLOUT_TIMEOUT,
    WORKLOAD_NAME,
    arch_build_spec,
    deploy_spec,
    manifest_spec,
    render,
)
from .topology import (
    APPROVAL,
    ARCH_BUILD,
    DEPLOY,
    MANIFEST,
    SOURCE,
    Action,
    Stage,
    build_release_topology,
)

BUILD_IMAGES = {
    "LINUX_CONTAINER": "aws/codebuild/amazonlinux2-x86_64-standard:5.0",
    "ARM_CONTAINER": "aws/codebuild/amazonlinux2-aarch64-standard:3.0",
}

ECR_PULL_PUSH_ACTIONS = [
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
    "ecr:PutImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload"
]


def container_type(arch: str) -> str:
    return "LINUX_CONTAINER" if arch == "x86" else "ARM_CONTAINER"


def build_role_policy(repository_arn: str, bucket_arn: str,
                      cluster_arn: Optional[str] = None,
                      kubectl_role_arn: Optional[str] = None) -> str:
    """
    Permissions of a CodeBuild job

    Every job may write logs, read pipeline artifacts and pull/push the image
    repository. A deploy job may additionally describe its one cluster and
    assume that cluster's admin role.
    """
    statements = [
        {
            "Effect": "Allow",
            "Action": ["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"],
            "Resource": "*"
        },
        {
            "Effect": "Allow",
            "Action": ["s3:GetObject", "s3:GetObjectVersion", "s3:PutObject", "s3:GetBucketLocation"],
            "Resource": [bucket_arn, f"{bucket_arn}/*"]
        },
        {
            "Effect": "Allow",
            "Action": ["ecr:GetAuthorizationToken"],
            "Resource": "*"
        },
        {
            "Effect": "Allow",
            "Action": ECR_PULL_PUSH_ACTIONS,
            "Resource": repository_arn
        }
    ]
    if cluster_arn:
        statements.append({
            "Effect": "Allow",
            "Action": ["eks:DescribeCluster"],
            "Resource": cluster_arn
        })
    if kubectl_role_arn:
        statements.append({
            "Effect": "Allow",
            "Action": ["sts:AssumeRole"],
            "Resource": kubectl_role_arn
        })
    return json.dumps({"Version": "2012-10-17", "Statement": statements})


def pipeline_role_policy(bucket_arn: str, connection_arn: str, project_arns: List[str]) -> str:
    """Permissions of the pipeline itself"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["s3:GetObject", "s3:GetObjectVersion", "s3:PutObject", "s3:GetBucketVersioning"],
                "Resource": [bucket_arn, f"{bucket_arn}/*"]
            },
            {
                "Effect": "Allow",
                "Action": ["codestar-connections:UseConnection"],
                "Resource": connection_arn
            },
            {
                "Effect": "Allow",
                "Action": ["codebuild:BatchGetBuilds", "codebuild:StartBuild"],
                "Resource": project_arns
            }
        ]
    })


def create_source_connection(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the GitHub connection used by the source stage

    The connection is created in PENDING state and has to be completed once
    in the AWS console before the pipeline can fetch sources.
    """
    tags = tags or {}

    connection = aws.codestarconnections.Connection(
        f"{name}-github",
        name=f"{name}-github",
        provider_type="GitHub",
        tags={
            **tags,
            "Module": "pipeline"
        }
    )
    pulumi.log.info(f"Connection {name}-github must be approved in the console before the first pipeline run")

    return {
        "connection": connection,
        "connection_arn": connection.arn
    }


def create_artifact_bucket(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the S3 bucket carrying artifacts between stages

    Args:
        name: Resource name prefix
        tags: Additional tags

    Returns:
        Dict with bucket resource and outputs
    """
    tags = tags or {}

    bucket = aws.s3.Bucket(
        f"{name}-artifacts",
        force_destroy=True,
        tags={
            **tags,
            "Name": f"{name}-artifacts",
            "Module": "pipeline"
        }
    )

    aws.s3.BucketVersioning(
        f"{name}-artifacts-versioning",
        bucket=bucket.id,
        versioning_configuration=aws.s3.BucketVersioningVersioningConfigurationArgs(status="Enabled")
    )

    aws.s3.BucketServerSideEncryptionConfiguration(
        f"{name}-artifacts-encryption",
        bucket=bucket.id,
        rules=[aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
            apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                sse_algorithm="AES256"
            ),
            bucket_key_enabled=True
        )]
    )

    aws.s3.BucketPublicAccessBlock(
        f"{name}-artifacts-pab",
        bucket=bucket.id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True
    )

    return {
        "bucket": bucket,
        "bucket_name": bucket.bucket,
        "bucket_arn": bucket.arn
    }


def create_build_role(name: str, repository_arn: 'pulumi.Output[str]', bucket_arn: 'pulumi.Output[str]',
                      cluster_arn: 'pulumi.Output[str]' = None,
                      kubectl_role_arn: 'pulumi.Output[str]' = None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the service role of one CodeBuild project

    Args:
        name: Resource name prefix
        repository_arn: Image repository ARN
        bucket_arn: Artifact bucket ARN
        cluster_arn: Target cluster, for deploy jobs
        kubectl_role_arn: Target cluster's admin role, for deploy jobs
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-role",
        assume_role_policy=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {"Service": "codebuild.amazonaws.com"}
            }]
        }),
        tags={
            **tags,
            "Name": f"{name}-role",
            "Module": "pipeline"
        }
    )

    policy = aws.iam.Policy(
        f"{name}-policy",
        policy=pulumi.Output.all(repository_arn, bucket_arn, cluster_arn, kubectl_role_arn).apply(
            lambda args: build_role_policy(args[0], args[1], args[2], args[3])
        ),
        tags={
            **tags,
            "Module": "pipeline"
        }
    )

    attachment = aws.iam.RolePolicyAttachment(
        f"{name}-policy-attach",
        role=role.name,
        policy_arn=policy.arn
    )

    return {
        "role": role,
        "policy": policy,
        "attachment": attachment,
        "role_arn": role.arn
    }


def create_build_project(name: str, buildspec: str, role_arn: 'pulumi.Output[str]', arch: str,
                         compute_type: str, environment_variables: Dict[str, 'pulumi.Input[str]'],
                         privileged: bool = False, depends_on: List[pulumi.Resource] = None,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create a CodeBuild project fed by the pipeline

    Args:
        name: Project name
        buildspec: Rendered buildspec
        role_arn: Service role ARN
        arch: "x86" runs on x86_64 hosts, anything else on Graviton
        compute_type: CodeBuild compute type
        environment_variables: Plaintext variables injected into the job
        privileged: Run the Docker daemon in the build container
        depends_on: Resources the project waits for (role policy attachment)
        tags: Additional tags

    Returns:
        Dict with project resource and outputs
    """
    tags = tags or {}
    env_type = container_type(arch)

    project = aws.codebuild.Project(
        name,
        name=name,
        service_role=role_arn,
        artifacts=aws.codebuild.ProjectArtifactsArgs(type="CODEPIPELINE"),
        source=aws.codebuild.ProjectSourceArgs(type="CODEPIPELINE", buildspec=buildspec),
        environment=aws.codebuild.ProjectEnvironmentArgs(
            type=env_type,
            image=BUILD_IMAGES[env_type],
            compute_type=compute_type,
            privileged_mode=privileged,
            environment_variables=[
                aws.codebuild.ProjectEnvironmentEnvironmentVariableArgs(name=key, value=value, type="PLAINTEXT")
                for key, value in environment_variables.items()
            ]
        ),
        tags={
            **tags,
            "Name": name,
            "Module": "pipeline"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "project": project,
        "project_name": project.name,
        "project_arn": project.arn
    }


def create_pipeline_role(name: str, bucket_arn: 'pulumi.Output[str]', connection_arn: 'pulumi.Output[str]',
                         project_arns: List['pulumi.Output[str]'], tags: Dict[str, str] = None) -> Dict[str, any]:
    """Create the CodePipeline service role"""
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-pipeline-role",
        assume_role_policy=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {"Service": "codepipeline.amazonaws.com"}
            }]
        }),
        tags={
            **tags,
            "Name": f"{name}-pipeline-role",
            "Module": "pipeline"
        }
    )

    policy = aws.iam.Policy(
        f"{name}-pipeline-policy",
        policy=pulumi.Output.all(bucket_arn, connection_arn, pulumi.Output.all(*project_arns)).apply(
            lambda args: pipeline_role_policy(args[0], args[1], list(args[2]))
        ),
        tags={
            **tags,
            "Module": "pipeline"
        }
    )

    attachment = aws.iam.RolePolicyAttachment(
        f"{name}-pipeline-policy-attach",
        role=role.name,
        policy_arn=policy.arn
    )

    return {
        "role": role,
        "attachment": attachment,
        "role_arn": role.arn
    }


def action_configuration(action: Action, connection_arn, repository_id: str, branch: str,
                         projects: Dict[str, Dict[str, any]]) -> Dict[str, any]:
    """CodePipeline configuration block for one topology action"""
    if action.kind == SOURCE:
        return {
            "ConnectionArn": connection_arn,
            "FullRepositoryId": repository_id,
            "BranchName": branch,
            "DetectChanges": "true",
            "OutputArtifactFormat": "CODE_ZIP"
        }
    if action.kind == APPROVAL:
        return {"CustomData": f"Approve release to {action.target}"}
    return {"ProjectName": projects[action.project]["project_name"]}


def pipeline_stages(stages: Sequence[Stage], connection_arn, repository_id: str, branch: str,
                    projects: Dict[str, Dict[str, any]]) -> List[aws.codepipeline.PipelineStageArgs]:
    """Translate topology stages into CodePipeline stage arguments"""
    return [
        aws.codepipeline.PipelineStageArgs(
            name=stage.name,
            actions=[
                aws.codepipeline.PipelineStageActionArgs(
                    name=action.name,
                    category=action.category,
                    owner="AWS",
                    provider=action.provider,
                    version="1",
                    run_order=action.run_order,
                    input_artifacts=list(action.inputs) or None,
                    output_artifacts=list(action.outputs) or None,
                    configuration=action_configuration(action, connection_arn, repository_id, branch, projects)
                )
                for action in stage.actions
            ]
        )
        for stage in stages
    ]


def create_pipeline_resources(name: str,
                              environments: Sequence[str],
                              deploy_targets: Dict[str, Dict[str, any]],
                              repository_url: 'pulumi.Output[str]',
                              repository_arn: 'pulumi.Output[str]',
                              region: str,
                              account_id: str,
                              github_owner: str,
                              github_repo: str,
                              github_branch: str,
                              kubectl_version: str,
                              workload: str = WORKLOAD_NAME,
                              deploy_dir: str = DEPLOY_DIR,
                              rollout_timeout: str = ROLLOUT_TIMEOUT,
                              architectures: Sequence[str] = ARCHITECTURES,
                              tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the release pipeline

    Args:
        name: Pipeline name, used as resource prefix
        environments: Deploy environments, in release order
        deploy_targets: Environment -> dict with cluster_name, cluster_arn,
            kubectl_role_arn and database_url
        repository_url: Image repository URI
        repository_arn: Image repository ARN
        region: AWS region of the registry and clusters
        account_id: AWS account id
        github_owner: Source repository owner
        github_repo: Source repository name
        github_branch: Branch whose pushes trigger the pipeline
        kubectl_version: kubectl release installed by deploy jobs
        workload: Deployment waited on after apply
        deploy_dir: Kustomize directory applied to the cluster
        rollout_timeout: Rollout wait limit
        architectures: Image architectures built in parallel
        tags: Additional tags

    Returns:
        Dict with pipeline outputs

    Raises:
        ValueError: if an environment has no deploy target
    """
    tags = tags or {}

    stages = build_release_topology(environments, architectures)
    missing = [env for env in environments if env not in deploy_targets]
    if missing:
        raise ValueError(f"No deploy target for environments: {missing}")
    pulumi.log.info(f"Release pipeline {name}: {' -> '.join(stage.name for stage in stages)}")

    connection_result = create_source_connection(name, tags)
    bucket_result = create_artifact_bucket(name, tags)

    base_variables = {
        "IMAGE_REPO_URI": repository_url,
        "AWS_DEFAULT_REGION": region,
        "AWS_ACCOUNT_ID": account_id,
    }

    projects = {}
    for stage in stages:
        for action in stage.actions:
            if action.project is None:
                continue
            project_name = f"{name}-{action.project}"

            if action.kind == ARCH_BUILD:
                role_result = create_build_role(project_name, repository_arn, bucket_result["bucket_arn"], tags=tags)
                projects[action.project] = create_build_project(
                    project_name, render(arch_build_spec(action.target)), role_result["role_arn"],
                    arch=action.target, compute_type="BUILD_GENERAL1_LARGE",
                    environment_variables=base_variables, privileged=True,
                    depends_on=[role_result["attachment"]], tags=tags
                )
            elif action.kind == MANIFEST:
                role_result = create_build_role(project_name, repository_arn, bucket_result["bucket_arn"], tags=tags)
                projects[action.project] = create_build_project(
                    project_name, render(manifest_spec(architectures)), role_result["role_arn"],
                    arch="arm64", compute_type="BUILD_GENERAL1_SMALL",
                    environment_variables=base_variables,
                    depends_on=[role_result["attachment"]], tags=tags
                )
            elif action.kind == DEPLOY:
                target = deploy_targets[action.target]
                role_result = create_build_role(
                    project_name, repository_arn, bucket_result["bucket_arn"],
                    cluster_arn=target["cluster_arn"],
                    kubectl_role_arn=target["kubectl_role_arn"],
                    tags=tags
                )
                projects[action.project] = create_build_project(
                    project_name,
                    render(deploy_spec(kubectl_version, workload, deploy_dir, rollout_timeout)),
                    role_result["role_arn"],
                    arch="arm64", compute_type="BUILD_GENERAL1_SMALL",
                    environment_variables={
                        **base_variables,
                        "CLUSTER_NAME": target["cluster_name"],
                        "CLUSTER_ROLE_ARN": target["kubectl_role_arn"],
                        "MYSQL_URL": target["database_url"],
                    },
                    depends_on=[role_result["attachment"]], tags=tags
                )

    role_result = create_pipeline_role(
        name,
        bucket_result["bucket_arn"],
        connection_result["connection_arn"],
        [project["project_arn"] for project in projects.values()],
        tags
    )

    pipeline = aws.codepipeline.Pipeline(
        name,
        name=name,
        pipeline_type="V2",
        role_arn=role_result["role_arn"],
        artifact_stores=[aws.codepipeline.PipelineArtifactStoreArgs(
            location=bucket_result["bucket_name"],
            type="S3"
        )],
        stages=pipeline_stages(
            stages,
            connection_result["connection_arn"],
            f"{github_owner}/{github_repo}",
            github_branch,
            projects
        ),
        tags={
            **tags,
            "Name": name,
            "Module": "pipeline"
        },
        opts=pulumi.ResourceOptions(depends_on=[role_result["attachment"]])
    )

    return {
        "pipeline_name": pipeline.name,
        "pipeline_arn": pipeline.arn,
        "connection_arn": connection_result["connection_arn"],
        "stage_names": [stage.name for stage in stages],
        # Keep references to resources for dependencies
        "_pipeline": pipeline,
        "_projects": projects,
        "_bucket": bucket_result["bucket"],
        "_topology": stages
    }
