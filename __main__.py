"""
Pet Clinic on EKS
One network, cluster and database per environment, one image registry and one
release pipeline promoting every commit through the environments in order
"""
import pulumi
import pulumi_aws as aws

from config import get_config
from modules import (
    create_vpc_resources,
    create_iam_resources,
    create_eks_resources,
    create_addons_resources,
    create_database_resources,
    create_registry_resources,
    create_pipeline_resources,
)

config = get_config().validate()
account_id = aws.get_caller_identity().account_id

deploy_targets = {}

for env in config.environments:
    name = config.cluster_name(env)
    tags = config.environment_tags(env)
    pulumi.log.info(f"Creating environment {env} as {name}")

    # 1. Network
    vpc = create_vpc_resources(
        name,
        config.vpc_cidr,
        config.public_subnet_cidrs,
        config.private_subnet_cidrs,
        tags=tags
    )

    # 2. Roles
    iam = create_iam_resources(
        name,
        account_id,
        existing_role_names=config.existing_role_names,
        tags=tags
    )

    # 3. Cluster
    eks = create_eks_resources(
        name,
        config.cluster_version,
        iam,
        vpc["private_subnet_ids"],
        cluster_enabled_log_types=config.cluster_enabled_log_types,
        tags=tags
    )

    # 4. Autoscaling and add-ons
    addons = create_addons_resources(
        name,
        eks,
        iam,
        config.karpenter_version,
        enable_metrics_server=config.enable_metrics_server,
        enable_load_balancer_controller=config.enable_load_balancer_controller,
        load_balancer_controller_version=config.load_balancer_controller_version,
        vpc_id=vpc["vpc_id"],
        region=config.aws_region,
        tags=tags
    )

    # 5. Database, reachable from the cluster only
    database = create_database_resources(
        name,
        vpc["vpc_id"],
        vpc["private_subnet_ids"],
        eks["cluster_security_group_id"],
        engine_version=config.db_engine_version,
        instance_class=config.db_instance_class,
        db_name=config.db_name,
        username=config.db_username,
        port=config.db_port,
        allocated_storage=config.db_allocated_storage,
        tags=tags
    )

    deploy_targets[env] = {
        "cluster_name": eks["cluster_name"],
        "cluster_arn": eks["cluster_arn"],
        "kubectl_role_arn": eks["kubectl_role_arn"],
        "database_url": database["url"],
    }

    pulumi.export(f"{env}_cluster_name", eks["cluster_name"])
    pulumi.export(f"{env}_database_secret_name", database["secret_name"])
    pulumi.export(f"{env}_database_endpoint", database["endpoint"])
    pulumi.export(f"{env}_karpenter_role_arn", addons["karpenter_role_arn"])
    pulumi.export(f"{env}_karpenter_queue_name", addons["karpenter_queue_name"])
    pulumi.export(f"{env}_karpenter_instance_profile", addons["karpenter_instance_profile"])
    if addons["load_balancer_controller_role_arn"] is not None:
        pulumi.export(f"{env}_load_balancer_controller_role_arn", addons["load_balancer_controller_role_arn"])
    pulumi.export(f"{env}_kubeconfig_command",
        pulumi.Output.concat(
            "aws eks update-kubeconfig --region ", config.aws_region,
            " --name ", eks["cluster_name"],
            " --role-arn ", eks["kubectl_role_arn"]
        ))

# 6. Registry and release pipeline
registry = create_registry_resources(config.project_name, tags=config.common_tags)

pipeline = create_pipeline_resources(
    config.pipeline_name,
    config.environments,
    deploy_targets,
    registry["repository_url"],
    registry["repository_arn"],
    region=config.aws_region,
    account_id=account_id,
    github_owner=config.github_owner,
    github_repo=config.github_repo,
    github_branch=config.github_branch,
    kubectl_version=config.kubectl_version,
    workload=config.workload_name,
    deploy_dir=config.deploy_dir,
    rollout_timeout=config.rollout_timeout,
    tags=config.common_tags
)

# Exports
pulumi.export("image_repository_url", registry["repository_url"])
pulumi.export("pipeline_name", pipeline["pipeline_name"])
pulumi.export("pipeline_stages", pipeline["stage_names"])
pulumi.export("source_connection_arn", pipeline["connection_arn"])
