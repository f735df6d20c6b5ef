"""
IAM Module Functions
Creates IAM roles for the EKS control plane, autoscaled nodes, Fargate pods
and the cluster-admin role assumed by deploy jobs
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, Optional

NODE_POLICIES = [
    ("worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"),
    ("cni", "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"),
    ("registry", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"),
    ("ssm", "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore")
]


def service_trust_policy(service: str) -> str:
    """Trust policy letting an AWS service assume the role"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def create_cluster_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM role for EKS cluster

    Args:
        name: Role name prefix
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-cluster-role",
        assume_role_policy=service_trust_policy("eks.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-cluster-role",
            "Module": "iam"
        }
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-cluster-policy",
        policy_arn="arn:aws:iam::aws:policy/AmazonEKSClusterPolicy",
        role=role.name
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_node_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM role and instance profile for autoscaler-launched nodes

    Args:
        name: Role name prefix
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-node-role",
        assume_role_policy=service_trust_policy("ec2.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-node-role",
            "Module": "iam"
        }
    )

    policy_attachments = {}
    for policy_name, policy_arn in NODE_POLICIES:
        attachment = aws.iam.RolePolicyAttachment(
            f"{name}-node-{policy_name}-policy",
            policy_arn=policy_arn,
            role=role.name
        )
        policy_attachments[f"{policy_name}_policy"] = attachment

    instance_profile = aws.iam.InstanceProfile(
        f"{name}-node-instance-profile",
        role=role.name,
        tags={
            **tags,
            "Name": f"{name}-node-instance-profile",
            "Module": "iam"
        }
    )

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "instance_profile": instance_profile,
        "instance_profile_name": instance_profile.name,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_fargate_pod_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """Pod execution role shared by the cluster's Fargate profiles"""
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-fargate-role",
        assume_role_policy=service_trust_policy("eks-fargate-pods.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-fargate-role",
            "Module": "iam"
        }
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-fargate-policy",
        policy_arn="arn:aws:iam::aws:policy/AmazonEKSFargatePodExecutionRolePolicy",
        role=role.name
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_kubectl_role(name: str, account_id: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the cluster-admin role assumed by deploy jobs

    The role carries no AWS permissions of its own; it is mapped to cluster
    admin through an access entry. Any principal of the account that is
    granted sts:AssumeRole on it can use it.

    Args:
        name: Role name prefix
        account_id: AWS account trusted to assume the role
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-kubectl-role",
        assume_role_policy=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {"AWS": f"arn:aws:iam::{account_id}:root"}
            }]
        }),
        tags={
            **tags,
            "Name": f"{name}-kubectl-role",
            "Module": "iam"
        }
    )

    return {
        "role": role,
        "role_arn": role.arn,
        "role_name": role.name
    }


def get_existing_role(role_name: str) -> Dict[str, any]:
    """
    Get existing IAM role

    Args:
        role_name: Name of existing role

    Returns:
        Dict with role information
    """
    pulumi.log.warn(
        f"Referencing pre-existing IAM role '{role_name}'; it must exist in every account this stack is deployed to"
    )
    role = aws.iam.get_role(name=role_name)

    return {
        "role": None,
        "role_arn": pulumi.Output.from_input(role.arn),
        "role_name": pulumi.Output.from_input(role.name)
    }


def create_iam_resources(name: str,
                         account_id: str,
                         existing_role_names: Optional[Dict[str, str]] = None,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create or reference IAM resources for one environment's cluster

    Args:
        name: Cluster name
        account_id: AWS account id, trusted by the kubectl role
        existing_role_names: Optional map of role kind ("cluster", "fargate",
            "kubectl") to a pre-existing role name
        tags: Additional tags

    Returns:
        Dict with all IAM resources and outputs
    """
    tags = tags or {}
    existing_role_names = existing_role_names or {}

    def role_or_existing(kind, factory):
        if existing_role_names.get(kind):
            return get_existing_role(existing_role_names[kind])
        return factory()

    cluster_role_result = role_or_existing("cluster", lambda: create_cluster_role(name, tags))
    fargate_role_result = role_or_existing("fargate", lambda: create_fargate_pod_role(name, tags))
    kubectl_role_result = role_or_existing("kubectl", lambda: create_kubectl_role(name, account_id, tags))

    # Nodes always get their own role, the instance profile is built on it
    node_role_result = create_node_role(name, tags)

    return {
        "cluster_role_arn": cluster_role_result["role_arn"],
        "fargate_role_arn": fargate_role_result["role_arn"],
        "kubectl_role_arn": kubectl_role_result["role_arn"],
        "node_role_arn": node_role_result["role_arn"],
        "node_role_name": node_role_result["role_name"],
        "node_instance_profile_name": node_role_result["instance_profile_name"],
        # Keep references to resources for dependencies
        "_cluster_role": cluster_role_result.get("role"),
        "_fargate_role": fargate_role_result.get("role"),
        "_kubectl_role": kubectl_role_result.get("role"),
        "_node_role": node_role_result.get("role"),
        "_cluster_policy_attachment": cluster_role_result.get("policy_attachment"),
        "_node_policy_attachments": node_role_result.get("policy_attachments"),
        "_instance_profile": node_role_result.get("instance_profile")
    }
