"""
EKS Module Functions
Creates the EKS control plane, its Fargate compute profiles, identity
mappings and core add-ons
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, List

# Namespaces served by Fargate; workload namespaces never match
FARGATE_NAMESPACES = ["karpenter", "kube-system"]

# Thumbprint of the root CA behind every regional EKS OIDC issuer
EKS_OIDC_THUMBPRINT = "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"

CLUSTER_ADMIN_POLICY = "arn:aws:eks::aws:cluster-access-policy/AmazonEKSClusterAdminPolicy"


def create_cloudwatch_log_group(name: str, retention_days: int = 30, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create CloudWatch log group for EKS control-plane logs

    Args:
        name: Cluster name
        retention_days: Log retention in days
        tags: Additional tags

    Returns:
        Dict with log group resource and outputs
    """
    tags = tags or {}

    log_group = aws.cloudwatch.LogGroup(
        f"{name}-eks-log-group",
        name=f"/aws/eks/{name}/cluster",
        retention_in_days=retention_days,
        tags={
            **tags,
            "Name": f"{name}-eks-log-group",
            "Module": "eks"
        }
    )

    return {
        "log_group": log_group,
        "log_group_name": log_group.name
    }


def create_secrets_key(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create KMS key encrypting Kubernetes secrets at rest

    Args:
        name: Cluster name
        tags: Additional tags

    Returns:
        Dict with key resource and ARN
    """
    tags = tags or {}

    kms_key = aws.kms.Key(
        f"{name}-eks-kms-key",
        description=f"EKS Secret Encryption Key for {name}",
        enable_key_rotation=True,
        tags={
            **tags,
            "Name": f"{name}-eks-kms-key",
            "Module": "eks"
        }
    )

    aws.kms.Alias(
        f"{name}-eks-kms-alias",
        name=f"alias/{name}-eks",
        target_key_id=kms_key.key_id
    )

    return {
        "kms_key": kms_key,
        "kms_key_arn": kms_key.arn
    }


def create_eks_cluster(name: str, version: str, role_arn: pulumi.Output[str],
                       subnet_ids: List[pulumi.Output[str]],
                       kms_key_arn: pulumi.Output[str],
                       enabled_log_types: List[str] = None,
                       depends_on: List[pulumi.Resource] = None,
                       tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS cluster in the private subnets

    Args:
        name: Cluster name
        version: Kubernetes version
        role_arn: IAM role ARN for cluster
        subnet_ids: Private subnet IDs
        kms_key_arn: KMS key ARN for secrets encryption
        enabled_log_types: List of enabled log types
        depends_on: Resources the cluster waits for (log group, role policies)
        tags: Additional tags

    Returns:
        Dict with cluster resource and outputs
    """
    tags = tags or {}
    enabled_log_types = enabled_log_types or ["api", "audit", "authenticator"]

    cluster = aws.eks.Cluster(
        f"{name}-cluster",
        name=name,
        version=version,
        role_arn=role_arn,
        vpc_config=aws.eks.ClusterVpcConfigArgs(
            subnet_ids=subnet_ids,
            endpoint_private_access=True,
            endpoint_public_access=True
        ),
        access_config=aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API_AND_CONFIG_MAP",
            bootstrap_cluster_creator_admin_permissions=True
        ),
        enabled_cluster_log_types=enabled_log_types,
        encryption_config=aws.eks.ClusterEncryptionConfigArgs(
            provider=aws.eks.ClusterEncryptionConfigProviderArgs(
                key_arn=kms_key_arn
            ),
            resources=["secrets"]
        ),
        tags={
            **tags,
            "Name": f"{name}-cluster",
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=[d for d in (depends_on or []) if d is not None])
    )

    return {
        "cluster": cluster,
        "cluster_name": cluster.name,
        "cluster_arn": cluster.arn,
        "cluster_endpoint": cluster.endpoint,
        "cluster_version": cluster.version,
        "cluster_certificate_authority_data": cluster.certificate_authority.data,
        "cluster_security_group_id": cluster.vpc_config.cluster_security_group_id,
        "oidc_issuer": cluster.identities[0].oidcs[0].issuer
    }


def create_oidc_provider(name: str, issuer_url: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Register the cluster's OIDC issuer so service accounts can assume IAM roles

    Args:
        name: Cluster name
        issuer_url: Cluster OIDC issuer URL
        tags: Additional tags

    Returns:
        Dict with provider resource, ARN and issuer host
    """
    tags = tags or {}

    provider = aws.iam.OpenIdConnectProvider(
        f"{name}-oidc-provider",
        url=issuer_url,
        client_id_lists=["sts.amazonaws.com"],
        thumbprint_lists=[EKS_OIDC_THUMBPRINT],
        tags={
            **tags,
            "Name": f"{name}-oidc-provider",
            "Module": "eks"
        }
    )

    return {
        "oidc_provider": provider,
        "oidc_provider_arn": provider.arn,
        "oidc_issuer_host": issuer_url.apply(lambda url: url.replace("https://", ""))
    }


def create_fargate_profiles(name: str, cluster_name: pulumi.Output[str], pod_role_arn: pulumi.Output[str],
                            subnet_ids: List[pulumi.Output[str]], namespaces: List[str] = None,
                            tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create one Fargate profile per namespace selector

    Only the autoscaler's namespace and kube-system run on Fargate, so
    application pods never land on these compute profiles.

    Args:
        name: Cluster name
        cluster_name: EKS cluster name output
        pod_role_arn: Fargate pod execution role ARN
        subnet_ids: Private subnet IDs
        namespaces: Namespaces to select, defaults to FARGATE_NAMESPACES
        tags: Additional tags

    Returns:
        Dict with profiles keyed by namespace
    """
    tags = tags or {}
    namespaces = namespaces or FARGATE_NAMESPACES

    profiles = {}
    previous = None
    for namespace in namespaces:
        # EKS rejects concurrent profile operations on one cluster
        profiles[namespace] = aws.eks.FargateProfile(
            f"{name}-fargate-{namespace}",
            cluster_name=cluster_name,
            fargate_profile_name=namespace,
            pod_execution_role_arn=pod_role_arn,
            subnet_ids=subnet_ids,
            selectors=[aws.eks.FargateProfileSelectorArgs(namespace=namespace)],
            tags={
                **tags,
                "Name": f"{name}-fargate-{namespace}",
                "Module": "eks"
            },
            opts=pulumi.ResourceOptions(depends_on=[previous]) if previous else None
        )
        previous = profiles[namespace]

    return {"fargate_profiles": profiles}


def create_access_entries(name: str, cluster_name: pulumi.Output[str],
                          node_role_arn: pulumi.Output[str],
                          kubectl_role_arn: pulumi.Output[str]) -> Dict[str, any]:
    """
    Map cloud identities to Kubernetes identities

    Autoscaled nodes join as system:nodes; the kubectl role is cluster admin.

    Args:
        name: Cluster name
        cluster_name: EKS cluster name output
        node_role_arn: IAM role of autoscaled nodes
        kubectl_role_arn: IAM role assumed by deploy jobs

    Returns:
        Dict with access entry resources
    """
    node_access = aws.eks.AccessEntry(
        f"{name}-node-access",
        cluster_name=cluster_name,
        principal_arn=node_role_arn,
        type="EC2_LINUX"
    )

    kubectl_access = aws.eks.AccessEntry(
        f"{name}-kubectl-access",
        cluster_name=cluster_name,
        principal_arn=kubectl_role_arn,
        type="STANDARD"
    )

    kubectl_admin = aws.eks.AccessPolicyAssociation(
        f"{name}-kubectl-admin",
        cluster_name=cluster_name,
        principal_arn=kubectl_role_arn,
        policy_arn=CLUSTER_ADMIN_POLICY,
        access_scope=aws.eks.AccessPolicyAssociationAccessScopeArgs(type="cluster"),
        opts=pulumi.ResourceOptions(depends_on=[kubectl_access])
    )

    return {
        "node_access": node_access,
        "kubectl_access": kubectl_access,
        "kubectl_admin": kubectl_admin
    }


def create_eks_addons(name: str, cluster_name: pulumi.Output[str], depends_on: List[pulumi.Resource] = None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS managed add-ons, with CoreDNS scheduled on Fargate

    Args:
        name: Cluster name
        cluster_name: EKS cluster name output
        depends_on: Fargate profiles CoreDNS waits for
        tags: Additional tags

    Returns:
        Dict with addon resources
    """
    tags = tags or {}
    addons = {}

    addons["vpc_cni"] = aws.eks.Addon(
        f"{name}-vpc-cni-addon",
        cluster_name=cluster_name,
        addon_name="vpc-cni",
        resolve_conflicts_on_create="OVERWRITE",
        resolve_conflicts_on_update="OVERWRITE",
        tags={
            **tags,
            "Name": f"{name}-vpc-cni-addon",
            "Module": "eks"
        }
    )

    addons["kube_proxy"] = aws.eks.Addon(
        f"{name}-kube-proxy-addon",
        cluster_name=cluster_name,
        addon_name="kube-proxy",
        resolve_conflicts_on_create="OVERWRITE",
        resolve_conflicts_on_update="OVERWRITE",
        tags={
            **tags,
            "Name": f"{name}-kube-proxy-addon",
            "Module": "eks"
        }
    )

    addons["coredns"] = aws.eks.Addon(
        f"{name}-coredns-addon",
        cluster_name=cluster_name,
        addon_name="coredns",
        configuration_values=json.dumps({"computeType": "Fargate"}),
        resolve_conflicts_on_create="OVERWRITE",
        resolve_conflicts_on_update="OVERWRITE",
        tags={
            **tags,
            "Name": f"{name}-coredns-addon",
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {"addons": addons}


def create_eks_resources(name: str, cluster_version: str,
                         iam_resources: Dict[str, any],
                         private_subnet_ids: List[pulumi.Output[str]],
                         cluster_enabled_log_types: List[str] = None,
                         cloudwatch_log_group_retention_in_days: int = 30,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create complete EKS infrastructure for one environment

    Args:
        name: Cluster name
        cluster_version: Kubernetes version
        iam_resources: Result of create_iam_resources
        private_subnet_ids: Private subnet IDs
        cluster_enabled_log_types: List of enabled log types
        cloudwatch_log_group_retention_in_days: Log retention in days
        tags: Additional tags

    Returns:
        Dict with all EKS resources and outputs
    """
    tags = tags or {}

    log_group_result = create_cloudwatch_log_group(name, cloudwatch_log_group_retention_in_days, tags)
    key_result = create_secrets_key(name, tags)

    cluster_result = create_eks_cluster(
        name=name,
        version=cluster_version,
        role_arn=iam_resources["cluster_role_arn"],
        subnet_ids=private_subnet_ids,
        kms_key_arn=key_result["kms_key_arn"],
        enabled_log_types=cluster_enabled_log_types,
        depends_on=[log_group_result["log_group"], iam_resources.get("_cluster_policy_attachment")],
        tags=tags
    )
    cluster_name = cluster_result["cluster_name"]

    oidc_result = create_oidc_provider(name, cluster_result["oidc_issuer"], tags)

    fargate_result = create_fargate_profiles(
        name,
        cluster_name,
        iam_resources["fargate_role_arn"],
        private_subnet_ids,
        tags=tags
    )

    access_result = create_access_entries(
        name,
        cluster_name,
        iam_resources["node_role_arn"],
        iam_resources["kubectl_role_arn"]
    )

    addons_result = create_eks_addons(
        name,
        cluster_name,
        depends_on=list(fargate_result["fargate_profiles"].values()),
        tags=tags
    )

    return {
        "cluster_name": cluster_name,
        "cluster_arn": cluster_result["cluster_arn"],
        "cluster_endpoint": cluster_result["cluster_endpoint"],
        "cluster_certificate_authority_data": cluster_result["cluster_certificate_authority_data"],
        "cluster_security_group_id": cluster_result["cluster_security_group_id"],
        "oidc_provider_arn": oidc_result["oidc_provider_arn"],
        "oidc_issuer_host": oidc_result["oidc_issuer_host"],
        "kubectl_role_arn": iam_resources["kubectl_role_arn"],
        # Keep references to resources for dependencies
        "_log_group": log_group_result["log_group"],
        "_kms_key": key_result["kms_key"],
        "_cluster": cluster_result["cluster"],
        "_fargate_profiles": fargate_result["fargate_profiles"],
        "_access_entries": access_result,
        "_addons": addons_result["addons"]
    }
