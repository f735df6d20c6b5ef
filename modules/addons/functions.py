"""
Addons Module Functions
Karpenter node autoscaling and cluster add-ons, installed through the
Kubernetes provider
"""

import json
import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s
from typing import Dict, List

KARPENTER_NAMESPACE = "karpenter"
KARPENTER_SERVICE_ACCOUNT = "karpenter"

KARPENTER_EC2_ACTIONS = [
    "ec2:CreateFleet",
    "ec2:CreateLaunchTemplate",
    "ec2:CreateTags",
    "ec2:DeleteLaunchTemplate",
    "ec2:RunInstances",
    "ec2:TerminateInstances",
    "ec2:DescribeAvailabilityZones",
    "ec2:DescribeImages",
    "ec2:DescribeInstances",
    "ec2:DescribeInstanceTypeOfferings",
    "ec2:DescribeInstanceTypes",
    "ec2:DescribeLaunchTemplates",
    "ec2:DescribeSecurityGroups",
    "ec2:DescribeSpotPriceHistory",
    "ec2:DescribeSubnets",
    "iam:GetInstanceProfile",
    "pricing:GetProducts",
    "ssm:GetParameter",
]

LOAD_BALANCER_CONTROLLER_VERSION = "1.10.1"
LOAD_BALANCER_CONTROLLER_SERVICE_ACCOUNT = "aws-load-balancer-controller"

LOAD_BALANCER_CONTROLLER_ACTIONS = [
    "ec2:DescribeAccountAttributes",
    "ec2:DescribeAddresses",
    "ec2:DescribeAvailabilityZones",
    "ec2:DescribeInternetGateways",
    "ec2:DescribeVpcs",
    "ec2:DescribeVpcPeeringConnections",
    "ec2:DescribeSubnets",
    "ec2:DescribeSecurityGroups",
    "ec2:DescribeInstances",
    "ec2:DescribeNetworkInterfaces",
    "ec2:DescribeTags",
    "ec2:GetCoipPoolUsage",
    "ec2:DescribeCoipPools",
    "ec2:CreateSecurityGroup",
    "ec2:CreateTags",
    "ec2:DeleteTags",
    "ec2:AuthorizeSecurityGroupIngress",
    "ec2:RevokeSecurityGroupIngress",
    "ec2:DeleteSecurityGroup",
    "elasticloadbalancing:Describe*",
    "elasticloadbalancing:CreateLoadBalancer",
    "elasticloadbalancing:CreateTargetGroup",
    "elasticloadbalancing:CreateListener",
    "elasticloadbalancing:DeleteListener",
    "elasticloadbalancing:CreateRule",
    "elasticloadbalancing:DeleteRule",
    "elasticloadbalancing:AddTags",
    "elasticloadbalancing:RemoveTags",
    "elasticloadbalancing:ModifyLoadBalancerAttributes",
    "elasticloadbalancing:SetIpAddressType",
    "elasticloadbalancing:SetSecurityGroups",
    "elasticloadbalancing:SetSubnets",
    "elasticloadbalancing:DeleteLoadBalancer",
    "elasticloadbalancing:ModifyTargetGroup",
    "elasticloadbalancing:ModifyTargetGroupAttributes",
    "elasticloadbalancing:DeleteTargetGroup",
    "elasticloadbalancing:RegisterTargets",
    "elasticloadbalancing:DeregisterTargets",
    "elasticloadbalancing:SetWebAcl",
    "elasticloadbalancing:ModifyListener",
    "elasticloadbalancing:AddListenerCertificates",
    "elasticloadbalancing:RemoveListenerCertificates",
    "elasticloadbalancing:ModifyRule",
    "acm:ListCertificates",
    "acm:DescribeCertificate",
    "iam:ListServerCertificates",
    "iam:GetServerCertificate",
    "cognito-idp:DescribeUserPoolClient",
    "waf-regional:GetWebACL",
    "waf-regional:GetWebACLForResource",
    "waf-regional:AssociateWebACL",
    "waf-regional:DisassociateWebACL",
    "wafv2:GetWebACL",
    "wafv2:GetWebACLForResource",
    "wafv2:AssociateWebACL",
    "wafv2:DisassociateWebACL",
    "shield:GetSubscriptionState",
    "shield:DescribeProtection",
    "shield:CreateProtection",
    "shield:DeleteProtection",
]


def render_kubeconfig(endpoint: str, ca_data: str, cluster_name: str) -> str:
    """Kubeconfig authenticating through `aws eks get-token`"""
    return f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: {ca_data}
    server: {endpoint}
  name: {cluster_name}
contexts:
- context:
    cluster: {cluster_name}
    user: {cluster_name}
  name: {cluster_name}
current-context: {cluster_name}
kind: Config
users:
- name: {cluster_name}
  user:
    exec:
      apiVersion: client.authentication.k8s.io/v1beta1
      command: aws
      args:
        - eks
        - get-token
        - --cluster-name
        - {cluster_name}
"""


def create_kubernetes_provider(name: str, cluster_endpoint: 'pulumi.Output[str]',
                               cluster_ca_data: 'pulumi.Output[str]',
                               cluster_name: 'pulumi.Output[str]',
                               depends_on: List[pulumi.Resource] = None) -> k8s.Provider:
    """
    Create Kubernetes provider for EKS cluster

    Args:
        name: Provider name prefix
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data
        cluster_name: EKS cluster name
        depends_on: Resources that must exist before the API is usable

    Returns:
        Kubernetes provider instance
    """
    kubeconfig = pulumi.Output.all(cluster_endpoint, cluster_ca_data, cluster_name).apply(
        lambda args: render_kubeconfig(args[0], args[1], args[2])
    )

    return k8s.Provider(
        f"{name}-k8s-provider",
        kubeconfig=kubeconfig,
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )


def service_account_trust_policy(oidc_provider_arn: str, issuer_host: str,
                                 namespace: str, service_account: str) -> str:
    """Trust policy binding an IAM role to one Kubernetes service account"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Federated": oidc_provider_arn},
            "Action": "sts:AssumeRoleWithWebIdentity",
            "Condition": {
                "StringEquals": {
                    f"{issuer_host}:sub": f"system:serviceaccount:{namespace}:{service_account}",
                    f"{issuer_host}:aud": "sts.amazonaws.com"
                }
            }
        }]
    })


def karpenter_controller_policy(queue_arn: str, node_role_arn: str, cluster_arn: str) -> str:
    """Permissions of the Karpenter controller"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": KARPENTER_EC2_ACTIONS,
                "Resource": "*",
                "Effect": "Allow"
            },
            {
                "Action": [
                    "sqs:DeleteMessage",
                    "sqs:GetQueueAttributes",
                    "sqs:GetQueueUrl",
                    "sqs:ReceiveMessage"
                ],
                "Resource": queue_arn,
                "Effect": "Allow"
            },
            {
                "Action": ["iam:PassRole"],
                "Resource": node_role_arn,
                "Effect": "Allow"
            },
            {
                "Action": ["eks:DescribeCluster"],
                "Resource": cluster_arn,
                "Effect": "Allow"
            }
        ]
    })


def create_karpenter_iam(name: str, cluster_arn: 'pulumi.Output[str]', node_role_arn: 'pulumi.Output[str]',
                         oidc_provider_arn: 'pulumi.Output[str]', oidc_issuer_host: 'pulumi.Output[str]',
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the node-notification queue and the controller's service-account role

    Args:
        name: Cluster name
        cluster_arn: EKS cluster ARN
        node_role_arn: Role passed to nodes Karpenter launches
        oidc_provider_arn: Cluster OIDC provider ARN
        oidc_issuer_host: Cluster OIDC issuer without scheme
        tags: Additional tags

    Returns:
        Dict with queue, policy and role resources
    """
    tags = tags or {}

    queue = aws.sqs.Queue(
        f"{name}-karpenter-notifications",
        message_retention_seconds=300,
        sqs_managed_sse_enabled=True,
        tags={
            **tags,
            "Name": f"{name}-karpenter-notifications",
            "Module": "addons"
        }
    )

    policy = aws.iam.Policy(
        f"{name}-karpenter-controller-policy",
        policy=pulumi.Output.all(queue.arn, node_role_arn, cluster_arn).apply(
            lambda args: karpenter_controller_policy(args[0], args[1], args[2])
        ),
        tags={
            **tags,
            "Module": "addons"
        }
    )

    role = aws.iam.Role(
        f"{name}-karpenter-controller-role",
        assume_role_policy=pulumi.Output.all(oidc_provider_arn, oidc_issuer_host).apply(
            lambda args: service_account_trust_policy(
                args[0], args[1], KARPENTER_NAMESPACE, KARPENTER_SERVICE_ACCOUNT
            )
        ),
        tags={
            **tags,
            "Name": f"{name}-karpenter-controller-role",
            "Module": "addons"
        }
    )

    aws.iam.RolePolicyAttachment(
        f"{name}-karpenter-policy-attach",
        role=role.name,
        policy_arn=policy.arn
    )

    return {
        "queue": queue,
        "queue_name": queue.name,
        "policy": policy,
        "role": role,
        "role_arn": role.arn
    }


def install_karpenter(name: str, provider: k8s.Provider, cluster_name: 'pulumi.Output[str]',
                      cluster_endpoint: 'pulumi.Output[str]', role_arn: 'pulumi.Output[str]',
                      queue_name: 'pulumi.Output[str]', instance_profile_name: 'pulumi.Output[str]',
                      version: str) -> Dict[str, any]:
    """
    Install Karpenter in its own namespace with a default NodePool

    Args:
        name: Cluster name
        provider: Kubernetes provider
        cluster_name: EKS cluster name
        cluster_endpoint: EKS cluster endpoint
        role_arn: Controller service-account role ARN
        queue_name: Node-notification queue name
        instance_profile_name: Instance profile for launched nodes
        version: Karpenter chart version

    Returns:
        Dict with Kubernetes resources
    """
    namespace = k8s.core.v1.Namespace(
        f"{name}-karpenter-namespace",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=KARPENTER_NAMESPACE,
            labels={"name": KARPENTER_NAMESPACE}
        ),
        opts=pulumi.ResourceOptions(provider=provider)
    )

    service_account = k8s.core.v1.ServiceAccount(
        f"{name}-karpenter-service-account",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=KARPENTER_SERVICE_ACCOUNT,
            namespace=KARPENTER_NAMESPACE,
            annotations={"eks.amazonaws.com/role-arn": role_arn}
        ),
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[namespace])
    )

    release = k8s.helm.v3.Release(
        f"{name}-karpenter",
        chart="karpenter",
        version=version,
        namespace=KARPENTER_NAMESPACE,
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(
            repo="oci://public.ecr.aws/karpenter"
        ),
        values={
            "settings": {
                "clusterName": cluster_name,
                "clusterEndpoint": cluster_endpoint,
                "interruptionQueue": queue_name,
            },
            "serviceAccount": {
                "create": False,
                "name": KARPENTER_SERVICE_ACCOUNT,
            },
            "controller": {
                "resources": {
                    "requests": {
                        "cpu": "1",
                        "memory": "1Gi"
                    }
                }
            }
        },
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[service_account])
    )

    node_class = k8s.apiextensions.CustomResource(
        f"{name}-default-node-class",
        api_version="karpenter.k8s.aws/v1",
        kind="EC2NodeClass",
        metadata=k8s.meta.v1.ObjectMetaArgs(name="default"),
        spec={
            "amiSelectorTerms": [{"alias": "al2023@latest"}],
            "instanceProfile": instance_profile_name,
            "subnetSelectorTerms": [
                {"tags": {"karpenter.sh/discovery": name}}
            ],
            "securityGroupSelectorTerms": [
                {"tags": {"aws:eks:cluster-name": name}}
            ],
        },
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[release])
    )

    node_pool = k8s.apiextensions.CustomResource(
        f"{name}-default-node-pool",
        api_version="karpenter.sh/v1",
        kind="NodePool",
        metadata=k8s.meta.v1.ObjectMetaArgs(name="default"),
        spec={
            "template": {
                "spec": {
                    "nodeClassRef": {
                        "group": "karpenter.k8s.aws",
                        "kind": "EC2NodeClass",
                        "name": "default",
                    },
                    "requirements": [
                        {
                            "key": "kubernetes.io/arch",
                            "operator": "In",
                            "values": ["amd64", "arm64"]
                        },
                        {
                            "key": "kubernetes.io/os",
                            "operator": "In",
                            "values": ["linux"]
                        },
                        {
                            "key": "karpenter.sh/capacity-type",
                            "operator": "In",
                            "values": ["spot", "on-demand"]
                        },
                    ],
                },
            },
            "limits": {
                "cpu": "100",
                "memory": "400Gi"
            },
            "disruption": {
                "consolidationPolicy": "WhenEmptyOrUnderutilized",
                "consolidateAfter": "1m",
            },
        },
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[node_class])
    )

    return {
        "namespace": namespace,
        "service_account": service_account,
        "release": release,
        "node_class": node_class,
        "node_pool": node_pool
    }


def load_balancer_controller_policy() -> str:
    """Permissions of the AWS Load Balancer Controller"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": ["iam:CreateServiceLinkedRole"],
                "Resource": "*",
                "Effect": "Allow",
                "Condition": {
                    "StringEquals": {"iam:AWSServiceName": "elasticloadbalancing.amazonaws.com"}
                }
            },
            {
                "Action": LOAD_BALANCER_CONTROLLER_ACTIONS,
                "Resource": "*",
                "Effect": "Allow"
            }
        ]
    })


def deploy_load_balancer_controller(name: str, provider: k8s.Provider, cluster_name: 'pulumi.Output[str]',
                                    vpc_id: 'pulumi.Output[str]', region: str,
                                    oidc_provider_arn: 'pulumi.Output[str]',
                                    oidc_issuer_host: 'pulumi.Output[str]',
                                    version: str = LOAD_BALANCER_CONTROLLER_VERSION,
                                    tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Install the AWS Load Balancer Controller in kube-system

    The controller runs on Fargate, where instance metadata is unavailable,
    so region and VPC are passed explicitly.

    Args:
        name: Cluster name
        provider: Kubernetes provider
        cluster_name: EKS cluster name
        vpc_id: VPC of the cluster
        region: AWS region
        oidc_provider_arn: Cluster OIDC provider ARN
        oidc_issuer_host: Cluster OIDC issuer without scheme
        version: Chart version
        tags: Additional tags

    Returns:
        Dict with IAM and Helm resources
    """
    tags = tags or {}

    policy = aws.iam.Policy(
        f"{name}-lb-controller-policy",
        policy=load_balancer_controller_policy(),
        tags={
            **tags,
            "Module": "addons"
        }
    )

    role = aws.iam.Role(
        f"{name}-lb-controller-role",
        assume_role_policy=pulumi.Output.all(oidc_provider_arn, oidc_issuer_host).apply(
            lambda args: service_account_trust_policy(
                args[0], args[1], "kube-system", LOAD_BALANCER_CONTROLLER_SERVICE_ACCOUNT
            )
        ),
        tags={
            **tags,
            "Name": f"{name}-lb-controller-role",
            "Module": "addons"
        }
    )

    attachment = aws.iam.RolePolicyAttachment(
        f"{name}-lb-controller-policy-attach",
        role=role.name,
        policy_arn=policy.arn
    )

    release = k8s.helm.v3.Release(
        f"{name}-lb-controller",
        chart="aws-load-balancer-controller",
        version=version,
        namespace="kube-system",
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(
            repo="https://aws.github.io/eks-charts"
        ),
        values={
            "clusterName": cluster_name,
            "vpcId": vpc_id,
            "region": region,
            "serviceAccount": {
                "create": True,
                "name": LOAD_BALANCER_CONTROLLER_SERVICE_ACCOUNT,
                "annotations": {"eks.amazonaws.com/role-arn": role.arn}
            }
        },
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[attachment])
    )

    return {
        "policy": policy,
        "role": role,
        "role_arn": role.arn,
        "release": release
    }


def deploy_metrics_server(name: str, provider: k8s.Provider) -> Dict[str, any]:
    """
    Deploy metrics server using Helm

    Args:
        name: Release name prefix
        provider: Kubernetes provider

    Returns:
        Dict with metrics server resources
    """
    metrics_server = k8s.helm.v3.Release(
        f"{name}-metrics-server",
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(
            repo="https://kubernetes-sigs.github.io/metrics-server/"
        ),
        chart="metrics-server",
        name="metrics-server",
        namespace="kube-system",
        opts=pulumi.ResourceOptions(provider=provider)
    )

    return {"metrics_server": metrics_server}


def create_addons_resources(name: str, eks_resources: Dict[str, any], iam_resources: Dict[str, any],
                            karpenter_version: str,
                            enable_metrics_server: bool = True,
                            enable_load_balancer_controller: bool = True,
                            load_balancer_controller_version: str = LOAD_BALANCER_CONTROLLER_VERSION,
                            vpc_id: 'pulumi.Output[str]' = None,
                            region: str = None,
                            tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create autoscaler and Kubernetes add-ons for one environment's cluster

    Args:
        name: Cluster name
        eks_resources: Result of create_eks_resources
        iam_resources: Result of create_iam_resources
        karpenter_version: Karpenter chart version
        enable_metrics_server: Deploy metrics server
        enable_load_balancer_controller: Deploy the AWS Load Balancer Controller
        load_balancer_controller_version: Load balancer controller chart version
        vpc_id: VPC of the cluster, required by the load balancer controller
        region: AWS region, required by the load balancer controller
        tags: Additional tags

    Returns:
        Dict with add-on outputs

    Raises:
        ValueError: if the load balancer controller is enabled without vpc_id and region
    """
    tags = tags or {}
    if enable_load_balancer_controller and (vpc_id is None or not region):
        raise ValueError(f"{name}: the load balancer controller needs vpc_id and region")

    k8s_provider = create_kubernetes_provider(
        name,
        eks_resources["cluster_endpoint"],
        eks_resources["cluster_certificate_authority_data"],
        eks_resources["cluster_name"],
        depends_on=list(eks_resources["_fargate_profiles"].values())
    )

    karpenter_iam = create_karpenter_iam(
        name,
        eks_resources["cluster_arn"],
        iam_resources["node_role_arn"],
        eks_resources["oidc_provider_arn"],
        eks_resources["oidc_issuer_host"],
        tags
    )

    karpenter = install_karpenter(
        name,
        k8s_provider,
        eks_resources["cluster_name"],
        eks_resources["cluster_endpoint"],
        karpenter_iam["role_arn"],
        karpenter_iam["queue_name"],
        iam_resources["node_instance_profile_name"],
        karpenter_version
    )

    metrics_server_result = None
    if enable_metrics_server:
        metrics_server_result = deploy_metrics_server(name, k8s_provider)

    lb_controller = None
    if enable_load_balancer_controller:
        lb_controller = deploy_load_balancer_controller(
            name,
            k8s_provider,
            eks_resources["cluster_name"],
            vpc_id,
            region,
            eks_resources["oidc_provider_arn"],
            eks_resources["oidc_issuer_host"],
            load_balancer_controller_version,
            tags
        )

    return {
        "karpenter_role_arn": karpenter_iam["role_arn"],
        "karpenter_queue_name": karpenter_iam["queue_name"],
        "karpenter_instance_profile": iam_resources["node_instance_profile_name"],
        "load_balancer_controller_role_arn": lb_controller["role_arn"] if lb_controller else None,
        # Keep references to resources for dependencies
        "_k8s_provider": k8s_provider,
        "_karpenter": karpenter,
        "_karpenter_queue": karpenter_iam["queue"],
        "_metrics_server": metrics_server_result["metrics_server"] if metrics_server_result else None,
        "_load_balancer_controller": lb_controller["release"] if lb_controller else None
    }
