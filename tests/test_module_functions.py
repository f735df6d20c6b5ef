"""
Unit tests for the Pulumi modules
Tests the function-based approach for creating resources
"""

import json
import unittest
from unittest.mock import MagicMock, Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.vpc.functions import create_subnets, create_vpc_resources
from modules.iam.functions import create_iam_resources
from modules.eks.functions import create_eks_resources, FARGATE_NAMESPACES
from modules.addons.functions import (
    create_addons_resources,
    render_kubeconfig,
    service_account_trust_policy,
)
from modules.database.functions import create_database_resources, database_url
from modules.registry.functions import create_registry_resources, lifecycle_policy
from modules.pipeline.functions import (
    action_configuration,
    build_role_policy,
    container_type,
    create_pipeline_resources,
)
from modules.pipeline.topology import build_release_topology


def iam_result():
    return {
        "cluster_role_arn": "arn:aws:iam::123456789012:role/cluster",
        "fargate_role_arn": "arn:aws:iam::123456789012:role/fargate",
        "kubectl_role_arn": "arn:aws:iam::123456789012:role/kubectl",
        "node_role_arn": "arn:aws:iam::123456789012:role/node",
        "node_role_name": "node",
        "node_instance_profile_name": "node-profile",
        "_cluster_policy_attachment": Mock()
    }


class TestModuleFunctions(unittest.TestCase):
    """Test the function-based module approach"""

    def test_vpc_function_structure(self):
        """Test that VPC function returns expected structure"""
        with patch('modules.vpc.functions.aws') as mock_aws, patch('modules.vpc.functions.pulumi'):
            mock_aws.get_availability_zones.return_value = Mock(names=["us-west-2a", "us-west-2b", "us-west-2c"])

            mock_vpc = Mock()
            mock_vpc.id = "vpc-12345"
            mock_vpc.cidr_block = "10.0.0.0/16"
            mock_aws.ec2.Vpc.return_value = mock_vpc
            mock_aws.ec2.NatGateway.return_value = Mock(id="nat-12345")

            result = create_vpc_resources(
                name="petclinic-test",
                vpc_cidr="10.0.0.0/16",
                public_subnet_cidrs=["10.0.0.0/24", "10.0.1.0/24", "10.0.2.0/24"],
                private_subnet_cidrs=["10.0.32.0/19", "10.0.64.0/19", "10.0.96.0/19"]
            )

            self.assertIn("vpc_id", result)
            self.assertIn("public_subnet_ids", result)
            self.assertIn("private_subnet_ids", result)
            self.assertEqual(len(result["public_subnet_ids"]), 3)
            self.assertEqual(len(result["private_subnet_ids"]), 3)
            self.assertEqual(result["availability_zones"], ["us-west-2a", "us-west-2b", "us-west-2c"])

            # One NAT gateway shared by all private subnets
            self.assertEqual(mock_aws.ec2.NatGateway.call_count, 1)
            private_route = [
                call for call in mock_aws.ec2.Route.call_args_list
                if "nat_gateway_id" in call.kwargs
            ]
            self.assertEqual(len(private_route), 1)
            self.assertEqual(private_route[0].kwargs["nat_gateway_id"], "nat-12345")

    def test_private_subnets_are_discoverable(self):
        """Private subnets carry the autoscaler discovery tag, public ones do not"""
        with patch('modules.vpc.functions.aws') as mock_aws, patch('modules.vpc.functions.pulumi'):
            mock_aws.get_availability_zones.return_value = Mock(names=["us-west-2a", "us-west-2b"])

            create_vpc_resources(
                name="petclinic-test",
                vpc_cidr="10.0.0.0/16",
                public_subnet_cidrs=["10.0.0.0/24", "10.0.1.0/24"],
                private_subnet_cidrs=["10.0.32.0/19", "10.0.64.0/19"]
            )

            for call in mock_aws.ec2.Subnet.call_args_list:
                tags = call.kwargs["tags"]
                if call.kwargs["map_public_ip_on_launch"]:
                    self.assertNotIn("karpenter.sh/discovery", tags)
                    self.assertEqual(tags["kubernetes.io/role/elb"], "1")
                else:
                    self.assertEqual(tags["karpenter.sh/discovery"], "petclinic-test")

    def test_vpc_in_two_zone_region(self):
        """Extra subnet CIDRs are dropped when the region has fewer zones"""
        with patch('modules.vpc.functions.aws') as mock_aws, \
                patch('modules.vpc.functions.pulumi') as mock_pulumi:
            mock_aws.get_availability_zones.return_value = Mock(names=["us-west-1a", "us-west-1c"])

            result = create_vpc_resources(
                name="petclinic-test",
                vpc_cidr="10.0.0.0/16",
                public_subnet_cidrs=["10.0.0.0/24", "10.0.1.0/24", "10.0.2.0/24"],
                private_subnet_cidrs=["10.0.32.0/19", "10.0.64.0/19", "10.0.96.0/19"]
            )

            self.assertEqual(len(result["public_subnet_ids"]), 2)
            self.assertEqual(len(result["private_subnet_ids"]), 2)
            self.assertEqual(result["availability_zones"], ["us-west-1a", "us-west-1c"])
            self.assertEqual(mock_aws.ec2.Subnet.call_count, 4)
            zones = {call.kwargs["availability_zone"] for call in mock_aws.ec2.Subnet.call_args_list}
            self.assertEqual(zones, {"us-west-1a", "us-west-1c"})
            mock_pulumi.log.warn.assert_called_once()

    def test_subnets_need_a_zone_each(self):
        with patch('modules.vpc.functions.aws'):
            with self.assertRaisesRegex(ValueError, "availability zones"):
                create_subnets(
                    "petclinic-test", "vpc-12345",
                    ["10.0.0.0/24", "10.0.1.0/24", "10.0.2.0/24"],
                    ["us-west-1a", "us-west-1c"],
                    public=True
                )

    def test_iam_function_structure(self):
        """Test that IAM function returns expected structure"""
        with patch('modules.iam.functions.aws') as mock_aws:
            mock_role = Mock()
            mock_role.arn = "arn:aws:iam::123456789012:role/test-role"
            mock_role.name = "test-role"
            mock_aws.iam.Role.return_value = mock_role

            result = create_iam_resources("petclinic-test", "123456789012")

            self.assertIn("cluster_role_arn", result)
            self.assertIn("fargate_role_arn", result)
            self.assertIn("kubectl_role_arn", result)
            self.assertIn("node_role_arn", result)
            self.assertIn("node_instance_profile_name", result)
            self.assertEqual(mock_aws.iam.Role.call_count, 4)
            self.assertEqual(mock_aws.iam.InstanceProfile.call_count, 1)

            kubectl_call = [
                call for call in mock_aws.iam.Role.call_args_list
                if call.args[0] == "petclinic-test-kubectl-role"
            ][0]
            trust = json.loads(kubectl_call.kwargs["assume_role_policy"])
            self.assertEqual(trust["Statement"][0]["Principal"]["AWS"], "arn:aws:iam::123456789012:root")

    def test_iam_existing_roles(self):
        """Test that named roles are referenced instead of created"""
        with patch('modules.iam.functions.aws') as mock_aws, patch('modules.iam.functions.pulumi') as mock_pulumi:
            mock_aws.iam.get_role.return_value = Mock(arn="arn:aws:iam::123456789012:role/legacy", name="legacy")

            result = create_iam_resources(
                "petclinic-test",
                "123456789012",
                existing_role_names={"cluster": "legacy"}
            )

            mock_aws.iam.get_role.assert_called_once_with(name="legacy")
            mock_pulumi.log.warn.assert_called_once()
            self.assertEqual(mock_aws.iam.Role.call_count, 3)
            self.assertIsNone(result["_cluster_role"])

    def test_eks_function_structure(self):
        """Test that EKS function returns expected structure"""
        with patch('modules.eks.functions.aws') as mock_aws, patch('modules.eks.functions.pulumi'):
            result = create_eks_resources(
                "petclinic-test",
                "1.31",
                iam_result(),
                ["subnet-1", "subnet-2", "subnet-3"]
            )

            for key in ("cluster_name", "cluster_arn", "cluster_endpoint",
                        "cluster_security_group_id", "oidc_provider_arn", "kubectl_role_arn"):
                self.assertIn(key, result)

            cluster_call = mock_aws.eks.Cluster.call_args
            self.assertEqual(cluster_call.kwargs["version"], "1.31")
            mock_aws.eks.ClusterEncryptionConfigArgs.assert_called_once()
            self.assertEqual(
                mock_aws.eks.ClusterEncryptionConfigArgs.call_args.kwargs["resources"],
                ["secrets"]
            )

    def test_fargate_selects_only_system_namespaces(self):
        """Fargate profiles select the autoscaler and system namespaces only"""
        with patch('modules.eks.functions.aws') as mock_aws, patch('modules.eks.functions.pulumi'):
            result = create_eks_resources("petclinic-test", "1.31", iam_result(), ["subnet-1"])

            selected = [
                call.kwargs["namespace"]
                for call in mock_aws.eks.FargateProfileSelectorArgs.call_args_list
            ]
            self.assertEqual(selected, ["karpenter", "kube-system"])
            self.assertEqual(sorted(result["_fargate_profiles"]), sorted(FARGATE_NAMESPACES))

    def test_coredns_runs_on_fargate(self):
        """Test that CoreDNS is configured for Fargate compute"""
        with patch('modules.eks.functions.aws') as mock_aws, patch('modules.eks.functions.pulumi'):
            create_eks_resources("petclinic-test", "1.31", iam_result(), ["subnet-1"])

            coredns = [
                call for call in mock_aws.eks.Addon.call_args_list
                if call.kwargs["addon_name"] == "coredns"
            ][0]
            self.assertEqual(json.loads(coredns.kwargs["configuration_values"]), {"computeType": "Fargate"})

    def test_access_entries(self):
        """Nodes join as EC2 nodes, the kubectl role becomes cluster admin"""
        with patch('modules.eks.functions.aws') as mock_aws, patch('modules.eks.functions.pulumi'):
            create_eks_resources("petclinic-test", "1.31", iam_result(), ["subnet-1"])

            entries = {
                call.kwargs["principal_arn"]: call.kwargs["type"]
                for call in mock_aws.eks.AccessEntry.call_args_list
            }
            self.assertEqual(entries["arn:aws:iam::123456789012:role/node"], "EC2_LINUX")
            self.assertEqual(entries["arn:aws:iam::123456789012:role/kubectl"], "STANDARD")
            admin = mock_aws.eks.AccessPolicyAssociation.call_args
            self.assertEqual(admin.kwargs["principal_arn"], "arn:aws:iam::123456789012:role/kubectl")

    def test_addons_function_structure(self):
        """Test that addons function returns expected structure"""
        eks_resources = {
            "cluster_name": "petclinic-test",
            "cluster_arn": "arn:aws:eks:us-west-2:123456789012:cluster/petclinic-test",
            "cluster_endpoint": "https://example.eks.amazonaws.com",
            "cluster_certificate_authority_data": "LS0tLS1CRUdJTi",
            "oidc_provider_arn": "arn:aws:iam::123456789012:oidc-provider/oidc.eks",
            "oidc_issuer_host": "oidc.eks.us-west-2.amazonaws.com/id/ABC",
            "_fargate_profiles": {}
        }

        with patch('modules.addons.functions.aws'), \
                patch('modules.addons.functions.k8s') as mock_k8s, \
                patch('modules.addons.functions.pulumi'):
            result = create_addons_resources(
                "petclinic-test", eks_resources, iam_result(), "1.0.6",
                vpc_id="vpc-12345", region="us-west-2"
            )

            self.assertIn("karpenter_role_arn", result)
            self.assertIn("karpenter_queue_name", result)
            self.assertIn("load_balancer_controller_role_arn", result)
            self.assertEqual(result["karpenter_instance_profile"], "node-profile")

            charts = [call.kwargs["chart"] for call in mock_k8s.helm.v3.Release.call_args_list]
            self.assertEqual(charts, ["karpenter", "metrics-server", "aws-load-balancer-controller"])

            karpenter = mock_k8s.helm.v3.Release.call_args_list[0]
            self.assertEqual(karpenter.kwargs["namespace"], "karpenter")
            self.assertFalse(karpenter.kwargs["values"]["serviceAccount"]["create"])

    def test_load_balancer_controller(self):
        """The controller runs in kube-system with its own service-account role"""
        eks_resources = MagicMock()
        eks_resources.__getitem__.side_effect = lambda key: {} if key == "_fargate_profiles" else key

        with patch('modules.addons.functions.aws') as mock_aws, \
                patch('modules.addons.functions.k8s') as mock_k8s, \
                patch('modules.addons.functions.pulumi') as mock_pulumi:
            create_addons_resources(
                "petclinic-test", eks_resources, iam_result(), "1.0.6",
                enable_metrics_server=False, vpc_id="vpc-12345", region="us-west-2"
            )

            controller = mock_k8s.helm.v3.Release.call_args_list[-1]
            self.assertEqual(controller.kwargs["chart"], "aws-load-balancer-controller")
            self.assertEqual(controller.kwargs["namespace"], "kube-system")
            self.assertEqual(controller.kwargs["version"], "1.10.1")
            mock_k8s.helm.v3.RepositoryOptsArgs.assert_any_call(repo="https://aws.github.io/eks-charts")

            values = controller.kwargs["values"]
            self.assertEqual(values["clusterName"], "cluster_name")
            self.assertEqual(values["vpcId"], "vpc-12345")
            self.assertEqual(values["region"], "us-west-2")
            self.assertEqual(values["serviceAccount"]["name"], "aws-load-balancer-controller")
            self.assertIn("eks.amazonaws.com/role-arn", values["serviceAccount"]["annotations"])

            roles = [call.args[0] for call in mock_aws.iam.Role.call_args_list]
            self.assertIn("petclinic-test-lb-controller-role", roles)

            # The controller role is the last one bound through the OIDC provider
            render_trust = mock_pulumi.Output.all.return_value.apply.call_args_list[-1].args[0]
            trust = json.loads(render_trust(["arn:aws:iam::123456789012:oidc-provider/oidc.eks", "oidc.eks/id/ABC"]))
            condition = trust["Statement"][0]["Condition"]["StringEquals"]
            self.assertEqual(
                condition["oidc.eks/id/ABC:sub"],
                "system:serviceaccount:kube-system:aws-load-balancer-controller"
            )

    def test_load_balancer_controller_needs_vpc(self):
        eks_resources = MagicMock()
        eks_resources.__getitem__.side_effect = lambda key: {} if key == "_fargate_profiles" else Mock()

        with patch('modules.addons.functions.aws'), \
                patch('modules.addons.functions.k8s') as mock_k8s, \
                patch('modules.addons.functions.pulumi'):
            with self.assertRaisesRegex(ValueError, "vpc_id"):
                create_addons_resources("petclinic-test", eks_resources, iam_result(), "1.0.6")

            mock_k8s.helm.v3.Release.assert_not_called()

    def test_addons_without_optional_charts(self):
        """Test that metrics server and load balancer controller can be disabled"""
        eks_resources = MagicMock()
        eks_resources.__getitem__.side_effect = lambda key: {} if key == "_fargate_profiles" else Mock()

        with patch('modules.addons.functions.aws'), \
                patch('modules.addons.functions.k8s') as mock_k8s, \
                patch('modules.addons.functions.pulumi'):
            result = create_addons_resources(
                "petclinic-test", eks_resources, iam_result(), "1.0.6",
                enable_metrics_server=False, enable_load_balancer_controller=False
            )

            self.assertEqual(mock_k8s.helm.v3.Release.call_count, 1)
            self.assertIsNone(result["_metrics_server"])
            self.assertIsNone(result["_load_balancer_controller"])
            self.assertIsNone(result["load_balancer_controller_role_arn"])

    def test_service_account_trust_policy(self):
        """Test that the controller role is bound to one service account"""
        policy = json.loads(service_account_trust_policy(
            "arn:aws:iam::123456789012:oidc-provider/oidc.eks",
            "oidc.eks/id/ABC",
            "karpenter",
            "karpenter"
        ))

        condition = policy["Statement"][0]["Condition"]["StringEquals"]
        self.assertEqual(condition["oidc.eks/id/ABC:sub"], "system:serviceaccount:karpenter:karpenter")
        self.assertEqual(condition["oidc.eks/id/ABC:aud"], "sts.amazonaws.com")

    def test_render_kubeconfig(self):
        kubeconfig = render_kubeconfig("https://example.eks.amazonaws.com", "Q0E=", "petclinic-test")

        self.assertIn("server: https://example.eks.amazonaws.com", kubeconfig)
        self.assertIn("certificate-authority-data: Q0E=", kubeconfig)
        self.assertIn("current-context: petclinic-test", kubeconfig)

    def test_database_function_structure(self):
        """Test that database function returns expected structure"""
        with patch('modules.database.functions.aws') as mock_aws, patch('modules.database.functions.pulumi'):
            mock_aws.ec2.SecurityGroup.return_value = Mock(id="sg-db")

            result = create_database_resources(
                "petclinic-test",
                "vpc-12345",
                ["subnet-1", "subnet-2", "subnet-3"],
                "sg-cluster"
            )

            for key in ("endpoint", "address", "secret_arn", "secret_name", "url", "security_group_id"):
                self.assertIn(key, result)

            instance = mock_aws.rds.Instance.call_args
            self.assertEqual(instance.kwargs["engine"], "mysql")
            self.assertEqual(instance.kwargs["engine_version"], "8.0")
            self.assertEqual(instance.kwargs["instance_class"], "db.t3.micro")
            self.assertTrue(instance.kwargs["manage_master_user_password"])
            self.assertFalse(instance.kwargs["publicly_accessible"])
            self.assertEqual(instance.kwargs["vpc_security_group_ids"], ["sg-db"])

    def test_database_reachable_only_from_cluster(self):
        """The only ingress rule admits the cluster security group on the service port"""
        with patch('modules.database.functions.aws') as mock_aws, patch('modules.database.functions.pulumi'):
            mock_aws.ec2.SecurityGroup.return_value = Mock(id="sg-db")

            create_database_resources("petclinic-test", "vpc-12345", ["subnet-1"], "sg-cluster")

            mock_aws.ec2.SecurityGroupRule.assert_called_once()
            rule = mock_aws.ec2.SecurityGroupRule.call_args.kwargs
            self.assertEqual(rule["type"], "ingress")
            self.assertEqual(rule["from_port"], 3306)
            self.assertEqual(rule["to_port"], 3306)
            self.assertEqual(rule["source_security_group_id"], "sg-cluster")
            self.assertEqual(rule["security_group_id"], "sg-db")
            self.assertNotIn("cidr_blocks", rule)
            self.assertNotIn("ingress", mock_aws.ec2.SecurityGroup.call_args.kwargs)

    def test_database_url(self):
        self.assertEqual(
            database_url("db.example.rds.amazonaws.com", "petclinic"),
            "jdbc:mysql://db.example.rds.amazonaws.com/petclinic"
        )

    def test_registry_function_structure(self):
        """Test that registry function returns expected structure"""
        with patch('modules.registry.functions.aws') as mock_aws:
            result = create_registry_resources("petclinic")

            self.assertIn("repository_url", result)
            self.assertIn("repository_arn", result)
            self.assertEqual(mock_aws.ecr.Repository.call_args.kwargs["name"], "petclinic")
            mock_aws.ecr.LifecyclePolicy.assert_called_once()

        rule = json.loads(lifecycle_policy())["rules"][0]
        self.assertEqual(rule["selection"]["tagStatus"], "untagged")

    def test_pipeline_function_structure(self):
        """Test that pipeline function translates the release topology"""
        deploy_targets = {
            env: {
                "cluster_name": f"petclinic-{env}",
                "cluster_arn": f"arn:aws:eks:us-west-2:123456789012:cluster/petclinic-{env}",
                "kubectl_role_arn": f"arn:aws:iam::123456789012:role/petclinic-{env}-kubectl",
                "database_url": f"jdbc:mysql://{env}.db/petclinic",
            }
            for env in ("test", "prod")
        }

        with patch('modules.pipeline.functions.aws') as mock_aws, \
                patch('modules.pipeline.functions.pulumi') as mock_pulumi:
            result = create_pipeline_resources(
                "petclinic-release",
                ["test", "prod"],
                deploy_targets,
                "123456789012.dkr.ecr.us-west-2.amazonaws.com/petclinic",
                "arn:aws:ecr:us-west-2:123456789012:repository/petclinic",
                region="us-west-2",
                account_id="123456789012",
                github_owner="otterley",
                github_repo="spring-petclinic",
                github_branch="main",
                kubectl_version="v1.31.2"
            )

            self.assertEqual(
                result["stage_names"],
                ["Source", "Build", "Manifest", "TestDeploy", "ProdApproval", "ProdDeploy"]
            )
            staged = [call.kwargs["name"] for call in mock_aws.codepipeline.PipelineStageArgs.call_args_list]
            self.assertEqual(staged, result["stage_names"])

            projects = [call.kwargs["name"] for call in mock_aws.codebuild.Project.call_args_list]
            self.assertEqual(projects, [
                "petclinic-release-build-x86",
                "petclinic-release-build-arm64",
                "petclinic-release-manifest",
                "petclinic-release-deploy-test",
                "petclinic-release-deploy-prod",
            ])

            environments = mock_aws.codebuild.ProjectEnvironmentArgs.call_args_list
            self.assertEqual(environments[0].kwargs["type"], "LINUX_CONTAINER")
            self.assertEqual(environments[1].kwargs["type"], "ARM_CONTAINER")
            self.assertTrue(environments[0].kwargs["privileged_mode"])
            # Only the architecture builds run a Docker daemon
            self.assertFalse(environments[2].kwargs["privileged_mode"])
            self.assertEqual(environments[0].kwargs["compute_type"], "BUILD_GENERAL1_LARGE")

            variables = {
                call.kwargs["name"]: call.kwargs["value"]
                for call in mock_aws.codebuild.ProjectEnvironmentEnvironmentVariableArgs.call_args_list
            }
            self.assertIn("IMAGE_REPO_URI", variables)
            self.assertIn("CLUSTER_ROLE_ARN", variables)
            # The last deploy project registered is production
            self.assertEqual(variables["MYSQL_URL"], "jdbc:mysql://prod.db/petclinic")

            pipeline = mock_aws.codepipeline.Pipeline.call_args
            self.assertEqual(pipeline.kwargs["pipeline_type"], "V2")
            mock_aws.codestarconnections.Connection.assert_called_once()
            mock_pulumi.log.info.assert_called()

    def test_pipeline_rejects_missing_deploy_target(self):
        with patch('modules.pipeline.functions.aws') as mock_aws, patch('modules.pipeline.functions.pulumi'):
            with self.assertRaisesRegex(ValueError, "test"):
                create_pipeline_resources(
                    "petclinic-release", ["test"], {}, "repo", "arn",
                    region="us-west-2", account_id="123456789012",
                    github_owner="otterley", github_repo="spring-petclinic",
                    github_branch="main", kubectl_version="v1.31.2"
                )

            mock_aws.codebuild.Project.assert_not_called()
            mock_aws.codepipeline.Pipeline.assert_not_called()

    def test_build_role_policy(self):
        """Deploy jobs may describe their cluster and assume its admin role, build jobs may not"""
        build = json.loads(build_role_policy("arn:repo", "arn:bucket"))
        build_actions = [action for statement in build["Statement"] for action in statement["Action"]]
        self.assertIn("ecr:PutImage", build_actions)
        self.assertNotIn("eks:DescribeCluster", build_actions)
        self.assertNotIn("sts:AssumeRole", build_actions)

        deploy = json.loads(build_role_policy("arn:repo", "arn:bucket", "arn:cluster", "arn:kubectl"))
        resources = {
            statement["Action"][0]: statement["Resource"]
            for statement in deploy["Statement"]
        }
        self.assertEqual(resources["eks:DescribeCluster"], "arn:cluster")
        self.assertEqual(resources["sts:AssumeRole"], "arn:kubectl")

    def test_action_configuration(self):
        stages = build_release_topology(["test", "prod"])
        source = stages[0].actions[0]
        approval = stages[4].actions[0]
        deploy = stages[5].actions[0]
        projects = {"deploy-prod": {"project_name": "petclinic-release-deploy-prod"}}

        source_config = action_configuration(source, "arn:connection", "otterley/spring-petclinic", "main", projects)
        self.assertEqual(source_config["FullRepositoryId"], "otterley/spring-petclinic")
        self.assertEqual(source_config["BranchName"], "main")
        self.assertEqual(source_config["ConnectionArn"], "arn:connection")

        self.assertIn("prod", action_configuration(approval, "arn", "repo", "main", projects)["CustomData"])
        self.assertEqual(
            action_configuration(deploy, "arn", "repo", "main", projects),
            {"ProjectName": "petclinic-release-deploy-prod"}
        )

    def test_container_type(self):
        self.assertEqual(container_type("x86"), "LINUX_CONTAINER")
        self.assertEqual(container_type("arm64"), "ARM_CONTAINER")


if __name__ == '__main__':
    unittest.main()
