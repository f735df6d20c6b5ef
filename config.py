"""
Configuration management for the Pet Clinic deployment
Every tunable is read from the Pulumi stack config with a default
"""

import re
import pulumi
from typing import Dict

DURATION_PATTERN = re.compile(r"^[1-9][0-9]*[smh]$")


class Config:
    """Centralized configuration management for the Pet Clinic deployment"""

    def __init__(self):
        self.config = pulumi.Config()

        # AWS Configuration
        self.aws_region = pulumi.Config("aws").get("region") or "us-west-2"
        self.project_name = self.config.get("project_name") or "petclinic"

        # Environments, deployed in order; every one after the first sits behind an approval
        self.environments = self.config.get_object("environments") or ["test", "prod"]

        # Cluster Configuration
        self.cluster_version = self.config.get("cluster_version") or "1.31"
        self.cluster_enabled_log_types = self.config.get_object("cluster_enabled_log_types") or ["api", "audit", "authenticator"]

        # VPC Configuration
        self.vpc_cidr = self.config.get("vpc_cidr") or "10.0.0.0/16"
        self.public_subnet_cidrs = self.config.get_object("public_subnet_cidrs") or ["10.0.0.0/24", "10.0.1.0/24", "10.0.2.0/24"]
        self.private_subnet_cidrs = self.config.get_object("private_subnet_cidrs") or ["10.0.32.0/19", "10.0.64.0/19", "10.0.96.0/19"]

        # Database Configuration
        self.db_engine_version = self.config.get("db_engine_version") or "8.0"
        self.db_instance_class = self.config.get("db_instance_class") or "db.t3.micro"
        self.db_name = self.config.get("db_name") or "petclinic"
        self.db_username = self.config.get("db_username") or "admin"
        self.db_port = self.config.get_int("db_port") or 3306
        self.db_allocated_storage = self.config.get_int("db_allocated_storage") or 20

        # Cluster add-ons
        self.karpenter_version = self.config.get("karpenter_version") or "1.0.6"
        self.enable_metrics_server = self._get_bool("enable_metrics_server", True)
        self.enable_load_balancer_controller = self._get_bool("enable_load_balancer_controller", True)
        self.load_balancer_controller_version = self.config.get("load_balancer_controller_version") or "1.10.1"

        # Source repository watched by the release pipeline
        self.github_owner = self.config.get("github_owner") or "otterley"
        self.github_repo = self.config.get("github_repo") or "spring-petclinic"
        self.github_branch = self.config.get("github_branch") or "aws-under-the-hood-multi-stage"

        # Deploy job settings
        self.workload_name = self.config.get("workload_name") or "spring-petclinic"
        self.deploy_dir = self.config.get("deploy_dir") or "deploy"
        self.rollout_timeout = self.config.get("rollout_timeout") or "5m"
        self.kubectl_version = self.config.get("kubectl_version") or "v1.31.2"

        # Pre-existing IAM roles, referenced by name instead of created
        self.existing_role_names = self.config.get_object("existing_role_names") or {}

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    def _get_bool(self, key: str, default: bool) -> bool:
        value = self.config.get_bool(key)
        return default if value is None else value

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": self.project_name,
            "Repository": f"{self.github_owner}/{self.github_repo}",
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.additional_tags)
        return base_tags

    def environment_tags(self, env: str) -> Dict[str, str]:
        """Common tags plus the environment marker"""
        return {**self.common_tags, "environment": env}

    def cluster_name(self, env: str) -> str:
        return f"{self.project_name}-{env}"

    @property
    def pipeline_name(self) -> str:
        return f"{self.project_name}-release"

    def validate(self) -> "Config":
        """
        Check settings that would otherwise fail halfway through a deployment

        Raises:
            ValueError: on the first invalid setting
        """
        if not self.environments:
            raise ValueError("Config 'environments' must name at least one environment")
        if len(set(self.environments)) != len(self.environments):
            raise ValueError(f"Config 'environments' has duplicates: {self.environments}")
        if not self.public_subnet_cidrs or not self.private_subnet_cidrs:
            raise ValueError("Config needs at least one public and one private subnet CIDR")
        if len(self.public_subnet_cidrs) != len(self.private_subnet_cidrs):
            raise ValueError(
                "Config 'public_subnet_cidrs' and 'private_subnet_cidrs' must list one CIDR per availability zone"
            )
        if not DURATION_PATTERN.match(self.rollout_timeout):
            raise ValueError(f"Config 'rollout_timeout' is not a duration like '5m': {self.rollout_timeout!r}")
        unknown = set(self.existing_role_names) - {"cluster", "fargate", "kubectl"}
        if unknown:
            raise ValueError(f"Config 'existing_role_names' has unknown roles: {sorted(unknown)}")
        return self


def get_config() -> Config:
    """Get the global configuration instance"""
    return Config()
