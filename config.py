"""
Configuration management for the flask-eks infrastructure program
"""

import pulumi
from typing import Dict, List


class Config:
    """Centralized configuration for the VPC/EKS stack"""

    def __init__(self):
        self.config = pulumi.Config()
        aws_config = pulumi.Config("aws")

        # AWS Configuration
        self.aws_region = aws_config.get("region") or "us-east-1"

        # Cluster Configuration
        self.cluster_name = self.config.get("cluster_name") or "flask-eks"
        self.cluster_version = self.config.get("cluster_version") or "1.31"
        self.app_namespace = self.config.get("app_namespace") or "default"

        # Node Configuration
        self.node_instance_types = self.config.get_object("node_instance_types") or ["t3.medium"]
        self.node_desired_size = self.config.get_int("node_desired_size") or 2
        self.node_max_size = self.config.get_int("node_max_size") or 4
        self.node_min_size = self.config.get_int("node_min_size") or 1
        self.node_disk_size = self.config.get_int("node_disk_size") or 20

        # VPC Configuration
        self.vpc_cidr = self.config.get("vpc_cidr") or "10.0.0.0/16"
        self.public_subnet_cidrs = self.config.get_object("public_subnet_cidrs") or ["10.0.1.0/24", "10.0.2.0/24"]

        # Capacity
        self.enable_spot_instances = self.config.get_bool("enable_spot_instances") or False

        # Existing resources
        self.use_existing_cluster_role = self.config.get_bool("use_existing_cluster_role") or False
        self.existing_cluster_role_name = self.config.get("existing_cluster_role_name") or ""
        self.use_existing_node_role = self.config.get_bool("use_existing_node_role") or False
        self.existing_node_role_name = self.config.get("existing_node_role_name") or ""
        self.use_existing_kms_key = self.config.get_bool("use_existing_kms_key") or False
        self.existing_kms_key_arn = self.config.get("existing_kms_key_arn") or ""

        # Logging Configuration
        self.cluster_enabled_log_types = self.config.get_object("cluster_enabled_log_types") or ["api", "audit", "authenticator"]
        self.cloudwatch_log_group_retention_in_days = self.config.get_int("cloudwatch_log_group_retention_in_days") or 30

        # Kubernetes add-ons
        self.enable_metrics_server = self._flag("enable_metrics_server", True)
        self.enable_load_balancer_controller = self._flag("enable_load_balancer_controller", True)

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    def _flag(self, key: str, default: bool) -> bool:
        value = self.config.get_bool(key)
        return default if value is None else value

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": "flask-static-app",
            "Environment": pulumi.get_stack(),
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def capacity_type(self) -> str:
        """Get node group capacity type based on spot instance configuration"""
        return "SPOT" if self.enable_spot_instances else "ON_DEMAND"

    @property
    def optimized_instance_types(self) -> List[str]:
        if self.enable_spot_instances:
            return ["t3.medium", "t3a.medium", "t2.medium"]
        return self.node_instance_types


def get_config() -> Config:
    """Get the global configuration instance"""
    return Config()
