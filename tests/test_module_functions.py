"""
Unit tests for the Pulumi modules
Resource constructors are patched so no engine is needed
"""

import json
import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.vpc.functions import create_vpc_resources
from modules.iam.functions import (
    create_iam_resources,
    create_load_balancer_controller_role,
    irsa_assume_role_policy,
    NODE_POLICIES,
)
from modules.eks.functions import create_eks_resources, MANAGED_ADDONS
from modules.addons.functions import create_addons_resources
from modules.state_storage.functions import create_state_storage_resources, state_bucket_name


class TestVpcFunctions(unittest.TestCase):
    """Network layer"""

    def _run(self, mock_aws, cidrs):
        mock_aws.get_availability_zones.return_value = Mock(names=["us-east-1a", "us-east-1b"])
        mock_vpc = Mock()
        mock_vpc.id = "vpc-12345"
        mock_vpc.cidr_block = "10.0.0.0/16"
        mock_aws.ec2.Vpc.return_value = mock_vpc
        mock_aws.ec2.InternetGateway.return_value = Mock(id="igw-12345")
        mock_aws.ec2.Subnet.return_value = Mock(id="subnet-12345")
        mock_aws.ec2.RouteTable.return_value = Mock(id="rt-12345")
        mock_aws.ec2.SecurityGroup.return_value = Mock(id="sg-12345")

        return create_vpc_resources(
            cluster_name="test-cluster",
            vpc_cidr="10.0.0.0/16",
            public_subnet_cidrs=cidrs,
            tags={"Project": "test"},
        )

    def test_vpc_function_structure(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._run(mock_aws, ["10.0.1.0/24", "10.0.2.0/24"])

            for key in ("vpc_id", "vpc_cidr_block", "public_subnet_ids", "availability_zones",
                        "cluster_security_group_id", "node_group_security_group_id"):
                self.assertIn(key, result)
            self.assertEqual(result["vpc_id"], "vpc-12345")
            self.assertEqual(len(result["public_subnet_ids"]), 2)

    def test_subnets_are_tagged_for_internet_facing_load_balancers(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            self._run(mock_aws, ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"])

            calls = mock_aws.ec2.Subnet.call_args_list
            self.assertEqual(len(calls), 3)
            zones = [c.kwargs["availability_zone"] for c in calls]
            self.assertEqual(zones, ["us-east-1a", "us-east-1b", "us-east-1a"])
            for c in calls:
                self.assertEqual(c.kwargs["tags"]["kubernetes.io/role/elb"], "1")
                self.assertEqual(c.kwargs["tags"]["kubernetes.io/cluster/test-cluster"], "shared")
                self.assertEqual(c.kwargs["tags"]["Project"], "test")

    def test_every_subnet_is_associated_with_the_public_route_table(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            self._run(mock_aws, ["10.0.1.0/24", "10.0.2.0/24"])

            self.assertEqual(mock_aws.ec2.RouteTableAssociation.call_count, 2)
            mock_aws.ec2.RouteTableRouteArgs.assert_called_once_with(
                cidr_block="0.0.0.0/0", gateway_id="igw-12345")


class TestIamFunctions(unittest.TestCase):
    """Cluster, node and controller roles"""

    def test_iam_function_structure(self):
        with patch('modules.iam.functions.aws') as mock_aws:
            mock_role = Mock()
            mock_role.arn = "arn:aws:iam::123456789012:role/test-role"
            mock_role.name = "test-role"
            mock_aws.iam.Role.return_value = mock_role

            result = create_iam_resources(cluster_name="test-cluster")

            self.assertEqual(result["cluster_role_arn"], mock_role.arn)
            self.assertEqual(result["node_group_role_name"], "test-role")
            # one cluster policy plus every node policy
            self.assertEqual(len(result["_depends_on"]), 1 + len(NODE_POLICIES))

    def test_node_role_can_pull_from_ecr(self):
        with patch('modules.iam.functions.aws') as mock_aws:
            mock_aws.iam.Role.return_value = Mock(arn="arn", name="role")

            create_iam_resources(cluster_name="test-cluster")

            attached = [c.kwargs["policy_arn"] for c in mock_aws.iam.RolePolicyAttachment.call_args_list]
            self.assertIn("arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly", attached)
            self.assertIn("arn:aws:iam::aws:policy/AmazonEKSClusterPolicy", attached)

    def test_existing_roles_are_referenced_not_created(self):
        with patch('modules.iam.functions.aws') as mock_aws, \
             patch('modules.iam.functions.pulumi') as mock_pulumi:
            mock_aws.iam.get_role.return_value = Mock(arn="arn:existing", name="existing")
            mock_pulumi.Output.from_input.side_effect = lambda value: value

            result = create_iam_resources(
                cluster_name="test-cluster",
                use_existing_cluster_role=True,
                existing_cluster_role_name="existing",
                use_existing_node_role=True,
                existing_node_role_name="existing",
            )

            mock_aws.iam.Role.assert_not_called()
            self.assertEqual(result["cluster_role_arn"], "arn:existing")
            self.assertEqual(result["_depends_on"], [])

    def test_irsa_policy_is_scoped_to_one_service_account(self):
        policy = json.loads(irsa_assume_role_policy(
            "arn:aws:iam::123456789012:oidc-provider/oidc.eks.us-east-1.amazonaws.com/id/ABC",
            "https://oidc.eks.us-east-1.amazonaws.com/id/ABC",
            "kube-system",
            "aws-load-balancer-controller",
        ))

        condition = policy["Statement"][0]["Condition"]["StringEquals"]
        self.assertEqual(
            condition["oidc.eks.us-east-1.amazonaws.com/id/ABC:sub"],
            "system:serviceaccount:kube-system:aws-load-balancer-controller",
        )
        self.assertEqual(policy["Statement"][0]["Action"], "sts:AssumeRoleWithWebIdentity")

    def test_load_balancer_controller_role(self):
        with patch('modules.iam.functions.aws') as mock_aws, \
             patch('modules.iam.functions.pulumi'):
            mock_aws.iam.Role.return_value = Mock(arn="arn:lb", id="lb-role")

            result = create_load_balancer_controller_role("test-cluster", "provider-arn", "issuer")

            self.assertEqual(result["role_arn"], "arn:lb")
            self.assertEqual(result["namespace"], "kube-system")
            policy = json.loads(mock_aws.iam.RolePolicy.call_args.kwargs["policy"])
            self.assertIn("elasticloadbalancing:*", policy["Statement"][0]["Action"])


class TestEksFunctions(unittest.TestCase):
    """Control plane and node group"""

    def _run(self, mock_aws, **overrides):
        mock_cluster = Mock()
        mock_cluster.name = "test-cluster"
        mock_aws.eks.Cluster.return_value = mock_cluster
        mock_aws.eks.NodeGroup.return_value = Mock(arn="arn:ng", status="ACTIVE")
        mock_aws.kms.Key.return_value = Mock(arn="arn:kms")

        kwargs = dict(
            cluster_name="test-cluster",
            cluster_version="1.31",
            cluster_role_arn="arn:cluster-role",
            node_group_role_arn="arn:node-role",
            subnet_ids=["subnet-1", "subnet-2"],
            cluster_security_group_id="sg-1",
            node_instance_types=["t3.medium"],
            node_desired_size=2,
            node_max_size=4,
            node_min_size=1,
            node_disk_size=20,
        )
        kwargs.update(overrides)
        return create_eks_resources(**kwargs)

    def test_eks_function_structure(self):
        with patch('modules.eks.functions.aws') as mock_aws, \
             patch('modules.eks.functions.pulumi'):
            result = self._run(mock_aws)

            for key in ("cluster_name", "cluster_arn", "cluster_endpoint", "cluster_version_output",
                        "cluster_certificate_authority_data", "oidc_issuer_url",
                        "node_group_arn", "node_group_status"):
                self.assertIn(key, result)
            self.assertEqual(set(result["_addons"]), set(MANAGED_ADDONS))

    def test_log_group_name_matches_eks_convention(self):
        with patch('modules.eks.functions.aws') as mock_aws, \
             patch('modules.eks.functions.pulumi'):
            self._run(mock_aws, cloudwatch_log_group_retention_in_days=7)

            kwargs = mock_aws.cloudwatch.LogGroup.call_args.kwargs
            self.assertEqual(kwargs["name"], "/aws/eks/test-cluster/cluster")
            self.assertEqual(kwargs["retention_in_days"], 7)

    def test_existing_kms_key_skips_key_creation(self):
        with patch('modules.eks.functions.aws') as mock_aws, \
             patch('modules.eks.functions.pulumi'):
            self._run(mock_aws, use_existing_kms_key=True, existing_kms_key_arn="arn:existing-key")

            mock_aws.kms.Key.assert_not_called()
            mock_aws.eks.ClusterEncryptionConfigProviderArgs.assert_called_once_with(key_arn="arn:existing-key")

    def test_node_group_scaling(self):
        with patch('modules.eks.functions.aws') as mock_aws, \
             patch('modules.eks.functions.pulumi'):
            self._run(mock_aws, capacity_type="SPOT")

            mock_aws.eks.NodeGroupScalingConfigArgs.assert_called_once_with(
                desired_size=2, max_size=4, min_size=1)
            self.assertEqual(mock_aws.eks.NodeGroup.call_args.kwargs["capacity_type"], "SPOT")


class TestAddonsFunctions(unittest.TestCase):
    """In-cluster controllers"""

    def test_addons_function_structure(self):
        with patch('modules.addons.functions.k8s') as mock_k8s, \
             patch('modules.addons.functions.pulumi'):
            result = create_addons_resources(
                cluster_name="test-cluster",
                cluster_endpoint="https://example.eks.amazonaws.com",
                cluster_ca_data="Y2E=",
                region="us-east-1",
                app_namespace="web",
                vpc_id="vpc-12345",
                load_balancer_role_arn="arn:lb",
            )

            self.assertEqual(result["metrics_server_status"], "✅ Enabled")
            self.assertEqual(result["aws_load_balancer_controller_status"], "✅ Enabled")
            charts = [c.kwargs["chart"] for c in mock_k8s.helm.v3.Release.call_args_list]
            self.assertEqual(charts, ["metrics-server", "aws-load-balancer-controller"])
            mock_k8s.core.v1.Namespace.assert_called_once()

    def test_default_namespace_is_not_created(self):
        with patch('modules.addons.functions.k8s') as mock_k8s, \
             patch('modules.addons.functions.pulumi'):
            result = create_addons_resources(
                cluster_name="test-cluster",
                cluster_endpoint="https://example.eks.amazonaws.com",
                cluster_ca_data="Y2E=",
                region="us-east-1",
                enable_metrics_server=False,
                enable_load_balancer_controller=False,
            )

            mock_k8s.core.v1.Namespace.assert_not_called()
            mock_k8s.helm.v3.Release.assert_not_called()
            self.assertEqual(result["app_namespace_name"], "default")
            self.assertEqual(result["metrics_server_status"], "❌ Disabled")

    def test_load_balancer_controller_requires_role(self):
        with patch('modules.addons.functions.k8s'), \
             patch('modules.addons.functions.pulumi'):
            with self.assertRaises(ValueError):
                create_addons_resources(
                    cluster_name="test-cluster",
                    cluster_endpoint="https://example.eks.amazonaws.com",
                    cluster_ca_data="Y2E=",
                    region="us-east-1",
                )


class TestStateStorageFunctions(unittest.TestCase):
    """Pulumi state backend"""

    def test_state_storage_function_structure(self):
        with patch('modules.state_storage.functions.aws') as mock_aws, \
             patch('modules.state_storage.functions.pulumi'):
            mock_bucket = Mock()
            mock_bucket.id = "test-bucket"
            mock_aws.s3.Bucket.return_value = mock_bucket
            mock_aws.kms.Key.return_value = Mock(arn="arn:kms")

            result = create_state_storage_resources(
                cluster_name="test-cluster",
                aws_region="us-east-1"
            )

            self.assertIn("bucket_name_output", result)
            self.assertIn("configuration_commands", result)

            backend_config = result["backend_config"]
            self.assertEqual(backend_config["backend_type"], "s3")
            self.assertEqual(backend_config["bucket"], "test-cluster-pulumi-state-us-east-1")
            self.assertEqual(backend_config["backend_url"], "s3://test-cluster-pulumi-state-us-east-1?region=us-east-1")
            self.assertEqual(backend_config["secrets_provider"], "awskms://alias/test-cluster-pulumi-secrets")

    def test_bucket_blocks_public_access(self):
        with patch('modules.state_storage.functions.aws') as mock_aws, \
             patch('modules.state_storage.functions.pulumi'):
            create_state_storage_resources(cluster_name="test-cluster", aws_region="eu-west-1")

            kwargs = mock_aws.s3.BucketPublicAccessBlock.call_args.kwargs
            self.assertTrue(kwargs["block_public_acls"])
            self.assertTrue(kwargs["restrict_public_buckets"])
            mock_aws.s3.BucketVersioningVersioningConfigurationArgs.assert_called_once_with(status="Enabled")

    def test_bucket_name_includes_region(self):
        self.assertEqual(state_bucket_name("flask-eks", "us-west-2"), "flask-eks-pulumi-state-us-west-2")


if __name__ == "__main__":
    # Run the tests
    unittest.main(verbosity=2)
