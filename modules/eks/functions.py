"""
EKS Module Functions
Control plane, managed node group and AWS-managed add-ons
"""

import pulumi
import pulumi_aws as aws
from typing import Any, Dict, List, Optional

MANAGED_ADDONS = ("vpc-cni", "coredns", "kube-proxy")


def create_cloudwatch_log_group(name: str, retention_days: int = 30,
                                tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the log group EKS writes control plane logs to.

    The name must match ``/aws/eks/<cluster>/cluster`` or EKS creates its own
    group with unlimited retention.
    """
    tags = tags or {}

    log_group = aws.cloudwatch.LogGroup(
        f"{name}-eks-log-group",
        name=f"/aws/eks/{name}/cluster",
        retention_in_days=retention_days,
        tags={**tags, "Name": f"{name}-eks-log-group", "Module": "eks"},
    )

    return {
        "log_group": log_group,
        "log_group_name": log_group.name,
    }


def create_kms_key(name: str, existing_key_arn: str = "", tags: Dict[str, str] = None):
    """Return the ARN of the key used for envelope encryption of Kubernetes secrets"""
    if existing_key_arn:
        pulumi.log.info(f"Using existing KMS key for {name} secret encryption")
        return existing_key_arn

    tags = tags or {}

    kms_key = aws.kms.Key(
        f"{name}-eks-kms-key",
        description=f"EKS secret encryption key for {name}",
        enable_key_rotation=True,
        tags={**tags, "Name": f"{name}-eks-kms-key", "Module": "eks"},
    )

    aws.kms.Alias(
        f"{name}-eks-kms-alias",
        name=f"alias/{name}-eks",
        target_key_id=kms_key.key_id,
    )

    return kms_key.arn


def create_eks_cluster(name: str, version: str, role_arn: pulumi.Output[str],
                       subnet_ids: List[pulumi.Output[str]],
                       security_group_ids: List[pulumi.Output[str]],
                       kms_key_arn, enabled_log_types: List[str] = None,
                       depends_on: Optional[List[pulumi.Resource]] = None,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the EKS control plane

    Args:
        name: Cluster name
        version: Kubernetes version
        role_arn: IAM role ARN for the control plane
        subnet_ids: Subnets for the cluster ENIs
        security_group_ids: Additional cluster security groups
        kms_key_arn: KMS key ARN for secret encryption
        enabled_log_types: Control plane log types shipped to CloudWatch
        depends_on: Resources that must exist first (log group, role policies)
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
            security_group_ids=security_group_ids,
            endpoint_private_access=True,
            endpoint_public_access=True,
        ),
        access_config=aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API_AND_CONFIG_MAP",
            bootstrap_cluster_creator_admin_permissions=True,
        ),
        enabled_cluster_log_types=enabled_log_types,
        encryption_config=aws.eks.ClusterEncryptionConfigArgs(
            provider=aws.eks.ClusterEncryptionConfigProviderArgs(key_arn=kms_key_arn),
            resources=["secrets"],
        ),
        tags={**tags, "Name": f"{name}-cluster", "Module": "eks"},
        opts=pulumi.ResourceOptions(depends_on=depends_on or []),
    )

    return {
        "cluster": cluster,
        "cluster_name": cluster.name,
        "cluster_arn": cluster.arn,
        "cluster_endpoint": cluster.endpoint,
        "cluster_version": cluster.version,
        "cluster_certificate_authority_data": cluster.certificate_authority.data,
        "oidc_issuer_url": cluster.identities.apply(lambda ids: ids[0].oidcs[0].issuer),
    }


def create_node_group(name: str, cluster_name: pulumi.Output[str], role_arn: pulumi.Output[str],
                      subnet_ids: List[pulumi.Output[str]], instance_types: List[str],
                      desired_size: int, max_size: int, min_size: int, disk_size: int,
                      capacity_type: str = "ON_DEMAND",
                      depends_on: Optional[List[pulumi.Resource]] = None,
                      tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the managed node group running the application pods

    Args:
        name: Cluster name
        cluster_name: EKS cluster name output
        role_arn: Node IAM role ARN
        subnet_ids: Subnets for the worker nodes
        instance_types: EC2 instance types
        desired_size: Desired number of nodes
        max_size: Maximum number of nodes
        min_size: Minimum number of nodes
        disk_size: Root volume size in GB
        capacity_type: ON_DEMAND or SPOT
        depends_on: Node role policy attachments
        tags: Additional tags

    Returns:
        Dict with node group resource and outputs
    """
    tags = tags or {}

    node_group = aws.eks.NodeGroup(
        f"{name}-node-group",
        cluster_name=cluster_name,
        node_group_name=f"{name}-nodes",
        node_role_arn=role_arn,
        subnet_ids=subnet_ids,
        capacity_type=capacity_type,
        instance_types=instance_types,
        disk_size=disk_size,
        scaling_config=aws.eks.NodeGroupScalingConfigArgs(
            desired_size=desired_size,
            max_size=max_size,
            min_size=min_size,
        ),
        update_config=aws.eks.NodeGroupUpdateConfigArgs(max_unavailable=1),
        tags={**tags, "Name": f"{name}-node-group", "Module": "eks"},
        opts=pulumi.ResourceOptions(
            depends_on=depends_on or [],
            ignore_changes=["scalingConfig.desiredSize"],
        ),
    )

    return {
        "node_group": node_group,
        "node_group_arn": node_group.arn,
        "node_group_status": node_group.status,
    }


def create_managed_addons(name: str, cluster_name: pulumi.Output[str], node_group=None,
                          addon_names=MANAGED_ADDONS, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Install AWS-managed add-ons once nodes exist to schedule them on"""
    tags = tags or {}
    opts = pulumi.ResourceOptions(depends_on=[node_group]) if node_group else None

    addons = {}
    for addon_name in addon_names:
        addons[addon_name] = aws.eks.Addon(
            f"{name}-{addon_name}-addon",
            cluster_name=cluster_name,
            addon_name=addon_name,
            resolve_conflicts_on_create="OVERWRITE",
            resolve_conflicts_on_update="OVERWRITE",
            tags={**tags, "Name": f"{name}-{addon_name}-addon", "Module": "eks"},
            opts=opts,
        )

    return {"addons": addons}


def create_eks_resources(cluster_name: str, cluster_version: str,
                         cluster_role_arn: pulumi.Output[str], node_group_role_arn: pulumi.Output[str],
                         subnet_ids: List[pulumi.Output[str]],
                         cluster_security_group_id: pulumi.Output[str],
                         node_instance_types: List[str],
                         node_desired_size: int, node_max_size: int, node_min_size: int,
                         node_disk_size: int, capacity_type: str = "ON_DEMAND",
                         cluster_enabled_log_types: List[str] = None,
                         cloudwatch_log_group_retention_in_days: int = 30,
                         use_existing_kms_key: bool = False,
                         existing_kms_key_arn: str = "",
                         iam_depends_on: Optional[List[pulumi.Resource]] = None,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete EKS infrastructure

    Returns:
        Dict with cluster/node group outputs; underscored keys keep resource references
    """
    tags = tags or {}

    log_group_result = create_cloudwatch_log_group(
        cluster_name, cloudwatch_log_group_retention_in_days, tags)

    kms_key_arn = create_kms_key(
        cluster_name, existing_kms_key_arn if use_existing_kms_key else "", tags)

    cluster_result = create_eks_cluster(
        name=cluster_name,
        version=cluster_version,
        role_arn=cluster_role_arn,
        subnet_ids=subnet_ids,
        security_group_ids=[cluster_security_group_id],
        kms_key_arn=kms_key_arn,
        enabled_log_types=cluster_enabled_log_types,
        depends_on=[log_group_result["log_group"], *(iam_depends_on or [])],
        tags=tags,
    )

    node_group_result = create_node_group(
        name=cluster_name,
        cluster_name=cluster_result["cluster"].name,
        role_arn=node_group_role_arn,
        subnet_ids=subnet_ids,
        instance_types=node_instance_types,
        desired_size=node_desired_size,
        max_size=node_max_size,
        min_size=node_min_size,
        disk_size=node_disk_size,
        capacity_type=capacity_type,
        depends_on=iam_depends_on,
        tags=tags,
    )

    addons_result = create_managed_addons(
        cluster_name,
        cluster_result["cluster"].name,
        node_group=node_group_result["node_group"],
        tags=tags,
    )

    return {
        "cluster_name": cluster_result["cluster_name"],
        "cluster_arn": cluster_result["cluster_arn"],
        "cluster_endpoint": cluster_result["cluster_endpoint"],
        "cluster_version_output": cluster_result["cluster_version"],
        "cluster_certificate_authority_data": cluster_result["cluster_certificate_authority_data"],
        "oidc_issuer_url": cluster_result["oidc_issuer_url"],
        "node_group_arn": node_group_result["node_group_arn"],
        "node_group_status": node_group_result["node_group_status"],
        "_log_group": log_group_result["log_group"],
        "_cluster": cluster_result["cluster"],
        "_node_group": node_group_result["node_group"],
        "_addons": addons_result["addons"],
    }
