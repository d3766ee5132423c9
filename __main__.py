"""
flask-eks infrastructure
VPC, EKS cluster, node group and the in-cluster controllers the app relies on
"""

import pulumi
from config import get_config
from modules.vpc.functions import create_vpc_resources
from modules.iam.functions import (
    create_iam_resources,
    create_load_balancer_controller_role,
    create_oidc_provider,
)
from modules.eks.functions import create_eks_resources
from modules.addons.functions import create_addons_resources

config = get_config()
tags = config.common_tags

# 1. Network
vpc = create_vpc_resources(
    cluster_name=config.cluster_name,
    vpc_cidr=config.vpc_cidr,
    public_subnet_cidrs=config.public_subnet_cidrs,
    tags=tags,
)

# 2. Cluster and node roles
iam = create_iam_resources(
    cluster_name=config.cluster_name,
    use_existing_cluster_role=config.use_existing_cluster_role,
    existing_cluster_role_name=config.existing_cluster_role_name,
    use_existing_node_role=config.use_existing_node_role,
    existing_node_role_name=config.existing_node_role_name,
    tags=tags,
)

# 3. EKS control plane and nodes
eks = create_eks_resources(
    cluster_name=config.cluster_name,
    cluster_version=config.cluster_version,
    cluster_role_arn=iam["cluster_role_arn"],
    node_group_role_arn=iam["node_group_role_arn"],
    subnet_ids=vpc["public_subnet_ids"],
    cluster_security_group_id=vpc["cluster_security_group_id"],
    node_instance_types=config.optimized_instance_types,
    node_desired_size=config.node_desired_size,
    node_max_size=config.node_max_size,
    node_min_size=config.node_min_size,
    node_disk_size=config.node_disk_size,
    capacity_type=config.capacity_type,
    cluster_enabled_log_types=config.cluster_enabled_log_types,
    cloudwatch_log_group_retention_in_days=config.cloudwatch_log_group_retention_in_days,
    use_existing_kms_key=config.use_existing_kms_key,
    existing_kms_key_arn=config.existing_kms_key_arn,
    iam_depends_on=iam["_depends_on"],
    tags=tags,
)

# 4. IRSA for the load balancer controller
oidc = create_oidc_provider(config.cluster_name, eks["oidc_issuer_url"], tags)
lb_role = create_load_balancer_controller_role(
    config.cluster_name, oidc["provider_arn"], oidc["issuer_url"], tags=tags)

# 5. metrics-server (HPA) and AWS Load Balancer Controller (ALB ingress)
addons = create_addons_resources(
    cluster_name=config.cluster_name,
    cluster_endpoint=eks["cluster_endpoint"],
    cluster_ca_data=eks["cluster_certificate_authority_data"],
    region=config.aws_region,
    app_namespace=config.app_namespace,
    vpc_id=vpc["vpc_id"],
    load_balancer_role_arn=lb_role["role_arn"],
    enable_metrics_server=config.enable_metrics_server,
    enable_load_balancer_controller=config.enable_load_balancer_controller,
)

# The deploy tool reads cluster_name and cluster_endpoint
pulumi.export("cluster_name", eks["cluster_name"])
pulumi.export("cluster_endpoint", eks["cluster_endpoint"])
pulumi.export("cluster_arn", eks["cluster_arn"])
pulumi.export("vpc_id", vpc["vpc_id"])
pulumi.export("region", config.aws_region)
pulumi.export("app_namespace", addons["app_namespace_name"])
pulumi.export("kubeconfig_command",
    pulumi.Output.concat(
        "aws eks update-kubeconfig --region ", config.aws_region, " --name ", eks["cluster_name"]
    ))
pulumi.export("addons", {
    "metrics_server": addons["metrics_server_status"],
    "aws_load_balancer_controller": addons["aws_load_balancer_controller_status"],
})
