"""
IAM Module Functions
Roles for the EKS control plane, worker nodes and the AWS Load Balancer Controller
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Any, Dict, List

# Root CA thumbprint shared by every EKS OIDC issuer
EKS_OIDC_THUMBPRINT = "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"

NODE_POLICIES = [
    ("worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"),
    ("cni", "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"),
    ("registry", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"),
    ("ssm", "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"),
]

LOAD_BALANCER_CONTROLLER_ACTIONS = [
    "iam:CreateServiceLinkedRole",
    "ec2:Describe*",
    "ec2:GetCoipPoolUsage",
    "ec2:GetSecurityGroupsForVpc",
    "ec2:CreateSecurityGroup",
    "ec2:DeleteSecurityGroup",
    "ec2:AuthorizeSecurityGroupIngress",
    "ec2:RevokeSecurityGroupIngress",
    "ec2:CreateTags",
    "ec2:DeleteTags",
    "elasticloadbalancing:*",
    "acm:ListCertificates",
    "acm:DescribeCertificate",
    "cognito-idp:DescribeUserPoolClient",
    "waf-regional:GetWebACLForResource",
    "wafv2:GetWebACLForResource",
    "wafv2:AssociateWebACL",
    "wafv2:DisassociateWebACL",
    "shield:GetSubscriptionState",
    "shield:DescribeProtection",
]


def assume_role_policy(service: str) -> str:
    """Trust policy letting an AWS service assume the role"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service},
        }],
    })


def irsa_assume_role_policy(provider_arn: str, issuer_url: str, namespace: str,
                            service_account: str) -> str:
    """Trust policy for a Kubernetes service account federated through the cluster OIDC issuer"""
    issuer = issuer_url.replace("https://", "")
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Federated": provider_arn},
            "Action": "sts:AssumeRoleWithWebIdentity",
            "Condition": {
                "StringEquals": {
                    f"{issuer}:sub": f"system:serviceaccount:{namespace}:{service_account}",
                    f"{issuer}:aud": "sts.amazonaws.com",
                }
            },
        }],
    })


def create_cluster_role(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role for the EKS control plane

    Args:
        name: Cluster name
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-cluster-role",
        name=f"{name}-cluster-role",
        assume_role_policy=assume_role_policy("eks.amazonaws.com"),
        tags={**tags, "Name": f"{name}-cluster-role", "Module": "iam"},
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-cluster-policy",
        policy_arn="arn:aws:iam::aws:policy/AmazonEKSClusterPolicy",
        role=role.name,
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name,
    }


def create_node_group_role(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role for the managed node group.

    The ECR read-only policy lets kubelet pull from the registry even before
    the image pull secret exists.
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-ng-role",
        name=f"{name}-ng-role",
        assume_role_policy=assume_role_policy("ec2.amazonaws.com"),
        tags={**tags, "Name": f"{name}-node-group-role", "Module": "iam"},
    )

    policy_attachments = {
        f"{policy_name}_policy": aws.iam.RolePolicyAttachment(
            f"{name}-node-{policy_name}-policy",
            policy_arn=policy_arn,
            role=role.name,
        )
        for policy_name, policy_arn in NODE_POLICIES
    }

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "role_arn": role.arn,
        "role_name": role.name,
    }


def get_existing_role(role_name: str) -> Dict[str, Any]:
    """Reference a role created outside this stack"""
    pulumi.log.info(f"Using existing IAM role {role_name}")
    role = aws.iam.get_role(name=role_name)

    return {
        "role": role,
        "role_arn": pulumi.Output.from_input(role.arn),
        "role_name": pulumi.Output.from_input(role.name),
    }


def create_oidc_provider(name: str, issuer_url: pulumi.Output[str],
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Register the cluster's OIDC issuer with IAM so service accounts can assume roles

    Args:
        name: Cluster name
        issuer_url: Full https:// issuer URL reported by EKS
        tags: Additional tags

    Returns:
        Dict with provider resource and ARN
    """
    tags = tags or {}

    provider = aws.iam.OpenIdConnectProvider(
        f"{name}-oidc-provider",
        client_id_lists=["sts.amazonaws.com"],
        thumbprint_lists=[EKS_OIDC_THUMBPRINT],
        url=issuer_url,
        tags={**tags, "Name": f"{name}-oidc-provider", "Module": "iam"},
    )

    return {
        "provider": provider,
        "provider_arn": provider.arn,
        "issuer_url": issuer_url,
    }


def create_load_balancer_controller_role(name: str, provider_arn: pulumi.Output[str],
                                         issuer_url: pulumi.Output[str],
                                         namespace: str = "kube-system",
                                         service_account: str = "aws-load-balancer-controller",
                                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the IRSA role used by the AWS Load Balancer Controller to manage the ALB

    Args:
        name: Cluster name
        provider_arn: OIDC provider ARN
        issuer_url: OIDC issuer URL
        namespace: Namespace of the controller's service account
        service_account: Controller service account name
        tags: Additional tags

    Returns:
        Dict with role resource, ARN and the service account it trusts
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-lb-controller-role",
        name=f"{name}-lb-controller",
        assume_role_policy=pulumi.Output.all(provider_arn, issuer_url).apply(
            lambda args: irsa_assume_role_policy(args[0], args[1], namespace, service_account)
        ),
        tags={**tags, "Name": f"{name}-lb-controller", "Module": "iam"},
    )

    policy = aws.iam.RolePolicy(
        f"{name}-lb-controller-policy",
        role=role.id,
        policy=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Action": LOAD_BALANCER_CONTROLLER_ACTIONS,
                "Resource": "*",
            }],
        }),
    )

    return {
        "role": role,
        "policy": policy,
        "role_arn": role.arn,
        "service_account": service_account,
        "namespace": namespace,
    }


def create_iam_resources(cluster_name: str,
                         use_existing_cluster_role: bool = False,
                         existing_cluster_role_name: str = "",
                         use_existing_node_role: bool = False,
                         existing_node_role_name: str = "",
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create or reference the cluster and node group roles

    Args:
        cluster_name: EKS cluster name
        use_existing_cluster_role: Use existing cluster role
        existing_cluster_role_name: Name of existing cluster role
        use_existing_node_role: Use existing node role
        existing_node_role_name: Name of existing node role
        tags: Additional tags

    Returns:
        Dict with role ARNs/names; underscored keys keep resource references
    """
    tags = tags or {}

    if use_existing_cluster_role and existing_cluster_role_name:
        cluster_role_result = get_existing_role(existing_cluster_role_name)
    else:
        cluster_role_result = create_cluster_role(cluster_name, tags)

    if use_existing_node_role and existing_node_role_name:
        node_role_result = get_existing_role(existing_node_role_name)
    else:
        node_role_result = create_node_group_role(cluster_name, tags)

    depends_on: List[pulumi.Resource] = []
    if cluster_role_result.get("policy_attachment") is not None:
        depends_on.append(cluster_role_result["policy_attachment"])
    depends_on.extend((node_role_result.get("policy_attachments") or {}).values())

    return {
        "cluster_role_arn": cluster_role_result["role_arn"],
        "cluster_role_name": cluster_role_result["role_name"],
        "node_group_role_arn": node_role_result["role_arn"],
        "node_group_role_name": node_role_result["role_name"],
        "_cluster_role": cluster_role_result.get("role"),
        "_node_role": node_role_result.get("role"),
        "_depends_on": depends_on,
    }
