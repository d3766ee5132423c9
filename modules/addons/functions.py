"""
Addons Module Functions
In-cluster controllers the application manifests depend on:
metrics-server for the HPA and the AWS Load Balancer Controller for the ALB ingress
"""

import pulumi
import pulumi_kubernetes as k8s
from typing import Any, Dict, Optional


def create_kubernetes_provider(name: str, cluster_endpoint: 'pulumi.Output[str]',
                               cluster_ca_data: 'pulumi.Output[str]',
                               region: str) -> k8s.Provider:
    """
    Create a Kubernetes provider that authenticates with ``aws eks get-token``

    Args:
        name: Cluster name
        cluster_endpoint: EKS API endpoint
        cluster_ca_data: Base64 cluster CA bundle
        region: AWS region of the cluster

    Returns:
        Kubernetes provider instance
    """
    kubeconfig = pulumi.Output.all(cluster_endpoint, cluster_ca_data).apply(
        lambda args: {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{
                "name": name,
                "cluster": {"server": args[0], "certificate-authority-data": args[1]},
            }],
            "contexts": [{"name": name, "context": {"cluster": name, "user": name}}],
            "current-context": name,
            "users": [{
                "name": name,
                "user": {
                    "exec": {
                        "apiVersion": "client.authentication.k8s.io/v1beta1",
                        "command": "aws",
                        "args": ["eks", "get-token", "--cluster-name", name, "--region", region],
                    }
                },
            }],
        }
    )

    return k8s.Provider(f"{name}-k8s-provider", kubeconfig=kubeconfig)


def create_app_namespace(name: str, namespace: str, provider: k8s.Provider) -> Dict[str, Any]:
    """Create the application namespace unless it is one Kubernetes ships with"""
    if namespace in ("default", "kube-system", "kube-public"):
        return {"namespace": None, "namespace_name": namespace}

    resource = k8s.core.v1.Namespace(
        f"{name}-{namespace}-namespace",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=namespace,
            labels={"name": namespace, "managed-by": "pulumi"},
        ),
        opts=pulumi.ResourceOptions(provider=provider),
    )

    return {"namespace": resource, "namespace_name": resource.metadata.name}


def deploy_metrics_server(name: str, provider: k8s.Provider) -> Dict[str, Any]:
    """Deploy metrics-server, the resource metrics source for the HPA"""
    release = k8s.helm.v3.Release(
        f"{name}-metrics-server",
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(
            repo="https://kubernetes-sigs.github.io/metrics-server/"
        ),
        chart="metrics-server",
        name="metrics-server",
        namespace="kube-system",
        values={
            "args": [
                "--kubelet-preferred-address-types=InternalIP,ExternalIP,Hostname",
                "--metric-resolution=15s",
            ]
        },
        opts=pulumi.ResourceOptions(provider=provider),
    )

    return {"release": release, "status": "✅ Enabled"}


def deploy_load_balancer_controller(name: str, provider: k8s.Provider, role_arn: 'pulumi.Output[str]',
                                    vpc_id: 'pulumi.Output[str]', region: str,
                                    service_account: str = "aws-load-balancer-controller",
                                    namespace: str = "kube-system") -> Dict[str, Any]:
    """
    Deploy the AWS Load Balancer Controller which turns ``ingressClassName: alb`` into an ALB

    Args:
        name: Cluster name
        provider: Kubernetes provider
        role_arn: IRSA role for the controller
        vpc_id: VPC the ALB is created in
        region: AWS region
        service_account: Controller service account name
        namespace: Controller namespace

    Returns:
        Dict with the helm release and status
    """
    release = k8s.helm.v3.Release(
        f"{name}-aws-load-balancer-controller",
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(repo="https://aws.github.io/eks-charts"),
        chart="aws-load-balancer-controller",
        name="aws-load-balancer-controller",
        namespace=namespace,
        values={
            "clusterName": name,
            "region": region,
            "vpcId": vpc_id,
            "serviceAccount": {
                "create": True,
                "name": service_account,
                "annotations": {"eks.amazonaws.com/role-arn": role_arn},
            },
        },
        opts=pulumi.ResourceOptions(provider=provider),
    )

    return {"release": release, "status": "✅ Enabled"}


def create_addons_resources(cluster_name: str,
                            cluster_endpoint: 'pulumi.Output[str]',
                            cluster_ca_data: 'pulumi.Output[str]',
                            region: str,
                            app_namespace: str = "default",
                            vpc_id: Optional['pulumi.Output[str]'] = None,
                            load_balancer_role_arn: Optional['pulumi.Output[str]'] = None,
                            enable_metrics_server: bool = True,
                            enable_load_balancer_controller: bool = True) -> Dict[str, Any]:
    """
    Create the in-cluster add-ons for the application

    Args:
        cluster_name: EKS cluster name
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data
        region: AWS region
        app_namespace: Namespace the application is deployed to
        vpc_id: VPC ID for the load balancer controller
        load_balancer_role_arn: IRSA role ARN for the load balancer controller
        enable_metrics_server: Deploy metrics-server
        enable_load_balancer_controller: Deploy the AWS Load Balancer Controller

    Returns:
        Dict with add-on status; underscored keys keep resource references
    """
    k8s_provider = create_kubernetes_provider(cluster_name, cluster_endpoint, cluster_ca_data, region)
    namespace_result = create_app_namespace(cluster_name, app_namespace, k8s_provider)

    metrics_server_result = None
    if enable_metrics_server:
        metrics_server_result = deploy_metrics_server(cluster_name, k8s_provider)

    lb_controller_result = None
    if not enable_load_balancer_controller:
        pulumi.log.warn("AWS Load Balancer Controller disabled: the alb ingress will not get an address")
    else:
        if load_balancer_role_arn is None or vpc_id is None:
            raise ValueError("load balancer controller needs vpc_id and load_balancer_role_arn")
        lb_controller_result = deploy_load_balancer_controller(
            cluster_name, k8s_provider, load_balancer_role_arn, vpc_id, region)

    return {
        "metrics_server_status": metrics_server_result["status"] if metrics_server_result else "❌ Disabled",
        "aws_load_balancer_controller_status": lb_controller_result["status"] if lb_controller_result else "❌ Disabled",
        "app_namespace_name": namespace_result["namespace_name"],
        "_k8s_provider": k8s_provider,
        "_namespace": namespace_result["namespace"],
        "_metrics_server": metrics_server_result["release"] if metrics_server_result else None,
        "_load_balancer_controller": lb_controller_result["release"] if lb_controller_result else None,
    }
