"""
Point the local kubeconfig at the EKS cluster.
"""
import logging

from deploy import shell

logger = logging.getLogger(__name__)


def update_kubeconfig(cluster_name: str, region: str) -> None:
    shell.run(["aws", "eks", "update-kubeconfig", "--region", region, "--name", cluster_name])
    logger.info(f"✅ kubeconfig updated for cluster {cluster_name}")
