"""
Image pull secret provisioning.

A fresh registry token is written into a docker-registry secret on every run
and the workload's service account is pointed at that one secret.
"""
import base64
import json
import logging
from typing import Any, Dict

from kubernetes import client

from deploy import ecr as ecr_ops

logger = logging.getLogger(__name__)

DEFAULT_SECRET_NAME = "ecr-registry-secret"
DEFAULT_SERVICE_ACCOUNT = "deploy-robot"


def docker_config_json(registry: str, username: str, password: str) -> str:
    """The .dockerconfigjson document kubectl create secret docker-registry writes."""
    auth = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return json.dumps({
        "auths": {
            registry: {
                "username": username,
                "password": password,
                "auth": auth,
            }
        }
    })


def build_pull_secret(name: str, namespace: str, registry: str,
                      username: str, password: str) -> client.V1Secret:
    """Render the secret client-side; nothing is sent to the cluster here."""
    payload = docker_config_json(registry, username, password)
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={"app.kubernetes.io/managed-by": "flask-deploy"},
        ),
        type="kubernetes.io/dockerconfigjson",
        data={".dockerconfigjson": base64.b64encode(payload.encode("utf-8")).decode("ascii")},
    )


def provision_pull_secret(kube, ecr, account_id: str, region: str, namespace: str,
                          secret_name: str = DEFAULT_SECRET_NAME,
                          service_account: str = DEFAULT_SERVICE_ACCOUNT) -> Dict[str, Any]:
    """
    Refresh the registry credential secret and bind it to the service account.

    Args:
        kube: KubeClient for the target namespace
        ecr: boto3 ECR client
        account_id: AWS account owning the registry
        region: Registry region
        namespace: Namespace of the secret
        secret_name: Secret name
        service_account: Service account that gets the secret as its only pull secret

    Returns:
        Dict with registry, secret and service_account outcomes

    Raises:
        RegistryAuthError: the token could not be fetched; nothing was changed
    """
    username, password, _ = ecr_ops.get_registry_credentials(ecr, account_id)
    registry = ecr_ops.registry_host(account_id, region)

    secret = build_pull_secret(secret_name, namespace, registry, username, password)
    secret_state = kube.apply_secret(secret)
    logger.info(f"✅ Secret {namespace}/{secret_name} {secret_state}")

    sa_state = kube.set_image_pull_secrets(service_account, [secret_name])
    logger.info(f"✅ Service account {namespace}/{service_account} {sa_state} to use {secret_name}")

    return {
        "registry": registry,
        "secret": secret_state,
        "service_account": sa_state,
    }
