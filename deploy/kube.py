"""
Kubernetes client for deployment operations.
"""
import logging
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient

logger = logging.getLogger(__name__)

FIELD_MANAGER = "flask-deploy"


class KubeClient:
    """Namespaced wrapper over the core, apps, networking and dynamic APIs."""

    def __init__(self, namespace: str, context: Optional[str] = None, in_cluster: bool = False,
                 api_client: Optional[client.ApiClient] = None):
        """
        Initialize Kubernetes client.

        Args:
            namespace: Target Kubernetes namespace
            context: kubeconfig context name (optional)
            in_cluster: Use the pod's service account instead of kubeconfig
            api_client: Preconfigured ApiClient; skips config loading when given
        """
        self.namespace = namespace

        if api_client is None:
            try:
                if in_cluster:
                    config.load_incluster_config()
                else:
                    config.load_kube_config(context=context)
            except Exception as e:
                logger.error(f"❌ Failed to load Kubernetes configuration: {e}")
                raise
            api_client = client.ApiClient()

        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)
        self.networking_v1 = client.NetworkingV1Api(api_client)
        self._dynamic = None
        logger.info(f"✅ Kubernetes client initialized for namespace: {namespace}")

    @property
    def dynamic(self) -> DynamicClient:
        # discovery runs on construction, so only build it when a manifest is applied
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    # ------------------------------------------------------------------
    # Secrets and service accounts
    # ------------------------------------------------------------------

    def apply_secret(self, secret: client.V1Secret) -> str:
        """
        Create the secret, or replace the stored object wholesale if it exists.

        Returns:
            "created" or "replaced"
        """
        name = secret.metadata.name
        try:
            self.core_v1.create_namespaced_secret(namespace=self.namespace, body=secret)
            return "created"
        except ApiException as e:
            if e.status != 409:
                raise
        self.core_v1.replace_namespaced_secret(name=name, namespace=self.namespace, body=secret)
        return "replaced"

    def set_image_pull_secrets(self, service_account: str, secret_names: List[str]) -> str:
        """
        Make ``imagePullSecrets`` of the service account exactly ``secret_names``.

        A JSON patch ``add`` replaces the whole list, unlike a strategic merge
        which would append to it. A missing service account is created.

        Returns:
            "patched" or "created"
        """
        refs = [{"name": name} for name in secret_names]
        patch = [{"op": "add", "path": "/imagePullSecrets", "value": refs}]
        try:
            self.core_v1.patch_namespaced_service_account(
                name=service_account, namespace=self.namespace, body=patch)
            return "patched"
        except ApiException as e:
            if e.status != 404:
                raise

        body = client.V1ServiceAccount(
            metadata=client.V1ObjectMeta(name=service_account, namespace=self.namespace),
            image_pull_secrets=[client.V1LocalObjectReference(name=name) for name in secret_names],
        )
        self.core_v1.create_namespaced_service_account(namespace=self.namespace, body=body)
        return "created"

    def read_service_account(self, name: str) -> client.V1ServiceAccount:
        return self.core_v1.read_namespaced_service_account(name=name, namespace=self.namespace)

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def apply_manifest(self, manifest: Dict[str, Any]):
        """Server-side apply one manifest; returns the object the API server stored."""
        resource = self.dynamic.resources.get(api_version=manifest["apiVersion"], kind=manifest["kind"])
        namespace = None
        if resource.namespaced:
            namespace = manifest.get("metadata", {}).get("namespace") or self.namespace
        return self.dynamic.server_side_apply(
            resource,
            body=manifest,
            namespace=namespace,
            field_manager=FIELD_MANAGER,
            force_conflicts=True,
        )

    # ------------------------------------------------------------------
    # Reads used by rollout tracking and diagnostics
    # ------------------------------------------------------------------

    def read_deployment(self, name: str) -> client.V1Deployment:
        return self.apps_v1.read_namespaced_deployment(name=name, namespace=self.namespace)

    def list_pods(self, label_selector: Optional[str] = None) -> List[client.V1Pod]:
        return self.core_v1.list_namespaced_pod(
            namespace=self.namespace, label_selector=label_selector).items

    def read_pod_log(self, pod: str, container: Optional[str] = None, tail_lines: int = 50) -> str:
        return self.core_v1.read_namespaced_pod_log(
            name=pod, namespace=self.namespace, container=container, tail_lines=tail_lines)

    def list_events(self, field_selector: Optional[str] = None) -> List[client.CoreV1Event]:
        return self.core_v1.list_namespaced_event(
            namespace=self.namespace, field_selector=field_selector).items

    def read_ingress(self, name: str) -> client.V1Ingress:
        return self.networking_v1.read_namespaced_ingress(name=name, namespace=self.namespace)
