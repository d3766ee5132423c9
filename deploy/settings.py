"""
Pipeline settings read from the environment (or a local .env file).
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Variables the pipeline passes to every stage."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # AWS
    AWS_REGION: str = Field(default="us-east-1", description="AWS region")
    AWS_ACCOUNT_ID: Optional[str] = Field(default=None, description="Account id; resolved via STS when unset")

    # Registry / image
    IMAGE_REPOSITORY: str = Field(default="flask-static-app", description="ECR repository name")
    IMAGE_TAG: str = Field(default="local", description="Build identifier used as image tag")
    ECR_REGISTRY: Optional[str] = Field(default=None, description="Registry host override")
    LIFECYCLE_KEEP_IMAGES: int = Field(default=10, ge=1, description="Images kept by the lifecycle policy")
    DOCKER_CONTEXT: str = Field(default="webapp", description="Docker build context")

    # Cluster / workload
    CLUSTER_NAME: str = Field(default="flask-eks", description="EKS cluster name")
    NAMESPACE: str = Field(default="default", description="Kubernetes namespace")
    KUBE_CONTEXT: Optional[str] = Field(default=None, description="kubeconfig context")
    APP_NAME: str = Field(default="flask-static-app", description="Deployment/Service/Ingress name")
    SERVICE_ACCOUNT: str = Field(default="deploy-robot", description="Service account bound to the pull secret")
    PULL_SECRET_NAME: str = Field(default="ecr-registry-secret", description="Image pull secret name")
    MANIFEST_DIR: str = Field(default="k8s", description="Directory holding the manifest set")

    # Pulumi
    INFRA_DIR: str = Field(default=".", description="Directory of the infrastructure program")
    PULUMI_STACK: str = Field(default="dev", description="Stack name")
    PULUMI_BACKEND_URL: Optional[str] = Field(default=None, description="s3://bucket?region=... state backend")
    PULUMI_SECRETS_PROVIDER: Optional[str] = Field(default=None, description="awskms://alias/... secrets provider")

    # Waits
    ROLLOUT_TIMEOUT_SECS: int = Field(default=300, ge=1, description="Rollout wait bound")
    INGRESS_TIMEOUT_SECS: int = Field(default=600, ge=1, description="Ingress hostname wait bound")
    POLL_INTERVAL_SECS: float = Field(default=5.0, gt=0, description="Polling interval for waits")

    # Output
    DIAGNOSTICS_DIR: Optional[str] = Field(default=None, description="Where failed-rollout diagnostics are written")
    LOG_LEVEL: str = Field(default="info", description="Log level: debug|info|warning")

    @property
    def registry(self) -> str:
        if self.ECR_REGISTRY:
            return self.ECR_REGISTRY
        if not self.AWS_ACCOUNT_ID:
            raise ValueError("AWS_ACCOUNT_ID is required to derive the registry host")
        return f"{self.AWS_ACCOUNT_ID}.dkr.ecr.{self.AWS_REGION}.amazonaws.com"

    @property
    def repository_uri(self) -> str:
        return f"{self.registry}/{self.IMAGE_REPOSITORY}"

    @property
    def image(self) -> str:
        return f"{self.repository_uri}:{self.IMAGE_TAG}"


def get_settings(**overrides) -> Settings:
    """Build settings from the environment, with explicit overrides taking precedence."""
    return Settings(**overrides)
