"""
ECR repository bootstrap and registry credentials.

Creating the repository and its lifecycle policy is idempotent: an existing
repository or an identical policy is reported, not raised.
"""
import base64
import json
import logging
from typing import Any, Dict, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from deploy.errors import RegistryAuthError

logger = logging.getLogger(__name__)

REGISTRY_USERNAME = "AWS"


def registry_host(account_id: str, region: str) -> str:
    return f"{account_id}.dkr.ecr.{region}.amazonaws.com"


def get_account_id(sts) -> str:
    """Account id of the caller's credentials."""
    try:
        return sts.get_caller_identity()["Account"]
    except (ClientError, BotoCoreError) as e:
        raise RegistryAuthError(f"unable to resolve AWS account id: {e}") from e


def lifecycle_policy_document(keep_images: int = 10) -> Dict[str, Any]:
    """Expire everything beyond the newest ``keep_images`` images, tagged or not."""
    return {
        "rules": [
            {
                "rulePriority": 1,
                "description": f"Keep last {keep_images} images",
                "selection": {
                    "tagStatus": "any",
                    "countType": "imageCountMoreThan",
                    "countNumber": keep_images,
                },
                "action": {"type": "expire"},
            }
        ]
    }


def create_repository(ecr, repository_name: str) -> bool:
    """
    Create the repository with scan-on-push and AES256 encryption.

    Returns:
        True when created, False when it already existed
    """
    try:
        ecr.create_repository(
            repositoryName=repository_name,
            imageScanningConfiguration={"scanOnPush": True},
            encryptionConfiguration={"encryptionType": "AES256"},
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "RepositoryAlreadyExistsException":
            logger.info(f"Repository {repository_name} already exists")
            return False
        raise
    logger.info(f"✅ Created ECR repository {repository_name}")
    return True


def get_repository_uri(ecr, repository_name: str) -> str:
    resp = ecr.describe_repositories(repositoryNames=[repository_name])
    return resp["repositories"][0]["repositoryUri"]


def ensure_lifecycle_policy(ecr, repository_name: str, keep_images: int = 10) -> str:
    """
    Put the retention policy unless an identical one is already attached.

    Returns:
        "created" when written, "unchanged" when the current policy already matches
    """
    desired = lifecycle_policy_document(keep_images)
    try:
        current = ecr.get_lifecycle_policy(repositoryName=repository_name)
        if json.loads(current["lifecyclePolicyText"]) == desired:
            logger.info(f"Lifecycle policy on {repository_name} already exists")
            return "unchanged"
    except ClientError as e:
        if e.response["Error"]["Code"] != "LifecyclePolicyNotFoundException":
            raise

    ecr.put_lifecycle_policy(
        repositoryName=repository_name,
        lifecyclePolicyText=json.dumps(desired),
    )
    logger.info(f"✅ Lifecycle policy set on {repository_name}: keep last {keep_images} images")
    return "created"


def ensure_repository(ecr, repository_name: str, keep_images: int = 10) -> Dict[str, Any]:
    """
    Make sure the repository and its lifecycle policy exist.

    Args:
        ecr: boto3 ECR client
        repository_name: Repository name
        keep_images: Images retained by the lifecycle policy

    Returns:
        Dict with repository_uri, registry, created and lifecycle_policy
    """
    created = create_repository(ecr, repository_name)
    repository_uri = get_repository_uri(ecr, repository_name)
    policy_state = ensure_lifecycle_policy(ecr, repository_name, keep_images)

    return {
        "repository_uri": repository_uri,
        "registry": repository_uri.rsplit("/", 1)[0],
        "created": created,
        "lifecycle_policy": policy_state,
    }


def get_registry_credentials(ecr, account_id: str) -> Tuple[str, str, str]:
    """
    Fetch a short-lived registry token.

    Returns:
        (username, password, endpoint host)

    Raises:
        RegistryAuthError: credentials missing, expired or not authorized
    """
    try:
        resp = ecr.get_authorization_token(registryIds=[account_id])
    except (ClientError, BotoCoreError) as e:
        raise RegistryAuthError(f"failed to fetch ECR authorization token: {e}") from e

    data = resp["authorizationData"][0]
    username, password = base64.b64decode(data["authorizationToken"]).decode("utf-8").split(":", 1)
    endpoint = data["proxyEndpoint"].replace("https://", "").rstrip("/")
    return username, password, endpoint


def setup_hints(repository_uri: str, region: str, account_id: str, image_repository: str) -> Dict[str, str]:
    """Follow-up commands printed by ``python -m deploy ecr-setup``."""
    registry = repository_uri.rsplit("/", 1)[0]
    return {
        "pipeline_variables": f"ECR_REGISTRY={registry} AWS_ACCOUNT_ID={account_id}",
        "docker_login": f"aws ecr get-login-password --region {region} | docker login --username {REGISTRY_USERNAME} --password-stdin {registry}",
        "build": f"docker build -t {image_repository} ./webapp",
        "tag": f"docker tag {image_repository}:latest {repository_uri}:latest",
        "push": f"docker push {repository_uri}:latest",
    }
