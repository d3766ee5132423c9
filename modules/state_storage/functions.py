"""
State Storage Module Functions
S3 bucket and KMS key backing the self-managed Pulumi state.
The S3 backend keeps its own lock objects under .pulumi/locks in the bucket.
"""

import pulumi
import pulumi_aws as aws
from typing import Any, Dict, List


def state_bucket_name(cluster_name: str, aws_region: str) -> str:
    """Bucket names are global, so the region is part of the name"""
    return f"{cluster_name}-pulumi-state-{aws_region}"


def create_state_bucket(name: str, bucket_name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the state bucket: versioned, AES256-encrypted, never public

    Args:
        name: Resource name prefix
        bucket_name: S3 bucket name
        tags: Additional tags

    Returns:
        Dict with bucket resource, its settings and outputs
    """
    tags = tags or {}

    bucket = aws.s3.Bucket(
        f"{name}-pulumi-state-bucket",
        bucket=bucket_name,
        tags={**tags, "Name": f"{name}-pulumi-state", "Module": "state-storage"},
    )

    versioning = aws.s3.BucketVersioning(
        f"{name}-state-bucket-versioning",
        bucket=bucket.id,
        versioning_configuration=aws.s3.BucketVersioningVersioningConfigurationArgs(status="Enabled"),
    )

    encryption = aws.s3.BucketServerSideEncryptionConfiguration(
        f"{name}-state-bucket-encryption",
        bucket=bucket.id,
        rules=[aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
            apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                sse_algorithm="AES256"
            ),
            bucket_key_enabled=True,
        )],
    )

    public_access_block = aws.s3.BucketPublicAccessBlock(
        f"{name}-state-bucket-pab",
        bucket=bucket.id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True,
    )

    # Old checkpoints pile up on every update; keep 30 days of history
    lifecycle = aws.s3.BucketLifecycleConfiguration(
        f"{name}-state-bucket-lifecycle",
        bucket=bucket.id,
        rules=[aws.s3.BucketLifecycleConfigurationRuleArgs(
            id="state-history",
            status="Enabled",
            filter=aws.s3.BucketLifecycleConfigurationRuleFilterArgs(prefix=""),
            noncurrent_version_expiration=aws.s3.BucketLifecycleConfigurationRuleNoncurrentVersionExpirationArgs(
                noncurrent_days=30
            ),
            abort_incomplete_multipart_upload=aws.s3.BucketLifecycleConfigurationRuleAbortIncompleteMultipartUploadArgs(
                days_after_initiation=1
            ),
        )],
        opts=pulumi.ResourceOptions(depends_on=[versioning]),
    )

    return {
        "bucket": bucket,
        "bucket_id": bucket.id,
        "bucket_arn": bucket.arn,
        "settings": [versioning, encryption, public_access_block, lifecycle],
    }


def create_secrets_key(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """KMS key used as the stack secrets provider (awskms://alias/<name>-pulumi-secrets)"""
    tags = tags or {}

    key = aws.kms.Key(
        f"{name}-pulumi-secrets-key",
        description=f"Pulumi secrets encryption key for {name}",
        key_usage="ENCRYPT_DECRYPT",
        enable_key_rotation=True,
        tags={**tags, "Name": f"{name}-pulumi-secrets", "Module": "state-storage"},
    )

    alias = aws.kms.Alias(
        f"{name}-pulumi-secrets-alias",
        name=f"alias/{name}-pulumi-secrets",
        target_key_id=key.key_id,
    )

    return {
        "key": key,
        "alias": alias,
        "key_arn": key.arn,
        "secrets_provider": f"awskms://alias/{name}-pulumi-secrets",
    }


def get_backend_configuration_commands(bucket_name: str, aws_region: str,
                                       secrets_provider: str) -> List[str]:
    """Environment the deploy tool and the pipeline need to use this backend"""
    return [
        f"export PULUMI_BACKEND_URL=s3://{bucket_name}?region={aws_region}",
        f"export PULUMI_SECRETS_PROVIDER={secrets_provider}",
        f"pulumi stack init dev --secrets-provider={secrets_provider}",
        f"pulumi config set aws:region {aws_region}",
        "python -m deploy infrastructure",
    ]


def create_state_storage_resources(cluster_name: str,
                                   aws_region: str,
                                   tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete state storage infrastructure

    Args:
        cluster_name: Cluster name for resource naming
        aws_region: AWS region
        tags: Additional tags for all resources

    Returns:
        Dict with state storage outputs and backend configuration
    """
    tags = tags or {}

    bucket_name = state_bucket_name(cluster_name, aws_region)

    bucket_result = create_state_bucket(cluster_name, bucket_name, tags)
    key_result = create_secrets_key(cluster_name, tags)

    backend_config = {
        "backend_type": "s3",
        "backend_url": f"s3://{bucket_name}?region={aws_region}",
        "bucket": bucket_name,
        "region": aws_region,
        "secrets_provider": key_result["secrets_provider"],
        "encrypt": "true",
    }

    return {
        "bucket_name_output": bucket_result["bucket_id"],
        "kms_key_arn": key_result["key_arn"],
        "backend_config": backend_config,
        "configuration_commands": get_backend_configuration_commands(
            bucket_name, aws_region, key_result["secrets_provider"]),
        "_bucket": bucket_result["bucket"],
        "_key": key_result["key"],
    }
