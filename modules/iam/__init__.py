"""
IAM Module for EKS
"""

from .functions import (
    create_iam_resources,
    create_load_balancer_controller_role,
    create_oidc_provider,
)

__all__ = [
    "create_iam_resources",
    "create_oidc_provider",
    "create_load_balancer_controller_role",
]
