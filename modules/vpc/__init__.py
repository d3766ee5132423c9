"""
VPC Module for EKS
"""

from .functions import create_vpc_resources

__all__ = ["create_vpc_resources"]
