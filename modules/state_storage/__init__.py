"""
State Storage Module
Backend resources for the Pulumi state, created by the bootstrap stack
"""

from .functions import create_state_storage_resources, state_bucket_name

__all__ = ["create_state_storage_resources", "state_bucket_name"]
