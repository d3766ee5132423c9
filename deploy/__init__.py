"""
Deployment tooling for the flask-eks stack
ECR bootstrap, image build/push, pull secret, manifest apply, rollout wait
"""

from .errors import DeployError, StageError
from .pipeline import STAGES, run_pipeline
from .settings import Settings, get_settings

__all__ = [
    "DeployError",
    "StageError",
    "STAGES",
    "run_pipeline",
    "Settings",
    "get_settings"
]
