"""
Drive the infrastructure program through the Pulumi Automation API.

preview is the plan, up is the apply. State lives in the S3 backend created by
bootstrap/, which also serializes concurrent updates.
"""
import logging
import os
from typing import Any, Dict

from pulumi import automation as auto

from deploy.errors import InfrastructureError

logger = logging.getLogger(__name__)

REQUIRED_OUTPUTS = ("cluster_name", "cluster_endpoint")


def workspace_options(settings) -> auto.LocalWorkspaceOptions:
    env_vars = {"AWS_REGION": settings.AWS_REGION}
    if settings.PULUMI_BACKEND_URL:
        env_vars["PULUMI_BACKEND_URL"] = settings.PULUMI_BACKEND_URL
    return auto.LocalWorkspaceOptions(
        env_vars=env_vars,
        secrets_provider=settings.PULUMI_SECRETS_PROVIDER,
    )


def select_stack(settings) -> auto.Stack:
    """Create or select the stack and push the pipeline's settings into its config."""
    work_dir = os.path.abspath(settings.INFRA_DIR)
    try:
        stack = auto.create_or_select_stack(
            stack_name=settings.PULUMI_STACK,
            work_dir=work_dir,
            opts=workspace_options(settings),
        )
        stack.set_config("aws:region", auto.ConfigValue(value=settings.AWS_REGION))
        stack.set_config("cluster_name", auto.ConfigValue(value=settings.CLUSTER_NAME))
        stack.set_config("app_namespace", auto.ConfigValue(value=settings.NAMESPACE))
    except auto.CommandError as e:
        raise InfrastructureError(f"unable to select stack {settings.PULUMI_STACK}: {e}") from e

    logger.info(f"✅ Selected stack {settings.PULUMI_STACK} in {work_dir}")
    return stack


def _plain(outputs: Dict[str, auto.OutputValue]) -> Dict[str, Any]:
    return {key: out.value for key, out in outputs.items()}


def _require(outputs: Dict[str, Any]) -> Dict[str, Any]:
    missing = [key for key in REQUIRED_OUTPUTS if not outputs.get(key)]
    if missing:
        raise InfrastructureError(f"stack is missing outputs: {', '.join(missing)}")
    return outputs


def _summary(changes) -> Dict[str, int]:
    return {getattr(op, "value", op): count for op, count in (changes or {}).items()}


def apply_infrastructure(settings, preview_only: bool = False) -> Dict[str, Any]:
    """
    Preview, then (unless preview_only) update the stack.

    Returns:
        Dict with cluster_name, cluster_endpoint and change_summary

    Raises:
        InfrastructureError: the update failed, the stack is locked, or outputs are missing
    """
    stack = select_stack(settings)

    try:
        preview = stack.preview(on_output=logger.info)
        planned = _summary(preview.change_summary)
        logger.info(f"Planned changes: {planned}")
        if preview_only:
            return {"cluster_name": None, "cluster_endpoint": None, "change_summary": planned}

        result = stack.up(on_output=logger.info)
    except auto.ConcurrentUpdateError as e:
        raise InfrastructureError(f"stack {settings.PULUMI_STACK} is locked by another update") from e
    except auto.CommandError as e:
        raise InfrastructureError(f"pulumi update failed: {e}") from e

    outputs = _require(_plain(result.outputs))
    logger.info(f"✅ Infrastructure ready: cluster {outputs['cluster_name']}")
    return {
        "cluster_name": outputs["cluster_name"],
        "cluster_endpoint": outputs["cluster_endpoint"],
        "change_summary": _summary(result.summary.resource_changes),
    }


def read_outputs(settings) -> Dict[str, Any]:
    """Outputs of the already deployed stack."""
    stack = select_stack(settings)
    try:
        outputs = _plain(stack.outputs())
    except auto.CommandError as e:
        raise InfrastructureError(f"unable to read outputs of {settings.PULUMI_STACK}: {e}") from e
    return _require(outputs)
