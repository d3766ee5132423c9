"""
Stage sequencing: infrastructure, then build, then deploy.

Every step is gated on the one before it. The first failure is wrapped in a
StageError naming the stage and step, and nothing after it runs.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Optional

import boto3

from deploy import ecr as ecr_ops
from deploy import image as image_ops
from deploy import infra, ingress, kubeconfig, manifests, pull_secret, rollout
from deploy.errors import RolloutError, StageError
from deploy.kube import KubeClient

logger = logging.getLogger(__name__)

STAGES = ("infrastructure", "build", "deploy")


@contextmanager
def step(stage: str, name: str):
    logger.info(f"▶ [{stage}] {name}")
    try:
        yield
    except StageError:
        raise
    except Exception as e:
        logger.error(f"❌ [{stage}] {name} failed: {e}")
        raise StageError(stage, name, e) from e
    logger.info(f"✅ [{stage}] {name}")


def resolve_account(settings, session):
    """Fill in AWS_ACCOUNT_ID from STS when the environment did not provide it."""
    if settings.AWS_ACCOUNT_ID:
        return settings
    account_id = ecr_ops.get_account_id(session.client("sts"))
    return settings.model_copy(update={"AWS_ACCOUNT_ID": account_id})


def run_infrastructure_stage(settings) -> Dict[str, Any]:
    stage = "infrastructure"

    with step(stage, "pulumi-up"):
        outputs = infra.apply_infrastructure(settings)

    with step(stage, "kubeconfig"):
        kubeconfig.update_kubeconfig(outputs["cluster_name"], settings.AWS_REGION)

    return {
        "cluster_name": outputs["cluster_name"],
        "cluster_endpoint": outputs["cluster_endpoint"],
    }


def run_build_stage(settings, session) -> Dict[str, Any]:
    stage = "build"
    ecr = session.client("ecr")

    with step(stage, "ensure-repository"):
        settings = resolve_account(settings, session)
        repo = ecr_ops.ensure_repository(ecr, settings.IMAGE_REPOSITORY, settings.LIFECYCLE_KEEP_IMAGES)

    with step(stage, "build-and-push"):
        username, password, _ = ecr_ops.get_registry_credentials(ecr, settings.AWS_ACCOUNT_ID)
        image_ops.login(username, password, repo["registry"])
        images = image_ops.build_and_push(settings.DOCKER_CONTEXT, repo["repository_uri"], settings.IMAGE_TAG)

    return {"repository_uri": repo["repository_uri"], "images": images}


def run_deploy_stage(settings, session, cluster_name: Optional[str] = None) -> Dict[str, Any]:
    stage = "deploy"
    result: Dict[str, Any] = {}

    if cluster_name is None:
        with step(stage, "stack-outputs"):
            outputs = infra.read_outputs(settings)
            cluster_name = outputs["cluster_name"]
            result["cluster_endpoint"] = outputs["cluster_endpoint"]
        with step(stage, "kubeconfig"):
            kubeconfig.update_kubeconfig(cluster_name, settings.AWS_REGION)
    result["cluster_name"] = cluster_name

    with step(stage, "pull-secret"):
        settings = resolve_account(settings, session)
        kube = KubeClient(settings.NAMESPACE, context=settings.KUBE_CONTEXT)
        pull_secret.provision_pull_secret(
            kube,
            session.client("ecr"),
            settings.AWS_ACCOUNT_ID,
            settings.AWS_REGION,
            settings.NAMESPACE,
            secret_name=settings.PULL_SECRET_NAME,
            service_account=settings.SERVICE_ACCOUNT,
        )

    with step(stage, "apply-manifests"):
        variables = manifests.manifest_variables(settings, settings.image)
        result["applied"] = manifests.apply_manifests(kube, settings.MANIFEST_DIR, variables)

    with step(stage, "rollout"):
        try:
            rollout.wait_for_rollout(kube, settings.APP_NAME, settings.ROLLOUT_TIMEOUT_SECS,
                                     settings.POLL_INTERVAL_SECS)
        except RolloutError as e:
            e.diagnostics = report_diagnostics(kube, settings)
            raise

    with step(stage, "ingress"):
        result["hostname"] = ingress.wait_for_ingress_hostname(
            kube, settings.APP_NAME, settings.INGRESS_TIMEOUT_SECS, settings.POLL_INTERVAL_SECS)

    logger.info(f"Application URL: http://{result['hostname']}")
    return result


def report_diagnostics(kube, settings) -> rollout.DiagnosticBundle:
    """Collect, log and (when DIAGNOSTICS_DIR is set) persist the diagnostic bundle."""
    bundle = rollout.collect_diagnostics(kube, settings.APP_NAME)
    logger.error(bundle.render())
    if settings.DIAGNOSTICS_DIR:
        try:
            path = bundle.write_to(settings.DIAGNOSTICS_DIR)
        except OSError as e:
            logger.error(f"❌ Could not write diagnostics to {settings.DIAGNOSTICS_DIR}: {e}")
        else:
            logger.info(f"Diagnostics written to {path}")
    return bundle


def run_pipeline(settings, stages: Iterable[str] = STAGES, session=None) -> Dict[str, Any]:
    """
    Run the requested stages in canonical order.

    Args:
        settings: deploy Settings
        stages: Subset of STAGES; order given here is ignored
        session: boto3 Session (created for AWS_REGION when omitted)

    Returns:
        Dict with cluster_name, cluster_endpoint, repository_uri, images, applied, hostname

    Raises:
        StageError: the first failing step
        ValueError: an unknown stage name
    """
    requested = set(stages)
    unknown = requested.difference(STAGES)
    if unknown:
        raise ValueError(f"unknown stage(s): {', '.join(sorted(unknown))}")

    session = session or boto3.Session(region_name=settings.AWS_REGION)
    result: Dict[str, Any] = {
        "cluster_name": None,
        "cluster_endpoint": None,
        "repository_uri": None,
        "images": [],
        "applied": [],
        "hostname": None,
    }

    if "infrastructure" in requested:
        result.update(run_infrastructure_stage(settings))
    if "build" in requested:
        result.update(run_build_stage(settings, session))
    if "deploy" in requested:
        result.update(run_deploy_stage(settings, session, cluster_name=result["cluster_name"]))

    return result
