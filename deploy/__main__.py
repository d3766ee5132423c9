"""
Command line entry point: python -m deploy <command>
"""
import argparse
import json
import logging
import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from deploy import ecr as ecr_ops
from deploy import infra, manifests, pull_secret, rollout
from deploy.errors import DeployError
from deploy.kube import KubeClient
from deploy.logging_config import setup_logging
from deploy.pipeline import STAGES, run_pipeline
from deploy.settings import get_settings

logger = logging.getLogger("deploy")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m deploy",
                                     description="Provision, build and deploy the Flask app on EKS")
    parser.add_argument("--log-level", default=None,
                        help="Log level (defaults to LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("pipeline", help="Run stages in order (all by default)")
    p.add_argument("--stage", action="append", choices=STAGES,
                   help="Stage to run; repeat for several")

    p = sub.add_parser("infrastructure", help="Pulumi preview/up and kubeconfig refresh")
    p.add_argument("--preview", action="store_true",
                   help="Only show the planned changes")

    sub.add_parser("build", help="Ensure the ECR repository, build and push the image")
    sub.add_parser("deploy", help="Pull secret, manifests, rollout wait, ingress hostname")
    sub.add_parser("ecr-setup", help="Create the ECR repository and lifecycle policy")
    sub.add_parser("ecr-secret", help="Refresh the image pull secret")
    sub.add_parser("apply-manifests", help="Apply the manifest set in order")
    sub.add_parser("diagnostics", help="Collect rollout diagnostics for the app deployment")
    return parser


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _account_id(settings, session) -> str:
    return settings.AWS_ACCOUNT_ID or ecr_ops.get_account_id(session.client("sts"))


def run_command(args, settings) -> int:
    session = boto3.Session(region_name=settings.AWS_REGION)

    if args.command == "pipeline":
        _print(run_pipeline(settings, args.stage or STAGES, session=session))
    elif args.command == "infrastructure" and args.preview:
        _print(infra.apply_infrastructure(settings, preview_only=True))
    elif args.command in STAGES:
        _print(run_pipeline(settings, [args.command], session=session))
    elif args.command == "ecr-setup":
        repo = ecr_ops.ensure_repository(session.client("ecr"), settings.IMAGE_REPOSITORY,
                                         settings.LIFECYCLE_KEEP_IMAGES)
        account_id = _account_id(settings, session)
        repo["next_steps"] = ecr_ops.setup_hints(repo["repository_uri"], settings.AWS_REGION,
                                                 account_id, settings.IMAGE_REPOSITORY)
        _print(repo)
    elif args.command == "ecr-secret":
        kube = KubeClient(settings.NAMESPACE, context=settings.KUBE_CONTEXT)
        _print(pull_secret.provision_pull_secret(
            kube, session.client("ecr"), _account_id(settings, session), settings.AWS_REGION,
            settings.NAMESPACE, settings.PULL_SECRET_NAME, settings.SERVICE_ACCOUNT))
    elif args.command == "apply-manifests":
        if not settings.AWS_ACCOUNT_ID and not settings.ECR_REGISTRY:
            settings = settings.model_copy(update={"AWS_ACCOUNT_ID": _account_id(settings, session)})
        kube = KubeClient(settings.NAMESPACE, context=settings.KUBE_CONTEXT)
        variables = manifests.manifest_variables(settings, settings.image)
        _print(manifests.apply_manifests(kube, settings.MANIFEST_DIR, variables))
    elif args.command == "diagnostics":
        kube = KubeClient(settings.NAMESPACE, context=settings.KUBE_CONTEXT)
        bundle = rollout.collect_diagnostics(kube, settings.APP_NAME)
        print(bundle.render())
        if settings.DIAGNOSTICS_DIR:
            bundle.write_to(settings.DIAGNOSTICS_DIR)
    return EXIT_OK


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(f"❌ Invalid configuration: {e}")
        return EXIT_CONFIG

    setup_logging(args.log_level or settings.LOG_LEVEL)

    try:
        return run_command(args, settings)
    except DeployError as e:
        logger.error(f"❌ {e}")
        return EXIT_FAILED
    except (ClientError, BotoCoreError, ApiException) as e:
        logger.error(f"❌ {args.command} failed: {e}")
        return EXIT_FAILED
    except ValueError as e:
        logger.error(f"❌ Configuration error: {e}")
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
