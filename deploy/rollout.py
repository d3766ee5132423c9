"""
Rollout tracking and failure diagnostics.

The completion check follows ``kubectl rollout status``: the controller must
have observed the latest generation, every replica must be updated and
available, and no old replicas may remain.
"""
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from deploy.errors import RolloutError

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# API errors and transport failures (connection refused, retries exhausted)
_COLLECTION_ERRORS = (ApiException, HTTPError)


@dataclass
class RolloutStatus:
    """Point-in-time view of a deployment rollout."""
    deployment: str
    state: str  # "ready", "pending", "failed"
    message: str
    desired_replicas: int = 0
    updated_replicas: int = 0
    available_replicas: int = 0


@dataclass
class PodReport:
    name: str
    phase: str
    ready: bool
    restarts: int = 0
    reasons: List[str] = field(default_factory=list)
    logs: Dict[str, str] = field(default_factory=dict)


@dataclass
class DiagnosticBundle:
    """Describe output, pod state, recent events and log tails for a failed rollout."""
    deployment: str
    namespace: str
    description: Dict[str, Any] = field(default_factory=dict)
    pods: List[PodReport] = field(default_factory=list)
    events: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def render(self) -> str:
        lines = [f"===== Diagnostics for deployment {self.namespace}/{self.deployment} ====="]
        lines.append("--- describe ---")
        for key, value in self.description.items():
            if isinstance(value, list):
                lines.append(f"{key}:")
                lines.extend(f"  {item}" for item in value)
            else:
                lines.append(f"{key}: {value}")
        lines.append("--- pods ---")
        if not self.pods:
            lines.append("(no pods)")
        for pod in self.pods:
            reasons = f" [{', '.join(pod.reasons)}]" if pod.reasons else ""
            lines.append(f"{pod.name} phase={pod.phase} ready={pod.ready} restarts={pod.restarts}{reasons}")
        lines.append("--- events ---")
        lines.extend(self.events or ["(no events)"])
        for pod in self.pods:
            for container, text in pod.logs.items():
                lines.append(f"--- logs {pod.name}/{container} ---")
                lines.append(text.rstrip() or "(empty)")
        if self.errors:
            lines.append("--- collection errors ---")
            lines.extend(self.errors)
        return "\n".join(lines)

    def write_to(self, directory: str) -> str:
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, f"{self.deployment}-diagnostics.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.render() + "\n")
        return path


def _condition(deployment, cond_type: str):
    for cond in (deployment.status.conditions or []):
        if cond.type == cond_type:
            return cond
    return None


def rollout_status(deployment) -> RolloutStatus:
    """Evaluate a V1Deployment the way kubectl rollout status does."""
    name = deployment.metadata.name
    spec_replicas = deployment.spec.replicas if deployment.spec.replicas is not None else 1
    status = deployment.status
    updated = status.updated_replicas or 0
    available = status.available_replicas or 0
    total = status.replicas or 0

    def result(state: str, message: str) -> RolloutStatus:
        return RolloutStatus(name, state, message, spec_replicas, updated, available)

    if (status.observed_generation or 0) < (deployment.metadata.generation or 0):
        return result("pending", "waiting for the deployment spec update to be observed")

    progressing = _condition(deployment, "Progressing")
    if progressing is not None and progressing.reason == "ProgressDeadlineExceeded":
        return result("failed", f"deployment {name} exceeded its progress deadline")

    if updated < spec_replicas:
        return result("pending", f"{updated} of {spec_replicas} updated replicas are available")
    if total > updated:
        return result("pending", f"{total - updated} old replicas are pending termination")
    if available < updated:
        return result("pending", f"{available} of {updated} updated replicas are available")
    return result("ready", f"deployment {name} successfully rolled out")


def rollout_complete(deployment) -> bool:
    return rollout_status(deployment).state == "ready"


def wait_for_rollout(kube, name: str, timeout_s: int = 300, poll_interval_s: float = 5.0) -> RolloutStatus:
    """
    Block until the deployment has rolled out.

    Raises:
        RolloutError: progress deadline exceeded or timeout elapsed
    """
    deadline = time.monotonic() + timeout_s
    last_message = "deployment not found"

    while True:
        try:
            current = rollout_status(kube.read_deployment(name))
        except ApiException as e:
            if e.status != 404:
                raise
        else:
            if current.state == "ready":
                logger.info(f"✅ {current.message}")
                return current
            if current.state == "failed":
                raise RolloutError(current.message)
            if current.message != last_message:
                logger.info(f"Waiting for rollout of {name}: {current.message}")
            last_message = current.message

        if time.monotonic() >= deadline:
            raise RolloutError(f"timed out after {timeout_s}s waiting for {name}: {last_message}")
        time.sleep(poll_interval_s)


def _reason(e: Exception) -> str:
    if isinstance(e, ApiException):
        return f"{e.status} {e.reason}"
    return f"{type(e).__name__}: {e}"


def _timestamp(event) -> datetime:
    return event.last_timestamp or event.event_time or event.metadata.creation_timestamp or _EPOCH


def _concerns(event, name: str, pod_names) -> bool:
    """Event is about the deployment, one of its ReplicaSets (<name>-<hash>) or one of its pods."""
    involved = event.involved_object.name if event.involved_object else None
    if not involved:
        return False
    return involved == name or involved in pod_names or involved.startswith(f"{name}-")


def _describe(deployment) -> Dict[str, Any]:
    status = deployment.status
    conditions = [
        f"{c.type}={c.status} {c.reason or ''}: {c.message or ''}".rstrip(": ")
        for c in (status.conditions or [])
    ]
    containers = deployment.spec.template.spec.containers or []
    return {
        "replicas": f"{deployment.spec.replicas} desired | {status.updated_replicas or 0} updated | "
                    f"{status.replicas or 0} total | {status.available_replicas or 0} available | "
                    f"{status.unavailable_replicas or 0} unavailable",
        "images": [f"{c.name}: {c.image}" for c in containers],
        "conditions": conditions,
    }


def _pod_report(kube, pod, tail_lines: int, errors: List[str]) -> PodReport:
    statuses = pod.status.container_statuses or []
    reasons = []
    for cs in statuses:
        if cs.state and cs.state.waiting and cs.state.waiting.reason:
            reasons.append(f"{cs.name}: {cs.state.waiting.reason}")
        if cs.state and cs.state.terminated and cs.state.terminated.reason:
            reasons.append(f"{cs.name}: {cs.state.terminated.reason}")

    report = PodReport(
        name=pod.metadata.name,
        phase=pod.status.phase or "Unknown",
        ready=bool(statuses) and all(cs.ready for cs in statuses),
        restarts=sum(cs.restart_count or 0 for cs in statuses),
        reasons=reasons,
    )

    for container in pod.spec.containers:
        try:
            report.logs[container.name] = kube.read_pod_log(pod.metadata.name, container.name, tail_lines)
        except _COLLECTION_ERRORS as e:
            errors.append(f"logs {pod.metadata.name}/{container.name}: {_reason(e)}")
    return report


def collect_diagnostics(kube, name: str, tail_lines: int = 50, event_limit: int = 20) -> DiagnosticBundle:
    """
    Gather what an operator would look at after a failed rollout.

    Errors while collecting are recorded in the bundle instead of raised so the
    original rollout failure stays the reported one.
    """
    bundle = DiagnosticBundle(deployment=name, namespace=kube.namespace)

    selector: Optional[str] = None
    try:
        deployment = kube.read_deployment(name)
        bundle.description = _describe(deployment)
        labels = deployment.spec.selector.match_labels or {}
        selector = ",".join(f"{k}={v}" for k, v in sorted(labels.items())) or None
    except _COLLECTION_ERRORS as e:
        bundle.errors.append(f"describe deployment: {_reason(e)}")

    if selector:
        try:
            for pod in kube.list_pods(selector):
                bundle.pods.append(_pod_report(kube, pod, tail_lines, bundle.errors))
        except _COLLECTION_ERRORS as e:
            bundle.errors.append(f"list pods: {_reason(e)}")

    try:
        pod_names = {p.name for p in bundle.pods}
        related = [e for e in kube.list_events() if _concerns(e, name, pod_names)]
        events = sorted(related, key=_timestamp)[-event_limit:]
        bundle.events = [
            f"{e.type} {e.reason} {e.involved_object.kind}/{e.involved_object.name}: {e.message}"
            for e in events
        ]
    except _COLLECTION_ERRORS as e:
        bundle.errors.append(f"list events: {_reason(e)}")

    return bundle
