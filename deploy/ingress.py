"""
Ingress hostname resolution.
"""
import logging
import re
import time
from typing import Optional

from kubernetes.client.rest import ApiException

from deploy.errors import IngressError

logger = logging.getLogger(__name__)

_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")


def is_valid_hostname(value: Optional[str]) -> bool:
    """
    RFC 1123 host name with at least two labels, e.g. k8s-default-app-1234.us-east-1.elb.amazonaws.com.

    An all-numeric top-level label is rejected, so dotted IPv4 addresses do not pass.
    """
    if not value or len(value) > 253:
        return False
    labels = value.rstrip(".").split(".")
    if len(labels) < 2:
        return False
    if labels[-1].isdigit():
        return False
    return all(_LABEL.match(label) for label in labels)


def ingress_hostname(ingress) -> Optional[str]:
    """First hostname the load balancer reports; None while provisioning or when only IPs are listed."""
    lb = ingress.status.load_balancer if ingress.status else None
    for entry in (lb.ingress or []) if lb else []:
        if entry.hostname:
            return entry.hostname
    return None


def wait_for_ingress_hostname(kube, name: str, timeout_s: int = 600, poll_interval_s: float = 5.0) -> str:
    """
    Poll the ingress until the ALB hostname shows up.

    Raises:
        IngressError: timeout elapsed or the reported value is not a DNS hostname
    """
    deadline = time.monotonic() + timeout_s

    while True:
        try:
            hostname = ingress_hostname(kube.read_ingress(name))
        except ApiException as e:
            if e.status != 404:
                raise
            hostname = None

        if hostname:
            if not is_valid_hostname(hostname):
                raise IngressError(f"ingress {name} reported an invalid hostname: {hostname!r}")
            logger.info(f"✅ Ingress {name} is served at {hostname}")
            return hostname

        if time.monotonic() >= deadline:
            raise IngressError(f"timed out after {timeout_s}s waiting for ingress {name} to get an address")
        logger.info(f"Waiting for load balancer address on ingress {name}")
        time.sleep(poll_interval_s)
