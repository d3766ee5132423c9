"""
Loading and ordered application of the Kubernetes manifest set.
"""
import logging
import os
from string import Template
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from deploy.errors import ManifestError

logger = logging.getLogger(__name__)

# The deployment references the service account and config map, so both must
# exist before pods are created.
APPLY_ORDER = (
    "serviceaccount",
    "configmap",
    "deployment",
    "service",
    "ingress",
    "hpa",
    "pdb",
)


def manifest_variables(settings, image: str) -> Dict[str, str]:
    """Values substituted into ${...} placeholders."""
    return {
        "APP_NAME": settings.APP_NAME,
        "NAMESPACE": settings.NAMESPACE,
        "SERVICE_ACCOUNT": settings.SERVICE_ACCOUNT,
        "PULL_SECRET_NAME": settings.PULL_SECRET_NAME,
        "IMAGE": image,
        "IMAGE_TAG": settings.IMAGE_TAG,
    }


def render(text: str, variables: Mapping[str, str], source: str = "<string>") -> str:
    try:
        return Template(text).substitute(variables)
    except KeyError as e:
        raise ManifestError(f"{source}: no value for placeholder {e.args[0]}") from e
    except ValueError as e:
        raise ManifestError(f"{source}: {e}") from e


def load_manifest(path: str, variables: Mapping[str, str]) -> List[Dict[str, Any]]:
    """Render and parse one file; a file may hold several documents."""
    if not os.path.isfile(path):
        raise ManifestError(f"manifest not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        text = render(f.read(), variables, path)

    try:
        documents = [doc for doc in yaml.safe_load_all(text) if doc]
    except yaml.YAMLError as e:
        raise ManifestError(f"{path}: invalid YAML: {e}") from e

    for doc in documents:
        if not isinstance(doc, dict) or "kind" not in doc or "apiVersion" not in doc:
            raise ManifestError(f"{path}: every document needs apiVersion and kind")
    return documents


def load_manifest_set(manifest_dir: str, variables: Mapping[str, str]) -> List[Tuple[str, List[Dict[str, Any]]]]:
    """Load every manifest in APPLY_ORDER; fails before anything is applied."""
    return [
        (name, load_manifest(os.path.join(manifest_dir, f"{name}.yaml"), variables))
        for name in APPLY_ORDER
    ]


def apply_manifests(kube, manifest_dir: str, variables: Mapping[str, str]) -> List[Tuple[str, str]]:
    """
    Apply the manifest set strictly in APPLY_ORDER.

    Each apply must succeed before the next one starts; an API error stops
    the sequence and propagates.

    Returns:
        (kind, name) of every applied object, in order
    """
    applied = []
    for name, documents in load_manifest_set(manifest_dir, variables):
        for doc in documents:
            kind = doc["kind"]
            obj_name = doc.get("metadata", {}).get("name", "")
            kube.apply_manifest(doc)
            logger.info(f"✅ Applied {kind}/{obj_name} ({name}.yaml)")
            applied.append((kind, obj_name))
    return applied
