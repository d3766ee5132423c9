"""
Container image build and push through the docker CLI.
"""
import logging
from typing import List, Sequence

from deploy import shell

logger = logging.getLogger(__name__)

LATEST_TAG = "latest"


def login(username: str, password: str, registry: str) -> None:
    """docker login with the password on stdin so it never appears in argv."""
    shell.run(
        ["docker", "login", "--username", username, "--password-stdin", registry],
        input_text=password,
    )
    logger.info(f"✅ Logged in to {registry}")


def image_tags(build_id: str) -> List[str]:
    """Build id first, then latest; no duplicates when the build id is 'latest'."""
    tags = [build_id]
    if build_id != LATEST_TAG:
        tags.append(LATEST_TAG)
    return tags


def build_image(context: str, repository_uri: str, tags: Sequence[str],
                dockerfile: str = None) -> List[str]:
    """
    Build once and apply every tag.

    Returns:
        The fully qualified references that were tagged
    """
    refs = [f"{repository_uri}:{tag}" for tag in tags]
    cmd = ["docker", "build", "--pull"]
    if dockerfile:
        cmd += ["-f", dockerfile]
    for ref in refs:
        cmd += ["-t", ref]
    cmd.append(context)
    shell.run(cmd)
    logger.info(f"✅ Built {', '.join(refs)}")
    return refs


def push_image(repository_uri: str, tags: Sequence[str]) -> List[str]:
    pushed = []
    for tag in tags:
        ref = f"{repository_uri}:{tag}"
        shell.run(["docker", "push", ref])
        pushed.append(ref)
        logger.info(f"✅ Pushed {ref}")
    return pushed


def build_and_push(context: str, repository_uri: str, build_id: str) -> List[str]:
    """Build the app image, tag it with the build id and latest, push both."""
    tags = image_tags(build_id)
    build_image(context, repository_uri, tags)
    return push_image(repository_uri, tags)
