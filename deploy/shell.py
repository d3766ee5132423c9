"""
Thin wrapper around subprocess for the docker and aws CLIs.
"""
import logging
import subprocess
from typing import Iterable, List, Optional

from deploy.errors import CommandFailed

logger = logging.getLogger(__name__)


def redact(cmd: List[str], secrets: Iterable[str]) -> List[str]:
    hidden = {s for s in secrets if s}
    return ["****" if part in hidden else part for part in cmd]


def run(cmd: List[str], input_text: Optional[str] = None, secrets: Iterable[str] = (),
        capture_output: bool = True) -> subprocess.CompletedProcess:
    """
    Run a command and raise CommandFailed on a non-zero exit.

    Args:
        cmd: Command and arguments
        input_text: Text written to stdin (e.g. a password for --password-stdin)
        secrets: Values masked when the command line is logged
        capture_output: Capture stdout/stderr instead of streaming them
    """
    shown = redact(cmd, list(secrets))
    logger.info(f"→ Running: {' '.join(shown)}")
    result = subprocess.run(
        cmd,
        input=input_text,
        capture_output=capture_output,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise CommandFailed(shown, result.returncode, result.stdout, result.stderr)
    return result
