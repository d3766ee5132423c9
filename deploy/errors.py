"""
Exceptions raised by the deploy tool.
"""
from typing import List, Optional


class DeployError(Exception):
    """Base class for deployment failures."""


class CommandFailed(DeployError):
    """An external CLI (docker, aws) exited non-zero."""

    def __init__(self, command: List[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        super().__init__(f"{command[0]} exited with status {returncode}: {self.stderr.strip() or self.stdout.strip()}")


class InfrastructureError(DeployError):
    """Pulumi preview/up failed or the stack is missing required outputs."""


class RegistryAuthError(DeployError):
    """The registry token could not be obtained (expired or unauthorized credentials)."""


class ManifestError(DeployError):
    """A manifest is missing or malformed."""


class RolloutError(DeployError):
    """The deployment did not converge; carries the collected diagnostics."""

    def __init__(self, message: str, diagnostics=None):
        super().__init__(message)
        self.diagnostics = diagnostics


class IngressError(DeployError):
    """The ingress never reported a usable hostname."""


class StageError(DeployError):
    """A pipeline step failed; later steps were not run."""

    def __init__(self, stage: str, step: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.step = step
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"stage '{stage}' failed at step '{step}'{detail}")
