"""Error hierarchy for the deployment pipeline.

Each error carries the HTTP status and machine-readable code the API layer
returns. A missing artifact in toolchain output is NOT an error; it surfaces
as an absent field in a successful response.
"""

from typing import Optional


class DeploymentError(Exception):
    """Base for all pipeline errors."""

    status_code: int = 500
    code: str = "DeploymentError"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(DeploymentError):
    """Request rejected before touching disk or processes."""

    status_code = 400
    code = "ValidationError"


class UnknownVariant(DeploymentError):
    """No deployment variant registered under the requested name."""

    status_code = 404
    code = "UnknownVariant"

    def __init__(self, variant: str):
        self.variant = variant
        super().__init__(f"Unknown deployment variant: {variant}")


class RateLimited(DeploymentError):
    """Client exceeded its request allowance for the current window."""

    status_code = 429
    code = "RateLimited"

    def __init__(self, reset_in_seconds: int):
        self.reset_in_seconds = reset_in_seconds
        super().__init__(
            f"Rate limit exceeded. Try again in {reset_in_seconds} seconds"
        )


class ProvisioningError(DeploymentError):
    """Workspace could not be created or populated."""

    code = "ProvisioningError"


class UnsafeCommand(DeploymentError):
    """A toolchain command tripped the sanitizer."""

    code = "UnsafeCommand"


class DangerousInput(UnsafeCommand):
    """Command contains a shell metacharacter."""

    code = "DangerousInput"

    def __init__(self, character: str):
        self.character = character
        super().__init__(f"Dangerous character detected: {character}")


class CommandNotAllowed(UnsafeCommand):
    """Command's program is not on the allow-list."""

    code = "CommandNotAllowed"

    def __init__(self, program: str):
        self.program = program
        super().__init__(f"Command not allowed: {program}")


class ToolchainError(DeploymentError):
    """An external toolchain step exited non-zero."""

    code = "ToolchainError"

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
    ):
        super().__init__(message)
        self.step = step
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


class DeploymentTimeout(ToolchainError):
    """A toolchain step or the whole sequence ran out of time."""

    code = "DeploymentTimeout"
