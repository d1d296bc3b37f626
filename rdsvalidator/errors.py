"""
Exception hierarchy and process exit statuses.
"""

from typing import Optional

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_CLEANUP_INCOMPLETE = 3
EXIT_INTERRUPTED = 130


class RDSValidatorError(Exception):
    """Base exception for rdsvalidator errors."""


class ConfigurationError(RDSValidatorError):
    """Invalid or conflicting run configuration; raised before any resource exists."""


class ProvisioningError(RDSValidatorError):
    """A resource could not be created or never became usable."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        identifier: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.kind = kind
        self.identifier = identifier
        self.code = code
        context = ", ".join(
            f"{name}={value}"
            for name, value in (
                ("kind", kind),
                ("id", identifier),
                ("code", code),
            )
            if value
        )
        super().__init__(f"{message} ({context})" if context else message)


class ReadinessTimeout(ProvisioningError):
    """A readiness wait exceeded the configured poll timeout."""


class ScriptError(ProvisioningError):
    """A user script exited with a non-zero status."""

    def __init__(self, script: str, returncode: int):
        self.script = script
        self.returncode = returncode
        super().__init__(f"Script {script} exited with status {returncode}")


class ReleaseError(RDSValidatorError):
    """A resource could not be deleted; manual cleanup may be required."""

    def __init__(self, message: str, label: str, code: Optional[str] = None):
        self.label = label
        self.code = code
        super().__init__(f"{label}: {message}")


class OperationCancelled(RDSValidatorError):
    """The run was interrupted; raised instead of starting the next step."""
