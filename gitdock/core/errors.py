"""
gitdock exception hierarchy.

Every pipeline step raises one of these; the pipeline records the failure
and stops. Only soft verification checks are reported as warnings instead.
"""

from typing import Optional


class GitdockError(Exception):
    """Base exception for all gitdock errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message} ({self.context})"
        return self.message


class ValidationError(GitdockError):
    """Raised when deployment parameters are invalid."""

    def __init__(self, message: str, context: Optional[str] = None, fields: Optional[dict] = None):
        self.fields = dict(fields or {})
        super().__init__(message, context)


class ConfigError(ValidationError):
    """Raised when a config file cannot be read or is malformed."""

    pass


class RepoError(GitdockError):
    """Raised when the local repository cannot be synced."""

    CLONE = "clone"
    PULL = "pull"
    MISSING_DOCKERFILE = "missing_dockerfile"

    def __init__(self, kind: str, message: str, context: Optional[str] = None):
        self.kind = kind
        super().__init__(message, context)


class ConnectivityError(GitdockError):
    """Raised when the target host cannot be reached over SSH."""

    NETWORK = "network"
    AUTH = "auth"
    UNKNOWN = "unknown"

    def __init__(self, reason: str, message: str, context: Optional[str] = None):
        self.reason = reason
        super().__init__(message, context)


class ProvisionError(GitdockError):
    """Raised when remote provisioning fails."""

    pass


class DeployError(GitdockError):
    """Raised when a transfer or remote execution sub-step fails."""

    def __init__(self, sub_step: str, message: str, context: Optional[str] = None):
        self.sub_step = sub_step
        super().__init__(f"[{sub_step}] {message}", context)


class VerificationError(GitdockError):
    """Raised when a hard verification check fails."""

    def __init__(self, checks: list, message: str, context: Optional[str] = None):
        self.checks = list(checks)
        super().__init__(message, context)
