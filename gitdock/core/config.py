"""gitdock runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GitdockSettings:
    """Runtime settings for gitdock operations.

    Attributes:
        connect_timeout: SSH connect timeout in seconds for the reachability probe (default: 10)
        settle_delay: Seconds to wait before the HTTP health probe (default: 5)
        command_timeout: Timeout in seconds for any other remote command (default: 900)
        remote_staging_dir: Remote directory where artifacts land before execution
        public_probe_timeout: Timeout in seconds for the public HTTP probe (default: 10)
    """

    connect_timeout: int = 10
    settle_delay: float = 5.0
    command_timeout: int = 900  # docker build on a small VPS can be slow
    remote_staging_dir: str = "/tmp/gitdock"
    public_probe_timeout: int = 10

    @classmethod
    def from_env(cls) -> "GitdockSettings":
        """Create settings from environment variables.

        Environment variables:
            GITDOCK_CONNECT_TIMEOUT: SSH connect timeout in seconds
            GITDOCK_SETTLE_DELAY: Delay before the health probe in seconds
            GITDOCK_COMMAND_TIMEOUT: Remote command timeout in seconds
            GITDOCK_REMOTE_STAGING_DIR: Remote staging directory
            GITDOCK_PUBLIC_PROBE_TIMEOUT: Public HTTP probe timeout in seconds

        Returns:
            GitdockSettings instance with values from environment or defaults
        """
        return cls(
            connect_timeout=int(
                os.getenv("GITDOCK_CONNECT_TIMEOUT", cls.connect_timeout)
            ),
            settle_delay=float(
                os.getenv("GITDOCK_SETTLE_DELAY", cls.settle_delay)
            ),
            command_timeout=int(
                os.getenv("GITDOCK_COMMAND_TIMEOUT", cls.command_timeout)
            ),
            remote_staging_dir=os.getenv(
                "GITDOCK_REMOTE_STAGING_DIR", cls.remote_staging_dir
            ).rstrip("/") or "/",
            public_probe_timeout=int(
                os.getenv("GITDOCK_PUBLIC_PROBE_TIMEOUT", cls.public_probe_timeout)
            ),
        )


# Global settings instance (can be overridden)
_settings: Optional[GitdockSettings] = None


def get_settings() -> GitdockSettings:
    """Get the global gitdock settings.

    Returns:
        GitdockSettings instance (creates from environment if not set)
    """
    global _settings
    if _settings is None:
        _settings = GitdockSettings.from_env()
    return _settings


def set_settings(settings: Optional[GitdockSettings]):
    """Set the global gitdock settings.

    Args:
        settings: GitdockSettings instance to use globally, or None to re-read the environment
    """
    global _settings
    _settings = settings


def is_mock() -> bool:
    """Return True when gitdock runs in mock mode."""
    return os.environ.get("GITDOCK_MOCK") == "1"
