"""SSH reachability check for the deployment target."""
import subprocess

from gitdock.core.errors import ConnectivityError
from gitdock.core.logger import get_logger
from gitdock.services.ssh import SSHClient

logger = get_logger(__name__)

AUTH_MARKERS = (
    "permission denied",
    "authentication failed",
    "too many authentication failures",
    "no supported authentication methods",
)
NETWORK_MARKERS = (
    "connection refused",
    "connection timed out",
    "operation timed out",
    "no route to host",
    "could not resolve hostname",
    "network is unreachable",
    "connection reset",
    "connection closed",
)


def classify_ssh_failure(stderr: str) -> str:
    """Map ssh client stderr to a ConnectivityError reason."""
    text = (stderr or "").lower()
    if any(marker in text for marker in AUTH_MARKERS):
        return ConnectivityError.AUTH
    if any(marker in text for marker in NETWORK_MARKERS):
        return ConnectivityError.NETWORK
    return ConnectivityError.UNKNOWN


class ConnectivityProbe:
    """Verifies the target host accepts our key before any remote work."""

    def __init__(self, ssh: SSHClient):
        self.ssh = ssh

    def ping(self) -> bool:
        """ICMP pre-check. Many hosts drop ping, so failure is only a warning."""
        host = self.ssh.params.server_host
        if self.ssh.mock:
            logger.info(f"MOCK: Would ping {host}")
            return True

        try:
            result = subprocess.run(
                ['ping', '-c', '2', '-W', '2', host],
                capture_output=True,
                text=True,
                check=False,
                timeout=10,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"⚠ Ping check skipped: {e}")
            return False

        if result.returncode != 0:
            logger.warning(f"⚠ Ping to {host} failed (continuing with SSH check)")
            return False
        return True

    def probe(self) -> None:
        """Run a remote no-op with a bounded connect timeout.

        Raises:
            ConnectivityError: reason is 'auth', 'network' or 'unknown'
        """
        target = self.ssh.params.ssh_target
        connect_timeout = self.ssh.settings.connect_timeout
        logger.info(f"Testing SSH connection to {target}...")

        try:
            result = self.ssh.run(
                ['true'],
                timeout=connect_timeout + 5,
                check=False,
                connect_timeout=connect_timeout,
            )
        except subprocess.TimeoutExpired:
            raise ConnectivityError(
                ConnectivityError.NETWORK,
                f"SSH connection to {target} timed out",
                f"no answer within {connect_timeout}s",
            ) from None
        except FileNotFoundError:
            raise ConnectivityError(
                ConnectivityError.UNKNOWN,
                "ssh client not found. Please install OpenSSH first.",
            ) from None

        if result.returncode == 0:
            logger.info(f"✓ SSH connection to {target} successful")
            return

        stderr = (result.stderr or "").strip()
        reason = classify_ssh_failure(stderr)
        summary = {
            ConnectivityError.AUTH: f"SSH authentication rejected by {target}",
            ConnectivityError.NETWORK: f"Cannot reach {target} over SSH",
        }.get(reason, f"SSH check against {target} failed (exit status {result.returncode})")
        raise ConnectivityError(reason, summary, stderr.splitlines()[-1] if stderr else None)

    def check(self) -> None:
        """Ping pre-check followed by the SSH probe."""
        self.ping()
        self.probe()
