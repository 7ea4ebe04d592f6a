"""Post-deployment verification.

Container and nginx checks are hard failures. The HTTP health probe (and
the optional public probe) only produce warnings: by the time they run the
deployment has already happened.
"""
import subprocess
import time
from typing import List, Optional

import requests

from gitdock.core.errors import VerificationError
from gitdock.core.logger import get_logger
from gitdock.models.deployment import RepositoryHandle
from gitdock.services.artifacts import container_name
from gitdock.services.ssh import SSHClient, describe_failure

logger = get_logger(__name__)


class DeploymentVerifier:
    """Checks a deployment on the target host."""

    def __init__(self, ssh: SSHClient, check_public: bool = False):
        self.ssh = ssh
        self.settings = ssh.settings
        self.check_public = check_public

    def _remote(self, argv: List[str]) -> Optional[subprocess.CompletedProcess]:
        try:
            return self.ssh.run(argv, check=False)
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.error(f"{argv[0]} check did not complete: {describe_failure(e)}")
            return None

    def container_running(self, derived_name: str) -> bool:
        name = container_name(derived_name)
        result = self._remote(
            ['docker', 'ps', '--filter', f'name={name}', '--format', '{{.Names}}']
        )
        if result is None or result.returncode != 0:
            return False
        return any(name in line for line in result.stdout.splitlines())

    def nginx_active(self) -> bool:
        result = self._remote(['systemctl', 'is-active', 'nginx'])
        return result is not None and result.stdout.strip() == 'active'

    def health_check(self, app_port: int) -> bool:
        """HTTP GET against the app port on the remote loopback interface."""
        if self.settings.settle_delay > 0:
            logger.info(f"Waiting {self.settings.settle_delay:g}s for the application to start...")
            time.sleep(self.settings.settle_delay)
        result = self._remote(
            ['curl', '-f', '-s', '-o', '/dev/null', f'http://localhost:{app_port}']
        )
        return result is not None and result.returncode == 0

    def public_check(self, url: str) -> Optional[str]:
        """GET the public URL from here. Returns a warning message or None."""
        try:
            response = requests.get(url, timeout=self.settings.public_probe_timeout)
        except requests.RequestException as e:
            return f"Public URL {url} not reachable: {e}"
        if response.status_code >= 400:
            return f"Public URL {url} returned HTTP {response.status_code}"
        return None

    def verify(self, handle: RepositoryHandle) -> List[str]:
        """Run all checks.

        Returns:
            Warnings from soft checks (empty when everything passed)

        Raises:
            VerificationError: Container not running and/or nginx not active
        """
        params = self.ssh.params
        logger.info("Verifying deployment...")

        if self.ssh.mock:
            logger.info(f"MOCK: Would verify {container_name(handle.derived_name)} and nginx on {params.ssh_target}")
            return []

        failed = []
        if self.container_running(handle.derived_name):
            logger.info(f"✓ Container {container_name(handle.derived_name)} is running")
        else:
            logger.error(f"✗ Container {container_name(handle.derived_name)} not running")
            failed.append('container')

        if self.nginx_active():
            logger.info("✓ nginx is active")
        else:
            logger.error("✗ nginx not active")
            failed.append('nginx')

        if failed:
            raise VerificationError(failed, f"Verification failed: {', '.join(failed)} check(s) did not pass")

        warnings = []
        if self.health_check(params.app_port):
            logger.info("✓ Application health check passed")
        else:
            message = f"Application health check failed on localhost:{params.app_port}"
            logger.warning(f"⚠ {message}")
            warnings.append(message)

        if self.check_public:
            message = self.public_check(params.access_url)
            if message:
                logger.warning(f"⚠ {message}")
                warnings.append(message)
            else:
                logger.info(f"✓ {params.access_url} reachable")

        return warnings
