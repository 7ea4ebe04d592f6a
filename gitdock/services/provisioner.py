"""Remote host provisioning: Docker, nginx and docker group membership.

Every command is safe to repeat, so the step can be re-run against a host
that is already provisioned.
"""
import subprocess
from typing import List

from gitdock.core.errors import ProvisionError
from gitdock.core.logger import get_logger
from gitdock.services.ssh import SSHClient, describe_failure

logger = get_logger(__name__)

PACKAGES = ['docker.io', 'nginx']
SERVICES = ['docker', 'nginx']


class RemoteProvisioner:
    """Installs and starts Docker and nginx on the target host."""

    def __init__(self, ssh: SSHClient):
        self.ssh = ssh

    def _check_command_exists(self, command: str) -> bool:
        """Check whether a command is available on the remote host."""
        try:
            result = self.ssh.run(['command', '-v', command], check=False)
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False
        return result.returncode == 0

    def commands(self, install_packages: bool = True) -> List[List[str]]:
        """Remote commands, in order, for one provisioning run."""
        commands = []
        if install_packages:
            commands.append(['sudo', 'apt-get', 'update'])
            commands.append(['sudo', 'apt-get', 'install', '-y', *PACKAGES])
        commands.append(['sudo', 'systemctl', 'enable', *SERVICES])
        commands.append(['sudo', 'systemctl', 'start', *SERVICES])
        commands.append(['sudo', 'usermod', '-aG', 'docker', self.ssh.params.ssh_user])
        return commands

    def provision(self) -> str:
        """Provision the remote host.

        Returns:
            Short summary of what was done

        Raises:
            ProvisionError: A provisioning command failed
        """
        target = self.ssh.params.ssh_target
        logger.info(f"Setting up server {target}...")

        already_installed = all(self._check_command_exists(cmd) for cmd in SERVICES)
        if already_installed:
            logger.info("Docker and nginx already installed, skipping package install")

        for argv in self.commands(install_packages=not already_installed):
            try:
                self.ssh.run(argv)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
                command = " ".join(argv)
                logger.error(f"✗ Server setup failed at: {command}")
                raise ProvisionError(
                    f"Server setup failed at '{command}'", describe_failure(e)
                ) from None

        logger.info(f"✓ Server setup complete on {target}")
        if already_installed:
            return "Docker and nginx already present; services enabled"
        return "Installed docker.io and nginx; services enabled"
