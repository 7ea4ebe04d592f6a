"""Remote deployment: transfer artifacts and build context, then run them.

Sub-steps, in order:
1. package        - git archive of the synced working copy (local)
2. stage          - recreate the remote build directory
3. transfer       - scp script, nginx config and archive to the staging dir
4. unpack         - extract the archive into the build directory
5. deploy-script  - stop/remove old container, build image, run container
6. install-config - copy nginx config into sites-available
7. enable-site    - force-symlink it into sites-enabled
8. nginx-test     - nginx -t
9. nginx-reload   - systemctl reload nginx

The first failing sub-step aborts the rest. Nothing is rolled back.
"""
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from gitdock.core.errors import DeployError
from gitdock.core.logger import get_logger
from gitdock.models.deployment import DeployArtifacts, RepositoryHandle
from gitdock.services.artifacts import write_artifacts
from gitdock.services.ssh import SSHClient, describe_failure

logger = get_logger(__name__)

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"


class RemoteDeployer:
    """Ships generated artifacts to the target host and executes them."""

    def __init__(self, ssh: SSHClient, staging_dir: Optional[str] = None):
        self.ssh = ssh
        self.staging_dir = (staging_dir or ssh.settings.remote_staging_dir).rstrip('/') or '/'

    def _staged(self, filename: str) -> str:
        return f"{self.staging_dir.rstrip('/')}/{filename}"

    def build_dir(self, derived_name: str) -> str:
        return self._staged(derived_name)

    def archive_name(self, derived_name: str) -> str:
        return f"{derived_name}.tar"

    def stage_commands(self, derived_name: str) -> List[Tuple[str, List[str]]]:
        """Remote commands run before the transfer."""
        build_dir = self.build_dir(derived_name)
        return [
            ('stage', ['rm', '-rf', build_dir]),
            ('stage', ['mkdir', '-p', build_dir]),
        ]

    def remote_commands(self, artifacts: DeployArtifacts, derived_name: str) -> List[Tuple[str, List[str]]]:
        """Remote commands run after the transfer, as (sub_step, argv) pairs."""
        site_available = f"{NGINX_SITES_AVAILABLE}/{derived_name}"
        site_enabled = f"{NGINX_SITES_ENABLED}/{derived_name}"
        return [
            ('unpack', ['tar', '-xf', self._staged(self.archive_name(derived_name)),
                        '-C', self.build_dir(derived_name)]),
            ('deploy-script', ['bash', self._staged(artifacts.script_filename)]),
            ('install-config', ['sudo', 'cp', self._staged(artifacts.nginx_filename), site_available]),
            ('enable-site', ['sudo', 'ln', '-sf', site_available, site_enabled]),
            ('nginx-test', ['sudo', 'nginx', '-t']),
            ('nginx-reload', ['sudo', 'systemctl', 'reload', 'nginx']),
        ]

    def package(self, handle: RepositoryHandle, destination: Path) -> Path:
        """Archive the committed tree of the working copy as the build context."""
        archive = destination / self.archive_name(handle.derived_name)

        if self.ssh.mock:
            logger.info(f"MOCK: Would archive {handle.local_path} to {archive.name}")
            return archive

        try:
            subprocess.run(
                ['git', 'archive', '--format=tar', '-o', str(archive), 'HEAD'],
                cwd=handle.local_path,
                capture_output=True,
                text=True,
                check=True,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise DeployError('package', "Failed to archive repository", describe_failure(e)) from None
        return archive

    def _run(self, sub_step: str, argv: List[str]) -> None:
        try:
            result = self.ssh.run(argv)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.error(f"✗ Deployment failed during {sub_step}")
            output = getattr(e, 'stderr', None) or getattr(e, 'stdout', None)
            if output:
                logger.error(f"Error output: {output.strip()}")
            raise DeployError(sub_step, "Remote command failed", describe_failure(e)) from None
        if result.stdout and result.stdout.strip():
            logger.debug(f"{sub_step}: {result.stdout.strip()}")

    def deploy(self, artifacts: DeployArtifacts, handle: RepositoryHandle) -> str:
        """Transfer and execute the artifacts for handle.

        Local copies live in a temporary directory that is removed when this
        returns, whether or not deployment succeeded.

        Returns:
            Summary message

        Raises:
            DeployError: Naming the failing sub-step
        """
        name = handle.derived_name
        target = self.ssh.params.ssh_target
        logger.info(f"Deploying {name} to {target}...")

        try:
            workspace = tempfile.TemporaryDirectory(prefix="gitdock-")
        except OSError as e:
            raise DeployError('package', "Cannot create local staging directory", str(e)) from None

        with workspace as tmp:
            tmp_path = Path(tmp)
            archive = self.package(handle, tmp_path)
            try:
                local_files = write_artifacts(artifacts, tmp_path) + [archive]
            except OSError as e:
                raise DeployError('package', "Failed to write artifacts", str(e)) from None

            for sub_step, argv in self.stage_commands(name):
                self._run(sub_step, argv)

            try:
                self.ssh.copy(local_files, self.staging_dir)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
                logger.error("✗ Transfer to remote host failed")
                raise DeployError('transfer', "scp failed", describe_failure(e)) from None

            for sub_step, argv in self.remote_commands(artifacts, name):
                self._run(sub_step, argv)

        logger.info(f"✓ Container {name}-container deployed and nginx configured")
        return f"{name}-container running behind nginx site '{name}'"
