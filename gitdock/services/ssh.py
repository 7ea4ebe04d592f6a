"""SSH/SCP execution against the deployment target."""
import shlex
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from gitdock.core.config import GitdockSettings, get_settings
from gitdock.core.logger import get_logger
from gitdock.models.deployment import ParameterSet

logger = get_logger(__name__)


class SSHClient:
    """Runs argv-style commands on the target host over ssh and copies files with scp.

    Remote commands are given as argument lists and quoted with ``shlex.join``
    before they reach the remote shell.
    """

    def __init__(
        self,
        params: ParameterSet,
        settings: Optional[GitdockSettings] = None,
        mock: bool = False,
    ):
        self.params = params
        self.settings = settings or get_settings()
        self.mock = mock

    def _options(self, connect_timeout: Optional[int] = None) -> List[str]:
        timeout = connect_timeout or self.settings.connect_timeout
        return [
            '-i', str(self.params.ssh_key_path),
            '-o', 'BatchMode=yes',
            '-o', 'StrictHostKeyChecking=accept-new',
            '-o', f'ConnectTimeout={timeout}',
        ]

    def ssh_command(self, argv: Sequence[str], connect_timeout: Optional[int] = None) -> List[str]:
        """Build the local ssh invocation for a remote argv."""
        return ['ssh', *self._options(connect_timeout), self.params.ssh_target, shlex.join(argv)]

    def scp_command(self, local_paths: Iterable[Path], remote_dir: str) -> List[str]:
        """Build the local scp invocation copying files into remote_dir."""
        return [
            'scp',
            *self._options(),
            *[str(p) for p in local_paths],
            f"{self.params.ssh_target}:{remote_dir.rstrip('/')}/",
        ]

    def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        check: bool = True,
        connect_timeout: Optional[int] = None,
    ) -> subprocess.CompletedProcess:
        """Run a command on the remote host.

        Args:
            argv: Remote command as an argument list
            timeout: Local timeout in seconds (default: settings.command_timeout)
            check: Raise CalledProcessError on a non-zero exit status
            connect_timeout: Override the ssh ConnectTimeout option

        Returns:
            CompletedProcess with captured text output

        Raises:
            subprocess.CalledProcessError: Remote command failed and check is True
            subprocess.TimeoutExpired: Command did not finish within timeout
        """
        cmd = self.ssh_command(argv, connect_timeout=connect_timeout)

        if self.mock:
            logger.info(f"MOCK: Would run on {self.params.ssh_target}: {shlex.join(argv)}")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        logger.debug(f"ssh {self.params.ssh_target}: {shlex.join(argv)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
            timeout=timeout if timeout is not None else self.settings.command_timeout,
        )

    def copy(
        self,
        local_paths: Iterable[Path],
        remote_dir: str,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Copy local files into a remote directory with scp.

        Raises:
            subprocess.CalledProcessError: scp exited non-zero
            subprocess.TimeoutExpired: Transfer did not finish within timeout
        """
        paths = list(local_paths)
        cmd = self.scp_command(paths, remote_dir)

        if self.mock:
            names = ", ".join(p.name for p in paths)
            logger.info(f"MOCK: Would copy {names} to {self.params.ssh_target}:{remote_dir}")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        logger.debug(f"scp {len(paths)} file(s) to {self.params.ssh_target}:{remote_dir}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout if timeout is not None else self.settings.command_timeout,
        )


def describe_failure(exc: Exception) -> str:
    """Return the most useful one-line description of a failed subprocess."""
    if isinstance(exc, subprocess.TimeoutExpired):
        return f"timed out after {exc.timeout:g}s"
    if isinstance(exc, subprocess.CalledProcessError):
        output = (exc.stderr or exc.stdout or "").strip()
        last_line = output.splitlines()[-1] if output else ""
        if last_line:
            return f"exit status {exc.returncode}: {last_line}"
        return f"exit status {exc.returncode}"
    if isinstance(exc, FileNotFoundError):
        return f"command not found: {exc.filename or exc}"
    return str(exc)
