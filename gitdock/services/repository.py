"""Local git working copy management for deployments."""
import base64
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from gitdock.core.errors import RepoError
from gitdock.core.logger import get_logger
from gitdock.models.deployment import ParameterSet, RepositoryHandle

logger = get_logger(__name__)

REDACTED = "***"


def redact(text: str, *secrets: str) -> str:
    """Replace every occurrence of the given secrets in text."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


class RepositorySync:
    """Clones or fast-forwards the repository to deploy.

    The token is sent as an HTTP Basic credential for the ``oauth2`` user via
    ``http.extraHeader``. The header travels through ``GIT_CONFIG_*``
    environment variables, so it never shows up in the process list and is
    never written to ``.git/config``.
    """

    def __init__(self, params: ParameterSet, workdir: Optional[Path] = None, mock: bool = False):
        self.params = params
        self.workdir = Path(workdir) if workdir else Path.cwd()
        self.mock = mock

    @property
    def _token(self) -> str:
        return self.params.auth_token.get_secret_value()

    def _basic_credential(self) -> str:
        return base64.b64encode(f"oauth2:{self._token}".encode()).decode()

    def _auth_env(self) -> Dict[str, str]:
        """Environment for git subprocesses carrying the auth header."""
        env = os.environ.copy()
        index = int(env.get("GIT_CONFIG_COUNT", "0") or 0)
        env["GIT_CONFIG_COUNT"] = str(index + 1)
        env[f"GIT_CONFIG_KEY_{index}"] = "http.extraHeader"
        env[f"GIT_CONFIG_VALUE_{index}"] = f"Authorization: Basic {self._basic_credential()}"
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def _redact(self, text: str) -> str:
        return redact(text, self._token, self._basic_credential())

    def _run_git(self, args: List[str], kind: str, cwd: Optional[Path] = None) -> str:
        """Run a git command, translating failures into RepoError."""
        try:
            result = subprocess.run(
                ['git', *args],
                cwd=cwd,
                env=self._auth_env(),
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError:
            raise RepoError(kind, "git not found. Please install git first.") from None
        except subprocess.CalledProcessError as e:
            detail = self._redact((e.stderr or e.stdout or "").strip())
            logger.error(f"git {args[0]} failed")
            if detail:
                logger.error(f"Error output: {detail}")
            raise RepoError(kind, f"git {args[0]} failed", detail.splitlines()[-1] if detail else None) from None
        return result.stdout

    def sync(self) -> RepositoryHandle:
        """Clone the repository or bring an existing clone up to date.

        Returns:
            RepositoryHandle for the synced working copy

        Raises:
            RepoError: clone or pull failed, or the repository has no Dockerfile
        """
        handle = RepositoryHandle(
            local_path=self.workdir / self.params.repository_dirname,
            derived_name=self.params.derived_name,
        )
        branch = self.params.branch

        if self.mock:
            logger.info(
                f"MOCK: Would sync {self.params.repository_url} ({branch}) into {handle.local_path}"
            )
            return handle

        if handle.local_path.exists():
            self.update(handle.local_path, branch)
        else:
            self.clone(handle.local_path, branch)

        if not handle.dockerfile.is_file():
            raise RepoError(
                RepoError.MISSING_DOCKERFILE,
                "Dockerfile missing",
                f"expected {handle.dockerfile}",
            )

        logger.info(f"✓ Repository ready: {handle.local_path}")
        return handle

    def clone(self, path: Path, branch: str) -> None:
        """Fresh clone of a single branch into path."""
        logger.info(f"Cloning {self.params.repository_url} (branch: {branch})...")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepoError(
                RepoError.CLONE, f"Cannot create working directory {path.parent}", str(e)
            ) from None
        self._run_git(
            ['clone', '--branch', branch, '--single-branch', '--',
             self.params.repository_url, str(path)],
            RepoError.CLONE,
        )

    def update(self, path: Path, branch: str) -> None:
        """Switch an existing clone to branch and fast-forward it from origin.

        A diverged history is fatal; nothing is merged or reset.
        """
        if not (path / ".git").exists():
            raise RepoError(
                RepoError.PULL,
                f"{path} exists but is not a git repository",
            )

        logger.info(f"Updating existing repository in {path}...")
        # Explicit refspec: single-branch clones only track their original branch
        self._run_git(
            ['fetch', 'origin', f'+refs/heads/{branch}:refs/remotes/origin/{branch}'],
            RepoError.PULL,
            cwd=path,
        )
        if self._has_local_branch(path, branch):
            self._run_git(['checkout', branch], RepoError.PULL, cwd=path)
        else:
            self._run_git(
                ['checkout', '-b', branch, '--track', f'origin/{branch}'],
                RepoError.PULL,
                cwd=path,
            )
        output = self._run_git(['pull', '--ff-only', 'origin', branch], RepoError.PULL, cwd=path)
        if output.strip():
            logger.debug(f"Git output: {output.strip()}")

    def _has_local_branch(self, path: Path, branch: str) -> bool:
        result = subprocess.run(
            ['git', 'rev-parse', '--verify', '--quiet', f'refs/heads/{branch}'],
            cwd=path,
            capture_output=True,
            text=True,
            check=False,
        )
        return result.returncode == 0

    def get_current_commit(self, path: Path) -> Optional[str]:
        """Get current commit hash of a working copy, or None if unavailable."""
        if self.mock:
            return "mock-commit-hash-1234567890"

        try:
            result = subprocess.run(
                ['git', 'rev-parse', 'HEAD'],
                cwd=path,
                capture_output=True,
                text=True,
                check=True,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.error(f"Failed to get commit hash: {e}")
            return None
        return result.stdout.strip()
