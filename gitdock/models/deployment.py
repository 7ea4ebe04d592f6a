"""Deployment models: parameters, intermediate handles and step results."""
import ipaddress
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

HOSTNAME_RE = re.compile(
    r'^(?=.{1,253}$)[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?'
    r'(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$'
)
SSH_USER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_.-]{0,31}$')
BRANCH_RE = re.compile(r'^(?!-)(?!.*\.\.)(?!.*@\{)[^\s~^:?*\[\\]+(?<![./])$')
# Docker image name component: alphanumeric runs joined by ".", "_", "__" or dashes
DERIVED_NAME_RE = re.compile(r'^[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*$')


def _repo_basename(url: str) -> str:
    """Return the last path segment of a repository URL, minus any .git suffix."""
    path = urlsplit(url).path if '://' in url else url
    basename = path.rstrip('/').rsplit('/', 1)[-1]
    if basename.endswith('.git'):
        basename = basename[:-4]
    return basename


def derive_name(url: str) -> str:
    """Derive the container/image/site identifier from a repository URL.

    ``https://github.com/acme/MyApp.git`` becomes ``myapp``. Docker image
    names must be lowercase, so the basename is lowercased.
    """
    return _repo_basename(url).lower()


class ParameterSet(BaseModel):
    """Validated, immutable description of a deployment target."""

    model_config = ConfigDict(frozen=True, extra='forbid')

    repository_url: str = Field(..., description="http(s) URL of the git repository")
    auth_token: SecretStr = Field(..., description="Access token used for git over HTTPS")
    branch: str = Field("main", description="Branch to deploy")
    ssh_user: str = Field(..., description="SSH user on the target host")
    server_host: str = Field(..., description="IPv4 address or hostname of the target host")
    ssh_key_path: Path = Field(..., description="Private key used for ssh/scp")
    app_port: int = Field(..., ge=1, le=65535, description="Port the container listens on")
    domain_name: str = Field(..., description="Domain served by the nginx site")

    @field_validator('repository_url')
    @classmethod
    def validate_repository_url(cls, v):
        """Require an http(s) URL with a repository path and no inline credentials."""
        v = v.strip()
        parts = urlsplit(v)
        if parts.scheme not in ('http', 'https') or not parts.hostname:
            raise ValueError(f"Repository URL must start with http:// or https://. Got: {v}")
        if parts.username or parts.password:
            raise ValueError(
                "Repository URL must not embed credentials; pass the token separately"
            )
        if not parts.path.strip('/'):
            raise ValueError(f"Repository URL has no repository path: {v}")
        return v

    @field_validator('auth_token')
    @classmethod
    def validate_auth_token(cls, v):
        """Token cannot be empty."""
        if not v.get_secret_value().strip():
            raise ValueError("Token cannot be empty")
        return v

    @field_validator('branch')
    @classmethod
    def validate_branch(cls, v):
        """Validate branch is a plausible git ref name."""
        v = v.strip() or "main"
        if not BRANCH_RE.match(v):
            raise ValueError(f"Branch '{v}' is not a valid git branch name")
        return v

    @field_validator('ssh_user')
    @classmethod
    def validate_ssh_user(cls, v):
        """Validate SSH username."""
        v = v.strip()
        if not SSH_USER_RE.match(v):
            raise ValueError(f"SSH username '{v}' is not a valid user name")
        return v

    @field_validator('server_host')
    @classmethod
    def validate_server_host(cls, v):
        """Accept a dotted-quad IPv4 address or an RFC 1123 hostname."""
        v = v.strip()
        if re.fullmatch(r'[0-9.]+', v):
            try:
                ipaddress.IPv4Address(v)
            except ValueError:
                raise ValueError(f"Invalid IP format: {v}") from None
            return v
        if not HOSTNAME_RE.match(v):
            raise ValueError(f"Server '{v}' is neither an IPv4 address nor a hostname")
        return v

    @field_validator('ssh_key_path')
    @classmethod
    def validate_ssh_key_path(cls, v):
        """SSH key must be an existing, readable file."""
        path = Path(v).expanduser()
        if not path.is_file():
            raise ValueError(f"SSH key not found: {path}")
        if not os.access(path, os.R_OK):
            raise ValueError(f"SSH key is not readable: {path}")
        return path

    @field_validator('domain_name')
    @classmethod
    def validate_domain_name(cls, v):
        """Validate domain is a hostname (without scheme or path)."""
        v = v.strip().lower()
        if not HOSTNAME_RE.match(v) or '.' not in v:
            raise ValueError(f"Domain '{v}' is not a valid domain name")
        return v

    @model_validator(mode='after')
    def validate_derived_name(self) -> 'ParameterSet':
        """The name derived from the URL must be usable for Docker and nginx."""
        name = derive_name(self.repository_url)
        if not DERIVED_NAME_RE.match(name):
            raise ValueError(
                f"Repository name '{name}' cannot be used as a container name. "
                "Must be letters and numbers separated by single '.' or '_', '__', or dashes."
            )
        return self

    @property
    def derived_name(self) -> str:
        return derive_name(self.repository_url)

    @property
    def repository_dirname(self) -> str:
        """Directory name `git clone` creates for this repository."""
        return _repo_basename(self.repository_url)

    @property
    def ssh_target(self) -> str:
        return f"{self.ssh_user}@{self.server_host}"

    @property
    def access_url(self) -> str:
        return f"http://{self.domain_name}"


@dataclass(frozen=True)
class RepositoryHandle:
    """Local working copy produced by the repository sync step."""
    local_path: Path
    derived_name: str

    @property
    def dockerfile(self) -> Path:
        return self.local_path / "Dockerfile"


@dataclass(frozen=True)
class DeployArtifacts:
    """Generated remote deploy script and nginx site config."""
    remote_script: str
    nginx_config: str
    script_filename: str = "deploy_remote.sh"
    nginx_filename: str = "nginx.conf"


class StepOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Outcome of a single pipeline step."""
    step: str
    outcome: StepOutcome
    message: str = ""
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome != StepOutcome.FAILURE


@dataclass
class PipelineReport:
    """Ordered step results of one pipeline run."""
    results: List[StepResult] = field(default_factory=list)
    error: Optional[Exception] = None
    access_url: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def warnings(self) -> List[str]:
        return [w for result in self.results for w in result.warnings]

    def result_for(self, step: str) -> Optional[StepResult]:
        for result in self.results:
            if result.step == step:
                return result
        return None
