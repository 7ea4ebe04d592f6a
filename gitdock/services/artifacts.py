"""Rendering of the remote deploy script and nginx site config."""
import shlex
from pathlib import Path
from typing import List

from jinja2 import BaseLoader, Environment, StrictUndefined

from gitdock.models.deployment import DERIVED_NAME_RE, HOSTNAME_RE, DeployArtifacts

DEFAULT_STAGING_DIR = "/tmp/gitdock"
ACME_WEBROOT = "/var/www/html"

DEPLOY_SCRIPT_TEMPLATE = """\
#!/bin/bash
set -e

# Cleanup old container
docker stop {{ container }} 2>/dev/null || true
docker rm {{ container }} 2>/dev/null || true

# Build and run
docker build -t {{ image }} {{ build_context | q }}
docker run -d --name {{ container }} -p 127.0.0.1:{{ port }}:{{ port }} {{ image }}
echo 'Container deployed'
"""

NGINX_SITE_TEMPLATE = """\
server {
    listen 80;
    server_name {{ domain }} www.{{ domain }};

    location / {
        proxy_pass http://localhost:{{ port }};
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
    }

    location /.well-known/acme-challenge/ {
        root {{ acme_webroot }};
    }
}
"""


def container_name(derived_name: str) -> str:
    return f"{derived_name}-container"


def image_tag(derived_name: str) -> str:
    return f"{derived_name}:latest"


class ArtifactGenerator:
    """Renders deploy artifacts from (derived name, port, domain).

    Rendering is pure: no I/O, and identical inputs always produce
    byte-identical output.
    """

    def __init__(self, staging_dir: str = DEFAULT_STAGING_DIR):
        self.staging_dir = staging_dir.rstrip('/') or '/'
        self.jinja_env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.jinja_env.filters['q'] = lambda value: shlex.quote(str(value))

    def build_context(self, derived_name: str) -> str:
        """Remote directory the repository is unpacked into for `docker build`."""
        return f"{self.staging_dir.rstrip('/')}/{derived_name}"

    def render_deploy_script(self, derived_name: str, app_port: int) -> str:
        template = self.jinja_env.from_string(DEPLOY_SCRIPT_TEMPLATE)
        return template.render(
            container=container_name(derived_name),
            image=image_tag(derived_name),
            build_context=self.build_context(derived_name),
            port=app_port,
        )

    def render_nginx_config(self, app_port: int, domain_name: str) -> str:
        template = self.jinja_env.from_string(NGINX_SITE_TEMPLATE)
        return template.render(
            domain=domain_name,
            port=app_port,
            acme_webroot=ACME_WEBROOT,
        )

    def generate(self, derived_name: str, app_port: int, domain_name: str) -> DeployArtifacts:
        """Render both artifacts.

        Args:
            derived_name: Container/image/site identifier
            app_port: Port the container listens on, bound to 127.0.0.1 only
            domain_name: Domain served by nginx (www. alias added)

        Returns:
            DeployArtifacts with file names keyed by derived_name

        Raises:
            ValueError: An input cannot be interpolated safely
        """
        if not DERIVED_NAME_RE.match(derived_name):
            raise ValueError(f"Invalid container name base: {derived_name!r}")
        if isinstance(app_port, bool) or not isinstance(app_port, int) or not 1 <= app_port <= 65535:
            raise ValueError(f"Port must be between 1-65535. Got: {app_port!r}")
        if not HOSTNAME_RE.match(domain_name):
            raise ValueError(f"Invalid domain name: {domain_name!r}")

        return DeployArtifacts(
            remote_script=self.render_deploy_script(derived_name, app_port),
            nginx_config=self.render_nginx_config(app_port, domain_name),
            script_filename="deploy_remote.sh",
            nginx_filename=f"nginx_{derived_name}.conf",
        )


def write_artifacts(artifacts: DeployArtifacts, directory: Path) -> List[Path]:
    """Write both artifacts into directory and return their paths."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    script_path = directory / artifacts.script_filename
    nginx_path = directory / artifacts.nginx_filename
    script_path.write_text(artifacts.remote_script)
    script_path.chmod(0o755)
    nginx_path.write_text(artifacts.nginx_config)
    return [script_path, nginx_path]
