"""Artifact preview command."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from gitdock.cli_support import handle_cli_error, print_success
from gitdock.core.config import get_settings
from gitdock.services.artifacts import ArtifactGenerator, write_artifacts

console: Console = Console()


def render(
    name: str = typer.Option(..., "--name", "-n", help="Derived repository name (container/image/site)"),
    port: int = typer.Option(..., "--port", "-p", help="Application port"),
    domain: str = typer.Option(..., "--domain", "-d", help="Domain name"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Write files here instead of printing"),
):
    """Render the remote deploy script and nginx config without deploying."""
    generator = ArtifactGenerator(staging_dir=get_settings().remote_staging_dir)
    try:
        artifacts = generator.generate(name, port, domain)
    except ValueError as e:
        handle_cli_error(e, console, exit_code=2)

    if output_dir:
        for path in write_artifacts(artifacts, output_dir):
            print_success(console, f"Wrote {path}")
        return

    console.rule(artifacts.script_filename)
    typer.echo(artifacts.remote_script, nl=False)
    console.rule(artifacts.nginx_filename)
    typer.echo(artifacts.nginx_config, nl=False)


def register_render_commands(app: typer.Typer, shared_console: Console):
    """Register the render command with the main Typer app."""
    global console
    console = shared_console

    app.command()(render)
