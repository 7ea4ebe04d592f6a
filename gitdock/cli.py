#!/usr/bin/env python3
"""gitdock CLI - deploy a git repository as a Docker container behind nginx."""

import typer
from rich.console import Console

from gitdock.cli_deploy_commands import register_deploy_commands
from gitdock.cli_render_commands import register_render_commands

app = typer.Typer(
    name="gitdock",
    help="""gitdock - git repository to running container behind nginx

Quick start:
  gitdock render -n myapp -p 8080 -d example.com   # Preview generated files
  gitdock check -c gitdock.yml                      # Test SSH access
  gitdock deploy -c gitdock.yml --verify            # Deploy and verify

The access token is read from --token or GITDOCK_TOKEN.
""",
    add_completion=False,
)

console = Console()

# Attach modular subcommands
register_deploy_commands(app, console)
register_render_commands(app, console)

if __name__ == "__main__":
    app()
