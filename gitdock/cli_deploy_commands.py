"""Deployment CLI commands: deploy and check."""
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console

from gitdock.cli_support import (
    handle_cli_error,
    print_info,
    print_success,
    render_report,
    setup_file_logging,
)
from gitdock.config.loader import resolve_parameters
from gitdock.core.config import get_settings, is_mock
from gitdock.core.errors import ConnectivityError, ValidationError
from gitdock.models.deployment import ParameterSet

# Module-level console instance (will be set by register function)
console: Console = Console()

# Fields the SSH check never reads
CHECK_DEFAULTS = {
    'repository_url': "https://localhost/unused.git",
    'auth_token': "unused",
    'branch': "main",
    'app_port': 80,
    'domain_name': "unused.invalid",
}


def _resolve(
    cli_values: Dict[str, Any],
    config: Optional[str],
    non_interactive: bool,
    verbose: bool,
    defaults: Optional[Dict[str, Any]] = None,
) -> ParameterSet:
    try:
        return resolve_parameters(
            cli_values, config_path=config, interactive=not non_interactive, defaults=defaults
        )
    except ValidationError as e:
        handle_cli_error(e, console, verbose=verbose, exit_code=2)


def deploy(
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Git repository URL (http/https)"),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="GITDOCK_TOKEN", show_envvar=True, help="Personal access token for the repository"
    ),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch to deploy (default: main)"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH username"),
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Server IP address or hostname"),
    key: Optional[Path] = typer.Option(None, "--key", "-i", help="SSH private key path"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Application port (1-65535)"),
    domain: Optional[str] = typer.Option(None, "--domain", "-d", help="Domain name served by nginx"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Deployment config file (default: ./gitdock.yml)"),
    workdir: Optional[Path] = typer.Option(None, "--workdir", help="Where the repository is cloned (default: current directory)"),
    provision: bool = typer.Option(False, "--provision/--no-provision", help="Install Docker and nginx on the server first"),
    verify: bool = typer.Option(False, "--verify/--no-verify", help="Verify container, nginx and HTTP health afterwards"),
    check_public: bool = typer.Option(False, "--check-public", help="Also GET http://<domain> from this machine (implies --verify)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log every external command instead of running it"),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Fail instead of prompting for missing values"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging and tracebacks"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    """Sync a repository and deploy it as a container behind nginx.

    Steps: repository, connectivity, [provision], artifacts, deploy, [verify].
    The first failing step stops the run.
    """
    from gitdock.core.pipeline import Pipeline

    if log_file or verbose:
        setup_file_logging(log_file=log_file, verbose=verbose)

    params = _resolve(
        {
            'repository_url': repo,
            'auth_token': token,
            'branch': branch,
            'ssh_user': user,
            'server_host': host,
            'ssh_key_path': key,
            'app_port': port,
            'domain_name': domain,
        },
        config,
        non_interactive,
        verbose,
    )

    mock = dry_run or is_mock()
    if mock:
        print_info(console, "Dry run: no external commands will be executed")

    pipeline = Pipeline(
        params,
        settings=get_settings(),
        workdir=workdir,
        provision=provision,
        verify=verify or check_public,
        check_public=check_public,
        mock=mock,
    )
    report = pipeline.run()
    render_report(console, report)

    if report.failed:
        handle_cli_error(report.error, console, verbose=False, exit_code=1)

    print_success(console, "Deployment completed successfully!")
    print_info(console, f"Access your application at: {report.access_url}")


def check(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH username"),
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Server IP address or hostname"),
    key: Optional[Path] = typer.Option(None, "--key", "-i", help="SSH private key path"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Deployment config file (default: ./gitdock.yml)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log the ssh command instead of running it"),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Fail instead of prompting for missing values"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Check that the server accepts SSH connections with the given key.

    Only the SSH user, host and key are needed; repository, token, port and
    domain are not asked for.
    """
    from gitdock.services.connectivity import ConnectivityProbe
    from gitdock.services.ssh import SSHClient

    params = _resolve(
        {
            'ssh_user': user,
            'server_host': host,
            'ssh_key_path': key,
        },
        config,
        non_interactive,
        verbose,
        defaults=CHECK_DEFAULTS,
    )

    probe = ConnectivityProbe(SSHClient(params, settings=get_settings(), mock=dry_run or is_mock()))
    try:
        probe.check()
    except ConnectivityError as e:
        handle_cli_error(e, console, verbose=verbose, exit_code=1)

    print_success(console, f"SSH connection to {params.ssh_target} successful")


def register_deploy_commands(app: typer.Typer, shared_console: Console):
    """Register deployment commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(deploy)
    app.command()(check)
