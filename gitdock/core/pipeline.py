"""Deployment pipeline: runs every step in a fixed order and stops at the first failure."""
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from gitdock.core.config import GitdockSettings, get_settings
from gitdock.core.errors import GitdockError, ValidationError
from gitdock.core.logger import get_logger
from gitdock.models.deployment import (
    DeployArtifacts,
    ParameterSet,
    PipelineReport,
    RepositoryHandle,
    StepOutcome,
    StepResult,
)
from gitdock.services.artifacts import ArtifactGenerator
from gitdock.services.connectivity import ConnectivityProbe
from gitdock.services.deployer import RemoteDeployer
from gitdock.services.provisioner import RemoteProvisioner
from gitdock.services.repository import RepositorySync
from gitdock.services.ssh import SSHClient
from gitdock.services.verifier import DeploymentVerifier

logger = get_logger(__name__)

StepAction = Callable[[], Tuple[str, List[str]]]


class Pipeline:
    """Takes a validated ParameterSet to a running, optionally verified service.

    Order: repository -> connectivity -> [provision] -> artifacts -> deploy -> [verify].
    A failing step ends the run; steps already applied are left in place.
    """

    def __init__(
        self,
        params: ParameterSet,
        settings: Optional[GitdockSettings] = None,
        workdir: Optional[Path] = None,
        provision: bool = False,
        verify: bool = False,
        check_public: bool = False,
        mock: bool = False,
    ):
        self.params = params
        self.settings = settings or get_settings()
        self.provision_enabled = provision
        self.verify_enabled = verify

        ssh = SSHClient(params, settings=self.settings, mock=mock)
        self.repository = RepositorySync(params, workdir=workdir, mock=mock)
        self.probe = ConnectivityProbe(ssh)
        self.provisioner = RemoteProvisioner(ssh)
        self.generator = ArtifactGenerator(staging_dir=self.settings.remote_staging_dir)
        self.deployer = RemoteDeployer(ssh, staging_dir=self.settings.remote_staging_dir)
        self.verifier = DeploymentVerifier(ssh, check_public=check_public)

        self.handle: Optional[RepositoryHandle] = None
        self.artifacts: Optional[DeployArtifacts] = None

    def steps(self) -> List[Tuple[str, bool, StepAction]]:
        """(name, enabled, action) for every step, in execution order."""
        return [
            ('repository', True, self._sync_repository),
            ('connectivity', True, self._check_connectivity),
            ('provision', self.provision_enabled, self._provision),
            ('artifacts', True, self._generate_artifacts),
            ('deploy', True, self._deploy),
            ('verify', self.verify_enabled, self._verify),
        ]

    def _sync_repository(self) -> Tuple[str, List[str]]:
        self.handle = self.repository.sync()
        commit = self.repository.get_current_commit(self.handle.local_path)
        message = f"{self.handle.derived_name} at {self.params.branch}"
        if commit:
            message += f" ({commit[:12]})"
        return message, []

    def _check_connectivity(self) -> Tuple[str, List[str]]:
        self.probe.check()
        return f"{self.params.ssh_target} reachable", []

    def _provision(self) -> Tuple[str, List[str]]:
        return self.provisioner.provision(), []

    def _generate_artifacts(self) -> Tuple[str, List[str]]:
        try:
            self.artifacts = self.generator.generate(
                self.handle.derived_name, self.params.app_port, self.params.domain_name
            )
        except ValueError as e:
            raise ValidationError(str(e)) from None
        return f"{self.artifacts.script_filename}, {self.artifacts.nginx_filename}", []

    def _deploy(self) -> Tuple[str, List[str]]:
        return self.deployer.deploy(self.artifacts, self.handle), []

    def _verify(self) -> Tuple[str, List[str]]:
        warnings = self.verifier.verify(self.handle)
        if warnings:
            return "deployed with warnings", warnings
        return "container running, nginx active, health check passed", []

    def run(self) -> PipelineReport:
        """Execute the pipeline.

        Returns:
            PipelineReport; ``report.error`` holds the error that stopped the run
        """
        report = PipelineReport()
        logger.info("Starting deployment process...")

        for name, enabled, action in self.steps():
            if not enabled:
                logger.debug(f"Skipping optional step: {name}")
                report.results.append(StepResult(name, StepOutcome.SKIPPED, "disabled"))
                continue

            try:
                message, warnings = action()
            except GitdockError as e:
                logger.error(f"✗ {name}: {e}")
                report.results.append(StepResult(name, StepOutcome.FAILURE, str(e)))
                report.error = e
                return report

            report.results.append(StepResult(name, StepOutcome.SUCCESS, message, warnings))
            logger.info(f"✓ {name}: {message}")

        report.access_url = self.params.access_url
        logger.info("✓ Deployment completed successfully!")
        return report
