"""Data models for gitdock."""
from gitdock.models.deployment import (
    DeployArtifacts,
    ParameterSet,
    PipelineReport,
    RepositoryHandle,
    StepOutcome,
    StepResult,
    derive_name,
)

__all__ = [
    'DeployArtifacts',
    'ParameterSet',
    'PipelineReport',
    'RepositoryHandle',
    'StepOutcome',
    'StepResult',
    'derive_name',
]
