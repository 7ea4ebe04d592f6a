"""Deployment parameter loading."""
from gitdock.config.loader import ConfigLoader, build_parameters, find_config, resolve_parameters

__all__ = ['ConfigLoader', 'build_parameters', 'find_config', 'resolve_parameters']
