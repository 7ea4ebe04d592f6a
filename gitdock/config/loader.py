"""Resolve deployment parameters from CLI options, a YAML file and prompts."""
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
import yaml
from pydantic import ValidationError as PydanticValidationError

from gitdock.core.errors import ConfigError, ValidationError
from gitdock.core.logger import get_logger
from gitdock.models.deployment import ParameterSet

logger = get_logger(__name__)

DEFAULT_CONFIG = "gitdock.yml"

# Keys accepted in gitdock.yml (hyphenated spellings are normalized)
FILE_FIELDS = {
    'repository_url',
    'branch',
    'ssh_user',
    'server_host',
    'ssh_key_path',
    'app_port',
    'domain_name',
}
SECRET_FIELDS = {'auth_token', 'token'}

# (field, prompt text, hide input, default)
PROMPTS = [
    ('repository_url', "Enter Git repository URL", False, None),
    ('auth_token', "Enter Personal Access Token", True, None),
    ('ssh_user', "Enter SSH username", False, None),
    ('server_host', "Enter Server IP address", False, None),
    ('ssh_key_path', "Enter SSH key path", False, None),
    ('app_port', "Enter application port", False, None),
    ('domain_name', "Enter domain name", False, None),
    ('branch', "Enter Git branch", False, "main"),
]

MAX_PROMPT_ROUNDS = 3


def find_config(config_path: Optional[str] = None) -> Optional[Path]:
    """Locate the deployment config file, if any.

    Order: explicit path, $GITDOCK_CONFIG, ./gitdock.yml.
    """
    if config_path:
        return Path(config_path)

    if env_config := os.environ.get("GITDOCK_CONFIG"):
        return Path(env_config)

    default = Path.cwd() / DEFAULT_CONFIG
    if default.exists():
        return default

    return None


class ConfigLoader:
    """Loads deployment parameters from a YAML file."""

    def __init__(self, config_path: str = DEFAULT_CONFIG):
        self.config_path = Path(config_path)

    def load(self) -> Dict[str, Any]:
        """Load and normalize the config file.

        Returns:
            Mapping of ParameterSet field names to raw values

        Raises:
            ConfigError: File missing, not YAML, not a mapping, or has bad keys
        """
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read config file: {self.config_path}", str(e)) from None
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {self.config_path}", str(e)) from None

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {self.config_path}")

        values = {}
        for key, value in raw.items():
            field = str(key).replace('-', '_')
            if field in SECRET_FIELDS:
                raise ConfigError(
                    "Access tokens must not be stored in the config file. "
                    "Use --token or the GITDOCK_TOKEN environment variable."
                )
            if field not in FILE_FIELDS:
                raise ConfigError(
                    f"Unknown key '{key}' in {self.config_path}",
                    f"expected one of: {', '.join(sorted(FILE_FIELDS))}",
                )
            if value is not None:
                values[field] = value

        logger.debug(f"Loaded {len(values)} parameter(s) from {self.config_path}")
        return values


def _format_errors(exc: PydanticValidationError) -> Dict[str, str]:
    """Map field name to a readable message for each validation error."""
    errors = {}
    for error in exc.errors():
        loc = error.get('loc') or ('repository_url',)
        field = str(loc[0])
        message = error.get('msg', 'invalid value')
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        errors.setdefault(field, message)
    return errors


def build_parameters(values: Dict[str, Any]) -> ParameterSet:
    """Construct a ParameterSet, raising gitdock's ValidationError on bad input."""
    try:
        return ParameterSet(**values)
    except PydanticValidationError as e:
        errors = _format_errors(e)
        lines = [f"{field}: {message}" for field, message in errors.items()]
        raise ValidationError(
            "Invalid deployment parameters: " + "; ".join(lines), fields=errors
        ) from None


def _prompt_missing(
    values: Dict[str, Any],
    fields: List[str],
    prompt: Callable[..., Any],
) -> None:
    for field, text, hide_input, default in PROMPTS:
        if field not in fields:
            continue
        if default is not None:
            answer = prompt(text, default=default, hide_input=hide_input)
        else:
            answer = prompt(text, hide_input=hide_input)
        values[field] = answer


def resolve_parameters(
    cli_values: Dict[str, Any],
    config_path: Optional[str] = None,
    interactive: bool = True,
    prompt: Optional[Callable[..., Any]] = None,
    defaults: Optional[Dict[str, Any]] = None,
) -> ParameterSet:
    """Merge parameter sources and validate them.

    Precedence: CLI values, then the config file, then defaults. Anything
    still missing is prompted for.
    In interactive mode invalid fields are asked for again, a few times,
    before giving up.

    Args:
        cli_values: Values given on the command line (None means unset)
        config_path: Explicit config file path
        interactive: Prompt for missing or invalid values
        prompt: Prompt function (defaults to typer.prompt)
        defaults: Lowest-precedence values; fields given here are never prompted for

    Returns:
        Validated ParameterSet

    Raises:
        ConfigError: Config file problem
        ValidationError: Values missing or invalid
    """
    values: Dict[str, Any] = dict(defaults or {})

    path = find_config(config_path)
    if path is not None:
        values.update(ConfigLoader(str(path)).load())

    values.update({k: v for k, v in cli_values.items() if v is not None and v != ""})

    if not interactive:
        return build_parameters(values)

    if prompt is None:
        prompt = typer.prompt

    missing = [field for field, *_ in PROMPTS if field not in values]
    _prompt_missing(values, missing, prompt)

    for round_number in range(1, MAX_PROMPT_ROUNDS + 1):
        try:
            return build_parameters(values)
        except ValidationError as e:
            if round_number == MAX_PROMPT_ROUNDS:
                raise
            for field, message in e.fields.items():
                logger.error(f"{field}: {message}")
            _prompt_missing(values, list(e.fields), prompt)

    raise ValidationError("Invalid deployment parameters")
