"""
Configuration system using Pydantic for type-safe settings management.

Settings are read from ``.linear-flow/config.yaml`` (written by
``linear-flow init``) and can be overridden with ``LINEAR_FLOW_``-prefixed
environment variables, e.g. ``LINEAR_FLOW_WORKFLOW__AUTO_MODE=true``.

The loaded object is handed explicitly to the WorkflowController; nothing
in the engine reads configuration from module-level state.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from linear_flow.exceptions import ConfigurationError

DEFAULT_CONFIG_DIR = ".linear-flow"
DEFAULT_CONFIG_PATH = f"{DEFAULT_CONFIG_DIR}/config.yaml"


class WorkflowConfig(BaseModel):
    """Workflow behavior configuration."""

    initialized: bool = Field(default=False, description="Set by `linear-flow init`")
    auto_mode: bool = Field(default=False, description="Resolve recoverable checks with the recommended option")
    verbose: bool = Field(default=False, description="Include every check result in output, not only failures")
    base_branch: str = Field(default="main", description="Branch features start from and merge into")
    remote: str = Field(default="origin", description="Remote to push to and fetch from")
    state_directory: str = Field(default=f"{DEFAULT_CONFIG_DIR}/sessions", description="Directory for session files")
    session_ttl_days: int = Field(default=30, ge=1, description="Days until a session counts as expired")


class CIConfig(BaseModel):
    """CI wait configuration used by `ship`."""

    timeout_seconds: float = Field(default=1200.0, gt=0, description="Give up waiting for CI after this long")
    poll_interval_seconds: float = Field(default=30.0, gt=0, description="Seconds between CI status polls")
    required: bool = Field(
        default=True,
        description="If false, a pull request with no reported checks counts as passing",
    )


class CodeHostConfig(BaseModel):
    """Code host (pull request API) configuration.

    Supports environment references in YAML:
    - token: "${GITHUB_TOKEN}"
    """

    provider_type: Literal["github"] = Field(default="github", description="Type of code host")
    base_url: str = Field(default="https://api.github.com", description="API base URL")
    token: SecretStr | None = Field(default=None, description="API token")
    owner: str | None = Field(default=None, description="Repository owner; discovered from the remote when unset")
    repo: str | None = Field(default=None, description="Repository name; discovered from the remote when unset")


class PullRequestConfig(BaseModel):
    """Pull request creation and merge preferences."""

    merge_method: Literal["squash"] = Field(default="squash", description="Merge strategy")
    template_path: str | None = Field(default=None, description="Jinja2 template for PR bodies")
    delete_remote_branch: bool = Field(default=True, description="Delete the remote branch after merge")


class LinearFlowSettings(BaseSettings):
    """Main linear-flow settings.

    Combines all configuration sections and provides loading from YAML
    files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="LINEAR_FLOW_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    ci: CIConfig = Field(default_factory=CIConfig)
    code_host: CodeHostConfig = Field(default_factory=CodeHostConfig)
    pull_request: PullRequestConfig = Field(default_factory=PullRequestConfig)

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.workflow.state_directory)

    @property
    def config_dir(self) -> Path:
        return Path(DEFAULT_CONFIG_DIR)

    @property
    def initialized(self) -> bool:
        return self.workflow.initialized

    @classmethod
    def load(cls, config_path: str | Path = DEFAULT_CONFIG_PATH) -> LinearFlowSettings:
        """Load settings, falling back to defaults when the file is absent.

        A missing file is not an error: the defaults report
        ``initialized=False`` and the pipeline refuses to run until
        ``linear-flow init`` has written the file.

        Raises:
            ConfigurationError: If the file exists but is invalid
        """
        if not Path(config_path).exists():
            return cls()
        return cls.from_yaml(str(config_path))

    @classmethod
    def from_yaml(cls, config_path: str) -> LinearFlowSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            LinearFlowSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    def to_yaml_dict(self) -> dict[str, Any]:
        """Serializable form for writing back to config.yaml.

        The token is omitted so secrets never land in the file; reference
        it with ``${GITHUB_TOKEN}`` instead.
        """
        data = self.model_dump(mode="json", exclude={"code_host": {"token"}})
        return data

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines (starting with #) are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
