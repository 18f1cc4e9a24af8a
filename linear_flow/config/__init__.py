"""Configuration loading for linear-flow."""

from linear_flow.config.settings import (
    DEFAULT_CONFIG_PATH,
    CIConfig,
    CodeHostConfig,
    LinearFlowSettings,
    PullRequestConfig,
    WorkflowConfig,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "CIConfig",
    "CodeHostConfig",
    "LinearFlowSettings",
    "PullRequestConfig",
    "WorkflowConfig",
]
