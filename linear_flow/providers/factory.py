"""Factory for building the configured code host client."""

import os
from pathlib import Path

import structlog

from linear_flow.config.settings import LinearFlowSettings
from linear_flow.exceptions import ConfigurationError
from linear_flow.git.discovery import GitDiscovery
from linear_flow.providers.base import CodeHost
from linear_flow.providers.github_rest import GitHubRestProvider

log = structlog.get_logger(__name__)


def create_code_host(settings: LinearFlowSettings, repo_path: str | Path = ".") -> CodeHost:
    """Create a code host client from settings.

    Owner and repository default to what the configured remote's URL says.
    The token comes from ``code_host.token`` or, failing that, the
    ``GITHUB_TOKEN`` environment variable.

    Args:
        settings: Loaded settings
        repo_path: Checkout used to discover owner/repo

    Returns:
        Unconnected CodeHost; call ``connect()`` before use

    Raises:
        ConfigurationError: If no token is available or the provider type
            is unsupported
    """
    config = settings.code_host
    if config.provider_type != "github":
        raise ConfigurationError(f"Unsupported code host: {config.provider_type}")

    token = config.token.get_secret_value() if config.token else os.getenv("GITHUB_TOKEN")
    if not token:
        raise ConfigurationError(
            "No code host token configured. Set code_host.token (e.g. token: ${GITHUB_TOKEN}) "
            "or export GITHUB_TOKEN."
        )

    owner, repo, base_url = config.owner, config.repo, config.base_url
    if not owner or not repo:
        info = GitDiscovery(repo_path).parse_repository(settings.workflow.remote)
        owner = owner or info.owner
        repo = repo or info.repo
        if "base_url" not in config.model_fields_set:
            base_url = info.api_base_url
        log.debug("code_host_discovered", owner=owner, repo=repo, base_url=base_url)

    return GitHubRestProvider(token=token, owner=owner, repo=repo, base_url=base_url)
