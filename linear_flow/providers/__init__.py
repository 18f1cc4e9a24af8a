"""Code host providers (pull requests and CI status)."""

from linear_flow.providers.base import CodeHost
from linear_flow.providers.factory import create_code_host
from linear_flow.providers.github_rest import GitHubRestProvider

__all__ = ["CodeHost", "GitHubRestProvider", "create_code_host"]
