"""Git integration: working-copy commands and remote discovery."""

from linear_flow.git.discovery import GitDiscovery
from linear_flow.git.models import GitRemote, RepositoryInfo
from linear_flow.git.operations import GitOperations
from linear_flow.git.parser import GitUrlParser

__all__ = [
    "GitDiscovery",
    "GitOperations",
    "GitRemote",
    "GitUrlParser",
    "RepositoryInfo",
]
