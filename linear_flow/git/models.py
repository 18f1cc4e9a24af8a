"""Git repository data models.

Example:
    >>> info = RepositoryInfo(
    ...     owner="myorg",
    ...     repo="myrepo",
    ...     host="github.com",
    ...     remote_name="origin",
    ...     remote_url="git@github.com:myorg/myrepo.git",
    ... )
    >>> info.full_name
    'myorg/myrepo'
"""

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, field_validator


@dataclass(frozen=True)
class GitRemote:
    """Represents a Git remote configuration.

    Attributes:
        name: Remote name (e.g., 'origin', 'upstream')
        url: Raw URL from git config
        url_type: Whether SSH or HTTPS format
    """

    name: str
    url: str
    url_type: Literal["ssh", "https", "unknown"]


class RepositoryInfo(BaseModel):
    """Repository identity parsed from a remote URL.

    Attributes:
        owner: Repository owner/organization
        repo: Repository name (without .git suffix)
        host: Hostname of the git server
        remote_name: Which remote was used
        remote_url: The raw remote URL
    """

    owner: str
    repo: str
    host: str
    remote_name: str
    remote_url: str

    @field_validator("owner", "repo")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Ensure owner and repo are not empty."""
        if not v or not v.strip():
            raise ValueError("Owner and repo must not be empty")
        return v.strip()

    @field_validator("repo")
    @classmethod
    def validate_no_git_suffix(cls, v: str) -> str:
        return v.removesuffix(".git")

    @property
    def full_name(self) -> str:
        """Return owner/repo format."""
        return f"{self.owner}/{self.repo}"

    @property
    def api_base_url(self) -> str:
        """REST API root for the host (GitHub.com or GitHub Enterprise)."""
        if self.host == "github.com":
            return "https://api.github.com"
        return f"https://{self.host}/api/v3"
