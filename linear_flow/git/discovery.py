"""Git repository discovery.

Finds the repository root and the owner/name of the code-host repository
from the configured remotes, so the pull-request client can be built
without the user repeating what ``git remote -v`` already knows.

Example:
    >>> from linear_flow.git.discovery import GitDiscovery
    >>> info = GitDiscovery().parse_repository()
    >>> print(f"{info.full_name} @ {info.api_base_url}")
    owner/repo @ https://api.github.com

Dependencies:
    Requires GitPython for repository access.
"""

from pathlib import Path
from typing import Literal

import git
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from linear_flow.exceptions import GitOperationError, NoRemotesError, NotGitRepositoryError
from linear_flow.git.models import GitRemote, RepositoryInfo
from linear_flow.git.parser import GitUrlParser


class GitDiscovery:
    """Discovers repository configuration from a local checkout.

    The git.Repo object is created lazily on first use, so constructing a
    GitDiscovery for a path that is not a repository does not fail until
    repository data is requested.

    Attributes:
        repo_path: Resolved absolute path given at construction.
        PREFERRED_REMOTES: Remote names tried in order when none is named.
    """

    PREFERRED_REMOTES = ["origin", "upstream"]

    def __init__(self, repo_path: str | Path = ".") -> None:
        self.repo_path = Path(repo_path).resolve()
        self._repo: git.Repo | None = None

    def _get_repo(self) -> git.Repo:
        """Get the Git repository object, initializing if needed.

        Raises:
            NotGitRepositoryError: If the path is not within a Git repository.
        """
        if self._repo is None:
            try:
                self._repo = git.Repo(self.repo_path, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise NotGitRepositoryError(str(self.repo_path)) from e

        return self._repo

    def is_repository(self) -> bool:
        try:
            self._get_repo()
        except NotGitRepositoryError:
            return False
        return True

    @property
    def root(self) -> Path:
        """Top-level directory of the working tree."""
        working_dir = self._get_repo().working_tree_dir
        if working_dir is None:
            raise GitOperationError(f"Repository at {self.repo_path} has no working tree (bare repository)")
        return Path(working_dir)

    def list_remotes(self) -> list[GitRemote]:
        """List all configured Git remotes."""
        remotes = []
        for remote in self._get_repo().remotes:
            url = remote.url

            url_type: Literal["ssh", "https", "unknown"] = "unknown"
            if url.startswith(("git@", "ssh://")):
                url_type = "ssh"
            elif url.startswith(("http://", "https://")):
                url_type = "https"

            remotes.append(GitRemote(name=remote.name, url=url, url_type=url_type))

        return remotes

    def get_remote(self, remote_name: str | None = None) -> GitRemote:
        """Get a remote by name, or the preferred one.

        Selection when ``remote_name`` is None: the only remote if there is
        exactly one, otherwise the first of PREFERRED_REMOTES that exists,
        otherwise the first configured remote.

        Raises:
            NoRemotesError: If the repository has no remotes.
            GitOperationError: If the named remote does not exist.
        """
        remotes = self.list_remotes()
        if not remotes:
            raise NoRemotesError()

        if remote_name is not None:
            for remote in remotes:
                if remote.name == remote_name:
                    return remote
            raise GitOperationError(
                f"Remote '{remote_name}' not found",
                hint=f"Available remotes: {', '.join(r.name for r in remotes)}",
            )

        if len(remotes) == 1:
            return remotes[0]

        by_name = {remote.name: remote for remote in remotes}
        for preferred in self.PREFERRED_REMOTES:
            if preferred in by_name:
                return by_name[preferred]
        return remotes[0]

    def parse_repository(self, remote_name: str | None = None) -> RepositoryInfo:
        """Parse owner and repository name from a remote URL.

        Raises:
            NotGitRepositoryError: If not within a Git repository.
            NoRemotesError: If no remotes are configured.
            InvalidGitUrlError: If the remote URL cannot be parsed.
        """
        remote = self.get_remote(remote_name)
        parser = GitUrlParser(remote.url)
        return RepositoryInfo(
            owner=parser.owner,
            repo=parser.repo,
            host=parser.host,
            remote_name=remote.name,
            remote_url=remote.url,
        )
