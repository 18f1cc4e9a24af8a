"""Git URL parsing utilities.

Extracts host, owner and repository name from remote URLs so the code-host
client can be pointed at the right repository without extra configuration.

Supported URL formats:
    SSH:
        - git@github.com:owner/repo.git
        - git@github.com:owner/repo
        - ssh://git@github.com/owner/repo.git

    HTTPS:
        - https://github.com/owner/repo.git
        - https://github.com:8443/owner/repo
        - http://git.local/owner/repo.git

Example:
    >>> parser = GitUrlParser("git@github.com:owner/repo.git")
    >>> parser.owner, parser.repo, parser.host
    ('owner', 'repo', 'github.com')
"""

import re
from typing import Literal

from linear_flow.exceptions import InvalidGitUrlError


class GitUrlParser:
    """Parser for Git URLs in SSH and HTTPS formats.

    Parsing happens in the constructor; all properties are valid once it
    returns.

    Attributes:
        url: Original URL that was parsed.
        url_type: 'ssh' or 'https'.
        host: Hostname of the Git server.
        port: Port for HTTPS URLs with a non-standard port, else None.
        owner: Repository owner (everything before the last path segment).
        repo: Repository name without the .git suffix.
    """

    # git@host:path, user@host:path
    SSH_PATTERN = re.compile(r"^(?P<user>\w+)@(?P<host>[a-zA-Z0-9._-]+):(?P<path>.+?)(?:\.git)?/?$")

    # ssh://user@host[:port]/path
    SSH_URL_PATTERN = re.compile(
        r"^ssh://(?:(?P<user>\w+)@)?(?P<host>[a-zA-Z0-9._-]+)(?::(?P<port>\d+))?/(?P<path>.+?)(?:\.git)?/?$"
    )

    HTTPS_PATTERN = re.compile(r"^https?://(?:[^@/]+@)?(?P<host>[a-zA-Z0-9._-]+)(?::(?P<port>\d+))?/(?P<path>.+?)(?:\.git)?/?$")

    def __init__(self, url: str) -> None:
        """Parse ``url``.

        Raises:
            InvalidGitUrlError: If the URL is empty, in an unknown format, or
                lacks an owner/repo path.
        """
        self.url = url.strip()
        if not self.url:
            raise InvalidGitUrlError(url, "URL is empty")

        self.port: int | None = None
        self.url_type: Literal["ssh", "https"]

        match = self.SSH_PATTERN.match(self.url)
        if match:
            self.url_type = "ssh"
        else:
            match = self.SSH_URL_PATTERN.match(self.url)
            if match:
                self.url_type = "ssh"
            else:
                match = self.HTTPS_PATTERN.match(self.url)
                if not match:
                    raise InvalidGitUrlError(url, "unrecognized format")
                self.url_type = "https"
                if match.group("port"):
                    self.port = int(match.group("port"))

        self.host = match.group("host")
        segments = [segment for segment in match.group("path").split("/") if segment]
        if len(segments) < 2:
            raise InvalidGitUrlError(url, "expected owner/repo path")

        self.owner = "/".join(segments[:-1])
        self.repo = segments[-1]

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def web_url(self) -> str:
        """HTTPS web URL of the host, e.g. ``https://github.com``."""
        if self.port and self.url_type == "https":
            return f"https://{self.host}:{self.port}"
        return f"https://{self.host}"

    @property
    def https_url(self) -> str:
        return f"{self.web_url}/{self.owner}/{self.repo}.git"
