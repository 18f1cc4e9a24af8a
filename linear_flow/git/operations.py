"""Git working-copy operations over the ``git`` CLI.

Every method is a thin async wrapper around one or two git commands run
through :func:`linear_flow.utils.async_subprocess.run_command`. Failures
surface as :class:`linear_flow.exceptions.GitOperationError` carrying the
command and its stderr; callers never see ``CalledProcessError``.

Example:
    >>> git_ops = GitOperations("/path/to/repo")
    >>> await git_ops.current_branch()
    'main'
    >>> status = await git_ops.status()
    >>> status.is_clean
    True
"""

import subprocess
from pathlib import Path

import structlog

from linear_flow.exceptions import GitOperationError
from linear_flow.models.domain import BranchSync, GitStatus
from linear_flow.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)

CONFLICT_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


def parse_porcelain_status(branch: str, output: str) -> GitStatus:
    """Parse ``git status --porcelain=v1`` output into a GitStatus.

    Args:
        branch: Current branch name to record on the result
        output: Raw porcelain output

    Returns:
        GitStatus with staged, modified, created, deleted and conflicted paths
    """
    status = GitStatus(branch=branch)
    for line in output.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = path.strip('"')

        if code in CONFLICT_CODES:
            status.conflicted.append(path)
            continue
        if code == "??":
            status.created.append(path)
            continue

        index_code, worktree_code = code[0], code[1]
        if index_code in "MADRC":
            status.staged.append(path)
        if worktree_code == "M":
            status.modified.append(path)
        elif worktree_code == "D":
            status.deleted.append(path)

    return status


class GitOperations:
    """Async git commands against one working copy.

    Attributes:
        repo_path: Working directory the commands run in.
        remote: Remote used for push, pull, fetch and remote deletes.
    """

    def __init__(self, repo_path: str | Path = ".", remote: str = "origin") -> None:
        self.repo_path = Path(repo_path)
        self.remote = remote

    async def _git(self, *args: str, check: bool = True, strip: bool = True) -> str:
        """Run ``git <args>`` and return its stdout.

        Output is stripped unless ``strip`` is False; porcelain formats need
        their leading columns kept.

        Raises:
            GitOperationError: If check=True and the command fails
        """
        log.debug("git_command", args=list(args))
        try:
            stdout, _, _ = await run_command("git", *args, cwd=self.repo_path, check=check)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            log.debug("git_command_failed", args=list(args), returncode=e.returncode, stderr=stderr)
            raise GitOperationError(
                f"git {' '.join(args)} failed: {stderr or f'exit code {e.returncode}'}",
                command=list(args),
                stderr=stderr,
            ) from e
        return stdout.strip() if strip else stdout.rstrip("\n")

    async def _succeeds(self, *args: str) -> bool:
        _, _, code = await run_command("git", *args, cwd=self.repo_path, check=False)
        return code == 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def is_repository(self) -> bool:
        return await self._succeeds("rev-parse", "--is-inside-work-tree")

    async def current_branch(self) -> str:
        return await self._git("rev-parse", "--abbrev-ref", "HEAD")

    async def status(self) -> GitStatus:
        branch = await self.current_branch()
        output = await self._git("status", "--porcelain=v1", "--untracked-files=all", strip=False)
        return parse_porcelain_status(branch, output)

    async def has_uncommitted_changes(self) -> bool:
        return not (await self.status()).is_clean

    async def branch_exists(self, name: str) -> bool:
        return await self._succeeds("rev-parse", "--verify", "--quiet", f"refs/heads/{name}")

    async def remote_branch_exists(self, name: str) -> bool:
        """Ask the remote directly whether ``name`` exists there."""
        output = await self._git("ls-remote", "--heads", self.remote, name)
        return bool(output)

    async def head_sha(self, ref: str = "HEAD") -> str:
        return await self._git("rev-parse", ref)

    async def ahead_behind(self, local: str, upstream: str) -> BranchSync:
        """Count commits ``local`` has that ``upstream`` lacks, and vice versa."""
        output = await self._git("rev-list", "--left-right", "--count", f"{local}...{upstream}")
        ahead, behind = (int(part) for part in output.split())
        return BranchSync(ahead=ahead, behind=behind)

    async def commits_since(self, base: str) -> list[str]:
        """Subject lines of commits on HEAD that are not on ``base``, newest first."""
        output = await self._git("log", "--format=%s", f"{base}..HEAD")
        return [line for line in output.splitlines() if line]

    async def diff_stat(self, cached: bool = False) -> str:
        args = ["diff", "--stat"]
        if cached:
            args.append("--cached")
        return await self._git(*args)

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    async def create_branch(self, name: str, start_point: str | None = None) -> None:
        """Create ``name`` and check it out."""
        args = ["checkout", "-b", name]
        if start_point:
            args.append(start_point)
        await self._git(*args)
        log.info("branch_created", branch=name, start_point=start_point)

    async def checkout(self, name: str, force: bool = False) -> None:
        args = ["checkout", name]
        if force:
            args.insert(1, "--force")
        await self._git(*args)

    async def delete_branch(self, name: str, force: bool = False) -> None:
        await self._git("branch", "-D" if force else "-d", name)
        log.info("branch_deleted", branch=name)

    async def delete_remote_branch(self, name: str) -> None:
        await self._git("push", self.remote, "--delete", name)
        log.info("remote_branch_deleted", branch=name, remote=self.remote)

    # -------------------------------------------------------------------------
    # Commits and remotes
    # -------------------------------------------------------------------------

    async def stage_all(self) -> None:
        await self._git("add", "--all")

    async def commit(self, message: str, no_verify: bool = False) -> str:
        """Commit the index and return the new commit sha."""
        args = ["commit", "-m", message]
        if no_verify:
            args.append("--no-verify")
        await self._git(*args)
        return await self.head_sha()

    async def push(self, branch: str, set_upstream: bool = True) -> None:
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        await self._git(*args, self.remote, branch)
        log.info("branch_pushed", branch=branch, remote=self.remote)

    async def pull(self, branch: str) -> None:
        await self._git("pull", "--ff-only", self.remote, branch)

    async def fetch(self, branch: str | None = None) -> None:
        args = ["fetch", self.remote]
        if branch:
            args.append(branch)
        await self._git(*args)

    async def prune_remote(self) -> None:
        await self._git("remote", "prune", self.remote)

    async def discard_changes(self) -> None:
        """Drop all uncommitted changes, including untracked files."""
        await self._git("reset", "--hard", "HEAD")
        await self._git("clean", "-fd")
        log.warning("working_tree_discarded", repo=str(self.repo_path))

    # -------------------------------------------------------------------------
    # Stash
    # -------------------------------------------------------------------------

    async def stash_list(self) -> list[tuple[str, str]]:
        """Return ``(ref, message)`` pairs, newest first."""
        output = await self._git("stash", "list", "--format=%gd%x00%gs")
        entries = []
        for line in output.splitlines():
            ref, _, message = line.partition("\x00")
            entries.append((ref, message))
        return entries

    async def stash_push(self, message: str) -> str | None:
        """Stash tracked and untracked changes under ``message``.

        Returns:
            The stash ref (``stash@{n}``), or None if there was nothing to stash
        """
        if not await self.has_uncommitted_changes():
            return None
        await self._git("stash", "push", "--include-untracked", "-m", message)
        for ref, stash_message in await self.stash_list():
            if stash_message.endswith(message):
                log.info("changes_stashed", ref=ref, message=message)
                return ref
        raise GitOperationError(f"Stash created but not found by label: {message}")

    async def stash_pop(self, ref: str | None = None) -> None:
        args = ["stash", "pop"]
        if ref:
            args.append(ref)
        await self._git(*args)
        log.info("stash_popped", ref=ref)
