"""Async subprocess utilities.

Provides non-blocking subprocess execution for the git wrapper, so that
every call to the ``git`` CLI is an explicit suspension point of the
pipeline instead of a blocking call that stalls the event loop.

Example:
    >>> from linear_flow.utils.async_subprocess import run_command
    >>> stdout, stderr, code = await run_command("git", "status", cwd="/repo")
    >>> if code == 0:
    ...     print(stdout)
"""

import asyncio
import subprocess
from pathlib import Path


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    Args:
        *args: Command and arguments as separate strings, e.g.
            ``"git", "commit", "-m", "message"``.
        cwd: Working directory for the command. None uses the current
            working directory of the parent process.
        check: If True (default), raise CalledProcessError when the command
            returns a non-zero exit code.
        timeout: Maximum seconds to wait. The process is killed and
            TimeoutError raised when exceeded. None waits indefinitely.
        env: Full environment for the child process. None inherits ours.

    Returns:
        Tuple of (stdout, stderr, return_code) with output decoded as UTF-8
        (invalid bytes replaced).

    Raises:
        subprocess.CalledProcessError: If check=True and the command exits
            non-zero. The exception carries stdout and stderr.
        TimeoutError: If timeout is exceeded.
        FileNotFoundError: If the executable is not found.

    Example:
        >>> # Don't raise on non-zero exit
        >>> stdout, _, code = await run_command(
        ...     "git", "rev-parse", "--verify", "feature/x",
        ...     check=False,
        ... )
        >>> branch_exists = code == 0
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout,
        )
    except (TimeoutError, asyncio.CancelledError):
        process.kill()
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            args,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0
