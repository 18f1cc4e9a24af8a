"""Auto-stash handling for operations that switch branches.

Stashes taken on the user's behalf carry a recognizable label so they can be
found again later, even after other stashes have shifted their
``stash@{n}`` position.
"""

from datetime import UTC, datetime

import structlog

from linear_flow.exceptions import GitOperationError
from linear_flow.git.operations import GitOperations

log = structlog.get_logger(__name__)

LABEL_PREFIX = "linear-flow auto-stash"


def stash_label(reason: str, branch: str, now: datetime | None = None) -> str:
    """Build the label for an automatic stash.

    Example:
        >>> stash_label("launch", "main")
        'linear-flow auto-stash (launch) [main] - 2026-10-19T09:30:00+00:00'
    """
    timestamp = (now or datetime.now(UTC)).isoformat(timespec="seconds")
    return f"{LABEL_PREFIX} ({reason}) [{branch}] - {timestamp}"


class StashManager:
    """Takes, finds and restores labelled stashes."""

    def __init__(self, git: GitOperations) -> None:
        self.git = git

    async def stash(self, reason: str, branch: str) -> tuple[str, str] | None:
        """Stash all uncommitted changes on ``branch``.

        Returns:
            ``(ref, label)`` of the new stash, or None if the tree was clean
        """
        label = stash_label(reason, branch)
        ref = await self.git.stash_push(label)
        if ref is None:
            return None
        log.info("auto_stash_created", ref=ref, branch=branch, reason=reason)
        return ref, label

    async def find(self, label: str) -> str | None:
        """Current ref of the stash with ``label``."""
        for ref, message in await self.git.stash_list():
            if message.endswith(label):
                return ref
        return None

    async def pop(self, label: str) -> bool:
        """Pop the stash with ``label``.

        Returns:
            True if it was applied and dropped. False if it is gone or did
            not apply cleanly; in the latter case git keeps the stash.
        """
        ref = await self.find(label)
        if ref is None:
            log.warning("auto_stash_missing", label=label)
            return False
        try:
            await self.git.stash_pop(ref)
        except GitOperationError as e:
            log.warning("auto_stash_conflict", ref=ref, error=e.message)
            return False
        return True

    async def restore(self, label: str) -> dict[str, object]:
        """Pop ``label`` and describe the result as verification facts."""
        ref = await self.find(label)
        restored = await self.pop(label)
        conflict = not restored and await self.find(label) is not None
        return {"stash_ref": ref or label, "stash_restored": restored, "stash_conflict": conflict}
