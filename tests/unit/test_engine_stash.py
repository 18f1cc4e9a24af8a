"""Tests for linear_flow.engine.stash."""

from datetime import UTC, datetime

import pytest

from linear_flow.engine.stash import LABEL_PREFIX, StashManager, stash_label


def test_stash_label():
    label = stash_label("swap", "feature/x", now=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC))

    assert label == "linear-flow auto-stash (swap) [feature/x] - 2026-01-02T03:04:05+00:00"
    assert label.startswith(LABEL_PREFIX)


class TestStashManager:
    """Tests for StashManager against the fake repository."""

    @pytest.mark.asyncio
    async def test_clean_tree_stashes_nothing(self, git):
        assert await StashManager(git).stash("swap", "main") is None

    @pytest.mark.asyncio
    async def test_stash_and_find(self, git, repo):
        repo.changes = ["a.py"]
        manager = StashManager(git)

        ref, label = await manager.stash("swap", "main")
        repo.stashes.insert(0, ("main", "manual stash", ["b.py"]))

        assert ref == "stash@{0}"
        assert await manager.find(label) == "stash@{1}"

    @pytest.mark.asyncio
    async def test_restore(self, git, repo):
        repo.changes = ["a.py"]
        manager = StashManager(git)
        _, label = await manager.stash("launch", "main")

        facts = await manager.restore(label)

        assert facts == {"stash_ref": "stash@{0}", "stash_restored": True, "stash_conflict": False}
        assert repo.changes == ["a.py"]

    @pytest.mark.asyncio
    async def test_restore_conflict_keeps_stash(self, git, repo):
        repo.changes = ["a.py"]
        repo.stash_conflict = True
        manager = StashManager(git)
        _, label = await manager.stash("launch", "main")

        facts = await manager.restore(label)

        assert facts["stash_conflict"] is True
        assert facts["stash_restored"] is False
        assert await manager.find(label) == "stash@{0}"

    @pytest.mark.asyncio
    async def test_restore_missing_stash(self, git):
        facts = await StashManager(git).restore("linear-flow auto-stash (swap) [gone] - x")

        assert facts["stash_restored"] is False
        assert facts["stash_conflict"] is False
        git.stash_pop.assert_not_awaited()
