"""Template rendering for pull request bodies."""

from linear_flow.rendering.engine import PullRequestRenderer

__all__ = ["PullRequestRenderer"]
