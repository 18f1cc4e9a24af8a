"""Workflow operations, each a set of hooks for the pipeline.

``OPERATIONS`` maps every operation name the controller accepts to its
:class:`~linear_flow.engine.pipeline.Operation`.
"""

from linear_flow.engine.pipeline import Operation
from linear_flow.operations import abort, cleanup, commit, hotfix, init, launch, query, ship, swap

OPERATIONS: dict[str, Operation] = {
    "init": init.OPERATION,
    "launch": launch.OPERATION,
    "commit": commit.OPERATION,
    "ship": ship.OPERATION,
    "swap": swap.OPERATION,
    "abort": abort.OPERATION,
    "hotfix": hotfix.OPERATION,
    "sessions": query.SESSIONS,
    "status": query.STATUS,
    "cleanup": cleanup.OPERATION,
}

__all__ = ["OPERATIONS"]
