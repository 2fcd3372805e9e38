"""Change detection scheduling for fork-sync.

This module provides:
- ChangeDetectionCycle: polls links due for a check on a fixed interval
- LinkSyncEvaluator: decides per link whether a sync job is needed
"""

from fork_sync.scheduler.cycle import ChangeDetectionCycle, CycleHandle
from fork_sync.scheduler.evaluator import LinkSyncEvaluator
from fork_sync.scheduler.protocols import CandidateRepository, UpstreamResolver

__all__ = [
    "CandidateRepository",
    "ChangeDetectionCycle",
    "CycleHandle",
    "LinkSyncEvaluator",
    "UpstreamResolver",
]
