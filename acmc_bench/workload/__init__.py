"""
Weighted mixed-workload driver for the access-control contract.

This package picks contract operations from a weighted distribution, builds
their arguments from precomputed credentials, spreads requests across invoker
identities, dispatches them through a host-supplied submission capability and
records one latency line per transaction.
"""

from .config import RoundSettings, WorkloadConfigError
from .driver import MixedWorkload, WorkerStatistics, drive_workers, run_workers, setup_workers

__all__ = [
    "MixedWorkload",
    "RoundSettings",
    "WorkerStatistics",
    "WorkloadConfigError",
    "drive_workers",
    "run_workers",
    "setup_workers",
]
