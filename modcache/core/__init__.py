"""
Core reconciliation engine.

`read_manifest`/`parse_manifest` normalize the manifest, `diff` turns it and
the cached state into a Changeset, and the `ReconciliationExecutor` applies it.
The `Reconciler` runs the whole sequence and persists the result.
"""

from .diff import diff
from .executor import ExecutionResult, ReconciliationExecutor
from .manifest import parse_manifest, read_manifest
from .reconciler import Reconciler, RunReport

__all__ = [
    "ExecutionResult",
    "ReconciliationExecutor",
    "Reconciler",
    "RunReport",
    "diff",
    "parse_manifest",
    "read_manifest",
]
