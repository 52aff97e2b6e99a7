"""
Verify phase of a migration count check.

A baseline snapshot (see :mod:`migverify.snapshot`) is reconciled against the
live data store: every baseline entity is classified as matched, mismatched,
missing, or part of a missing namespace, and the run passes only when every
entity matched.
"""

from .cli import run_cli
from .runner import reconcile

__all__ = ["reconcile", "run_cli"]
