"""
Shared building blocks for migration count verification.

The ``recon`` package drives the verify phase on top of these pieces; the
collect phase lives here in :mod:`migverify.snapshot.collector`.
"""

__version__ = "0.1.0"
