"""
Benchmark harness comparing JIT and AOT builds of the same CRUD API.

This package drives fixed-rate windowed request load against each API variant,
reduces the latency samples into percentile/throughput/error summaries, and
writes a timestamped results artifact for the comparison dashboard.
"""

from .main import main

__all__ = ["main"]
