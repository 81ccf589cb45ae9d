"""
Fetch package.

This package turns a cache miss into a cached artifact:
- Runner interface (base.py) and subprocess runners (runner.py)
- Single-flight deduplication of concurrent misses (singleflight.py)
- The per-request orchestrator (orchestrator.py)
"""

from dlcache.fetch.base import FetchRunner
from dlcache.fetch.orchestrator import FetchOrchestrator, FetchOutcome
from dlcache.fetch.runner import SubprocessRunner, YtDlpRunner
from dlcache.fetch.singleflight import SingleFlight

__all__ = [
    "FetchOrchestrator",
    "FetchOutcome",
    "FetchRunner",
    "SingleFlight",
    "SubprocessRunner",
    "YtDlpRunner",
]
