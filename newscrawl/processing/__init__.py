"""
NewsCrawl Processing Module
===========================

Deduplication, feed health bookkeeping and the per-feed run orchestrator.
"""

from .dedup import DeduplicationGate, GateResult
from .health import HealthTracker
from .pipeline import IngestionOrchestrator, RunOutcome, RunState

__all__ = [
    'DeduplicationGate',
    'GateResult',
    'HealthTracker',
    'IngestionOrchestrator',
    'RunOutcome',
    'RunState',
]
