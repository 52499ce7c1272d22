"""
Reconcile Module - Align canonical rows with a running legacy API.
==================================================================

- client: JSON GET client for the legacy API (None on any per-node failure)
- matching: URL-overlap scoring used to pair legacy and canonical topics
- reconciler: Snapshot capture into canonical metadata
- compare: Endpoint-by-endpoint diff of legacy and compat responses
"""

from notebot_bridge.reconcile.client import LegacyApiClient, LegacySourceUnavailable
from notebot_bridge.reconcile.matching import (
    DEFAULT_OVERLAP_THRESHOLD,
    is_match,
    match_topic,
    overlap_score,
)
from notebot_bridge.reconcile.reconciler import ReconcileStats, SnapshotReconciler
from notebot_bridge.reconcile.compare import ComparisonReport, EndpointDiff, compare_apis

__all__ = [
    # Client
    "LegacyApiClient",
    "LegacySourceUnavailable",
    # Matching
    "DEFAULT_OVERLAP_THRESHOLD",
    "is_match",
    "match_topic",
    "overlap_score",
    # Reconciler
    "ReconcileStats",
    "SnapshotReconciler",
    # Compare
    "ComparisonReport",
    "EndpointDiff",
    "compare_apis",
]
