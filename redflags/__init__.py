"""Procurement red-flag screening engine.

Computes reproducible statistical red-flag signals over federal contract
award records and consolidates them into ranked findings. It includes:

- Config schema and defaults
- Award and transaction record types with tolerant loaders
- Six single-pass indicators (R001-R006)
- Signal engine (configure, fold, finalize)
- Materiality-ranked consolidation with a per-indicator diversity cap
- Multi-indicator convergence analysis
- FastAPI server endpoints and a JSON batch CLI

The engine performs no I/O; callers supply already-normalized records.
"""

__all__ = [
    "config_schema",
    "awards",
    "signals",
    "indicators",
    "engine",
    "consolidator",
    "convergence",
]
