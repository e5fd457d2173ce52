"""Core (UI-agnostic) LP dashboard logic.

This package contains:
- key normalization and numeric coercion
- cost reconciliation (conversion rows <- cost sheet rows)
- merchant / portfolio KPI aggregation
- filter normalization and LP number ordering
- sheet loading, caching and report payloads (JSON-serializable)
"""
