"""Sample dataset shown when no spreadsheet is configured."""

from __future__ import annotations

import pandas as pd

from lpdash.schema import ConversionRecord, CostRecord, conversions_frame, costs_frame

SAMPLE_CONVERSIONS = [
    ConversionRecord("2025-01-28", "LP1", "Acom", "Direct", "TestA", "acom", 15, 5, 2),
    ConversionRecord("2025-01-28", "LP1", "Acom", "Direct", "TestA", "mobit", 10, 2, 0),
    ConversionRecord("2025-01-28", "LP1", "Acom", "Direct", "TestB", "promise", 20, 8, 1),
    ConversionRecord("2025-01-28", "LP1", "Acom", "Search", "TestB", "aiful", 5, 1, 0),
    ConversionRecord("2025-01-29", "LP2", "Promise", "Search", "TestC", "promise", 30, 12, 3),
    ConversionRecord("2025-01-29", "LP10-1", "Promise", "Search", "TestC", "aiful", 8, 3, 1),
]

SAMPLE_COSTS = [
    CostRecord("2025-01-28", "Acom", "Direct", "TestA", "LP1", 30000),
    CostRecord("2025-01-28", "Acom", "Direct", "TestB", "LP1", 12000),
    CostRecord("2025-01-28", "Acom", "Search", "TestB", "LP3", 8000),
    CostRecord("2025-01-28", "Acom", "", "", "未振分", 50000),
    CostRecord("2025-01-29", "Promise", "Search", "TestC", "LP2", 24000),
    CostRecord("2025-01-29", "Promise", "Search", "", "LP10", 6000),
]


def sample_conversions() -> pd.DataFrame:
    return conversions_frame(SAMPLE_CONVERSIONS)


def sample_costs() -> pd.DataFrame:
    return costs_frame(SAMPLE_COSTS)
