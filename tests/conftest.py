"""Shared fixtures for dashboard tests."""

from typing import List, Optional, Tuple

import pandas as pd
import pytest

from lpdash.errors import TransportFailure
from lpdash.schema import ConversionRecord, CostRecord, conversions_frame, costs_frame


class FakeSource:
    """In-memory data source recording every fetch call."""

    def __init__(
        self,
        conversions: Optional[pd.DataFrame] = None,
        costs: Optional[pd.DataFrame] = None,
        cached_conversions: Optional[pd.DataFrame] = None,
        cached_costs: Optional[pd.DataFrame] = None,
        error: Optional[Exception] = None,
    ):
        self.conversions = conversions
        self.costs = costs
        self.cached_conversions = cached_conversions
        self.cached_costs = cached_costs
        self.error = error
        self.calls: List[Tuple[str, bool, bool]] = []

    def fetch_conversions(self, force_refresh: bool = False, cache_only: bool = False):
        self.calls.append(("conversions", force_refresh, cache_only))
        if cache_only:
            return self.cached_conversions if self.cached_conversions is not None else conversions_frame([])
        if self.error is not None:
            raise self.error
        return self.conversions

    def fetch_costs(self, force_refresh: bool = False, cache_only: bool = False):
        self.calls.append(("costs", force_refresh, cache_only))
        if cache_only:
            return self.cached_costs if self.cached_costs is not None else costs_frame([])
        return self.costs


@pytest.fixture
def live_conversions():
    return conversions_frame(
        [
            ConversionRecord("2025-02-01", "LP1", "Google", "Search", "A", "acom", 15, 5, 2),
            ConversionRecord("2025-02-01", "LP1", "Google", "Search", "A", "aiful", 4, 1, 0),
            ConversionRecord("2025-02-02", "LP2", "Yahoo", "Display", "B", "promise", 20, 10, 3),
        ]
    )


@pytest.fixture
def live_costs():
    return costs_frame(
        [
            CostRecord("2025-02-01", "Google", "Search", "A", "LP1", 10000),
            CostRecord("2025-02-02", "Yahoo", "Display", "B", "LP2", 6000),
        ]
    )


@pytest.fixture
def failing_source():
    return FakeSource(error=TransportFailure("Google Sheets API 403 for 'Summary_Report': API key not valid"))
