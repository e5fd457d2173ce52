from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, Optional, Protocol, Tuple

import pandas as pd

from lpdash.allocation import reconcile
from lpdash.cache import ReportCache
from lpdash.config import Settings
from lpdash.errors import TransportFailure
from lpdash.filters import filter_options
from lpdash.fixtures import sample_conversions, sample_costs
from lpdash.sources import SheetsDataSource

logger = logging.getLogger(__name__)

ORIGIN_LIVE = "live"
ORIGIN_CACHE = "cache"
ORIGIN_FIXTURE = "fixture"

CACHE_READ_TIMEOUT = 3.0


class DataSource(Protocol):
    def fetch_conversions(self, force_refresh: bool = False, cache_only: bool = False) -> Optional[pd.DataFrame]: ...

    def fetch_costs(self, force_refresh: bool = False, cache_only: bool = False) -> Optional[pd.DataFrame]: ...


@dataclass
class ReportData:
    records: pd.DataFrame
    costs: pd.DataFrame
    origin: str = ORIGIN_LIVE
    fixture_sources: Tuple[str, ...] = ()
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def uses_fixture(self) -> bool:
        return bool(self.fixture_sources)

    def options(self) -> Dict[str, list]:
        return filter_options(self.records)


def build_source(settings: Settings) -> SheetsDataSource:
    cache = ReportCache(
        settings.cache_path,
        retention=timedelta(hours=settings.cache_retention_hours),
        timeout=settings.cache_timeout,
    )
    return SheetsDataSource(settings, cache=cache)


def _fetch_both(
    source: DataSource,
    *,
    force_refresh: bool,
    cache_only: bool,
    timeout: float,
) -> Tuple[Optional[pd.DataFrame], Optional[pd.DataFrame]]:
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="lpdash-fetch")
    try:
        conv_future = pool.submit(source.fetch_conversions, force_refresh, cache_only)
        cost_future = pool.submit(source.fetch_costs, force_refresh, cache_only)
        _, pending = wait([conv_future, cost_future], timeout=timeout)
        if pending:
            raise TransportFailure(f"Sheet fetch did not finish within {timeout:.0f}s")
        return conv_future.result(), cost_future.result()
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def load_report_data(source: DataSource, *, force_refresh: bool = False, timeout: float = 60.0) -> ReportData:
    """Fetch both sheets concurrently and reconcile cost onto conversions.

    Unconfigured sources are replaced by the sample dataset; transport errors
    propagate as ``TransportFailure``.
    """
    conversions, costs = _fetch_both(source, force_refresh=force_refresh, cache_only=False, timeout=timeout)
    fixture_sources = []
    if conversions is None:
        logger.info("Conversion source unavailable, using sample conversions")
        conversions = sample_conversions()
        fixture_sources.append("conversions")
    if costs is None:
        logger.info("Cost source unavailable, using sample costs")
        costs = sample_costs()
        fixture_sources.append("costs")

    records = reconcile(conversions, costs)
    origin = ORIGIN_FIXTURE if "conversions" in fixture_sources else ORIGIN_LIVE
    logger.info("Reconciled %d conversion rows against %d cost rows (%s)", len(records), len(costs), origin)
    return ReportData(records=records, costs=costs, origin=origin, fixture_sources=tuple(fixture_sources))


def load_cached_report_data(source: DataSource, *, timeout: float = CACHE_READ_TIMEOUT) -> Optional[ReportData]:
    """Reconciled dataset from cached sheets only; None when either sheet is not cached."""
    try:
        conversions, costs = _fetch_both(source, force_refresh=False, cache_only=True, timeout=timeout)
    except TransportFailure:
        logger.warning("Cache read timed out, continuing without cached data")
        return None
    if conversions is None or costs is None or conversions.empty or costs.empty:
        return None
    return ReportData(records=reconcile(conversions, costs), costs=costs, origin=ORIGIN_CACHE)


def iter_report_data(source: DataSource, *, timeout: float = 60.0) -> Iterator[ReportData]:
    """Stale-while-revalidate: cached dataset first (when present), then a fresh fetch."""
    cached = load_cached_report_data(source)
    if cached is not None:
        yield cached
    yield load_report_data(source, force_refresh=True, timeout=timeout)
