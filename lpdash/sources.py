from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from lpdash.cache import ReportCache
from lpdash.config import Settings
from lpdash.normalize import to_amount, to_number
from lpdash.schema import ALWAYS_INCLUDED_MERCHANT, Merchant, conversions_frame, costs_frame
from lpdash.sheets import SheetsClient, parse_sheet_values

logger = logging.getLogger(__name__)

MERCHANT_COLUMN = re.compile(r"^(.+)_(mcv|rcv|contract|成果数|application|withdrawal)$", re.IGNORECASE)

# Merchant-specific result columns, tried before the generic contract / 成果数 columns.
RESULT_COLUMNS = {
    Merchant.MOBIT.value: ["application"],
    Merchant.PROMISE.value: ["withdrawal"],
}


def _first(row: Mapping[str, Any], *keys: str, default: Any = "") -> Any:
    for k in keys:
        v = row.get(k)
        if v is not None and v != "" and v != 0:
            return v
    return default


def detect_merchants(headers: Iterable[str]) -> List[str]:
    merchants: List[str] = []
    for h in headers:
        match = MERCHANT_COLUMN.match(str(h))
        if match and match.group(1) not in merchants:
            merchants.append(match.group(1))
    return merchants


def expand_conversion_rows(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """One sheet row -> one record per merchant with activity.

    ``aiful`` is always emitted, even when every count in the row is zero.
    """
    if not rows:
        return conversions_frame([])
    merchants = detect_merchants(rows[0].keys())
    logger.info("Detected merchants in sheet: %s", merchants)

    records: List[Dict[str, Any]] = []
    for row in rows:
        common = {
            "date": _first(row, "date", "日付"),
            "lp_number": _first(row, "lp_number", "lp番号", "lp"),
            "media": _first(row, "media", "媒体"),
            "method": _first(row, "method", "手法"),
            "method2": _first(row, "method2", "手法2"),
        }
        for m in merchants:
            mcv = to_number(_first(row, f"{m}_mcv", default=0))
            rcv = to_number(_first(row, f"{m}_rcv", f"{m}_rcv数", default=0))
            result_keys = [f"{m}_{suffix}" for suffix in RESULT_COLUMNS.get(m.lower(), [])]
            results = to_number(_first(row, *result_keys, f"{m}_contract", f"{m}_成果数", default=0))
            if mcv > 0 or rcv > 0 or results > 0 or m.lower() == ALWAYS_INCLUDED_MERCHANT:
                records.append({**common, "merchant": m, "mcv": mcv, "rcv": rcv, "results": results, "cost": 0.0})

    logger.info("Parsed %d merchant records from %d rows", len(records), len(rows))
    return conversions_frame(records)


def expand_cost_rows(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    records = [
        {
            "date": _first(row, "date", "日付"),
            "media": _first(row, "media"),
            "method": _first(row, "method", "手法"),
            "method2": _first(row, "method2", "手法2"),
            "lp_number": _first(row, "lp_number", "lp番号"),
            "total_cost": to_amount(_first(row, "total_cost", "消化金額", "cost", default=0)),
        }
        for row in rows
    ]
    return costs_frame(records)


class SheetsDataSource:
    """Conversion and cost sheets behind a local cache.

    ``fetch_*`` return None when the source is not configured (callers substitute
    fixtures) and an empty frame for a cache-only miss. Transport errors propagate.
    """

    def __init__(self, settings: Settings, *, client: Optional[SheetsClient] = None, cache: Optional[ReportCache] = None):
        self.settings = settings
        self.client = client if client is not None else SheetsClient.from_settings(settings)
        self.cache = cache

    def _rows(self, sheet: str, spreadsheet_id: str, *, force_refresh: bool, cache_only: bool) -> Optional[List[Dict[str, Any]]]:
        key = f"{spreadsheet_id}:{sheet}"
        if self.cache is not None and not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Cache hit for %s (%d rows)", key, len(cached))
                return cached
        if cache_only:
            return []
        if self.client is None or not spreadsheet_id:
            return None
        rows = parse_sheet_values(self.client.fetch_values(sheet, spreadsheet_id=spreadsheet_id))
        if self.cache is not None:
            self.cache.set(key, rows)
        return rows

    def fetch_conversions(self, force_refresh: bool = False, cache_only: bool = False) -> Optional[pd.DataFrame]:
        rows = self._rows(
            self.settings.conversion_sheet,
            self.settings.spreadsheet_id,
            force_refresh=force_refresh,
            cache_only=cache_only,
        )
        if rows is None:
            logger.info("Conversion sheet not configured")
            return None
        if not rows and not cache_only:
            logger.warning("Google Sheets returned an empty conversion sheet")
        return expand_conversion_rows(rows)

    def fetch_costs(self, force_refresh: bool = False, cache_only: bool = False) -> Optional[pd.DataFrame]:
        rows = self._rows(
            self.settings.cost_sheet,
            self.settings.cost_spreadsheet_id,
            force_refresh=force_refresh,
            cache_only=cache_only,
        )
        if rows is None:
            logger.warning("Cost spreadsheet not configured")
            return None
        if not rows and not cache_only:
            # An empty cost sheet is treated like a missing one.
            logger.warning("No cost data found in the consolidated sheet")
            return None
        return expand_cost_rows(rows)
