"""Google Sheets v4 ``values`` client (API key auth) and header-row parsing."""

from __future__ import annotations

import logging
import re
import urllib.parse
from typing import Any, Dict, List, Optional

import requests

from lpdash.config import Settings
from lpdash.errors import SourceUnavailable, TransportFailure
from lpdash.normalize import NUMBER_TEXT

logger = logging.getLogger(__name__)

BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"


class SheetsClient:
    def __init__(
        self,
        api_key: str,
        spreadsheet_id: str = "",
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise SourceUnavailable("Google Sheets API key not configured.")
        self.api_key = api_key
        self.spreadsheet_id = spreadsheet_id
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, *, session: Optional[requests.Session] = None) -> Optional["SheetsClient"]:
        if not settings.sheets_configured:
            return None
        try:
            return cls(settings.google_api_key, settings.spreadsheet_id, timeout=settings.request_timeout, session=session)
        except SourceUnavailable:
            return None

    def fetch_values(self, sheet_name: str, range_: str = "", spreadsheet_id: Optional[str] = None) -> List[List[Any]]:
        """Raw 2D cell values of a sheet tab (first row is the header)."""
        full_range = f"{sheet_name}!{range_}" if range_ else sheet_name
        sid = spreadsheet_id or self.spreadsheet_id
        if not sid:
            raise SourceUnavailable(f"No spreadsheet id for sheet {sheet_name!r}.")
        url = f"{BASE_URL}/{sid}/values/{urllib.parse.quote(full_range, safe='')}"
        try:
            resp = self._session.get(url, params={"key": self.api_key}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportFailure(f"Fetching sheet {sheet_name!r} failed: {exc}") from exc

        if resp.status_code >= 400:
            message = resp.text
            try:
                message = resp.json().get("error", {}).get("message") or message
            except ValueError:
                pass
            raise TransportFailure(f"Google Sheets API {resp.status_code} for {sheet_name!r}: {message}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportFailure(f"Malformed response for sheet {sheet_name!r}") from exc
        if not isinstance(payload, dict):
            raise TransportFailure(f"Malformed response for sheet {sheet_name!r}")
        values = payload.get("values") or []
        if not isinstance(values, list):
            raise TransportFailure(f"Malformed values for sheet {sheet_name!r}")
        logger.info("Fetched %d rows from sheet %r", len(values), sheet_name)
        return values


def header_key(value: object) -> str:
    return re.sub(r"\s+", "_", str(value).strip().lower())


def parse_cell(value: object) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return value
    text = str(value)
    if text == "":
        return ""
    stripped = text.strip()
    if NUMBER_TEXT.match(stripped):
        num = float(stripped)
        return int(num) if num.is_integer() else num
    return text


def parse_sheet_values(values: Optional[List[List[Any]]]) -> List[Dict[str, Any]]:
    """Header row -> keys; numeric-looking cells -> numbers; blank rows dropped."""
    if not values:
        return []
    headers = [header_key(h) for h in values[0]]
    rows: List[Dict[str, Any]] = []
    for raw in values[1:]:
        row = {h: parse_cell(raw[i]) if i < len(raw) else "" for i, h in enumerate(headers)}
        if any(v != "" for v in row.values()):
            rows.append(row)
    return rows
