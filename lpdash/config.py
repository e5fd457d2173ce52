from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "your_api_key_here"

DEFAULT_UNIT_PRICES: Dict[str, float] = {
    "acom": 85000.0,
    "promise": 62000.0,
    "mobit": 16000.0,
    "aiful": 50161.0,
}

DEFAULT_EST_RATES: Dict[str, float] = {
    "acom": 20.0,
    "promise": 20.0,
    "mobit": 20.0,
    "aiful": 20.0,
}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class Settings:
    google_api_key: str = ""
    spreadsheet_id: str = ""
    cost_spreadsheet_id: str = ""
    conversion_sheet: str = "Summary_Report"
    cost_sheet: str = "広告費まとめ_LP別"
    cache_path: str = ".cache/lpdash.sqlite3"
    cache_retention_hours: float = 12.0
    cache_timeout: float = 3.0
    request_timeout: float = 30.0
    load_timeout: float = 60.0
    assumptions_path: str = ".cache/assumptions.json"

    @property
    def sheets_configured(self) -> bool:
        return bool(self.google_api_key) and self.google_api_key != PLACEHOLDER_API_KEY

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        defaults = cls()
        return cls(
            google_api_key=os.getenv("LPDASH_GOOGLE_API_KEY", "").strip(),
            spreadsheet_id=os.getenv("LPDASH_SPREADSHEET_ID", "").strip(),
            cost_spreadsheet_id=os.getenv("LPDASH_COST_SPREADSHEET_ID", "").strip(),
            conversion_sheet=os.getenv("LPDASH_CONVERSION_SHEET", defaults.conversion_sheet),
            cost_sheet=os.getenv("LPDASH_COST_SHEET", defaults.cost_sheet),
            cache_path=os.getenv("LPDASH_CACHE_PATH", defaults.cache_path),
            cache_retention_hours=_env_float("LPDASH_CACHE_RETENTION_HOURS", defaults.cache_retention_hours),
            cache_timeout=_env_float("LPDASH_CACHE_TIMEOUT", defaults.cache_timeout),
            request_timeout=_env_float("LPDASH_REQUEST_TIMEOUT", defaults.request_timeout),
            load_timeout=_env_float("LPDASH_LOAD_TIMEOUT", defaults.load_timeout),
            assumptions_path=os.getenv("LPDASH_ASSUMPTIONS_PATH", defaults.assumptions_path),
        )


@dataclass(frozen=True)
class Assumptions:
    unit_prices: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_UNIT_PRICES))
    unit_est_rates: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_EST_RATES))
    diff_rate: float = 0.0

    def with_unit_price(self, merchant: str, value: object) -> "Assumptions":
        prices = dict(self.unit_prices)
        prices[merchant.strip().lower()] = _as_float(value)
        return replace(self, unit_prices=prices)

    def with_est_rate(self, merchant: str, value: object) -> "Assumptions":
        rates = dict(self.unit_est_rates)
        rates[merchant.strip().lower()] = _as_float(value)
        return replace(self, unit_est_rates=rates)


def _as_float(value: object, default: float = 0.0) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _as_rate_table(raw: object, base: Dict[str, float]) -> Dict[str, float]:
    out = dict(base)
    if not isinstance(raw, dict):
        return out
    for k, v in raw.items():
        if k is None:
            continue
        out[str(k).strip().lower()] = _as_float(v)
    return out


def normalize_assumptions(raw: Optional[dict], *, base: Optional[Assumptions] = None) -> Assumptions:
    """Merge user-supplied prices / rates / diff rate over ``base``."""
    base = base or Assumptions()
    raw = raw or {}
    return Assumptions(
        unit_prices=_as_rate_table(raw.get("unit_prices"), base.unit_prices),
        unit_est_rates=_as_rate_table(raw.get("unit_est_rates"), base.unit_est_rates),
        diff_rate=_as_float(raw.get("diff_rate", base.diff_rate), base.diff_rate),
    )


class AssumptionStore:
    """Per-section assumptions kept in a small JSON file."""

    def __init__(self, path: str | Path, *, defaults: Optional[Assumptions] = None):
        self.path = Path(path)
        self.defaults = defaults or Assumptions()

    def _read_all(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Could not read assumptions from %s", self.path, exc_info=True)
            return {}
        return payload if isinstance(payload, dict) else {}

    def load(self, section_id: str = "main") -> Assumptions:
        raw = self._read_all().get(section_id)
        return normalize_assumptions(raw if isinstance(raw, dict) else None, base=self.defaults)

    def save(self, assumptions: Assumptions, section_id: str = "main") -> None:
        payload = self._read_all()
        payload[section_id] = asdict(assumptions)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError:
            logger.warning("Could not write assumptions to %s", self.path, exc_info=True)
