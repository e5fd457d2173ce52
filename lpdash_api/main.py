from __future__ import annotations

import logging
import math
import threading
from dataclasses import asdict
from functools import lru_cache
from typing import Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from lpdash.config import AssumptionStore, Assumptions, Settings, normalize_assumptions
from lpdash.data import DataSource, ReportData, build_source, load_report_data
from lpdash.errors import TransportFailure
from lpdash.export import summary_table, to_csv_bytes
from lpdash.filters import ReportFilters, normalize_filters
from lpdash.report import compute_report, prepare_context
from lpdash_api.schemas import AssumptionsModel, MetaOptionsResponse, ReportRequest

app = FastAPI(title="LP Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_source() -> DataSource:
    return build_source(get_settings())


def get_assumption_store() -> AssumptionStore:
    return AssumptionStore(get_settings().assumptions_path)


class DatasetHolder:
    """Process-wide reconciled dataset; replaced wholesale on refresh."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Optional[ReportData] = None

    def get(self, *, force_refresh: bool = False) -> ReportData:
        with self._lock:
            if self._data is None or force_refresh:
                self._data = load_report_data(
                    get_source(),
                    force_refresh=force_refresh,
                    timeout=get_settings().load_timeout,
                )
            return self._data

    def reset(self) -> None:
        with self._lock:
            self._data = None


_dataset = DatasetHolder()


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, where: str) -> JSONResponse:
    logger.exception("%s failed", where)
    status = 502 if isinstance(exc, TransportFailure) else 500
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__})


def _resolve(request: ReportRequest) -> tuple[ReportFilters, Assumptions]:
    filters = normalize_filters(request.filters.model_dump())
    stored = get_assumption_store().load(request.section_id)
    assumptions = normalize_assumptions(request.assumptions.model_dump(), base=stored)
    return filters, assumptions


@app.get("/meta/options", response_model=MetaOptionsResponse)
def meta_options():
    try:
        data = _dataset.get()
        return _json({**data.options(), "origin": data.origin, "uses_fixture": data.uses_fixture})
    except Exception as exc:
        return _error(exc, "meta_options")


@app.post("/report")
def report(request: ReportRequest):
    try:
        data = _dataset.get()
        filters, assumptions = _resolve(request)
        payload = compute_report(data.records, filters, assumptions)
        payload["origin"] = data.origin
        payload["uses_fixture"] = data.uses_fixture
        return _json(payload)
    except Exception as exc:
        return _error(exc, "report")


@app.post("/export")
def export(request: ReportRequest, filename: str = Query(default="lp_report.csv")):
    try:
        data = _dataset.get()
        filters, assumptions = _resolve(request)
        ctx = prepare_context(data.records, filters, assumptions)
        table = summary_table(ctx["merchants"], ctx["totals"], assumptions)
    except Exception as exc:
        return _error(exc, "export")
    return Response(
        content=to_csv_bytes(table),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/assumptions/{section_id}")
def get_assumptions(section_id: str):
    return _json(asdict(get_assumption_store().load(section_id)))


@app.put("/assumptions/{section_id}")
def put_assumptions(section_id: str, assumptions: AssumptionsModel):
    store = get_assumption_store()
    merged = normalize_assumptions(assumptions.model_dump(), base=store.load(section_id))
    store.save(merged, section_id)
    return _json(asdict(merged))


@app.post("/refresh")
def refresh():
    try:
        data = _dataset.get(force_refresh=True)
        return _json({"records": int(len(data.records)), "origin": data.origin, "loaded_at": data.loaded_at.isoformat()})
    except Exception as exc:
        return _error(exc, "refresh")


@app.post("/cache/clear")
def cache_clear():
    source = get_source()
    cache = getattr(source, "cache", None)
    if cache is not None:
        cache.clear()
    _dataset.reset()
    return _json({"cleared": True})
