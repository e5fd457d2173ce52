"""Cost reconciliation: spread cost-sheet spend over conversion rows.

Two passes:

1. Direct match on the normalized (date, media, lp_number, method, method2)
   key. Rows sharing a key (one sheet row fanned out per merchant) split the
   matched cost evenly.
2. Fallback per (date, media): spend reported for the pair that pass 1 did
   not place is split evenly over the pair's unmatched rows.

Cost rows with an unassigned LP number never take part in either pass.
"""

from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from lpdash.normalize import normalize_key_columns
from lpdash.schema import (
    KEY_COLUMNS,
    MEDIA_KEY_COLUMNS,
    UNASSIGNED_LP_NUMBERS,
    CompositeKey,
    Records,
    conversions_frame,
    costs_frame,
)

ALLOCATION_DIRECT = "direct"
ALLOCATION_FALLBACK = "fallback"
ALLOCATION_NONE = "none"


def eligible_costs(costs: Records) -> pd.DataFrame:
    """Normalized cost rows with unassigned LP numbers removed."""
    frame = costs_frame(costs)
    keyed = normalize_key_columns(frame, KEY_COLUMNS)
    keyed["total_cost"] = frame["total_cost"]
    return keyed[~keyed["lp_number"].isin(UNASSIGNED_LP_NUMBERS)].reset_index(drop=True)


def granular_cost_map(costs: Records) -> Dict[CompositeKey, float]:
    keyed = eligible_costs(costs)
    if keyed.empty:
        return {}
    sums = keyed.groupby(KEY_COLUMNS, sort=False)["total_cost"].sum()
    return {CompositeKey(*k): float(v) for k, v in sums.items()}


def _lookup(sums: pd.Series, keys: pd.DataFrame) -> pd.Series:
    values = sums.reindex(pd.MultiIndex.from_frame(keys)).to_numpy()
    return pd.Series(values, index=keys.index, dtype=float).fillna(0.0)


def allocate_costs(conversions: Records, costs: Records) -> pd.DataFrame:
    """Reconciled conversion frame plus an ``allocation`` column."""
    frame = conversions_frame(conversions)
    frame["cost"] = 0.0
    frame["allocation"] = ALLOCATION_NONE
    if frame.empty:
        return frame

    keyed_costs = eligible_costs(costs)
    if keyed_costs.empty:
        return frame

    granular = keyed_costs.groupby(KEY_COLUMNS, sort=False)["total_cost"].sum()
    by_media = keyed_costs.groupby(MEDIA_KEY_COLUMNS, sort=False)["total_cost"].sum()

    keys = normalize_key_columns(frame, KEY_COLUMNS)
    ones = pd.Series(1.0, index=keys.index)
    group_size = ones.groupby([keys[c] for c in KEY_COLUMNS], sort=False).transform("sum")

    # Pass 1: direct match
    direct = _lookup(granular, keys[KEY_COLUMNS])
    matched = direct > 0
    cost = (direct / group_size).where(matched, 0.0)

    # Pass 2: (date, media) remainder over unmatched rows
    media_keys = [keys[c] for c in MEDIA_KEY_COLUMNS]
    assigned = cost.where(matched, 0.0).groupby(media_keys, sort=False).transform("sum")
    unmatched_count = (~matched).astype(float).groupby(media_keys, sort=False).transform("sum")
    remaining = (_lookup(by_media, keys[MEDIA_KEY_COLUMNS]) - assigned).clip(lower=0.0)
    fallback = ~matched & (remaining > 0)
    cost = cost.where(~fallback, remaining / unmatched_count.where(unmatched_count > 0, 1.0))

    frame["cost"] = cost.astype(float)
    frame.loc[matched, "allocation"] = ALLOCATION_DIRECT
    frame.loc[fallback, "allocation"] = ALLOCATION_FALLBACK
    return frame


def reconcile(conversions: Records, costs: Records) -> pd.DataFrame:
    """Conversion rows with ``cost`` populated; same length and order as the input."""
    return allocate_costs(conversions, costs).drop(columns=["allocation"])


def reconciliation_summary(conversions: Records, costs: Records) -> Dict[str, Any]:
    allocated = allocate_costs(conversions, costs)
    all_costs = costs_frame(costs)
    eligible = eligible_costs(costs)
    reported = float(all_costs["total_cost"].sum()) if not all_costs.empty else 0.0
    eligible_total = float(eligible["total_cost"].sum()) if not eligible.empty else 0.0
    allocated_total = float(allocated["cost"].sum()) if not allocated.empty else 0.0
    counts = allocated["allocation"].value_counts() if not allocated.empty else pd.Series(dtype=int)
    return {
        "conversion_rows": int(len(allocated)),
        "cost_rows": int(len(all_costs)),
        "unassigned_cost_rows": int(len(all_costs) - len(eligible)),
        "reported_cost": reported,
        "unassigned_cost": reported - eligible_total,
        "allocated_cost": allocated_total,
        "unallocated_cost": max(0.0, eligible_total - allocated_total),
        "direct_rows": int(counts.get(ALLOCATION_DIRECT, 0)),
        "fallback_rows": int(counts.get(ALLOCATION_FALLBACK, 0)),
        "unallocated_rows": int(counts.get(ALLOCATION_NONE, 0)),
    }
