from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DATA_FILE = Path(os.environ.get("RETAIL_DASHBOARD_DATA", DATA_DIR / "customer_shopping_data.csv"))

FACET_TOP_N = 5
OTHERS_LABEL = "Others"

SegmentPolicy = Literal["fixed", "tertile"]


@dataclass(frozen=True)
class SpendThresholds:
    high: float = 300.0
    medium: float = 100.0


@dataclass(frozen=True)
class CohortSettings:
    policy: SegmentPolicy = "fixed"
    fixed: SpendThresholds = field(default_factory=SpendThresholds)
    lower_quantile: float = 0.33
    upper_quantile: float = 0.66
    facet_top_n: int = FACET_TOP_N
