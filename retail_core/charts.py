from __future__ import annotations

from typing import Any, Dict, List

import altair as alt

alt.data_transformers.disable_max_rows()

SPEND_COLORS = {"High": "#1f77b4", "Medium": "#ff7f0e", "Low": "#2ca02c"}
CATEGORY_PALETTE: List[str] = ["#60a5fa", "#34d399", "#fbbf24", "#a78bfa", "#fb7185", "#38bdf8"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def segment_color_scale(segments: List[str]) -> alt.Scale:
    """Fixed segment -> color mapping so stacked layers keep their color across renders."""
    if all(s in SPEND_COLORS for s in segments):
        return alt.Scale(domain=segments, range=[SPEND_COLORS[s] for s in segments])
    palette = [CATEGORY_PALETTE[i % len(CATEGORY_PALETTE)] for i in range(len(segments))]
    return alt.Scale(domain=segments, range=palette)
