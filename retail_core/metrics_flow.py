from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

from retail_core.data import with_revenue
from retail_core.filters import FilterCriteria

TIERS: List[Tuple[str, str]] = [
    ("gender", "gender"),
    ("category", "category"),
    ("payment", "payment_method"),
]

NodeKey = Tuple[str, str]


@dataclass(frozen=True)
class FlowNode:
    id: int
    label: str
    tier: str


@dataclass(frozen=True)
class FlowEdge:
    source: int
    target: int
    weight: float


@dataclass(frozen=True)
class FlowGraph:
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.edges

    def to_dict(self) -> Dict[str, Any]:
        return {"nodes": [asdict(n) for n in self.nodes], "edges": [asdict(e) for e in self.edges]}


def build_flow_graph(df: pd.DataFrame) -> FlowGraph:
    """Revenue flow gender -> category -> payment method.

    Leaves are (gender, category, payment) groups in sorted order. Each
    non-zero leaf adds its revenue to the gender->category edge and to the
    category->payment edge, so a category's inflow always equals its outflow.
    Merged edges that net to zero are dropped along with any node left
    without an edge.
    """
    cols = [c for _, c in TIERS]
    if df.empty or not set(cols + ["quantity", "price"]).issubset(df.columns):
        return FlowGraph()

    base = with_revenue(df.dropna(subset=cols))
    if base.empty:
        return FlowGraph()
    for col in cols:
        base[col] = base[col].astype(str)
    leaves = base.groupby(cols, sort=True)["revenue"].sum()

    weights: Dict[Tuple[NodeKey, NodeKey], float] = {}
    for (gender, category, payment), value in leaves.items():
        if pd.isna(value) or value == 0:
            continue
        g = (TIERS[0][0], gender)
        c = (TIERS[1][0], category)
        p = (TIERS[2][0], payment)
        weights[(g, c)] = weights.get((g, c), 0.0) + float(value)
        weights[(c, p)] = weights.get((c, p), 0.0) + float(value)

    nodes: List[FlowNode] = []
    node_index: Dict[NodeKey, int] = {}

    def get_node(key: NodeKey) -> int:
        tier, label = key
        if key not in node_index:
            node_index[key] = len(nodes)
            nodes.append(FlowNode(id=len(nodes), label=label, tier=tier))
        return node_index[key]

    # Opposite-signed leaves can cancel on a merged edge; nodes are only
    # created for edges that survive.
    edges = [
        FlowEdge(source=get_node(s), target=get_node(t), weight=w)
        for (s, t), w in weights.items()
        if not np.isclose(w, 0.0)
    ]
    return FlowGraph(nodes=nodes, edges=edges)


def node_flows(graph: FlowGraph) -> pd.DataFrame:
    """Inbound and outbound weight per node."""
    if graph.empty:
        return pd.DataFrame(columns=["id", "label", "tier", "inflow", "outflow"])
    edges = pd.DataFrame([asdict(e) for e in graph.edges])
    inflow = edges.groupby("target")["weight"].sum()
    outflow = edges.groupby("source")["weight"].sum()
    out = pd.DataFrame([asdict(n) for n in graph.nodes])
    out["inflow"] = out["id"].map(inflow).fillna(0.0)
    out["outflow"] = out["id"].map(outflow).fillna(0.0)
    return out


def compute_flow(criteria: FilterCriteria, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    graph = build_flow_graph(df)
    flows = node_flows(graph)
    tier_totals: Dict[str, float] = {}
    if not flows.empty:
        tier_totals = {
            "gender": float(flows.loc[flows["tier"] == "gender", "outflow"].sum()),
            "category": float(flows.loc[flows["tier"] == "category", "inflow"].sum()),
            "payment": float(flows.loc[flows["tier"] == "payment", "inflow"].sum()),
        }
    return {
        "criteria": criteria.to_dict(),
        "empty": graph.empty,
        "graph": graph.to_dict(),
        "nodes": flows.to_dict(orient="records"),
        "tier_totals": tier_totals,
    }
