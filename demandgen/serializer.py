"""Demand document assembly and JSON persistence.

The published document has a fixed shape consumed by the downstream
simulator::

    {
      "points": [{"id", "location": [lon, lat], "jobs", "residents", "popIds"}],
      "pops":   [{"id", "residenceId", "jobId", "size",
                  "drivingDistance", "drivingSeconds"}]
    }

All numbers except coordinates are integers.
"""

from __future__ import annotations

import itertools
import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from demandgen.clusters import Cluster
from demandgen.flows import Flow
from demandgen.log_config import get_logger
from demandgen.utils import round_half_up

if TYPE_CHECKING:
    from demandgen.config import FormattingConfig

logger = get_logger(__name__)

SPECIAL_LABEL_PREFIXES: dict[str, str] = {
    "airport_terminal": "AIR_Terminal_",
    "university": "UNI_",
}


@dataclass
class SpecialNodeCounters:
    """Sequence state for special-purpose node labels.

    Owned by the caller. Pass one instance to every area of a run to keep
    labels unique across areas, or a fresh one per area.
    """

    airport_terminal: Iterator[int] = field(default_factory=itertools.count)
    university: Iterator[int] = field(default_factory=itertools.count)

    def next_label(self, kind: str) -> str:
        """Return the next published label for a special ``kind``."""
        prefix = SPECIAL_LABEL_PREFIXES[kind]
        counter: Iterator[int] = getattr(self, kind)
        return f"{prefix}{next(counter)}"


@dataclass(frozen=True)
class Node:
    """Published demand node."""

    id: str
    location: tuple[float, float]
    jobs: int
    residents: int
    flow_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "location": [float(self.location[0]), float(self.location[1])],
            "jobs": int(self.jobs),
            "residents": int(self.residents),
            "popIds": list(self.flow_ids),
        }


def flow_to_dict(flow: Flow) -> dict[str, Any]:
    """Serialize a flow to its published ``pops`` entry."""
    return {
        "id": flow.id,
        "residenceId": flow.origin_id,
        "jobId": flow.dest_id,
        "size": int(flow.size),
        "drivingDistance": round_half_up(flow.distance_meters),
        "drivingSeconds": round_half_up(flow.travel_seconds),
    }


@dataclass(frozen=True)
class DemandModel:
    """Terminal artifact of the pipeline: nodes and flows."""

    points: tuple[Node, ...]
    flows: tuple[Flow, ...]

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Return the published document."""
        return {
            "points": [node.to_dict() for node in self.points],
            "pops": [flow_to_dict(flow) for flow in self.flows],
        }


def build_demand_model(
    clusters: Sequence[Cluster],
    flows: Sequence[Flow],
    counters: SpecialNodeCounters | None = None,
) -> DemandModel:
    """Assemble nodes and flows into a DemandModel.

    Node counts are the clusters' true accumulated population and jobs.
    Each node lists, in flow order, the ids of flows that start or end there.
    Clusters tagged with a special kind are published under a label from
    ``counters`` and flow endpoints are rewritten to match. Labels that
    collide with an existing cluster id are skipped.

    Args:
        clusters: Clusters in creation order.
        flows: Flows from ``synthesize_flows``.
        counters: Special label sequences. Defaults to fresh counters.

    Returns:
        Immutable demand model.
    """
    logger.info("Formatting demand data")
    if counters is None:
        counters = SpecialNodeCounters()

    flow_ids: dict[str, list[str]] = {c.id: [] for c in clusters}
    for flow in flows:
        flow_ids[flow.origin_id].append(flow.id)
        if flow.dest_id != flow.origin_id:
            flow_ids[flow.dest_id].append(flow.id)

    # Labels already used as cluster ids are skipped to keep node ids unique.
    taken = {c.id for c in clusters}
    labels: dict[str, str] = {}
    for cluster in clusters:
        if cluster.kind in SPECIAL_LABEL_PREFIXES:
            label = counters.next_label(cluster.kind)
            while label in taken:
                label = counters.next_label(cluster.kind)
            taken.add(label)
            labels[cluster.id] = label
            logger.info(f"Special node {cluster.id} published as {labels[cluster.id]}")

    points = tuple(
        Node(
            id=labels.get(c.id, c.id),
            location=c.centroid,
            jobs=c.jobs,
            residents=c.population,
            flow_ids=tuple(flow_ids[c.id]),
        )
        for c in clusters
    )
    if labels:
        flows = [
            replace(
                f,
                origin_id=labels.get(f.origin_id, f.origin_id),
                dest_id=labels.get(f.dest_id, f.dest_id),
            )
            for f in flows
        ]
    return DemandModel(points=points, flows=tuple(flows))


def save_demand_json(
    model: DemandModel,
    path: Path,
    formatting_config: FormattingConfig | None = None,
) -> None:
    """Write the published document to ``path``.

    Output is deterministic: identical models produce identical bytes.
    """
    indent = formatting_config.json_indent if formatting_config is not None else None
    separators = (",", ":") if indent is None else None
    logger.info(f"Saving demand data to JSON: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(model.to_dict(), f, indent=indent, separators=separators)

    size_kb = path.stat().st_size / 1024
    logger.info(f"Saved demand data: {size_kb:.1f} KB")


def load_demand_json(path: Path) -> dict[str, Any]:
    """Read a published demand document.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document lacks ``points`` or ``pops``.
    """
    if not path.exists():
        raise FileNotFoundError(f"Demand data file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "points" not in data or "pops" not in data:
        raise ValueError(f"{path} is not a demand document (missing 'points'/'pops')")
    logger.info(
        f"Loaded demand data: {len(data['points']):,} points, {len(data['pops']):,} pops"
    )
    return data
