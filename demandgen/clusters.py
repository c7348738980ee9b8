"""Greedy block aggregation and low-population merging.

Blocks are merged into Clusters around seed blocks to bound the size of the
flow graph while conserving population and job totals. A cluster keeps its
seed's centroid for its whole life, so demand node positions stay on real
block centers and do not drift as members join.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from demandgen.blocks import Block
from demandgen.geo_utils import NearestIndex, haversine_many
from demandgen.log_config import get_logger

logger = get_logger(__name__)


@dataclass
class Cluster:
    """One or more blocks merged into a single demand node.

    Attributes:
        id: Identifier inherited from the seed block.
        centroid: Seed block centroid ``(lon, lat)``; never recomputed.
        population: Sum of member populations.
        jobs: Sum of member jobs.
        member_ids: Ids of member blocks in join order, seed first.
        kind: Special-purpose tag inherited from the seed block.
    """

    id: str
    centroid: tuple[float, float]
    population: int
    jobs: int
    member_ids: list[str] = field(default_factory=list)
    kind: str | None = None

    @classmethod
    def seeded_by(cls, block: Block) -> Cluster:
        """Create a cluster holding only ``block``."""
        return cls(
            id=block.id,
            centroid=block.centroid,
            population=block.population,
            jobs=block.jobs,
            member_ids=[block.id],
            kind=block.kind,
        )

    def absorb(self, block: Block) -> None:
        """Add ``block``'s counts and membership; the centroid is unchanged."""
        self.population += block.population
        self.jobs += block.jobs
        self.member_ids.append(block.id)


def aggregate_blocks(blocks: Sequence[Block], threshold_m: float) -> list[Cluster]:
    """Merge nearby blocks into clusters.

    Blocks are visited by population, largest first (ties keep input order).
    Each block joins the first cluster, in creation order, whose seed centroid
    is closer than ``threshold_m``; otherwise it seeds a new cluster.

    Time complexity is O(n * k) for n blocks and k clusters formed.

    Args:
        blocks: Active blocks in ingestion order.
        threshold_m: Join distance in meters. 0 disables merging.

    Returns:
        Clusters in creation order.
    """
    logger.info(f"Aggregating {len(blocks):,} blocks (threshold: {threshold_m}m)")

    ordered = sorted(blocks, key=lambda b: -b.population)

    clusters: list[Cluster] = []
    seed_lons = np.empty(len(ordered), dtype=float)
    seed_lats = np.empty(len(ordered), dtype=float)

    for block in ordered:
        k = len(clusters)
        if k > 0 and threshold_m > 0:
            dists = haversine_many(block.centroid, seed_lons[:k], seed_lats[:k])
            hits = np.flatnonzero(dists < threshold_m)
            if hits.size > 0:
                clusters[int(hits[0])].absorb(block)
                continue
        seed_lons[k] = block.centroid[0]
        seed_lats[k] = block.centroid[1]
        clusters.append(Cluster.seeded_by(block))

    if clusters:
        logger.info(
            f"Merged into {len(clusters):,} clusters "
            f"(ratio 1:{len(blocks) / len(clusters):.1f})"
        )
    return clusters


def merge_low_population(
    clusters: Sequence[Cluster], min_pop: int
) -> dict[str, int]:
    """Compute adjusted populations used only for flow synthesis.

    Clusters with ``0 < population < min_pop`` hand their population to the
    nearest cluster with ``population >= min_pop`` and are left with 0. When no
    such cluster exists nothing is merged. Stored cluster populations are not
    modified.

    Args:
        clusters: Clusters in creation order.
        min_pop: Population threshold for a normal cluster.

    Returns:
        Mapping of cluster id to adjusted population, in cluster order.
    """
    adjusted = {c.id: c.population for c in clusters}
    normal = [c for c in clusters if c.population >= min_pop]
    low = [c for c in clusters if 0 < c.population < min_pop]

    if not normal:
        if low:
            logger.info(
                f"No clusters reach {min_pop} residents; "
                f"{len(low):,} low-population clusters left unmerged"
            )
        return adjusted

    if low:
        index = NearestIndex([c.centroid for c in normal])
        for cluster in low:
            target = normal[index.nearest(cluster.centroid)]
            adjusted[target.id] += cluster.population
            adjusted[cluster.id] = 0

    logger.info(
        f"Merged {len(low):,} low-population clusters into {len(normal):,} neighbors"
    )
    return adjusted
