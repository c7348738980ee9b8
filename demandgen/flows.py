"""Gravity-model commuter flow synthesis.

Each origin cluster's adjusted population is split across destination
clusters in proportion to an attractiveness kernel::

    attractiveness(dest) = jobs(dest) / max(d, gravity_min_distance) ** gravity_exponent

where ``d`` is the great-circle distance between cluster centroids in meters.
Jobs inside the origin's own cluster are weighted by ``local_job_bonus``
instead, which nearly eliminates same-area commuting. Allocations smaller than
``min_flow_size`` are dropped and allocations above ``split_cap`` are split
into equal records.

Time complexity is O(k^2) in the number of clusters.
"""

from __future__ import annotations

import itertools
import math
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from demandgen.clusters import Cluster
from demandgen.geo_utils import haversine_many
from demandgen.log_config import get_logger
from demandgen.utils import _fmt, round_half_up

if TYPE_CHECKING:
    from demandgen.config import TuningConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class Flow:
    """A directed, sized commuter edge between two clusters."""

    id: str
    origin_id: str
    dest_id: str
    size: int
    distance_meters: float
    travel_seconds: float


def attractiveness(
    jobs: float, distance_m: float, min_distance_m: float, exponent: float
) -> float:
    """Gravity kernel for a destination other than the origin.

    Args:
        jobs: Destination job count.
        distance_m: Origin-destination distance in meters.
        min_distance_m: Distance floor applied before decay.
        exponent: Distance decay exponent.

    Returns:
        Attractiveness weight.
    """
    effective = max(distance_m, min_distance_m)
    if effective == 0.0:
        return float(jobs) if exponent == 0 else math.inf
    return jobs / effective**exponent


def split_flow(size: int, cap: int) -> list[int]:
    """Split ``size`` into ``ceil(size / cap)`` equal records.

    Each record is ``round(size / splits)``; the records may not sum back to
    ``size`` exactly.
    """
    if size <= 0:
        return []
    splits = math.ceil(size / cap)
    return [round_half_up(size / splits)] * splits


def synthesize_flows(
    clusters: Sequence[Cluster],
    adjusted_population: Mapping[str, int],
    tuning: TuningConfig,
    id_sequence: Iterator[int] | None = None,
) -> list[Flow]:
    """Generate commuter flows between clusters with the gravity model.

    Args:
        clusters: Clusters in creation order.
        adjusted_population: Population used for origins (see
            ``merge_low_population``).
        tuning: Gravity model parameters.
        id_sequence: Source of flow ids. Defaults to a fresh counter from 0.

    Returns:
        Flows ordered by origin, then destination, then split index.
    """
    logger.info(f"Generating commute flows for {len(clusters):,} clusters")
    if id_sequence is None:
        id_sequence = itertools.count()

    lons = np.array([c.centroid[0] for c in clusters], dtype=float)
    lats = np.array([c.centroid[1] for c in clusters], dtype=float)

    flows: list[Flow] = []
    origins = 0
    skipped_isolated = 0

    for i, origin in enumerate(clusters):
        origin_pop = adjusted_population.get(origin.id, 0)
        if origin_pop < tuning.min_pop_per_block or origin_pop <= 0:
            continue
        origins += 1

        distances = haversine_many(origin.centroid, lons, lats)
        candidates: list[tuple[Cluster, float, float]] = []
        for j, dest in enumerate(clusters):
            if j == i:
                if dest.jobs > 0:
                    candidates.append((dest, 0.0, dest.jobs * tuning.local_job_bonus))
                continue
            if dest.jobs < tuning.min_jobs_per_block:
                continue
            d = float(distances[j])
            weight = attractiveness(
                dest.jobs, d, tuning.gravity_min_distance, tuning.gravity_exponent
            )
            candidates.append((dest, d, weight))

        total = sum(weight for _, _, weight in candidates)
        if total == 0:
            skipped_isolated += 1
            logger.debug(f"Origin {origin.id}: zero total attractiveness, skipped")
            continue

        for dest, d, weight in candidates:
            if weight <= 0:
                continue
            size = round_half_up(origin_pop * (weight / total))
            if size < tuning.min_flow_size:
                continue
            seconds = d * tuning.travel_seconds_per_meter
            for part in split_flow(size, tuning.split_cap):
                flows.append(
                    Flow(
                        id=str(next(id_sequence)),
                        origin_id=origin.id,
                        dest_id=dest.id,
                        size=part,
                        distance_meters=d,
                        travel_seconds=seconds,
                    )
                )

    logger.info(
        f"Generated {len(flows):,} commute flows from {origins:,} origins "
        f"({_fmt(sum(f.size for f in flows))} commuters)"
    )
    if skipped_isolated:
        logger.info(f"Skipped {skipped_isolated:,} origins with no reachable jobs")
    return flows
