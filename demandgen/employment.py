"""Employment estimation strategies.

Assigns a job count to every Block through one of three interchangeable
strategies, tried in order of data availability:

- ``ExactDataStrategy``: copy counts from a workplace job table keyed by the
  same block identifiers (e.g., LODES workplace area characteristics).
- ``CapacityHeuristicStrategy``: spread ``total_population * job_ratio`` jobs
  over commercial buildings in proportion to their estimated job capacity,
  then credit each building's share to its nearest block.
- ``UniformHeuristicStrategy``: ``round(population * job_ratio)`` per block.

A strategy that cannot serve an area raises ``DataUnavailable`` and the
estimator moves on to the next one.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd
from shapely.geometry import Polygon

from demandgen.blocks import Block
from demandgen.errors import DataUnavailable
from demandgen.geo_utils import (
    SQUARE_FEET_PER_SQUARE_METER,
    NearestIndex,
    bounds_area_sqft,
    geodesic_area_m2,
    is_valid_lonlat,
)
from demandgen.log_config import get_logger
from demandgen.utils import _fmt, round_half_up

if TYPE_CHECKING:
    from demandgen.config import TuningConfig

logger = get_logger(__name__)

# Floor area in square feet per job for job-bearing OSM ``building=*`` types.
# Religious and sports venues are treated as destinations people travel to,
# not only as workplaces.
SQUARE_FEET_PER_JOB: dict[str, float] = {
    "commercial": 150,
    "industrial": 500,
    "kiosk": 50,
    "office": 150,
    "retail": 300,
    "supermarket": 300,
    "warehouse": 500,
    "religious": 100,
    "cathedral": 100,
    "chapel": 100,
    "church": 100,
    "kingdom_hall": 100,
    "monastery": 100,
    "mosque": 100,
    "presbytery": 100,
    "shrine": 100,
    "synagogue": 100,
    "temple": 100,
    "bakehouse": 300,
    "college": 250,
    "fire_station": 500,
    "government": 150,
    "gatehouse": 150,
    "hospital": 150,
    "kindergarten": 100,
    "museum": 300,
    "public": 300,
    "school": 100,
    "train_station": 1000,
    "transportation": 1000,
    "university": 250,
    "grandstand": 150,
    "pavilion": 150,
    "riding_hall": 150,
    "sports_hall": 150,
    "sports_centre": 150,
    "stadium": 150,
}

# Airport terminals draw far more trips than their floor area suggests.
TERMINAL_JOB_MULTIPLIER = 20.0


@dataclass(frozen=True)
class Building:
    """Job-bearing building reduced to a centroid and a capacity weight."""

    centroid: tuple[float, float]
    capacity: float
    building_type: str = ""


def building_capacity(
    floor_area_sqft: float,
    building_type: str,
    levels: int = 1,
    is_terminal: bool = False,
) -> float:
    """Estimate how many jobs a building can hold.

    Args:
        floor_area_sqft: Footprint area in square feet.
        building_type: OSM ``building`` tag value; must be in ``SQUARE_FEET_PER_JOB``.
        levels: Number of floors (values below 1 count as 1).
        is_terminal: Whether the building is an airport terminal.

    Returns:
        Capacity weight, at least 1 (times the terminal multiplier when set).

    Raises:
        KeyError: If ``building_type`` is not a job-bearing type.
    """
    sqft_per_job = SQUARE_FEET_PER_JOB[building_type]
    capacity = max(floor_area_sqft * max(int(levels), 1) / sqft_per_job, 1.0)
    if is_terminal:
        capacity *= TERMINAL_JOB_MULTIPLIER
    return capacity


def _parse_levels(raw: Any) -> int:
    try:
        levels = int(float(raw))
    except (TypeError, ValueError):
        return 1
    return max(levels, 1)


def _element_to_building(element: Mapping[str, Any]) -> Building | None:
    """Convert one OSM Overpass element to a Building, or None if unusable."""
    tags = element.get("tags") or {}
    if not isinstance(tags, Mapping):
        return None
    building_type = tags.get("building")
    if building_type not in SQUARE_FEET_PER_JOB:
        return None

    area_sqft = 0.0
    centroid: tuple[float, float] | None = None

    geometry = element.get("geometry") or []
    try:
        coords = [
            (float(p["lon"]), float(p["lat"]))
            for p in geometry
            if isinstance(p, dict) and "lon" in p and "lat" in p
        ]
    except (TypeError, ValueError):
        logger.debug(f"Skipping building element {element.get('id')}: invalid geometry")
        return None
    if not all(is_valid_lonlat(lon, lat) for lon, lat in coords):
        logger.debug(f"Skipping building element {element.get('id')}: coordinates out of range")
        return None
    bounds = element.get("bounds")
    if element.get("type") == "way" and len(coords) >= 3:
        if coords[0] != coords[-1]:
            coords.append(coords[0])
        polygon = Polygon(coords)
        area_sqft = geodesic_area_m2(polygon) * SQUARE_FEET_PER_SQUARE_METER
        point = polygon.centroid
        if point.is_empty:
            ring = coords[:-1]
            centroid = (
                sum(c[0] for c in ring) / len(ring),
                sum(c[1] for c in ring) / len(ring),
            )
        else:
            centroid = (point.x, point.y)
    elif isinstance(bounds, dict):
        try:
            min_lon = float(bounds["minlon"])
            min_lat = float(bounds["minlat"])
            max_lon = float(bounds["maxlon"])
            max_lat = float(bounds["maxlat"])
        except (KeyError, TypeError, ValueError):
            return None
        if not (
            is_valid_lonlat(min_lon, min_lat) and is_valid_lonlat(max_lon, max_lat)
        ):
            return None
        area_sqft = bounds_area_sqft(min_lon, min_lat, max_lon, max_lat)
        centroid = ((min_lon + max_lon) / 2.0, (min_lat + max_lat) / 2.0)

    if centroid is None:
        return None

    capacity = building_capacity(
        area_sqft,
        building_type,
        levels=_parse_levels(tags.get("building:levels")),
        is_terminal=tags.get("aeroway") == "terminal",
    )
    return Building(centroid=centroid, capacity=capacity, building_type=building_type)


def buildings_from_elements(elements: Iterable[Mapping[str, Any]]) -> list[Building]:
    """Return job-bearing Buildings from OSM Overpass elements."""
    buildings: list[Building] = []
    skipped = 0
    for element in elements:
        if not isinstance(element, Mapping):
            skipped += 1
            continue
        try:
            building = _element_to_building(element)
        except (TypeError, ValueError) as exc:
            skipped += 1
            logger.debug(f"Skipping building element {element.get('id')}: {exc}")
            continue
        if building is not None:
            buildings.append(building)
    if skipped:
        logger.warning(f"Skipped {skipped:,} malformed building elements")
    return buildings


def load_buildings(path: Path) -> list[Building]:
    """Load job-bearing buildings from an OSM Overpass JSON extract.

    Accepts either a bare list of elements or an Overpass response object
    with an ``elements`` list.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document has neither shape.
    """
    if not path.exists():
        raise FileNotFoundError(f"Buildings file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict) and isinstance(data.get("elements"), list):
        elements = data["elements"]
    elif isinstance(data, list):
        elements = data
    else:
        raise ValueError(f"Unrecognized buildings document in {path}")

    buildings = buildings_from_elements(elements)
    logger.info(
        f"Loaded {len(buildings):,} job-bearing buildings from {len(elements):,} elements"
    )
    return buildings


def load_workplace_jobs(
    path: Path, block_ids: Iterable[str] | None = None
) -> dict[str, int]:
    """Load total jobs per block from a workplace area characteristics table.

    The table is a CSV (optionally gzip-compressed) with a ``w_geocode``
    block identifier column and a ``C000`` total-jobs column.

    Args:
        path: CSV or CSV.gz file.
        block_ids: If given, keep only these block identifiers.

    Returns:
        Mapping of block id to job count, blocks with zero jobs omitted.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If required columns are missing.
    """
    if not path.exists():
        raise FileNotFoundError(f"Workplace jobs file not found: {path}")

    logger.info(f"Parsing workplace jobs from: {path}")
    try:
        df = pd.read_csv(
            path,
            usecols=["w_geocode", "C000"],
            dtype={"w_geocode": str},
            compression="infer",
        )
    except ValueError as exc:
        raise ValueError(
            f"Workplace jobs file {path} must have 'w_geocode' and 'C000' columns"
        ) from exc

    df["C000"] = pd.to_numeric(df["C000"], errors="coerce").fillna(0)
    df["w_geocode"] = df["w_geocode"].str.strip()
    if block_ids is not None:
        df = df[df["w_geocode"].isin(set(block_ids))]
    df = df[df["C000"] > 0]

    totals = df.groupby("w_geocode", sort=False)["C000"].sum()
    jobs = {str(block_id): int(count) for block_id, count in totals.items()}
    logger.info(
        f"Found {_fmt(sum(jobs.values()))} jobs across {len(jobs):,} blocks in workplace data"
    )
    return jobs


class EmploymentStrategy(ABC):
    """Capability interface for assigning jobs to blocks."""

    name: str = "abstract"

    @abstractmethod
    def estimate(self, blocks: Sequence[Block], tuning: TuningConfig) -> dict[str, int]:
        """Return a job count for every block id.

        Raises:
            DataUnavailable: If this strategy has no usable data for the area.
        """


class ExactDataStrategy(EmploymentStrategy):
    """Copy job counts from an external table keyed by block id."""

    name = "exact"

    def __init__(self, jobs_by_block: Mapping[str, int] | None) -> None:
        self.jobs_by_block = dict(jobs_by_block or {})

    @classmethod
    def from_blocks(cls, blocks: Sequence[Block]) -> ExactDataStrategy:
        """Use job counts reported on the input records themselves."""
        return cls(
            {b.id: b.reported_jobs for b in blocks if b.reported_jobs is not None}
        )

    def estimate(self, blocks: Sequence[Block], tuning: TuningConfig) -> dict[str, int]:
        if not self.jobs_by_block:
            raise DataUnavailable("No workplace job data available for this area")

        covered = sum(1 for b in blocks if b.id in self.jobs_by_block)
        if covered == 0:
            raise DataUnavailable("Workplace job data does not cover any block in this area")

        jobs = {b.id: max(int(self.jobs_by_block.get(b.id, 0)), 0) for b in blocks}
        total = sum(jobs.values())
        if total == 0:
            raise DataUnavailable("Workplace job data reports 0 jobs for this area")

        logger.info(
            f"Exact employment: {_fmt(total)} jobs, {covered:,}/{len(blocks):,} blocks covered"
        )
        return jobs


class CapacityHeuristicStrategy(EmploymentStrategy):
    """Distribute a target job total over buildings by capacity."""

    name = "capacity"

    def __init__(self, buildings: Sequence[Building] | None) -> None:
        self.buildings = list(buildings or [])

    def estimate(self, blocks: Sequence[Block], tuning: TuningConfig) -> dict[str, int]:
        if not self.buildings:
            raise DataUnavailable("No building footprint data available for this area")
        if not blocks:
            return {}

        total_population = sum(b.population for b in blocks)
        target_total = total_population * tuning.job_ratio
        total_capacity = sum(b.capacity for b in self.buildings)
        if total_capacity <= 0:
            raise DataUnavailable("Building footprint data has no job capacity")

        index = NearestIndex([b.centroid for b in blocks])
        allocated = [0.0] * len(blocks)
        for building in self.buildings:
            share = building.capacity / total_capacity * target_total
            allocated[index.nearest(building.centroid)] += share

        jobs = {b.id: round_half_up(allocated[i]) for i, b in enumerate(blocks)}
        receiving = sum(1 for v in allocated if v > 0)
        logger.info(
            f"Capacity heuristic: {_fmt(target_total)} target jobs over "
            f"{len(self.buildings):,} buildings into {receiving:,} blocks"
        )
        return jobs


class UniformHeuristicStrategy(EmploymentStrategy):
    """Jobs proportional to each block's own population."""

    name = "uniform"

    def estimate(self, blocks: Sequence[Block], tuning: TuningConfig) -> dict[str, int]:
        jobs = {b.id: round_half_up(b.population * tuning.job_ratio) for b in blocks}
        logger.info(
            f"Uniform heuristic: {_fmt(sum(jobs.values()))} jobs at ratio {tuning.job_ratio}"
        )
        return jobs


def default_strategies(
    blocks: Sequence[Block],
    jobs_by_block: Mapping[str, int] | None = None,
    buildings: Sequence[Building] | None = None,
) -> list[EmploymentStrategy]:
    """Return the strategy chain in order of preference.

    Exact data comes from ``jobs_by_block`` when given, otherwise from job
    counts reported on the blocks.
    """
    if jobs_by_block is not None:
        exact = ExactDataStrategy(jobs_by_block)
    else:
        exact = ExactDataStrategy.from_blocks(blocks)
    return [exact, CapacityHeuristicStrategy(buildings), UniformHeuristicStrategy()]


def estimate_employment(
    blocks: Sequence[Block],
    strategies: Sequence[EmploymentStrategy],
    tuning: TuningConfig,
) -> tuple[list[Block], str]:
    """Assign jobs to blocks using the first strategy that has data.

    Args:
        blocks: Ingested blocks.
        strategies: Strategies in order of preference.
        tuning: Tuning parameters (``job_ratio``).

    Returns:
        Tuple of (blocks with ``jobs`` set, name of the strategy used).

    Raises:
        DataUnavailable: If every strategy declines.
    """
    logger.info("Estimating employment data")
    for strategy in strategies:
        try:
            jobs = strategy.estimate(blocks, tuning)
        except DataUnavailable as exc:
            logger.warning(f"Employment strategy '{strategy.name}' unavailable: {exc}")
            continue

        total = sum(jobs.get(b.id, 0) for b in blocks)
        if total == 0:
            logger.warning(
                f"Employment strategy '{strategy.name}' produced 0 jobs; "
                "continuing with zero employment"
            )
        estimated = [replace(b, jobs=int(jobs.get(b.id, 0))) for b in blocks]
        logger.info(f"Employment estimated with '{strategy.name}': {_fmt(total)} jobs")
        return estimated, strategy.name

    raise DataUnavailable("No employment strategy could serve this area")
