"""End-to-end demand pipeline for one area and for a multi-area run.

Stages, in order: ingest blocks, estimate employment, drop inactive blocks,
aggregate into clusters, merge low-population clusters, synthesize flows,
assemble the demand model. Every collection is local to one call; the only
state shared between areas is what the caller passes in explicitly.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from demandgen.blocks import (
    RECORD_FIELDS_BY_FORMAT,
    GENERIC_FIELDS,
    RecordFields,
    filter_active_blocks,
    ingest_blocks,
    load_block_records,
)
from demandgen.clusters import aggregate_blocks, merge_low_population
from demandgen.config import AreaConfig, DemandConfig, TuningConfig
from demandgen.employment import (
    Building,
    default_strategies,
    estimate_employment,
    load_buildings,
    load_workplace_jobs,
)
from demandgen.errors import DemandGenError
from demandgen.flows import synthesize_flows
from demandgen.log_config import get_logger
from demandgen.serializer import (
    DemandModel,
    SpecialNodeCounters,
    build_demand_model,
    save_demand_json,
)
from demandgen.utils import _fmt

logger = get_logger(__name__)

# Read failures of optional employment inputs (missing, corrupt, truncated).
_OPTIONAL_INPUT_ERRORS = (OSError, ValueError, EOFError)


@dataclass
class AreaInputs:
    """In-memory inputs for one area."""

    code: str
    name: str
    records: Sequence[Mapping[str, Any]]
    fields: RecordFields = GENERIC_FIELDS
    jobs_by_block: Mapping[str, int] | None = None
    buildings: Sequence[Building] | None = None
    load_warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AreaStats:
    """Summary counts for one processed area."""

    blocks: int
    active_blocks: int
    clusters: int
    population: int
    jobs: int
    flows: int
    commuters: int
    employment_strategy: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "blocks": self.blocks,
            "active_blocks": self.active_blocks,
            "clusters": self.clusters,
            "population": self.population,
            "jobs": self.jobs,
            "flows": self.flows,
            "commuters": self.commuters,
            "employment_strategy": self.employment_strategy,
        }


@dataclass(frozen=True)
class AreaDemand:
    """Demand model for one area plus its summary counts."""

    model: DemandModel
    stats: AreaStats


@dataclass
class AreaResult:
    """Outcome of one area in a multi-area run."""

    code: str
    name: str
    ok: bool
    output_path: Path | None = None
    stats: AreaStats | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def build_area_demand(
    inputs: AreaInputs,
    tuning: TuningConfig,
    counters: SpecialNodeCounters | None = None,
) -> AreaDemand:
    """Run the full pipeline for one area.

    Args:
        inputs: Raw records and optional employment data.
        tuning: Tuning parameters.
        counters: Special node label sequences, shared across areas by the
            caller if labels must be unique run-wide.

    Returns:
        Demand model and summary counts.

    Raises:
        NoActiveData: If no block has population or jobs.
        DataUnavailable: If no employment strategy can serve the area.
    """
    logger.info(f"Processing {inputs.name} ({inputs.code})")

    blocks = ingest_blocks(inputs.records, inputs.fields)
    strategies = default_strategies(blocks, inputs.jobs_by_block, inputs.buildings)
    blocks, strategy_name = estimate_employment(blocks, strategies, tuning)

    active = filter_active_blocks(blocks)
    clusters = aggregate_blocks(active, tuning.cluster_threshold_meters)
    adjusted = merge_low_population(clusters, tuning.min_pop_per_block)
    flows = synthesize_flows(clusters, adjusted, tuning)
    model = build_demand_model(clusters, flows, counters)

    stats = AreaStats(
        blocks=len(blocks),
        active_blocks=len(active),
        clusters=len(clusters),
        population=sum(c.population for c in clusters),
        jobs=sum(c.jobs for c in clusters),
        flows=len(flows),
        commuters=sum(f.size for f in flows),
        employment_strategy=strategy_name,
    )
    logger.info(
        f"Finished {inputs.name}: {stats.blocks:,} blocks, {stats.clusters:,} clusters, "
        f"population {_fmt(stats.population)}, jobs {_fmt(stats.jobs)}, "
        f"{stats.flows:,} flows"
    )
    return AreaDemand(model=model, stats=stats)


def load_area_inputs(area: AreaConfig) -> AreaInputs:
    """Read an area's input files into memory.

    Only the block records are required. A workplace jobs table or buildings
    extract that cannot be read is logged and left out, so employment
    estimation falls through to the next strategy.

    Raises:
        FileNotFoundError: If the block records file is missing.
        ValueError: If the block records cannot be parsed.
    """
    records = load_block_records(area.blocks)
    fields = RECORD_FIELDS_BY_FORMAT[area.record_format]
    load_warnings: list[str] = []

    jobs_by_block = None
    if area.jobs is not None:
        block_ids = {str(r.get(fields.id)).strip() for r in records if r.get(fields.id)}
        try:
            jobs_by_block = load_workplace_jobs(area.jobs, block_ids)
        except _OPTIONAL_INPUT_ERRORS as e:
            logger.warning(f"{area.code}: ignoring workplace jobs {area.jobs}: {e}")
            load_warnings.append(f"workplace jobs unavailable: {e}")

    buildings = None
    if area.buildings is not None:
        try:
            buildings = load_buildings(area.buildings)
        except _OPTIONAL_INPUT_ERRORS as e:
            logger.warning(f"{area.code}: ignoring buildings {area.buildings}: {e}")
            load_warnings.append(f"buildings unavailable: {e}")

    return AreaInputs(
        code=area.code,
        name=area.name,
        records=records,
        fields=fields,
        jobs_by_block=jobs_by_block,
        buildings=buildings,
        load_warnings=load_warnings,
    )


def run_areas(
    config: DemandConfig,
    output_dir: Path | None = None,
    counters: SpecialNodeCounters | None = None,
) -> list[AreaResult]:
    """Process every configured area, isolating failures per area.

    Each successful area is written to ``<output_dir>/<code>/<filename>``.

    Args:
        config: Loaded configuration.
        output_dir: Overrides ``config.output.directory`` when given.
        counters: Special node label sequences shared by all areas. Defaults
            to one fresh set for the run.

    Returns:
        One result per configured area, in configuration order.
    """
    base_dir = Path(output_dir) if output_dir is not None else config.output.directory
    if counters is None:
        counters = SpecialNodeCounters()

    results: list[AreaResult] = []
    for area in config.areas:
        try:
            inputs = load_area_inputs(area)
            demand = build_area_demand(inputs, config.tuning, counters)
            out_path = base_dir / area.code / config.output.filename
            save_demand_json(demand.model, out_path, config.output.formatting)
        except (DemandGenError, FileNotFoundError, ValueError, OSError) as e:
            logger.error(f"Error processing {area.name} ({area.code}): {e}")
            results.append(
                AreaResult(code=area.code, name=area.name, ok=False, error=str(e))
            )
            continue
        except Exception as e:
            logger.exception(f"Unexpected error processing {area.name} ({area.code})")
            results.append(
                AreaResult(
                    code=area.code,
                    name=area.name,
                    ok=False,
                    error=f"{type(e).__name__}: {e}",
                )
            )
            continue

        result = AreaResult(
            code=area.code,
            name=area.name,
            ok=True,
            output_path=out_path,
            stats=demand.stats,
        )
        result.warnings.extend(inputs.load_warnings)
        if demand.stats.jobs == 0:
            result.warnings.append("area has zero employment")
        if demand.stats.flows == 0:
            result.warnings.append("no commute flows generated")
        results.append(result)

    ok = sum(1 for r in results if r.ok)
    logger.info(f"Processed {len(results)} areas: {ok} succeeded, {len(results) - ok} failed")
    return results
