"""Block ingestion and active-set filtering.

Normalizes raw small-area records (census blocks or any equivalent spatial
unit) into ``Block`` values. Malformed records are dropped and logged rather
than failing the whole area.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from demandgen.errors import NoActiveData
from demandgen.geo_utils import is_valid_lonlat
from demandgen.log_config import get_logger

logger = get_logger(__name__)

# Tags for synthetic special-purpose demand nodes.
SPECIAL_KINDS = {"airport_terminal", "university"}


@dataclass(frozen=True)
class Block:
    """Smallest spatial unit carrying population and jobs.

    Attributes:
        id: Identifier from the source record (e.g., a 15-digit census GEOID).
        centroid: ``(lon, lat)`` internal point.
        population: Resident count.
        jobs: Job count written by the employment estimator.
        reported_jobs: Job count carried on the raw record, if any.
        kind: Optional special-purpose tag (see ``SPECIAL_KINDS``).
    """

    id: str
    centroid: tuple[float, float]
    population: int
    jobs: int = 0
    reported_jobs: int | None = None
    kind: str | None = None

    @property
    def is_active(self) -> bool:
        """True when the block has residents or jobs."""
        return self.population > 0 or self.jobs > 0


@dataclass(frozen=True)
class RecordFields:
    """Names of the raw record fields read by ``ingest_blocks``."""

    id: str = "id"
    lon: str = "lon"
    lat: str = "lat"
    population: str = "population"
    jobs: str | None = "jobs"
    kind: str | None = "kind"


GENERIC_FIELDS = RecordFields()
TIGERWEB_FIELDS = RecordFields(
    id="GEOID",
    lon="INTPTLON",
    lat="INTPTLAT",
    population="POP100",
    jobs=None,
    kind=None,
)

RECORD_FIELDS_BY_FORMAT: dict[str, RecordFields] = {
    "generic": GENERIC_FIELDS,
    "tigerweb": TIGERWEB_FIELDS,
}


def _to_float(value: Any) -> float | None:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result


def _to_count(value: Any) -> int | None:
    """Parse a non-negative integer count; None when invalid."""
    number = _to_float(value)
    if number is None or not math.isfinite(number) or number < 0:
        return None
    return int(number)


def ingest_blocks(
    records: Iterable[Mapping[str, Any]],
    fields: RecordFields = GENERIC_FIELDS,
) -> list[Block]:
    """Convert raw records into Blocks.

    Records with a missing identifier, non-numeric or out-of-range
    coordinates, or an invalid population are dropped with a warning. A
    missing population counts as 0. Blocks are not deduplicated by location;
    when an identifier repeats, the later record replaces the earlier one and
    takes its position in ingestion order.

    Args:
        records: Raw records as mappings.
        fields: Field names to read from each record.

    Returns:
        Blocks in ingestion order.
    """
    blocks: dict[str, Block] = {}
    total = 0
    dropped = 0
    duplicates = 0

    for record in records:
        total += 1
        raw_id = record.get(fields.id)
        if raw_id is None or str(raw_id).strip() == "":
            dropped += 1
            logger.warning(f"Dropping record #{total}: missing '{fields.id}'")
            continue
        block_id = str(raw_id).strip()

        lon = _to_float(record.get(fields.lon))
        lat = _to_float(record.get(fields.lat))
        if lon is None or lat is None or not is_valid_lonlat(lon, lat):
            dropped += 1
            logger.warning(
                f"Dropping block {block_id}: invalid coordinates "
                f"({record.get(fields.lon)!r}, {record.get(fields.lat)!r})"
            )
            continue

        raw_pop = record.get(fields.population)
        if raw_pop is None or raw_pop == "":
            population = 0
        else:
            parsed = _to_count(raw_pop)
            if parsed is None:
                dropped += 1
                logger.warning(
                    f"Dropping block {block_id}: invalid population {raw_pop!r}"
                )
                continue
            population = parsed

        reported_jobs = None
        if fields.jobs is not None:
            raw_jobs = record.get(fields.jobs)
            if raw_jobs is not None and raw_jobs != "":
                reported_jobs = _to_count(raw_jobs)
                if reported_jobs is None:
                    logger.warning(
                        f"Ignoring invalid job count {raw_jobs!r} for block {block_id}"
                    )

        kind = None
        if fields.kind is not None:
            raw_kind = record.get(fields.kind)
            if raw_kind:
                kind = str(raw_kind).strip().lower()
                if kind not in SPECIAL_KINDS:
                    logger.debug(f"Ignoring unknown kind {raw_kind!r} for block {block_id}")
                    kind = None

        if block_id in blocks:
            duplicates += 1
            del blocks[block_id]
        blocks[block_id] = Block(
            id=block_id,
            centroid=(lon, lat),
            population=population,
            reported_jobs=reported_jobs,
            kind=kind,
        )

    logger.info(
        f"Ingested {len(blocks):,} blocks from {total:,} records "
        f"({dropped:,} dropped, {duplicates:,} duplicate ids replaced)"
    )
    return list(blocks.values())


def load_block_records(path: Path) -> list[dict[str, Any]]:
    """Read raw block records from a JSON file.

    Accepts either a plain list of records or an ArcGIS query response of the
    form ``{"features": [{"attributes": {...}}, ...]}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document has neither shape.
    """
    if not path.exists():
        raise FileNotFoundError(f"Block records file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        records = data
    elif isinstance(data, dict) and isinstance(data.get("features"), list):
        records = [
            feat.get("attributes", feat) if isinstance(feat, dict) else feat
            for feat in data["features"]
        ]
    else:
        raise ValueError(
            f"Unrecognized block records document in {path}: expected a list "
            "or an object with a 'features' list"
        )

    valid = [r for r in records if isinstance(r, dict)]
    if len(valid) != len(records):
        logger.warning(
            f"Skipping {len(records) - len(valid):,} non-object entries in {path}"
        )
    logger.info(f"Loaded {len(valid):,} block records from {path}")
    return valid


def filter_active_blocks(blocks: list[Block]) -> list[Block]:
    """Drop blocks with neither population nor jobs.

    Raises:
        NoActiveData: If no block remains.
    """
    active = [b for b in blocks if b.is_active]
    logger.info(f"Filtered to {len(active):,} active blocks (from {len(blocks):,} total)")
    if not active:
        raise NoActiveData("No populated or employed blocks found")
    return active
