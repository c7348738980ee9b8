"""Configuration management for the demand generator."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from demandgen.log_config import get_logger

logger = get_logger(__name__)

# Option names used by the downstream tooling, mapped to field names.
TUNING_ALIASES: dict[str, str] = {
    "jobRatio": "job_ratio",
    "clusterThresholdMeters": "cluster_threshold_meters",
    "gravityExponent": "gravity_exponent",
    "gravityMinDistance": "gravity_min_distance",
    "localJobBonus": "local_job_bonus",
    "minFlowSize": "min_flow_size",
    "minJobsPerBlock": "min_jobs_per_block",
    "minPopPerBlock": "min_pop_per_block",
    "splitCap": "split_cap",
    "travelSecondsPerMeter": "travel_seconds_per_meter",
}

RECORD_FORMATS = {"generic", "tigerweb"}


@dataclass
class TuningConfig:
    """Tuning parameters for employment estimation, clustering, and flows.

    Attributes:
        job_ratio: Jobs per resident used by the heuristic employment strategies.
        cluster_threshold_meters: Blocks closer than this to a cluster seed join it.
        gravity_exponent: Distance decay exponent (lower favors distant jobs).
        gravity_min_distance: Distance floor in meters for the gravity kernel.
        local_job_bonus: Attractiveness multiplier for jobs in the origin's own cluster.
        min_flow_size: Smallest flow emitted.
        min_jobs_per_block: Clusters with fewer jobs are not flow destinations.
        min_pop_per_block: Clusters with less adjusted population are not origins.
        split_cap: Largest size of a single emitted flow record.
        travel_seconds_per_meter: Linear travel time coefficient.
    """

    job_ratio: float = 0.95
    cluster_threshold_meters: float = 300.0
    gravity_exponent: float = 0.5
    gravity_min_distance: float = 2500.0
    local_job_bonus: float = 0.001
    min_flow_size: int = 5
    min_jobs_per_block: int = 5
    min_pop_per_block: int = 10
    split_cap: int = 400
    travel_seconds_per_meter: float = 0.12

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> TuningConfig:
        """Build tuning parameters from a mapping.

        Accepts both snake_case field names and the camelCase option names in
        ``TUNING_ALIASES``.

        Raises:
            ValueError: On unknown keys, duplicate aliases, or non-numeric values.
        """
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValueError("'tuning' configuration section must be a dictionary")

        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in raw.items():
            name = TUNING_ALIASES.get(str(key), str(key))
            if name not in known:
                raise ValueError(f"Unknown tuning option: '{key}'")
            if name in values:
                raise ValueError(f"Tuning option '{name}' given more than once")
            caster = int if known[name].type in ("int", int) else float
            try:
                values[name] = caster(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"Tuning option '{key}' must be numeric, got {value!r}"
                ) from exc
        return cls(**values)

    def validate(self) -> None:
        """Validate parameter ranges.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if self.job_ratio < 0:
            raise ValueError("tuning.job_ratio must be non-negative")
        if self.cluster_threshold_meters < 0:
            raise ValueError("tuning.cluster_threshold_meters must be non-negative")
        if self.gravity_exponent < 0:
            raise ValueError("tuning.gravity_exponent must be non-negative")
        if self.gravity_min_distance <= 0:
            raise ValueError("tuning.gravity_min_distance must be positive")
        if self.local_job_bonus < 0:
            raise ValueError("tuning.local_job_bonus must be non-negative")
        if self.min_flow_size < 1:
            raise ValueError("tuning.min_flow_size must be at least 1")
        if self.min_jobs_per_block < 0:
            raise ValueError("tuning.min_jobs_per_block must be non-negative")
        if self.min_pop_per_block < 0:
            raise ValueError("tuning.min_pop_per_block must be non-negative")
        if self.split_cap < 1:
            raise ValueError("tuning.split_cap must be at least 1")
        if self.travel_seconds_per_meter < 0:
            raise ValueError("tuning.travel_seconds_per_meter must be non-negative")


@dataclass
class AreaConfig:
    """Input files for one urban area.

    ``jobs`` (workplace job table) and ``buildings`` (OSM building extract) are
    optional; the employment estimator uses whatever is present.
    """

    code: str
    name: str
    blocks: Path
    jobs: Path | None = None
    buildings: Path | None = None
    record_format: str = "generic"

    def __post_init__(self) -> None:
        """Convert string paths to Path objects."""
        self.code = str(self.code)
        self.name = str(self.name)
        self.blocks = Path(self.blocks)
        if self.jobs is not None:
            self.jobs = Path(self.jobs)
        if self.buildings is not None:
            self.buildings = Path(self.buildings)

    def resolve(self, base_dir: Path) -> None:
        """Resolve relative data paths against ``base_dir``."""
        if not self.blocks.is_absolute():
            self.blocks = base_dir / self.blocks
        if self.jobs is not None and not self.jobs.is_absolute():
            self.jobs = base_dir / self.jobs
        if self.buildings is not None and not self.buildings.is_absolute():
            self.buildings = base_dir / self.buildings


@dataclass
class FormattingConfig:
    """JSON formatting for written demand documents.

    ``json_indent=None`` writes compact JSON, which is what the downstream
    consumer ships with.
    """

    json_indent: int | None = None


@dataclass
class OutputConfig:
    """Where and how per-area demand documents are written."""

    directory: Path = Path("processed_data")
    filename: str = "demand_data.json"
    formatting: FormattingConfig = field(default_factory=FormattingConfig)

    def __post_init__(self) -> None:
        self.directory = Path(self.directory)


@dataclass
class DemandConfig:
    """Complete demand generator configuration.

    Aggregates tuning parameters, the list of areas to process, and output
    settings.
    """

    tuning: TuningConfig = field(default_factory=TuningConfig)
    areas: list[AreaConfig] = field(default_factory=list)
    output: OutputConfig = field(default_factory=OutputConfig)
    _source_path: Path | None = None

    @classmethod
    def from_yaml(cls, config_path: Path) -> DemandConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Parsed configuration object. Relative data paths are resolved
            against the configuration file's directory.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            ValueError: If configuration is invalid.
        """
        logger.info(f"Loading configuration from: {config_path}")

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                raw_config = yaml.safe_load(f)

        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in configuration: {e}")
            raise

        if raw_config is None:
            raw_config = {}
        if not isinstance(raw_config, dict):
            raise ValueError("Configuration root must be a mapping")

        cfg = cls._from_dict(raw_config)
        base_dir = Path(config_path).resolve().parent
        for area in cfg.areas:
            area.resolve(base_dir)
        if not cfg.output.directory.is_absolute():
            cfg.output.directory = base_dir / cfg.output.directory
        cfg._source_path = Path(config_path)
        return cfg

    @classmethod
    def _from_dict(cls, config_dict: dict[str, Any]) -> DemandConfig:
        """Create configuration from dictionary.

        Args:
            config_dict: Raw configuration dictionary.

        Returns:
            Parsed configuration object.
        """
        tuning = TuningConfig.from_dict(config_dict.get("tuning"))

        if "areas" not in config_dict:
            raise ValueError("Missing required 'areas' configuration section")
        areas_raw = config_dict["areas"]
        if not isinstance(areas_raw, list):
            raise ValueError("'areas' must be a list of area entries")

        areas: list[AreaConfig] = []
        for entry in areas_raw:
            if not isinstance(entry, dict):
                raise ValueError("Each item in 'areas' must be a dictionary")
            for required in ("code", "blocks"):
                if required not in entry:
                    raise ValueError(f"Each area must include '{required}'")
            record_format = str(entry.get("record_format", "generic")).strip().lower()
            if record_format not in RECORD_FORMATS:
                raise ValueError(
                    f"Area '{entry['code']}': record_format must be one of "
                    f"{sorted(RECORD_FORMATS)}"
                )
            areas.append(
                AreaConfig(
                    code=entry["code"],
                    name=entry.get("name", entry["code"]),
                    blocks=entry["blocks"],
                    jobs=entry.get("jobs"),
                    buildings=entry.get("buildings"),
                    record_format=record_format,
                )
            )

        output_dict = config_dict.get("output", {}) or {}
        if not isinstance(output_dict, dict):
            raise ValueError("'output' configuration section must be a dictionary")
        formatting_dict = output_dict.get("formatting", {}) or {}
        if not isinstance(formatting_dict, dict):
            raise ValueError("'output.formatting' must be a dictionary")
        indent = formatting_dict.get("json_indent")
        if indent is not None:
            try:
                indent = int(indent)
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    "'output.formatting.json_indent' must be an integer or null"
                ) from exc
        output = OutputConfig(
            directory=output_dict.get("directory", "processed_data"),
            filename=str(output_dict.get("filename", "demand_data.json")),
            formatting=FormattingConfig(json_indent=indent),
        )

        cfg = cls(tuning=tuning, areas=areas, output=output)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        """Validate configuration parameters.

        Raises:
            ValueError: If configuration is invalid.
        """
        logger.info("Validating configuration")

        self.tuning.validate()

        codes = [a.code for a in self.areas]
        duplicates = sorted({c for c in codes if codes.count(c) > 1})
        if duplicates:
            raise ValueError(f"Duplicate area codes: {duplicates}")
        for area in self.areas:
            if not area.code.strip():
                raise ValueError("Area code must be non-empty")

        if not self.output.filename.strip():
            raise ValueError("output.filename must be non-empty")

        logger.info("Configuration validation passed")

    def summary(self) -> str:
        """Generate configuration summary string.

        Returns:
            Human-readable configuration summary.
        """
        t = self.tuning
        lines = [
            "DEMAND GENERATOR CONFIGURATION",
            "=" * 60,
            "",
            "EMPLOYMENT",
            "-" * 30,
            f"   Job Ratio: {t.job_ratio}",
            "",
            "AGGREGATION",
            "-" * 30,
            f"   Cluster Threshold: {t.cluster_threshold_meters}m",
            f"   Min Population per Origin: {t.min_pop_per_block}",
            "",
            "GRAVITY MODEL",
            "-" * 30,
            f"   Exponent: {t.gravity_exponent}",
            f"   Min Distance: {t.gravity_min_distance}m",
            f"   Local Job Bonus: {t.local_job_bonus}",
            f"   Min Jobs per Destination: {t.min_jobs_per_block}",
            f"   Min Flow Size: {t.min_flow_size}",
            f"   Split Cap: {t.split_cap}",
            f"   Travel Seconds per Meter: {t.travel_seconds_per_meter}",
            "",
            "AREAS",
            "-" * 30,
        ]
        for area in self.areas:
            lines.append(f"   {area.code}: {area.name} ({area.record_format})")
        if not self.areas:
            lines.append("   (none)")
        lines.extend(
            [
                "",
                "OUTPUT",
                "-" * 30,
                f"   Directory: {self.output.directory}",
                f"   Filename: {self.output.filename}",
                "",
                "=" * 60,
            ]
        )

        return "\n".join(lines)
