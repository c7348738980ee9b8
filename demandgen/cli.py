"""Command line interface for commuter demand generation."""

from __future__ import annotations

import argparse
import sys
import time
from contextlib import contextmanager
from pathlib import Path

from demandgen.config import DemandConfig
from demandgen.log_config import get_logger

logger = get_logger(__name__)


@contextmanager
def Timer(description: str):
    """Context manager for timing operations with both print and log output.

    Args:
        description: Operation description for timing messages.

    Yields:
        None: Context manager yields nothing.
    """
    print(f"🔄 {description}...")
    logger.info(f"Starting {description}")
    start = time.time()
    try:
        yield
        elapsed = time.time() - start
        print(f"✅ {description} (completed in {elapsed:.1f}s)")
        logger.info(f"Completed {description} in {elapsed:.1f}s")
    except Exception as e:
        elapsed = time.time() - start
        print(f"❌ {description} (failed after {elapsed:.1f}s)")
        logger.error(f"Failed {description} after {elapsed:.1f}s: {e}")
        raise


def _load_config(config_path: Path) -> DemandConfig:
    """Load and validate configuration.

    Args:
        config_path: Path to YAML configuration file.

    Returns:
        Loaded and validated configuration object.

    Raises:
        SystemExit: If configuration loading or validation fails.
    """
    try:
        config = DemandConfig.from_yaml(config_path)
        logger.info(f"Loaded configuration from {config_path}")
        return config
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {config_path}")
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(2)  # Config problem
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"❌ Configuration error: {e}")
        print(f"💡 Check YAML syntax in: {config_path}")
        sys.exit(2)  # Config problem


def build_command(args: argparse.Namespace) -> None:
    """Generate demand documents for every configured area.

    Args:
        args: Parsed command line arguments containing config and output paths.
    """
    from demandgen.pipeline import run_areas

    config_path = Path(args.config)
    config_obj = _load_config(config_path)
    output_dir = Path(args.output) if getattr(args, "output", None) else None

    if not config_obj.areas:
        print("⚠️  No areas configured; nothing to do")
        return

    print("Demand Generation Pipeline")
    print("=" * 50)

    try:
        with Timer(f"Process {len(config_obj.areas)} area(s)"):
            results = run_areas(config_obj, output_dir=output_dir)
    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        print("💡 Use -v for detailed error information")
        sys.exit(1)  # Runtime error

    failed = 0
    for result in results:
        if result.ok and result.stats is not None:
            s = result.stats
            print(f"✓ {result.name} ({result.code}) -> {result.output_path}")
            print(
                f"   Blocks: {s.blocks:,}  Clusters: {s.clusters:,}  "
                f"Population: {s.population:,}  Jobs: {s.jobs:,}  "
                f"Flows: {s.flows:,}  Employment: {s.employment_strategy}"
            )
            for warning in result.warnings:
                print(f"   ⚠️  {warning}")
        else:
            failed += 1
            print(f"✗ {result.name} ({result.code}): {result.error}")

    if failed:
        print(f"❌ {failed} of {len(results)} area(s) failed")
        sys.exit(1)
    print(f"🎉 SUCCESS! Generated demand data for {len(results)} area(s)")


def validate_command(args: argparse.Namespace) -> None:
    """Validate an existing demand document.

    Args:
        args: Parsed command line arguments containing the document path.
    """
    from demandgen.serializer import load_demand_json
    from demandgen.validation import validate_demand

    try:
        document = load_demand_json(Path(args.path))
    except FileNotFoundError as e:
        print(f"❌ File not found: {e}")
        sys.exit(3)
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(3)

    issues = validate_demand(document, min_flow_size=args.min_flow_size)
    if issues:
        print("❌ Demand validation found issues:")
        for issue in issues:
            print(f"   - {issue}")
        sys.exit(3)  # Validation failure
    print(
        f"✅ Demand validation passed ({len(document['points']):,} points, "
        f"{len(document['pops']):,} pops)"
    )


def info_command(args: argparse.Namespace) -> None:
    """Show configuration and data source information.

    Args:
        args: Parsed command line arguments containing config file path.
    """
    config_path = Path(args.config)
    config_obj = _load_config(config_path)

    print(config_obj.summary())

    print("\nData Availability")
    print("=" * 20)
    missing = False
    for area in config_obj.areas:
        print(f"{area.code}:")
        for label, path in (
            ("blocks", area.blocks),
            ("jobs", area.jobs),
            ("buildings", area.buildings),
        ):
            if path is None:
                print(f"   {label}: - (not configured)")
                continue
            status = "✅" if path.exists() else "❌"
            if not path.exists() and label == "blocks":
                missing = True
            print(f"   {label}: {status} {path}")

    if missing:
        print("\n⚠️  Missing block records - download required before generation")


def main() -> None:
    """Parse command line arguments and execute the appropriate subcommand.

    Configures logging, parses CLI arguments, and dispatches to the correct
    command function (build, validate, or info).
    """
    parser = argparse.ArgumentParser(
        prog="demandgen",
        description="Generate synthetic commuter demand (nodes and flows) from small-area population and employment data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console output (logs only)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Build command
    build_parser = subparsers.add_parser(
        "build", help="Generate demand data for every configured area"
    )
    build_parser.add_argument(
        "config",
        nargs="?",
        default="config.yml",
        help="Configuration file path (default: config.yml)",
    )
    build_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output directory. Defaults to output.directory from the configuration.",
    )
    build_parser.set_defaults(func=build_command)

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Check a demand_data.json document for consistency"
    )
    validate_parser.add_argument("path", help="Demand document to validate")
    validate_parser.add_argument(
        "--min-flow-size",
        type=int,
        default=None,
        help="Also require every pop to be at least this size",
    )
    validate_parser.set_defaults(func=validate_command)

    # Info command
    info_parser = subparsers.add_parser(
        "info", help="Show configuration and data source information"
    )
    info_parser.add_argument(
        "config",
        nargs="?",
        default="config.yml",
        help="Configuration file path (default: config.yml)",
    )
    info_parser.set_defaults(func=info_command)

    # Parse arguments and dispatch
    args = parser.parse_args()

    # Configure logging based on arguments
    import logging

    from demandgen.log_config import set_global_log_level

    if args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    set_global_log_level(log_level)

    # Suppress print output if --quiet is set
    if args.quiet:
        import builtins

        builtins.print = lambda *args, **kwargs: None

    if not hasattr(args, "func") or args.func is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
