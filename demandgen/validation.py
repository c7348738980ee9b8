"""Validation of published demand documents.

Checks the structural invariants a downstream consumer relies on. Returns a
list of human-readable issues instead of raising, so callers can report all
problems at once.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from demandgen.log_config import get_logger

logger = get_logger(__name__)

POINT_KEYS = ("id", "location", "jobs", "residents", "popIds")
POP_KEYS = ("id", "residenceId", "jobId", "size", "drivingDistance", "drivingSeconds")

# Cap the number of per-entry issues reported for a single rule.
_MAX_EXAMPLES = 10


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _report(issues: list[str], rule: str, offenders: list[str]) -> None:
    if not offenders:
        return
    shown = ", ".join(offenders[:_MAX_EXAMPLES])
    more = len(offenders) - _MAX_EXAMPLES
    suffix = f" (+{more} more)" if more > 0 else ""
    issues.append(f"{rule}: {shown}{suffix}")


def validate_demand(
    document: dict[str, Any], min_flow_size: int | None = None
) -> list[str]:
    """Validate a demand document.

    Args:
        document: Parsed ``{"points": [...], "pops": [...]}`` document.
        min_flow_size: If given, every pop must be at least this size.

    Returns:
        List of issue strings; empty when the document is valid.
    """
    issues: list[str] = []
    points = document.get("points")
    pops = document.get("pops")
    if not isinstance(points, list):
        issues.append("'points' must be a list")
    if not isinstance(pops, list):
        issues.append("'pops' must be a list")
    if issues:
        return issues

    malformed_points = [
        str(i)
        for i, p in enumerate(points)
        if not isinstance(p, dict) or any(k not in p for k in POINT_KEYS)
    ]
    malformed_pops = [
        str(i)
        for i, p in enumerate(pops)
        if not isinstance(p, dict) or any(k not in p for k in POP_KEYS)
    ]
    _report(issues, "points missing required keys", malformed_points)
    _report(issues, "pops missing required keys", malformed_pops)
    if issues:
        return issues

    node_ids = Counter(str(p["id"]) for p in points)
    pop_ids = Counter(str(p["id"]) for p in pops)
    _report(issues, "duplicate point ids", sorted(k for k, n in node_ids.items() if n > 1))
    _report(issues, "duplicate pop ids", sorted(k for k, n in pop_ids.items() if n > 1))

    bad_counts = [
        str(p["id"])
        for p in points
        if not (_is_count(p["jobs"]) and _is_count(p["residents"]))
    ]
    _report(issues, "points with non-integer or negative jobs/residents", bad_counts)

    bad_location = [
        str(p["id"])
        for p in points
        if not (
            isinstance(p["location"], list)
            and len(p["location"]) == 2
            and all(isinstance(v, (int, float)) for v in p["location"])
        )
    ]
    _report(issues, "points with malformed location", bad_location)

    dangling = [
        str(p["id"])
        for p in pops
        if str(p["residenceId"]) not in node_ids or str(p["jobId"]) not in node_ids
    ]
    _report(issues, "pops referencing unknown points", dangling)

    bad_numbers = [
        str(p["id"])
        for p in pops
        if not (
            _is_count(p["size"])
            and p["size"] > 0
            and _is_count(p["drivingDistance"])
            and _is_count(p["drivingSeconds"])
        )
    ]
    _report(issues, "pops with non-integer, negative, or zero values", bad_numbers)

    if min_flow_size is not None:
        small = [
            str(p["id"])
            for p in pops
            if isinstance(p["size"], int) and p["size"] < min_flow_size
        ]
        _report(issues, f"pops smaller than {min_flow_size}", small)

    expected: dict[str, set[str]] = {node_id: set() for node_id in node_ids}
    for p in pops:
        for end in (str(p["residenceId"]), str(p["jobId"])):
            if end in expected:
                expected[end].add(str(p["id"]))
    inconsistent = [
        str(p["id"])
        for p in points
        if set(map(str, p["popIds"])) != expected.get(str(p["id"]), set())
    ]
    _report(issues, "points whose popIds disagree with pops", inconsistent)

    if issues:
        logger.warning(f"Demand validation found {len(issues)} issue(s)")
    else:
        logger.info(
            f"Demand validation passed ({len(points):,} points, {len(pops):,} pops)"
        )
    return issues
