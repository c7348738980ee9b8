"""Tests for demand document validation."""

from __future__ import annotations

import copy

from demandgen.validation import validate_demand


def _document() -> dict:
    return {
        "points": [
            {"id": "H", "location": [-119.7, 34.42], "jobs": 0, "residents": 100, "popIds": ["0", "1"]},
            {"id": "W", "location": [-119.6, 34.45], "jobs": 90, "residents": 0, "popIds": ["0", "1"]},
        ],
        "pops": [
            {"id": "0", "residenceId": "H", "jobId": "W", "size": 60, "drivingDistance": 9000, "drivingSeconds": 1080},
            {"id": "1", "residenceId": "H", "jobId": "W", "size": 40, "drivingDistance": 9000, "drivingSeconds": 1080},
        ],
    }


def test_valid_document_has_no_issues() -> None:
    assert validate_demand(_document()) == []
    assert validate_demand(_document(), min_flow_size=40) == []


def test_top_level_shape() -> None:
    issues = validate_demand({"points": {}})
    assert "'points' must be a list" in issues
    assert "'pops' must be a list" in issues


def test_missing_keys_stop_further_checks() -> None:
    doc = _document()
    del doc["pops"][1]["drivingSeconds"]
    issues = validate_demand(doc)
    assert issues == ["pops missing required keys: 1"]


def test_dangling_endpoint() -> None:
    doc = _document()
    doc["pops"][0]["jobId"] = "NOPE"
    issues = validate_demand(doc)
    assert any(i.startswith("pops referencing unknown points: 0") for i in issues)


def test_duplicate_ids() -> None:
    doc = _document()
    doc["points"].append(copy.deepcopy(doc["points"][0]))
    doc["pops"][1]["id"] = "0"
    issues = validate_demand(doc)
    assert "duplicate point ids: H" in issues
    assert "duplicate pop ids: 0" in issues


def test_counts_must_be_non_negative_integers() -> None:
    doc = _document()
    doc["points"][0]["residents"] = 10.5
    doc["points"][1]["jobs"] = True
    doc["pops"][0]["size"] = 0
    doc["pops"][1]["drivingDistance"] = -1
    issues = validate_demand(doc)
    assert "points with non-integer or negative jobs/residents: H, W" in issues
    assert "pops with non-integer, negative, or zero values: 0, 1" in issues


def test_malformed_location() -> None:
    doc = _document()
    doc["points"][0]["location"] = [-119.7]
    issues = validate_demand(doc)
    assert "points with malformed location: H" in issues


def test_min_flow_size() -> None:
    issues = validate_demand(_document(), min_flow_size=50)
    assert "pops smaller than 50: 1" in issues


def test_pop_ids_must_match_pops() -> None:
    doc = _document()
    doc["points"][1]["popIds"] = ["0"]
    issues = validate_demand(doc)
    assert "points whose popIds disagree with pops: W" in issues


def test_issue_examples_are_capped() -> None:
    doc = _document()
    for i in range(15):
        doc["pops"].append(
            {"id": f"x{i}", "residenceId": "H", "jobId": f"gone{i}", "size": 5, "drivingDistance": 1, "drivingSeconds": 0}
        )
        doc["points"][0]["popIds"].append(f"x{i}")
    issues = validate_demand(doc)
    dangling = next(i for i in issues if i.startswith("pops referencing unknown points"))
    assert dangling.endswith("(+5 more)")
