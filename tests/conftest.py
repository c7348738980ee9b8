"""Pytest configuration and shared fixtures for demandgen tests."""

import json

import pytest

# Meters per degree of latitude on the haversine sphere.
METERS_PER_DEGREE = 111195.08


def north_of(lat: float, meters: float) -> float:
    """Latitude ``meters`` north of ``lat`` (negative goes south)."""
    return lat + meters / METERS_PER_DEGREE


@pytest.fixture
def sample_records():
    """Small generic-format area with two neighbourhoods 5 km apart."""
    base_lat = 34.42
    far_lat = north_of(base_lat, 5000.0)
    return [
        {"id": "A1", "lon": -119.70, "lat": base_lat, "population": 400, "jobs": 50},
        {"id": "A2", "lon": -119.70, "lat": north_of(base_lat, 100.0), "population": 120, "jobs": 10},
        {"id": "A3", "lon": -119.70, "lat": north_of(base_lat, -150.0), "population": 60},
        {"id": "B1", "lon": -119.70, "lat": far_lat, "population": 30, "jobs": 600},
        {"id": "B2", "lon": -119.70, "lat": north_of(far_lat, 120.0), "population": 0, "jobs": 200},
        {"id": "EMPTY", "lon": -119.70, "lat": north_of(far_lat, 2000.0), "population": 0, "jobs": 0},
    ]


@pytest.fixture
def sample_config(tmp_path, sample_records):
    """Configuration dictionary with one area whose block file exists."""
    blocks_path = tmp_path / "blocks.json"
    blocks_path.write_text(json.dumps(sample_records))
    return {
        "tuning": {
            "jobRatio": 0.95,
            "cluster_threshold_meters": 300,
            "min_flow_size": 5,
        },
        "areas": [
            {"code": "TST", "name": "Test Area", "blocks": "blocks.json"},
        ],
        "output": {
            "directory": "out",
            "filename": "demand_data.json",
        },
    }


@pytest.fixture
def temp_config_file(tmp_path, sample_config):
    """Create a temporary configuration file for testing."""
    import yaml

    config_file = tmp_path / "test_config.yml"
    with open(config_file, "w") as f:
        yaml.dump(sample_config, f, default_flow_style=False, indent=2)
    return config_file


@pytest.fixture
def invalid_config_file(tmp_path):
    """Create an invalid YAML configuration file for testing."""
    config_file = tmp_path / "invalid_config.yml"
    config_file.write_text("invalid: yaml: content: [unclosed")
    return config_file
