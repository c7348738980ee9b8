"""Functional tests for gravity-model flow synthesis.

These tests validate the math of the gravity kernel, flow splitting, and
the per-origin allocation by calling ``demandgen.flows`` directly.
"""

from __future__ import annotations

import itertools
import math
from collections import defaultdict

import pytest

from demandgen.clusters import Cluster
from demandgen.config import TuningConfig
from demandgen.flows import attractiveness, split_flow, synthesize_flows

METERS_PER_DEGREE = 111195.08


def _cluster(cluster_id: str, meters_north: float, population: int, jobs: int) -> Cluster:
    return Cluster(
        id=cluster_id,
        centroid=(0.0, meters_north / METERS_PER_DEGREE),
        population=population,
        jobs=jobs,
        member_ids=[cluster_id],
    )


def _adjusted(clusters: list[Cluster]) -> dict[str, int]:
    return {c.id: c.population for c in clusters}


def _size_by_dest(flows) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for f in flows:
        totals[f.dest_id] += f.size
    return dict(totals)


def test_attractiveness_kernel() -> None:
    assert attractiveness(100, 1000.0, 2500.0, 0.5) == pytest.approx(2.0)
    assert attractiveness(400, 2000.0, 2500.0, 0.5) == pytest.approx(8.0)
    assert attractiveness(400, 4000.0, 2500.0, 0.5) == pytest.approx(400 / math.sqrt(4000))
    assert attractiveness(10, 5000.0, 2500.0, 0.0) == pytest.approx(10.0)


def test_attractiveness_decreases_with_distance() -> None:
    values = [attractiveness(100, d, 1.0, 0.5) for d in (3000.0, 4000.0, 5000.0)]
    assert values[0] > values[1] > values[2]
    floored = [attractiveness(100, d, 2500.0, 0.5) for d in (0.0, 100.0, 2500.0)]
    assert floored[0] == floored[1] == floored[2]


@pytest.mark.parametrize(
    "size, cap, expected",
    [
        (850, 400, [283, 283, 283]),
        (400, 400, [400]),
        (401, 400, [201, 201]),
        (1200, 400, [400, 400, 400]),
        (5, 1, [1, 1, 1, 1, 1]),
        (0, 400, []),
    ],
)
def test_split_flow(size: int, cap: int, expected: list[int]) -> None:
    assert split_flow(size, cap) == expected


def test_flows_follow_job_ratio_within_distance_floor() -> None:
    clusters = [
        _cluster("O", 0.0, 1000, 0),
        _cluster("A", 1000.0, 0, 100),
        _cluster("B", -2000.0, 0, 400),
    ]
    flows = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    totals = _size_by_dest(flows)
    assert totals == {"A": 200, "B": 800}
    assert totals["B"] == 4 * totals["A"]
    assert all(f.origin_id == "O" for f in flows)
    # 800 exceeds the cap and is split into two records
    assert [f.size for f in flows if f.dest_id == "B"] == [400, 400]


def test_flows_beyond_floor_decay_with_distance() -> None:
    clusters = [
        _cluster("O", 0.0, 1000, 0),
        _cluster("A", 1000.0, 0, 100),
        _cluster("B", -4000.0, 0, 400),
    ]
    flows = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    # B weight is 400 / sqrt(4000), about 3.16x A's weight of 2
    assert _size_by_dest(flows) == {"A": 240, "B": 760}
    assert [f.size for f in flows if f.dest_id == "B"] == [380, 380]


def test_large_allocation_is_split_with_sequential_ids() -> None:
    clusters = [_cluster("O", 0.0, 850, 0), _cluster("C", 5000.0, 0, 100)]
    flows = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    assert [f.size for f in flows] == [283, 283, 283]
    assert [f.id for f in flows] == ["0", "1", "2"]
    assert len({f.distance_meters for f in flows}) == 1
    assert flows[0].distance_meters == pytest.approx(5000.0, abs=0.01)
    assert flows[0].travel_seconds == pytest.approx(flows[0].distance_meters * 0.12)


def test_custom_id_sequence() -> None:
    clusters = [_cluster("O", 0.0, 100, 0), _cluster("C", 5000.0, 0, 100)]
    flows = synthesize_flows(
        clusters, _adjusted(clusters), TuningConfig(), id_sequence=itertools.count(100)
    )
    assert [f.id for f in flows] == ["100"]


def test_origin_with_only_local_jobs_commutes_locally() -> None:
    clusters = [_cluster("O", 0.0, 100, 50)]
    (flow,) = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    assert flow.origin_id == flow.dest_id == "O"
    assert flow.size == 100
    assert flow.distance_meters == 0.0
    assert flow.travel_seconds == 0.0


def test_local_jobs_count_even_below_destination_minimum() -> None:
    clusters = [_cluster("O", 0.0, 100, 3)]
    flows = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    assert _size_by_dest(flows) == {"O": 100}


def test_local_job_bonus_weights_own_cluster() -> None:
    clusters = [_cluster("O", 0.0, 1000, 1000), _cluster("D", 1000.0, 0, 10)]
    flows = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    # Local weight 1000 * 0.001 = 1.0 against 10 / 50 = 0.2
    assert _size_by_dest(flows) == {"O": 833, "D": 167}


def test_origin_without_reachable_jobs_emits_nothing() -> None:
    clusters = [_cluster("O", 0.0, 100, 0), _cluster("D", 1000.0, 0, 3)]
    assert synthesize_flows(clusters, _adjusted(clusters), TuningConfig()) == []


def test_origins_use_adjusted_population() -> None:
    clusters = [_cluster("O", 0.0, 100, 0), _cluster("D", 1000.0, 0, 100)]
    assert synthesize_flows(clusters, {"O": 9, "D": 0}, TuningConfig()) == []
    flows = synthesize_flows(clusters, {"O": 120, "D": 0}, TuningConfig())
    assert _size_by_dest(flows) == {"D": 120}


def test_small_allocations_are_dropped() -> None:
    clusters = [
        _cluster("O", 0.0, 100, 0),
        _cluster("D1", 1000.0, 0, 1000),
        _cluster("D2", 30000.0, 0, 10),
    ]
    flows = synthesize_flows(clusters, _adjusted(clusters), TuningConfig())
    assert {f.dest_id for f in flows} == {"D1"}
    assert all(f.size >= 5 for f in flows)


def test_flows_are_ordered_and_deterministic() -> None:
    clusters = [
        _cluster("A", 0.0, 300, 50),
        _cluster("B", 3000.0, 200, 80),
        _cluster("C", 6000.0, 150, 20),
    ]
    tuning = TuningConfig()
    first = synthesize_flows(clusters, _adjusted(clusters), tuning)
    second = synthesize_flows(clusters, _adjusted(clusters), tuning)
    assert first == second
    assert [f.id for f in first] == [str(i) for i in range(len(first))]
    origin_order = [f.origin_id for f in first]
    assert origin_order == sorted(origin_order, key=["A", "B", "C"].index)
    valid_ids = {c.id for c in clusters}
    assert all(f.origin_id in valid_ids and f.dest_id in valid_ids for f in first)
