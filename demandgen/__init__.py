"""Synthetic commuter demand generator.

Turns small-area population and employment records into demand nodes and
gravity-model commuter flows for a transit simulation.
"""

from .config import DemandConfig, TuningConfig
from .pipeline import AreaInputs, build_area_demand, run_areas
from .serializer import DemandModel, SpecialNodeCounters, load_demand_json, save_demand_json

__version__ = "0.1.0"

__all__ = [
    "AreaInputs",
    "DemandConfig",
    "DemandModel",
    "SpecialNodeCounters",
    "TuningConfig",
    "build_area_demand",
    "load_demand_json",
    "run_areas",
    "save_demand_json",
]
