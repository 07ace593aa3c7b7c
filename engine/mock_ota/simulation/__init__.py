"""
Realism simulation: latency, timeouts and synthetic failures.
"""

from mock_ota.simulation.catalog import ErrorDescriptor, ErrorSelector
from mock_ota.simulation.pipeline import (
    PipelineStage,
    RequestContext,
    SimulationPipeline,
    StageAction,
    StageDecision,
    simulation_pipeline,
    webhook_intake_pipeline,
)
from mock_ota.simulation.random_source import RandomSource, create_random_source

__all__ = [
    "ErrorDescriptor",
    "ErrorSelector",
    "PipelineStage",
    "RandomSource",
    "RequestContext",
    "SimulationPipeline",
    "StageAction",
    "StageDecision",
    "create_random_source",
    "simulation_pipeline",
    "webhook_intake_pipeline",
]
