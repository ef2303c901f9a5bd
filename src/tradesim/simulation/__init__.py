"""Simulation orchestration: state ownership, history and recompute policy."""

from tradesim.simulation.history import DEFAULT_HISTORY_CAPACITY, RingBuffer
from tradesim.simulation.orchestrator import (
    OrchestratorConfig,
    OrchestratorMetrics,
    SimulationOrchestrator,
    SimulationState,
)

__all__ = [
    "DEFAULT_HISTORY_CAPACITY",
    "OrchestratorConfig",
    "OrchestratorMetrics",
    "RingBuffer",
    "SimulationOrchestrator",
    "SimulationState",
]
