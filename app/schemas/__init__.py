"""Reflecta API - Pydantic Schemas Package."""

from app.schemas.coaching import (
    DraftMessage,
    SimulationScores,
    QualitySimulation,
    SchedulerSummary,
    ProcessorRequest,
    ProcessorResponse,
    DebugActionRequest,
)

__all__ = [
    "DraftMessage",
    "SimulationScores",
    "QualitySimulation",
    "SchedulerSummary",
    "ProcessorRequest",
    "ProcessorResponse",
    "DebugActionRequest",
]
