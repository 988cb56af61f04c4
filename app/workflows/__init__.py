# app/workflows/__init__.py
"""
Reflecta Workflows Package.

Multi-step LLM workflows for coaching message generation.
"""

from app.workflows.coaching_pipeline import (
    CoachingMessagePipeline,
    PipelineResult,
    passes_quality_gate,
)

__all__ = [
    "CoachingMessagePipeline",
    "PipelineResult",
    "passes_quality_gate",
]
