# app/workflows/coaching_pipeline.py
"""
Reflecta Coaching Message Pipeline.

Two sequential calls to the text-generation service:
1. Draft - proposes a typed message with notification text and body
2. Quality simulation - predicts how the user would receive it and scores it

A quality gate then decides whether the draft is delivered.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from app.models.coaching import SimulationAction
from app.prompts import load_prompt, MESSAGE_GENERATION, OUTCOME_SIMULATION
from app.schemas.coaching import DraftMessage, QualitySimulation
from app.services.llm_output import parse_structured
from app.utils.errors import DraftParseError, SimulationParseError
from settings import settings

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Anything that can turn a system + user prompt into raw text."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = ...,
        max_tokens: int = ...,
    ) -> str:
        ...


@dataclass
class PipelineResult:
    """Outcome of a full draft + simulation run."""
    draft: DraftMessage
    simulation: QualitySimulation
    accepted: bool
    rejection_reason: Optional[str] = None
    draft_ms: float = 0
    simulation_ms: float = 0

    @property
    def effectiveness_rating(self) -> int:
        return math.floor(self.simulation.overall_effectiveness)


def passes_quality_gate(
    simulation: QualitySimulation,
    threshold: Optional[float] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Decide whether a simulated message may be delivered.

    Rejected when the simulation recommends skipping or the overall
    effectiveness is below the threshold.

    Returns:
        (accepted, reason) where reason is set only on rejection.
    """
    threshold = settings.QUALITY_GATE_THRESHOLD if threshold is None else threshold

    if simulation.recommend_action == SimulationAction.SKIP_MESSAGE:
        return False, "Message should be skipped based on outcome simulation"

    if simulation.overall_effectiveness < threshold:
        return False, f"Message effectiveness too low: {simulation.overall_effectiveness:g}/10"

    return True, None


def build_simulation_input(context: str, draft: DraftMessage) -> str:
    """User prompt for the simulation stage."""
    return (
        f"USER CONTEXT:\n{context}\n\n"
        f"PROPOSED COACHING MESSAGE:\n"
        f"Type: {draft.recommended_message_type}\n"
        f"Push Notification: {draft.push_notification_text}\n"
        f"Full Message: {draft.full_message}\n"
    )


class CoachingMessagePipeline:
    """
    Draft -> simulate -> gate.

    Parse failures raise tagged pipeline errors; a gate rejection is a
    normal result with `accepted=False`.
    """

    def __init__(self, llm: TextGenerator, threshold: Optional[float] = None):
        self.llm = llm
        self.threshold = threshold

    async def draft(self, context: str) -> DraftMessage:
        """Stage A: generate a candidate message."""
        raw = await self.llm.complete(
            load_prompt(MESSAGE_GENERATION),
            context,
            temperature=settings.DRAFT_TEMPERATURE,
            max_tokens=settings.DRAFT_MAX_TOKENS,
        )

        parsed = parse_structured(raw, DraftMessage)
        if not parsed.ok:
            logger.error(f"Draft parse failed: {parsed.error}. Raw (first 500 chars): {raw[:500]!r}")
            raise DraftParseError("Failed to parse message generation response", detail=parsed.error)
        return parsed.value

    async def simulate(self, context: str, draft: DraftMessage) -> QualitySimulation:
        """Stage B: simulate reception and score the draft."""
        raw = await self.llm.complete(
            load_prompt(OUTCOME_SIMULATION),
            build_simulation_input(context, draft),
            temperature=settings.SIMULATION_TEMPERATURE,
            max_tokens=settings.SIMULATION_MAX_TOKENS,
        )

        parsed = parse_structured(raw, QualitySimulation)
        if not parsed.ok:
            logger.error(f"Simulation parse failed: {parsed.error}. Raw (first 500 chars): {raw[:500]!r}")
            raise SimulationParseError("Failed to parse outcome simulation response", detail=parsed.error)
        return parsed.value

    async def run(self, context: str, user_id: str = "") -> PipelineResult:
        """
        Execute both stages and apply the quality gate.

        Raises:
            GenerationError: The text-generation service failed.
            DraftParseError: Stage A output could not be recovered.
            SimulationParseError: Stage B output could not be recovered.
        """
        start = time.time()
        draft = await self.draft(context)
        draft_ms = (time.time() - start) * 1000
        logger.info(f"Drafted {draft.recommended_message_type} message for user {user_id} in {draft_ms:.0f}ms")

        start = time.time()
        simulation = await self.simulate(context, draft)
        simulation_ms = (time.time() - start) * 1000

        accepted, reason = passes_quality_gate(simulation, self.threshold)
        logger.info(
            f"Simulation for user {user_id}: effectiveness {simulation.overall_effectiveness:g}/10, "
            f"action {simulation.recommend_action.value}, accepted={accepted}"
        )

        return PipelineResult(
            draft=draft,
            simulation=simulation,
            accepted=accepted,
            rejection_reason=reason,
            draft_ms=draft_ms,
            simulation_ms=simulation_ms,
        )
