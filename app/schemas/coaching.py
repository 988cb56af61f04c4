"""
Reflecta API - Coaching Schemas.

Pydantic schemas for generation-stage outputs and the coaching endpoints.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.coaching import MessageType, SimulationAction


# =========================================================================
# Generation stage outputs
# =========================================================================

class DraftMessage(BaseModel):
    """
    Stage A output: a candidate coaching message.

    Attributes:
        thinking: Model's reasoning trace.
        recommended_message_type: One of the eight message categories.
        push_notification_text: Short notification text.
        full_message: Message body shown in the reflection entry.
    """

    model_config = ConfigDict(populate_by_name=True)

    thinking: str
    recommended_message_type: Literal[
        "check_in",
        "encouragement",
        "challenge",
        "reminder",
        "alignment_reflection",
        "general_reflection",
        "personal_insight",
        "relevant_lesson",
    ] = Field(..., alias="recommendedMessageType")
    push_notification_text: str = Field(
        ..., alias="pushNotificationText", min_length=20, max_length=120
    )
    full_message: str = Field(..., alias="fullMessage", min_length=50)

    @property
    def message_type(self) -> MessageType:
        return MessageType(self.recommended_message_type)


class SimulationScores(BaseModel):
    """Stage B sub-scores, each 1-10."""

    model_config = ConfigDict(populate_by_name=True)

    relevance: float = Field(..., ge=1, le=10)
    timing: float = Field(..., ge=1, le=10)
    tone: float = Field(..., ge=1, le=10)
    actionability: float = Field(..., ge=1, le=10)
    emotional_impact: float = Field(..., alias="emotionalImpact", ge=1, le=10)
    engagement_likelihood: float = Field(..., alias="engagementLikelihood", ge=1, le=10)


class QualitySimulation(BaseModel):
    """Stage B output: simulated reception of the draft and a recommendation."""

    model_config = ConfigDict(populate_by_name=True)

    user_reception_simulation: str = Field(..., alias="userReceptionSimulation")
    scores: SimulationScores
    overall_effectiveness: float = Field(..., alias="overallEffectiveness", ge=1, le=10)
    recommend_action: SimulationAction = Field(..., alias="recommendAction")
    improvements: List[str] = Field(default_factory=list)
    alternative_message_type: Optional[str] = Field(default=None, alias="alternativeMessageType")
    optimal_send_time: Optional[str] = Field(default=None, alias="optimalSendTime")


# =========================================================================
# Endpoint payloads
# =========================================================================

class SchedulerSummary(BaseModel):
    """Aggregate counters for one scheduler cycle."""

    model_config = ConfigDict(populate_by_name=True)

    users_due: int = Field(default=0, alias="usersDue")
    users_bootstrapped: int = Field(default=0, alias="usersBootstrapped")
    users_deferred: int = Field(default=0, alias="usersDeferred")
    jobs_created: int = Field(default=0, alias="jobsCreated")
    errors: int = 0


class ProcessorRequest(BaseModel):
    """Body of the per-user processor endpoint."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"userId": "user_2abc"}},
    )

    user_id: Optional[str] = Field(default=None, alias="userId")


class ProcessorResponse(BaseModel):
    """Result of one Processor run."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    user_id: str = Field(..., alias="userId")
    error: Optional[str] = None
    message_id: Optional[str] = Field(default=None, alias="messageId")
    next_due_at: Optional[datetime] = Field(default=None, alias="nextDueAt")


class DebugActionRequest(BaseModel):
    """Body of the development-only debug endpoint."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {"action": "test-user", "userId": "user_2abc", "bypassChecks": True}
        },
    )

    action: Literal["list-eligible", "user-status", "test-user", "test-scheduler", "dry-run"]
    user_id: Optional[str] = Field(default=None, alias="userId")
    bypass_checks: bool = Field(default=False, alias="bypassChecks")
