"""
Reflecta API - Coaching Enumerations.

Value sets shared by the document models, schemas and services.
"""

from enum import Enum


class CoachingFrequency(str, Enum):
    """How often a user wants a coaching message."""
    DAILY = "daily"
    SEVERAL_PER_WEEK = "severalPerWeek"
    WEEKLY = "weekly"


class TimePreference(str, Enum):
    """Part of the local day in which messages are delivered."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class SchedulingMode(str, Enum):
    """Which offset table the due-time calculator uses."""
    NORMAL = "normal"
    BOOTSTRAP = "bootstrap"
    RETRY = "retry"


class MessageType(str, Enum):
    """Coaching message categories produced by the draft stage."""
    CHECK_IN = "check_in"
    ENCOURAGEMENT = "encouragement"
    CHALLENGE = "challenge"
    REMINDER = "reminder"
    ALIGNMENT_REFLECTION = "alignment_reflection"
    GENERAL_REFLECTION = "general_reflection"
    PERSONAL_INSIGHT = "personal_insight"
    RELEVANT_LESSON = "relevant_lesson"
    UNKNOWN = "unknown"  # failed attempts only


class RecommendedAction(str, Enum):
    """Final decision persisted on a coaching message record."""
    SEND_MESSAGE = "SEND_MESSAGE"
    SKIP_MESSAGE = "SKIP_MESSAGE"


class SimulationAction(str, Enum):
    """Action recommended by the quality-simulation stage."""
    KEEP_AS_IS = "KEEP_AS_IS"
    MINOR_ADJUSTMENTS = "MINOR_ADJUSTMENTS"
    MAJOR_REVISION = "MAJOR_REVISION"
    SKIP_MESSAGE = "SKIP_MESSAGE"


class MessageStatus(str, Enum):
    """Lifecycle of a coaching message record."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a Processor run did not deliver a message."""
    PROFILE_NOT_FOUND_OR_DISABLED = "profile-not-found-or-disabled"
    NOT_DUE = "not-due"
    CONTEXT_FETCH_FATAL = "context-fetch-fatal"
    GENERATION_ERROR = "generation-error"
    DRAFT_PARSE_ERROR = "draft-parse-error"
    SIMULATION_PARSE_ERROR = "simulation-parse-error"
    QUALITY_GATE_REJECTED = "quality-gate-rejected"
    DELIVERY_FAILED = "delivery-failed"
    SCHEDULE_WRITE_FAILED = "schedule-write-failed"
    INTERNAL_ERROR = "internal-error"
