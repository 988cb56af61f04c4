# app/models/mongodb.py
"""
Reflecta MongoDB Document Models.

Beanie ODM models for MongoDB.
"""

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING, IndexModel
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from uuid import uuid4

from app.models.coaching import (
    CoachingFrequency,
    TimePreference,
    MessageType,
    RecommendedAction,
    MessageStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class CoachingProfile(BaseModel):
    """Per-user coaching schedule and preferences (embedded in UserDocument)."""

    enabled: bool = False
    frequency: CoachingFrequency = CoachingFrequency.DAILY
    time_preference: TimePreference = TimePreference.MORNING
    timezone: Optional[str] = None  # IANA zone, e.g. "Europe/Berlin"
    last_message_sent_at: Optional[datetime] = None
    next_due_at: Optional[datetime] = None


class PushSettings(BaseModel):
    """Mobile push notification registration."""

    enabled: bool = False
    expo_push_tokens: List[str] = Field(default_factory=list)
    last_notification_sent_at: Optional[datetime] = None


class UserDocument(Document):
    """User account with embedded coaching profile."""

    uid: Indexed(str, unique=True)
    name: Optional[str] = None
    alignment: Optional[str] = None  # user's stated values / direction

    coaching: CoachingProfile = Field(default_factory=CoachingProfile)
    push: PushSettings = Field(default_factory=PushSettings)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "users"
        indexes = [
            # Backs both scheduler queries (due set and bootstrap set)
            IndexModel(
                [("coaching.enabled", ASCENDING), ("coaching.next_due_at", ASCENDING)],
                name="coaching_due_idx",
            ),
        ]

    class Config:
        json_schema_extra = {
            "example": {
                "uid": "user_2abc",
                "name": "Sam",
                "coaching": {
                    "enabled": True,
                    "frequency": "daily",
                    "time_preference": "morning",
                    "timezone": "America/New_York",
                },
            }
        }


class CoachingMessageDocument(Document):
    """One coaching generation attempt (sent, rejected or failed)."""

    uid: str = Field(default_factory=_new_id)
    user_id: str

    # Message content
    content: str = ""
    type: MessageType = MessageType.UNKNOWN
    short_notification_text: str = ""
    thinking: Optional[str] = None

    # Quality assessment
    effectiveness_rating: int = Field(default=0, ge=0, le=10)
    recommended_action: RecommendedAction = RecommendedAction.SKIP_MESSAGE
    simulation: Optional[Dict[str, Any]] = None

    # Delivery
    status: MessageStatus = MessageStatus.PENDING
    was_sent: bool = False
    sent_at: Optional[datetime] = None
    delivery_target_entry_id: Optional[str] = None

    # Context & debugging
    context_snapshot: str = ""
    attempt_number: int = 1
    failure_reason: Optional[str] = None
    failure_detail: Optional[str] = None

    # Timing
    scheduled_for: Optional[datetime] = None
    user_timezone: Optional[str] = None
    user_time_preference: Optional[TimePreference] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "coaching_messages"
        indexes = [
            "uid",
            IndexModel(
                [("user_id", ASCENDING), ("created_at", DESCENDING)],
                name="user_recent_idx",
            ),
        ]


class JournalEntryDocument(Document):
    """Reflection entry; also hosts delivered coaching messages."""

    uid: str = Field(default_factory=_new_id)
    user_id: str
    content: str = ""
    coaching_message_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "journal_entries"
        indexes = [
            "uid",
            IndexModel(
                [("user_id", ASCENDING), ("timestamp", DESCENDING)],
                name="user_timeline_idx",
            ),
        ]


class InsightSection(BaseModel):
    """Headline + description for one insight category."""

    headline: str = ""
    description: str = ""
    sources: List[Dict[str, Any]] = Field(default_factory=list)


class UserInsightDocument(Document):
    """Behavioral insights extracted from a user's reflections."""

    user_id: str
    main_focus: Optional[InsightSection] = None
    key_blockers: Optional[InsightSection] = None
    plan: Optional[InsightSection] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "user_insights"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("updated_at", DESCENDING)],
                name="user_insight_idx",
            ),
        ]
