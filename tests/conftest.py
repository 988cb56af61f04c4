"""
Shared fixtures for coaching tests.

In-memory stand-ins for the document store, the text-generation service
and the push transport. Beanie documents need an initialized database,
so the fakes use plain objects with the same attribute names.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

from app.models.coaching import (
    CoachingFrequency,
    MessageStatus,
    MessageType,
    RecommendedAction,
    TimePreference,
)
from app.models.mongodb import CoachingProfile, InsightSection, PushSettings
from app.services.push_notifications import PushNotificationResult


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@dataclass
class FakeUser:
    uid: str
    coaching: CoachingProfile
    push: PushSettings = field(default_factory=PushSettings)
    name: Optional[str] = "Sam"
    alignment: Optional[str] = "Be present with my family"


@dataclass
class FakeRecord:
    user_id: str
    uid: str = field(default_factory=lambda: str(uuid4()))
    content: str = ""
    type: MessageType = MessageType.UNKNOWN
    short_notification_text: str = ""
    thinking: Optional[str] = None
    effectiveness_rating: int = 0
    recommended_action: RecommendedAction = RecommendedAction.SKIP_MESSAGE
    simulation: Optional[Dict[str, Any]] = None
    status: MessageStatus = MessageStatus.PENDING
    was_sent: bool = False
    sent_at: Optional[datetime] = None
    delivery_target_entry_id: Optional[str] = None
    context_snapshot: str = ""
    attempt_number: int = 1
    failure_reason: Optional[str] = None
    failure_detail: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    user_timezone: Optional[str] = None
    user_time_preference: Optional[TimePreference] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class FakeEntry:
    content: str
    timestamp: datetime
    user_id: str = "user-1"
    coaching_message_id: Optional[str] = None


@dataclass
class FakeInsights:
    main_focus: Optional[InsightSection] = None
    key_blockers: Optional[InsightSection] = None
    plan: Optional[InsightSection] = None


class FakeStore:
    """Dict-backed version of CoachingStore."""

    def __init__(self, users=(), entries=None, insights=None):
        self.users = {u.uid: u for u in users}
        self.entries: Dict[str, List[FakeEntry]] = entries or {}
        self.insights: Dict[str, FakeInsights] = insights or {}
        self.records: List[FakeRecord] = []
        self.created_entries: List[FakeEntry] = []
        self.due_updates: List[tuple] = []
        self.notified: List[str] = []
        self.fail_schedule_writes = False
        self.fail_user_lookup = False
        self.fail_entries = False
        self.fail_insights = False

    async def get_user(self, user_id):
        if self.fail_user_lookup:
            raise RuntimeError("connection reset")
        return self.users.get(user_id)

    async def get_users_due(self, now, limit=None):
        return [
            u for u in self.users.values()
            if u.coaching.enabled and u.coaching.next_due_at is not None and u.coaching.next_due_at <= now
        ]

    async def get_users_needing_bootstrap(self, limit=None):
        return [u for u in self.users.values() if u.coaching.enabled and u.coaching.next_due_at is None]

    async def get_users_with_coaching_enabled(self):
        return [u for u in self.users.values() if u.coaching.enabled]

    async def update_next_due(self, user_id, next_due_at, last_message_sent_at=None):
        if self.fail_schedule_writes:
            raise RuntimeError("write concern timeout")
        user = self.users.get(user_id)
        if user is None:
            return False
        user.coaching.next_due_at = next_due_at
        if last_message_sent_at is not None:
            user.coaching.last_message_sent_at = last_message_sent_at
        self.due_updates.append((user_id, next_due_at))
        return True

    async def mark_notification_sent(self, user_id, sent_at=None):
        self.notified.append(user_id)

    async def create_message_record(self, **fields):
        record = FakeRecord(**fields)
        self.records.append(record)
        return record

    async def update_message_record(self, record, **fields):
        for key, value in fields.items():
            setattr(record, key, value)

    async def get_latest_message_record(self, user_id):
        records = await self.get_recent_message_records(user_id, limit=1)
        return records[0] if records else None

    async def get_recent_message_records(self, user_id, limit=5):
        mine = [r for r in self.records if r.user_id == user_id]
        return list(reversed(mine))[:limit]

    async def create_coaching_journal_entry(self, user_id, coaching_message_id, content=""):
        entry = FakeEntry(
            content=content,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            coaching_message_id=coaching_message_id,
        )
        self.created_entries.append(entry)
        return f"entry-{len(self.created_entries)}"

    async def get_recent_journal_entries(self, user_id, limit=10):
        if self.fail_entries:
            raise RuntimeError("entries unavailable")
        return self.entries.get(user_id, [])[:limit]

    async def get_user_insights(self, user_id):
        if self.fail_insights:
            raise RuntimeError("insights unavailable")
        return self.insights.get(user_id)


class FakeLLM:
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_prompt, user_prompt, temperature=0.7, max_tokens=1000):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakePush:
    def __init__(self, result=None, error=None):
        self.result = result or PushNotificationResult(success=True, sent_count=1)
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def send_coaching_message_notification(
        self, user, notification_text, message_type, coaching_message_id, journal_entry_id=None
    ):
        self.calls.append({
            "user_id": user.uid,
            "text": notification_text,
            "type": message_type,
            "message_id": coaching_message_id,
            "entry_id": journal_entry_id,
        })
        if self.error:
            raise self.error
        return self.result


class FakeDispatcher:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.dispatched: List[str] = []

    async def dispatch_many(self, user_ids):
        from app.services.scheduler import DispatchOutcome

        outcomes = []
        for user_id in user_ids:
            self.dispatched.append(user_id)
            if user_id in self.failing:
                outcomes.append(DispatchOutcome(user_id=user_id, dispatched=False, error="HTTP 503"))
            else:
                outcomes.append(DispatchOutcome(user_id=user_id, dispatched=True))
        return outcomes


def make_user(
    uid="user-1",
    enabled=True,
    frequency=CoachingFrequency.DAILY,
    time_preference=TimePreference.MORNING,
    tz="America/New_York",
    next_due_at=None,
    last_message_sent_at=None,
    push_enabled=True,
    tokens=("ExponentPushToken[abc123]",),
):
    return FakeUser(
        uid=uid,
        coaching=CoachingProfile(
            enabled=enabled,
            frequency=frequency,
            time_preference=time_preference,
            timezone=tz,
            next_due_at=next_due_at,
            last_message_sent_at=last_message_sent_at,
        ),
        push=PushSettings(enabled=push_enabled, expo_push_tokens=list(tokens)),
    )


def draft_json(message_type="encouragement", **overrides) -> str:
    payload = {
        "thinking": "They wrote three evenings in a row about slowing down.",
        "recommendedMessageType": message_type,
        "pushNotificationText": "Three calm evenings in a row. Notice that?",
        "fullMessage": (
            "You have written about slowing down three evenings running. "
            "What made those evenings different from the rest of your week?"
        ),
    }
    payload.update(overrides)
    return json.dumps(payload)


def simulation_json(score=8, action="KEEP_AS_IS", **overrides) -> str:
    payload = {
        "userReceptionSimulation": "Likely to feel seen and answer the question.",
        "scores": {
            "relevance": 8,
            "timing": 7,
            "tone": 9,
            "actionability": 7,
            "emotionalImpact": 8,
            "engagementLikelihood": 8,
        },
        "overallEffectiveness": score,
        "recommendAction": action,
        "improvements": ["Mention the weekend plan"],
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def push():
    return FakePush()
