"""
Reflecta API - Coaching Document Store.

Thin façade over the Beanie documents used by the scheduler and the
per-user processor. All schedule writes are targeted `$set` updates
rather than full-document saves, so concurrent runs for different
users never contend.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.models.mongodb import (
    UserDocument,
    CoachingMessageDocument,
    JournalEntryDocument,
    UserInsightDocument,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CoachingStore:
    """Document-store operations for coaching scheduling and delivery."""

    # ============ Users / coaching profiles ============

    async def get_user(self, user_id: str) -> Optional[UserDocument]:
        """Load a user account by id."""
        return await UserDocument.find_one(UserDocument.uid == user_id)

    async def get_users_due(self, now: datetime, limit: Optional[int] = None) -> List[UserDocument]:
        """Enabled users whose next due-time has passed (index-backed)."""
        query = UserDocument.find({
            "coaching.enabled": True,
            "coaching.next_due_at": {"$lte": now},
        })
        if limit:
            query = query.limit(limit)
        return await query.to_list()

    async def get_users_needing_bootstrap(self, limit: Optional[int] = None) -> List[UserDocument]:
        """Enabled users that were never scheduled (null or missing due-time)."""
        query = UserDocument.find({
            "coaching.enabled": True,
            "coaching.next_due_at": None,
        })
        if limit:
            query = query.limit(limit)
        return await query.to_list()

    async def get_users_with_coaching_enabled(self) -> List[UserDocument]:
        """All enabled users. Debug listing only; not used by the scheduler."""
        return await UserDocument.find({"coaching.enabled": True}).to_list()

    async def update_next_due(
        self,
        user_id: str,
        next_due_at: datetime,
        last_message_sent_at: Optional[datetime] = None,
    ) -> bool:
        """
        Advance a user's due-time with a targeted update.

        Returns:
            bool: True if a user document matched.
        """
        fields: Dict[str, Any] = {
            "coaching.next_due_at": next_due_at,
            "updated_at": _utcnow(),
        }
        if last_message_sent_at is not None:
            fields["coaching.last_message_sent_at"] = last_message_sent_at

        result = await UserDocument.find_one(UserDocument.uid == user_id).update({"$set": fields})
        matched = getattr(result, "matched_count", 1)
        if not matched:
            logger.warning(f"update_next_due matched no user {user_id}")
        return bool(matched)

    async def mark_notification_sent(self, user_id: str, sent_at: Optional[datetime] = None) -> None:
        """Stamp the user's last push notification time."""
        await UserDocument.find_one(UserDocument.uid == user_id).update({
            "$set": {"push.last_notification_sent_at": sent_at or _utcnow()}
        })

    # ============ Coaching message records ============

    async def create_message_record(self, **fields: Any) -> CoachingMessageDocument:
        """Insert a new coaching message record."""
        record = CoachingMessageDocument(**fields)
        await record.insert()
        return record

    async def update_message_record(self, record: CoachingMessageDocument, **fields: Any) -> None:
        """Targeted `$set` on an existing record (also updates the local copy)."""
        fields["updated_at"] = _utcnow()
        await record.set(fields)

    async def get_latest_message_record(self, user_id: str) -> Optional[CoachingMessageDocument]:
        """Most recent attempt for a user, if any."""
        records = await self.get_recent_message_records(user_id, limit=1)
        return records[0] if records else None

    async def get_recent_message_records(self, user_id: str, limit: int = 5) -> List[CoachingMessageDocument]:
        return await CoachingMessageDocument.find(
            CoachingMessageDocument.user_id == user_id
        ).sort(-CoachingMessageDocument.created_at).limit(limit).to_list()

    # ============ Journal entries (delivery targets) ============

    async def create_coaching_journal_entry(
        self,
        user_id: str,
        coaching_message_id: str,
        content: str = "",
    ) -> str:
        """
        Create the reflection entry that hosts a coaching message.

        Content is empty: clients render the linked message in its own card.

        Returns:
            str: New journal entry id.
        """
        entry = JournalEntryDocument(
            user_id=user_id,
            content=content,
            coaching_message_id=coaching_message_id,
        )
        await entry.insert()
        return entry.uid

    async def get_recent_journal_entries(self, user_id: str, limit: int = 10) -> List[JournalEntryDocument]:
        """Newest-first reflection entries for a user."""
        return await JournalEntryDocument.find(
            JournalEntryDocument.user_id == user_id
        ).sort(-JournalEntryDocument.timestamp).limit(limit).to_list()

    # ============ Insights ============

    async def get_user_insights(self, user_id: str) -> Optional[UserInsightDocument]:
        """Latest extracted insights for a user."""
        insights = await UserInsightDocument.find(
            UserInsightDocument.user_id == user_id
        ).sort(-UserInsightDocument.updated_at).limit(1).to_list()
        return insights[0] if insights else None


_coaching_store: Optional[CoachingStore] = None


def get_coaching_store() -> CoachingStore:
    """Shared store instance."""
    global _coaching_store
    if _coaching_store is None:
        _coaching_store = CoachingStore()
    return _coaching_store
