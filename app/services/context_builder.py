"""
Reflecta API - Coaching Context Builder.

Assembles the text given to both generation stages: who the user is,
what they have been writing about, what insights were extracted from
it, and what time it is for them right now.
"""

import asyncio
import html
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from app.services.due_time import resolve_timezone
from app.utils.errors import ContextFetchError
from settings import settings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_TAG_RE = re.compile(r"</?(p|div|br|li|h[1-6])[^>]*>", re.IGNORECASE)
_SPACE_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")

INSIGHT_SECTIONS = (
    ("main_focus", "Main Focus"),
    ("key_blockers", "Key Blockers"),
    ("plan", "Current Plan"),
)


def html_to_text(content: str) -> str:
    """Flatten rich-text editor HTML into plain text."""
    text = _BLOCK_TAG_RE.sub("\n", content or "")
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    text = _SPACE_RE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.splitlines())
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def format_local_datetime(moment: datetime) -> str:
    """e.g. 'Sunday, October 18, 2026 at 9:05 AM'"""
    hour12 = moment.hour % 12 or 12
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment.year} at {hour12}:{moment:%M} {moment:%p}"


def format_entries(entries: List[Any], tz_name: Optional[str], max_chars: int) -> str:
    """Digest of recent reflection entries, newest first."""
    tz = resolve_timezone(tz_name)
    lines = ["=== RECENT JOURNAL ENTRIES ==="]
    written = 0

    for entry in entries:
        text = html_to_text(getattr(entry, "content", ""))
        if not text:
            continue
        if len(text) > max_chars:
            text = text[:max_chars].rstrip() + "..."
        stamp = getattr(entry, "timestamp", None)
        label = format_local_datetime(stamp.astimezone(tz)) if stamp else "Undated"
        lines.append(f"\n[{label}]\n{text}")
        written += 1

    if not written:
        lines.append("No recent journal entries.")
    return "\n".join(lines)


def format_insights(insights: Any) -> str:
    """Headline + description per insight category; empty when nothing to show."""
    parts = []
    for attr, label in INSIGHT_SECTIONS:
        section = getattr(insights, attr, None)
        if section and (section.headline or section.description):
            parts.append(f"{label}: {section.headline}\nDescription: {section.description}")

    if not parts:
        return ""
    return "=== USER INSIGHTS ===\n" + "\n".join(parts)


class CoachingContextBuilder:
    """
    Builds the generation context for one user.

    The user profile is required (failure is fatal for the attempt);
    journal entries and insights degrade to an empty section.
    """

    def __init__(self, store):
        self.store = store

    async def _recent_entries(self, user_id: str) -> List[Any]:
        try:
            return await self.store.get_recent_journal_entries(user_id, settings.CONTEXT_RECENT_ENTRIES)
        except Exception as e:
            logger.warning(f"Could not fetch journal entries for user {user_id}: {e}")
            return []

    async def _insights(self, user_id: str) -> Optional[Any]:
        try:
            return await self.store.get_user_insights(user_id)
        except Exception as e:
            logger.warning(f"Could not fetch insights for user {user_id}: {e}")
            return None

    async def build(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Build the context text for `user_id`.

        Raises:
            ContextFetchError: The user profile could not be loaded.
        """
        try:
            user = await self.store.get_user(user_id)
        except Exception as e:
            raise ContextFetchError("Failed to load user profile", detail=str(e))
        if user is None:
            raise ContextFetchError(f"User {user_id} not found")

        entries, insights = await asyncio.gather(
            self._recent_entries(user_id),
            self._insights(user_id),
        )

        tz_name = user.coaching.timezone
        tz = resolve_timezone(tz_name)
        local_now = (now or datetime.now(timezone.utc)).astimezone(tz)

        sections = [
            "=== USER PROFILE ===\n"
            f"Name: {user.name or 'Not specified'}\n"
            f"Alignment: {user.alignment or 'Not specified'}\n"
            f"Message frequency: {user.coaching.frequency.value}\n"
            f"Preferred time: {user.coaching.time_preference.value}",
            format_entries(entries, tz_name, settings.CONTEXT_ENTRY_MAX_CHARS),
        ]

        insights_text = format_insights(insights) if insights else ""
        if insights_text:
            sections.append(insights_text)

        sections.append(
            "=== CURRENT CONTEXT ===\n"
            f"Current Date & Time: {format_local_datetime(local_now)} ({tz.key})"
        )
        return "\n\n".join(sections)
