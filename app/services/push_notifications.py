"""
Reflecta API - Push Notification Service.

Sends coaching notifications to the Expo push API. Delivery is
best-effort: a failed push never fails the coaching attempt, the
message is already in the user's reflection timeline.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from settings import settings

logger = logging.getLogger(__name__)

EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[.+\]$")
EXPO_CHUNK_SIZE = 100

NOTIFICATION_TITLES = {
    "check_in": "Time for a check-in",
    "encouragement": "You've got this!",
    "challenge": "Ready for a challenge?",
    "reminder": "Gentle reminder",
    "alignment_reflection": "Reflection time",
    "general_reflection": "Let's reflect",
    "personal_insight": "Insight for you",
    "relevant_lesson": "Something to consider",
}
DEFAULT_TITLE = "Message from your coach"


def notification_title(message_type: str) -> str:
    return NOTIFICATION_TITLES.get(message_type, DEFAULT_TITLE)


def is_expo_push_token(token: str) -> bool:
    return bool(token) and bool(EXPO_TOKEN_RE.match(token))


@dataclass
class PushNotificationResult:
    """Tally of one notification fan-out."""
    success: bool
    sent_count: int = 0
    failed_count: int = 0
    skipped: bool = False
    errors: List[str] = field(default_factory=list)


class PushNotificationService:
    """
    Expo push API client.

    Attributes:
        url: Expo send endpoint.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, store=None):
        self.url = settings.EXPO_PUSH_URL
        self.timeout = settings.PUSH_TIMEOUT_SECONDS
        self._client = client
        self.store = store

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if settings.EXPO_ACCESS_TOKEN:
            headers["Authorization"] = f"Bearer {settings.EXPO_ACCESS_TOKEN}"
        return headers

    async def _post_chunk(self, client: httpx.AsyncClient, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        response = await client.post(self.url, json=messages, headers=self._headers())
        response.raise_for_status()
        return response.json().get("data", [])

    async def send_to_tokens(
        self,
        tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> PushNotificationResult:
        """
        Send one notification to every valid token.

        Tokens not in Expo format are counted as failed and never sent.
        Tickets are tallied per token; a chunk that fails at the HTTP level
        counts all its tokens as failed.

        Args:
            tokens: Expo push tokens.
            title: Notification title.
            body: Notification body.
            data: Payload delivered to the app.

        Returns:
            PushNotificationResult: success is True if at least one ticket was ok.
        """
        valid = [t for t in tokens if is_expo_push_token(t)]
        result = PushNotificationResult(success=False, failed_count=len(tokens) - len(valid))
        if result.failed_count:
            logger.warning(f"Skipping {result.failed_count} invalid push token(s)")
            result.errors.append(f"{result.failed_count} invalid push token(s)")
        if not valid:
            return result

        messages = [
            {
                "to": token,
                "title": title,
                "body": body,
                "data": data or {},
                "sound": "default",
                "categoryId": "coaching_message",
                "channelId": "coaching_notifications",
            }
            for token in valid
        ]

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            for i in range(0, len(messages), EXPO_CHUNK_SIZE):
                chunk = messages[i:i + EXPO_CHUNK_SIZE]
                try:
                    tickets = await self._post_chunk(client, chunk)
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(f"Expo push request failed: {e}")
                    result.failed_count += len(chunk)
                    result.errors.append(str(e))
                    continue

                for ticket in tickets:
                    if ticket.get("status") == "ok":
                        result.sent_count += 1
                    else:
                        result.failed_count += 1
                        result.errors.append(ticket.get("message", "unknown push error"))
        finally:
            if self._client is None:
                await client.aclose()

        result.success = result.sent_count > 0
        return result

    async def send_coaching_message_notification(
        self,
        user: Any,
        notification_text: str,
        message_type: str,
        coaching_message_id: str,
        journal_entry_id: Optional[str] = None,
    ) -> PushNotificationResult:
        """
        Notify a user that a coaching message is waiting.

        Skipped (not failed) when the user has push disabled or no tokens.
        """
        push = user.push
        if not push.enabled or not push.expo_push_tokens:
            logger.info(f"Push skipped for user {user.uid}: disabled or no tokens")
            return PushNotificationResult(success=False, skipped=True)

        data = {
            "type": "coaching_message",
            "messageType": message_type,
            "userId": user.uid,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "coachingMessageId": coaching_message_id,
            "journalEntryId": journal_entry_id,
        }

        result = await self.send_to_tokens(
            push.expo_push_tokens,
            notification_title(message_type),
            notification_text,
            data,
        )
        logger.info(
            f"Push for user {user.uid}: {result.sent_count} sent, {result.failed_count} failed"
        )

        if result.success and self.store is not None:
            try:
                await self.store.mark_notification_sent(user.uid)
            except Exception as e:
                logger.warning(f"Could not stamp last notification for user {user.uid}: {e}")

        return result
