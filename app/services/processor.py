"""
Reflecta API - Coaching Processor.

Runs the full coaching flow for exactly one user:
eligibility -> context -> draft -> simulation -> gate -> persist ->
deliver -> reschedule.

Every recoverable failure is converted into a failed coaching message
record plus a retry-mode reschedule. Nothing raises out of `process()`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.models.coaching import (
    FailureReason,
    MessageStatus,
    MessageType,
    RecommendedAction,
    SchedulingMode,
)
from app.schemas.coaching import ProcessorResponse
from app.services.due_time import ensure_utc, next_due
from app.services.push_notifications import PushNotificationResult
from app.utils.errors import CoachingPipelineError
from app.workflows.coaching_pipeline import PipelineResult

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of one Processor run."""
    success: bool
    user_id: str
    error: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    message_id: Optional[str] = None
    next_due_at: Optional[datetime] = None
    skipped: bool = False
    schedule_write_failed: bool = False
    record_write_failed: bool = False
    delivery: Optional[PushNotificationResult] = None

    def to_response(self) -> ProcessorResponse:
        return ProcessorResponse(
            success=self.success,
            userId=self.user_id,
            error=self.error,
            messageId=self.message_id,
            nextDueAt=self.next_due_at,
        )


def _draft_fields(result: PipelineResult) -> Dict[str, Any]:
    """Record fields shared by delivered and rejected attempts."""
    draft = result.draft
    return {
        "content": draft.full_message,
        "type": draft.message_type,
        "short_notification_text": draft.push_notification_text,
        "thinking": draft.thinking,
        "effectiveness_rating": result.effectiveness_rating,
        "simulation": result.simulation.model_dump(mode="json"),
    }


class CoachingProcessor:
    """
    Per-user coaching orchestration.

    Attributes:
        store: Document-store collaborator.
        pipeline: Draft + simulation pipeline.
        context_builder: Builds the generation context.
        push_service: Notification collaborator.
    """

    def __init__(self, store, pipeline, context_builder, push_service):
        self.store = store
        self.pipeline = pipeline
        self.context_builder = context_builder
        self.push_service = push_service

    async def process(
        self,
        user_id: str,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> ProcessResult:
        """
        Process one user.

        Args:
            user_id: User to process.
            force: Skip the enabled and not-yet-due guards (debug only).
            now: Clock override.

        Returns:
            ProcessResult describing what happened.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        logger.info(f"Processing coaching message for user {user_id}")

        try:
            user = await self.store.get_user(user_id)
        except Exception as e:
            logger.error(f"Failed to load user {user_id}: {e}")
            return ProcessResult(
                success=False,
                user_id=user_id,
                error="Failed to load user profile",
                failure_reason=FailureReason.INTERNAL_ERROR,
            )

        if user is None or (not user.coaching.enabled and not force):
            logger.info(f"User {user_id} not found or coaching disabled, skipping")
            return ProcessResult(
                success=False,
                user_id=user_id,
                error="User not found or coaching disabled",
                failure_reason=FailureReason.PROFILE_NOT_FOUND_OR_DISABLED,
                skipped=True,
            )

        due_at = user.coaching.next_due_at
        if due_at is not None and ensure_utc(due_at) > now and not force:
            # Another run already advanced this user's schedule
            logger.info(f"User {user_id} not due until {ensure_utc(due_at).isoformat()}, skipping")
            return ProcessResult(
                success=False,
                user_id=user_id,
                error="User is not due",
                failure_reason=FailureReason.NOT_DUE,
                skipped=True,
                next_due_at=ensure_utc(due_at),
            )

        record = None
        context = ""
        try:
            record = await self.store.create_message_record(
                user_id=user_id,
                status=MessageStatus.PENDING,
                attempt_number=await self._attempt_number(user_id),
                scheduled_for=ensure_utc(due_at) if due_at else now,
                user_timezone=user.coaching.timezone,
                user_time_preference=user.coaching.time_preference,
            )

            context = await self.context_builder.build(user_id, now=now)
            logger.info(f"Built context for user {user_id} ({len(context)} chars)")

            result = await self.pipeline.run(context, user_id)

            if not result.accepted:
                return await self._reject(user, record, result, context, now)
            return await self._deliver(user, record, result, context, now)

        except CoachingPipelineError as e:
            logger.warning(f"Coaching attempt failed for user {user_id}: [{e.reason.value}] {e.message}")
            return await self._fail(user, record, e.reason, e.message, e.detail, context, now)
        except Exception as e:
            logger.exception(f"Unexpected error processing user {user_id}: {e}")
            return await self._fail(
                user, record, FailureReason.INTERNAL_ERROR, "Internal error", str(e), context, now
            )

    async def _attempt_number(self, user_id: str) -> int:
        """Consecutive failed attempts + 1, derived from the persisted log."""
        try:
            latest = await self.store.get_latest_message_record(user_id)
        except Exception as e:
            logger.warning(f"Could not read previous attempts for user {user_id}: {e}")
            return 1
        if latest is not None and latest.status == MessageStatus.FAILED:
            return latest.attempt_number + 1
        return 1

    async def _reschedule(
        self,
        user_id: str,
        next_due_at: datetime,
        last_message_sent_at: Optional[datetime] = None,
    ) -> bool:
        try:
            if await self.store.update_next_due(user_id, next_due_at, last_message_sent_at):
                logger.info(f"User {user_id} next due at {next_due_at.isoformat()}")
                return True
            logger.error(f"[{FailureReason.SCHEDULE_WRITE_FAILED.value}] no profile updated for user {user_id}")
        except Exception as e:
            logger.error(f"[{FailureReason.SCHEDULE_WRITE_FAILED.value}] user {user_id}: {e}")
        return False

    async def _deliver(self, user, record, result: PipelineResult, context: str, now: datetime) -> ProcessResult:
        """Quality gate passed: persist, link delivery target, push, reschedule."""
        draft = result.draft

        await self.store.update_message_record(
            record,
            context_snapshot=context,
            recommended_action=RecommendedAction.SEND_MESSAGE,
            was_sent=False,
            **_draft_fields(result),
        )

        entry_id = await self.store.create_coaching_journal_entry(user.uid, record.uid)
        await self.store.update_message_record(record, delivery_target_entry_id=entry_id)
        logger.info(f"Created delivery target {entry_id} for message {record.uid}")

        delivery = None
        try:
            delivery = await self.push_service.send_coaching_message_notification(
                user,
                draft.push_notification_text,
                draft.recommended_message_type,
                record.uid,
                entry_id,
            )
            if not delivery.success and not delivery.skipped:
                logger.warning(
                    f"[{FailureReason.DELIVERY_FAILED.value}] push for user {user.uid}: {delivery.errors}"
                )
        except Exception as e:
            logger.warning(f"[{FailureReason.DELIVERY_FAILED.value}] push for user {user.uid}: {e}")

        # The message is out; from here on only the normal schedule applies
        record_write_failed = False
        try:
            await self.store.update_message_record(
                record,
                status=MessageStatus.SENT,
                was_sent=True,
                sent_at=now,
            )
        except Exception as e:
            record_write_failed = True
            logger.error(f"Could not mark message {record.uid} sent for user {user.uid}: {e}")

        next_due_at = next_due(
            now,
            user.coaching.frequency,
            user.coaching.time_preference,
            user.coaching.timezone,
            SchedulingMode.NORMAL,
        )
        written = await self._reschedule(user.uid, next_due_at, last_message_sent_at=now)

        logger.info(f"Delivered {draft.recommended_message_type} message {record.uid} to user {user.uid}")
        return ProcessResult(
            success=True,
            user_id=user.uid,
            message_id=record.uid,
            next_due_at=next_due_at,
            schedule_write_failed=not written,
            record_write_failed=record_write_failed,
            delivery=delivery,
        )

    async def _reject(self, user, record, result: PipelineResult, context: str, now: datetime) -> ProcessResult:
        """Quality gate rejected the draft: keep it for audit, retry later."""
        await self.store.update_message_record(
            record,
            context_snapshot=context,
            recommended_action=RecommendedAction.SKIP_MESSAGE,
            status=MessageStatus.FAILED,
            was_sent=False,
            failure_reason=FailureReason.QUALITY_GATE_REJECTED.value,
            failure_detail=result.rejection_reason,
            **_draft_fields(result),
        )
        logger.info(f"Message for user {user.uid} rejected: {result.rejection_reason}")

        next_due_at = self._retry_due(user, now)
        written = await self._reschedule(user.uid, next_due_at)
        return ProcessResult(
            success=False,
            user_id=user.uid,
            error=result.rejection_reason,
            failure_reason=FailureReason.QUALITY_GATE_REJECTED,
            message_id=record.uid,
            next_due_at=next_due_at,
            schedule_write_failed=not written,
        )

    async def _fail(
        self,
        user,
        record,
        reason: FailureReason,
        message: str,
        detail: Optional[str],
        context: str,
        now: datetime,
    ) -> ProcessResult:
        """Persist the failure (best-effort) and reschedule in retry mode."""
        fields = {
            "type": MessageType.UNKNOWN,
            "recommended_action": RecommendedAction.SKIP_MESSAGE,
            "status": MessageStatus.FAILED,
            "was_sent": False,
            "effectiveness_rating": 0,
            "failure_reason": reason.value,
            "failure_detail": detail or message,
            "context_snapshot": context,
        }
        message_id = None
        try:
            if record is not None:
                await self.store.update_message_record(record, **fields)
            else:
                record = await self.store.create_message_record(
                    user_id=user.uid,
                    scheduled_for=now,
                    user_timezone=user.coaching.timezone,
                    user_time_preference=user.coaching.time_preference,
                    **fields,
                )
            message_id = record.uid
        except Exception as e:
            logger.error(f"Could not persist failed attempt for user {user.uid}: {e}")

        next_due_at = self._retry_due(user, now)
        written = await self._reschedule(user.uid, next_due_at)
        return ProcessResult(
            success=False,
            user_id=user.uid,
            error=message,
            failure_reason=reason,
            message_id=message_id,
            next_due_at=next_due_at,
            schedule_write_failed=not written,
        )

    @staticmethod
    def _retry_due(user, now: datetime) -> datetime:
        return next_due(
            now,
            user.coaching.frequency,
            user.coaching.time_preference,
            user.coaching.timezone,
            SchedulingMode.RETRY,
        )

    async def preview(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Build context and run the pipeline without persisting or delivering.

        Pipeline errors propagate to the caller.
        """
        context = await self.context_builder.build(user_id, now=now)
        result = await self.pipeline.run(context, user_id)
        return {
            "userId": user_id,
            "context": context,
            "draft": result.draft.model_dump(by_alias=True),
            "simulation": result.simulation.model_dump(by_alias=True, mode="json"),
            "accepted": result.accepted,
            "rejectionReason": result.rejection_reason,
            "timings": {"draftMs": round(result.draft_ms), "simulationMs": round(result.simulation_ms)},
        }


_coaching_processor: Optional[CoachingProcessor] = None


def get_coaching_processor() -> CoachingProcessor:
    """Shared processor wired to the production collaborators."""
    global _coaching_processor
    if _coaching_processor is None:
        from app.services.coaching_store import get_coaching_store
        from app.services.context_builder import CoachingContextBuilder
        from app.services.gemini import get_gemini_service
        from app.services.push_notifications import PushNotificationService
        from app.workflows.coaching_pipeline import CoachingMessagePipeline

        store = get_coaching_store()
        _coaching_processor = CoachingProcessor(
            store=store,
            pipeline=CoachingMessagePipeline(get_gemini_service()),
            context_builder=CoachingContextBuilder(store),
            push_service=PushNotificationService(store=store),
        )
    return _coaching_processor
