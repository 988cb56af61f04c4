# app/routes/coaching.py
"""
Reflecta API - Coaching Routes.

Scheduler trigger, per-user processor and the development debug endpoint.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.middleware.auth import verify_cron_secret
from app.schemas.coaching import (
    DebugActionRequest,
    ProcessorRequest,
    ProcessorResponse,
    SchedulerSummary,
)
from app.services.coaching_store import CoachingStore, get_coaching_store
from app.services.due_time import ensure_utc, is_in_time_window, local_hour, next_window_start
from app.services.processor import CoachingProcessor, get_coaching_processor
from app.services.scheduler import CoachingScheduler, get_coaching_scheduler
from app.utils.errors import CoachingPipelineError, ForbiddenError, NotFoundError, ValidationError
from settings import settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.api_route(
    "/scheduler",
    methods=["GET", "POST"],
    response_model=SchedulerSummary,
    dependencies=[Depends(verify_cron_secret)],
)
async def run_scheduler(scheduler: CoachingScheduler = Depends(get_coaching_scheduler)):
    """
    Run one scheduling cycle.

    Called hourly by the external cron trigger. Returns as soon as all
    processor jobs are dispatched; it never waits for generation.
    """
    try:
        return await scheduler.run()
    except Exception as e:
        logger.error(f"Scheduler run failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Scheduler run failed")


async def _process_in_background(processor: CoachingProcessor, user_id: str):
    """Run one accepted processor job after the acknowledgement has been sent."""
    try:
        result = await processor.process(user_id)
    except Exception as e:
        logger.exception(f"Processor job for user {user_id} crashed: {e}")
        return
    if result.success:
        logger.info(f"Processor job for user {user_id} delivered message {result.message_id}")
    else:
        reason = result.failure_reason.value if result.failure_reason else "unknown"
        logger.info(f"Processor job for user {user_id} finished without delivery [{reason}]: {result.error}")


@router.post(
    "/processor",
    response_model=ProcessorResponse,
    status_code=202,
    dependencies=[Depends(verify_cron_secret)],
)
async def run_processor(
    request: ProcessorRequest,
    background_tasks: BackgroundTasks,
    processor: CoachingProcessor = Depends(get_coaching_processor),
):
    """
    Accept a coaching job for one user.

    Answers 202 as soon as the job is accepted so the scheduler's fan-out
    never waits on generation. The run itself happens after the response
    is sent; its outcome is persisted and logged, never returned.
    """
    if not request.user_id:
        raise ValidationError("userId is required")

    background_tasks.add_task(_process_in_background, processor, request.user_id)
    return ProcessorResponse(success=True, user_id=request.user_id)


# =========================================================================
# Development / testing
# =========================================================================

def _profile_summary(user, now: datetime) -> Dict[str, Any]:
    coaching = user.coaching
    return {
        "userId": user.uid,
        "name": user.name,
        "frequency": coaching.frequency.value,
        "timePreference": coaching.time_preference.value,
        "timezone": coaching.timezone,
        "nextDueAt": ensure_utc(coaching.next_due_at).isoformat() if coaching.next_due_at else None,
        "lastMessageSentAt": (
            ensure_utc(coaching.last_message_sent_at).isoformat() if coaching.last_message_sent_at else None
        ),
        "inTimeWindow": is_in_time_window(now, coaching.time_preference, coaching.timezone),
    }


def _record_summary(record) -> Dict[str, Any]:
    return {
        "id": record.uid,
        "type": record.type.value,
        "status": record.status.value,
        "wasSent": record.was_sent,
        "effectivenessRating": record.effectiveness_rating,
        "attemptNumber": record.attempt_number,
        "failureReason": record.failure_reason,
        "createdAt": ensure_utc(record.created_at).isoformat(),
    }


def _require_user_id(request: DebugActionRequest) -> str:
    if not request.user_id:
        raise ValidationError(f"userId is required for action '{request.action}'")
    return request.user_id


@router.post("/test")
async def debug_action(
    request: DebugActionRequest,
    store: CoachingStore = Depends(get_coaching_store),
    processor: CoachingProcessor = Depends(get_coaching_processor),
    scheduler: CoachingScheduler = Depends(get_coaching_scheduler),
):
    """
    Manual inspection and force-testing. Development only.

    Actions:
    - list-eligible: due set, bootstrap set and all enabled users
    - user-status: one user's profile, window status and recent attempts
    - test-user: run the processor now (`bypassChecks` skips eligibility guards)
    - test-scheduler: run one scheduler cycle
    - dry-run: build context and run the pipeline without saving anything
    """
    if not settings.is_development:
        raise ForbiddenError("Debug endpoint is only available in development")

    now = datetime.now(timezone.utc)
    action = request.action
    logger.info(f"Debug action '{action}' for user {request.user_id}")

    if action == "list-eligible":
        due, bootstrap, enabled = await asyncio.gather(
            store.get_users_due(now),
            store.get_users_needing_bootstrap(),
            store.get_users_with_coaching_enabled(),
        )
        return {
            "success": True,
            "timestamp": now.isoformat(),
            "dueUsers": [_profile_summary(u, now) for u in due],
            "bootstrapUsers": [_profile_summary(u, now) for u in bootstrap],
            "enabledUsers": [_profile_summary(u, now) for u in enabled],
        }

    if action == "user-status":
        user_id = _require_user_id(request)
        user = await store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        records = await store.get_recent_message_records(user_id, limit=5)
        coaching = user.coaching
        return {
            "success": True,
            "profile": _profile_summary(user, now),
            "enabled": coaching.enabled,
            "localHour": local_hour(now, coaching.timezone),
            "nextWindowStart": next_window_start(now, coaching.time_preference, coaching.timezone).isoformat(),
            "isDue": coaching.next_due_at is not None and ensure_utc(coaching.next_due_at) <= now,
            "recentMessages": [_record_summary(r) for r in records],
        }

    if action == "test-user":
        user_id = _require_user_id(request)
        result = await processor.process(user_id, force=request.bypass_checks)
        response = result.to_response().model_dump(by_alias=True, mode="json")
        response["failureReason"] = result.failure_reason.value if result.failure_reason else None
        response["bypassChecks"] = request.bypass_checks
        if result.delivery is not None:
            response["delivery"] = {
                "sent": result.delivery.sent_count,
                "failed": result.delivery.failed_count,
                "skipped": result.delivery.skipped,
            }
        return response

    if action == "test-scheduler":
        summary = await scheduler.run()
        return {"success": True, **summary.model_dump(by_alias=True)}

    # dry-run
    user_id = _require_user_id(request)
    try:
        preview = await processor.preview(user_id)
    except CoachingPipelineError as e:
        return {
            "success": False,
            "userId": user_id,
            "error": e.message,
            "failureReason": e.reason.value,
            "detail": e.detail,
        }
    return {"success": True, **preview}
