"""Tests for the coaching scheduler and HTTP job dispatch."""

import asyncio
import json
import time
from datetime import timedelta

import httpx
import pytest

from app.models.coaching import CoachingFrequency, TimePreference
from app.services.scheduler import CoachingScheduler, HttpJobDispatcher
from conftest import FakeDispatcher, FakeStore, make_user, utc
from settings import settings

NOW = utc(2026, 1, 15, 14, 0)  # 09:00 in New York


def population():
    return [
        # due, morning, inside window -> dispatched
        make_user(
            "morning-due",
            next_due_at=NOW - timedelta(hours=2),
            last_message_sent_at=NOW - timedelta(hours=26),
        ),
        # due, evening, outside window -> deferred to 19:00 local
        make_user(
            "evening-due",
            time_preference=TimePreference.EVENING,
            next_due_at=NOW - timedelta(hours=1),
        ),
        # never scheduled -> bootstrapped
        make_user("new-user", frequency=CoachingFrequency.SEVERAL_PER_WEEK),
        # weekly, last sent 3 days ago -> not due
        make_user(
            "weekly",
            frequency=CoachingFrequency.WEEKLY,
            last_message_sent_at=NOW - timedelta(days=3),
            next_due_at=NOW - timedelta(days=3) + timedelta(days=7),
        ),
        # disabled -> ignored even though overdue
        make_user("disabled", enabled=False, next_due_at=NOW - timedelta(days=1)),
    ]


@pytest.mark.asyncio
async def test_cycle_bootstraps_defers_and_dispatches():
    store = FakeStore(users=population())
    dispatcher = FakeDispatcher()

    summary = await CoachingScheduler(store, dispatcher).run(now=NOW)

    assert dispatcher.dispatched == ["morning-due"]
    assert summary.users_due == 2
    assert summary.users_bootstrapped == 1
    assert summary.users_deferred == 1
    assert summary.jobs_created == 1
    assert summary.errors == 0


@pytest.mark.asyncio
async def test_out_of_window_user_deferred_to_window_start():
    store = FakeStore(users=population())
    await CoachingScheduler(store, FakeDispatcher()).run(now=NOW)

    # 19:00 New York on the same day
    assert store.users["evening-due"].coaching.next_due_at == utc(2026, 1, 16, 0, 0)


@pytest.mark.asyncio
async def test_bootstrap_assigns_due_within_bound():
    store = FakeStore(users=population())
    await CoachingScheduler(store, FakeDispatcher()).run(now=NOW)

    due = store.users["new-user"].coaching.next_due_at
    assert NOW < due <= NOW + timedelta(hours=13)


@pytest.mark.asyncio
async def test_users_not_due_are_left_alone():
    store = FakeStore(users=population())
    dispatcher = FakeDispatcher()
    await CoachingScheduler(store, dispatcher).run(now=NOW)

    updated = {user_id for user_id, _ in store.due_updates}
    assert "weekly" not in updated
    assert "disabled" not in updated
    assert "morning-due" not in updated  # the processor reschedules it
    assert "weekly" not in dispatcher.dispatched


@pytest.mark.asyncio
async def test_dispatch_errors_are_counted_and_do_not_stop_others():
    users = [
        make_user(f"user-{i}", next_due_at=NOW - timedelta(hours=1))
        for i in range(4)
    ]
    store = FakeStore(users=users)
    dispatcher = FakeDispatcher(failing={"user-1", "user-3"})

    summary = await CoachingScheduler(store, dispatcher).run(now=NOW)

    assert len(dispatcher.dispatched) == 4
    assert summary.jobs_created == 2
    assert summary.errors == 2


@pytest.mark.asyncio
async def test_bootstrap_write_failure_counts_as_error():
    store = FakeStore(users=[make_user("new-user")])
    store.fail_schedule_writes = True

    summary = await CoachingScheduler(store, FakeDispatcher()).run(now=NOW)

    assert summary.users_bootstrapped == 0
    assert summary.errors == 1


@pytest.mark.asyncio
async def test_empty_cycle():
    summary = await CoachingScheduler(FakeStore(), FakeDispatcher()).run(now=NOW)
    assert summary.model_dump(by_alias=True) == {
        "usersDue": 0,
        "usersBootstrapped": 0,
        "usersDeferred": 0,
        "jobsCreated": 0,
        "errors": 0,
    }


# =========================================================================
# HTTP dispatcher
# =========================================================================

def dispatcher_with(handler, secret="s3cret"):
    return HttpJobDispatcher(
        url="http://processor.test/coaching/processor",
        secret=secret,
        concurrency=2,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_dispatch_posts_user_id_with_bearer_secret():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    [outcome] = await dispatcher_with(handler).dispatch_many(["user-1"])

    assert outcome.dispatched and not outcome.in_flight
    assert seen[0].headers["authorization"] == "Bearer s3cret"
    assert seen[0].url.path == "/coaching/processor"
    assert json.loads(seen[0].content) == {"userId": "user-1"}


@pytest.mark.asyncio
async def test_read_timeout_means_job_in_flight():
    def handler(request):
        raise httpx.ReadTimeout("processor still working", request=request)

    [outcome] = await dispatcher_with(handler).dispatch_many(["user-1"])

    assert outcome.dispatched
    assert outcome.in_flight


@pytest.mark.asyncio
async def test_connection_error_and_server_error_are_dispatch_errors():
    def handler(request):
        if b"down" in request.content:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(503)

    outcomes = await dispatcher_with(handler).dispatch_many(["down", "busy"])

    assert [o.dispatched for o in outcomes] == [False, False]
    assert outcomes[0].error.startswith("ConnectError")
    assert outcomes[1].error == "HTTP 503"


@pytest.mark.asyncio
async def test_dispatch_many_with_no_users_makes_no_requests():
    def handler(request):
        raise AssertionError("unexpected request")

    assert await dispatcher_with(handler).dispatch_many([]) == []


class SlowProcessorTransport(httpx.AsyncBaseTransport):
    """Processor that takes `ack_delay` seconds to answer, honouring the read timeout."""

    def __init__(self, ack_delay):
        self.ack_delay = ack_delay
        self.received = []

    async def handle_async_request(self, request):
        self.received.append(json.loads(request.content)["userId"])
        read = request.extensions["timeout"]["read"]
        if read is not None and read < self.ack_delay:
            await asyncio.sleep(read)
            raise httpx.ReadTimeout("processor still working", request=request)
        await asyncio.sleep(self.ack_delay)
        return httpx.Response(202, json={"success": True})


def crowd(count):
    return FakeStore(users=[
        make_user(f"user-{i}", next_due_at=NOW - timedelta(hours=1)) for i in range(count)
    ])


@pytest.mark.asyncio
async def test_slow_processor_does_not_stretch_scheduler_with_due_set_size(monkeypatch):
    monkeypatch.setattr(settings, "DISPATCH_ACK_TIMEOUT_SECONDS", 0.3)
    transport = SlowProcessorTransport(ack_delay=30)
    dispatcher = HttpJobDispatcher(url="http://processor.test/coaching/processor", concurrency=25, transport=transport)

    started = time.monotonic()
    summary = await CoachingScheduler(crowd(200), dispatcher).run(now=NOW)
    elapsed = time.monotonic() - started

    assert summary.users_due == 200
    assert summary.jobs_created == 200
    assert summary.errors == 0
    assert len(transport.received) == 200
    # eight rounds of 25 would take 2.4s if each waited the full ack window
    assert elapsed < 1.2


@pytest.mark.asyncio
async def test_acknowledging_processor_dispatches_without_in_flight(monkeypatch):
    monkeypatch.setattr(settings, "DISPATCH_ACK_TIMEOUT_SECONDS", 0.3)
    transport = SlowProcessorTransport(ack_delay=0)
    dispatcher = HttpJobDispatcher(url="http://processor.test/coaching/processor", concurrency=5, transport=transport)

    outcomes = await dispatcher.dispatch_many([f"user-{i}" for i in range(20)])

    assert all(o.dispatched and not o.in_flight for o in outcomes)
