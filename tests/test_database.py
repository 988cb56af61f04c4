"""Tests for the MongoDB connection manager."""

import pytest

import database
from database import Database
from settings import settings


class RecordingClient:
    instances = []

    def __init__(self, url, **kwargs):
        self.url = url
        self.kwargs = kwargs
        self.closed = False
        self.admin = self
        RecordingClient.instances.append(self)

    async def command(self, name):
        raise ConnectionError("no primary")

    def close(self):
        self.closed = True


@pytest.fixture
def recording_client(monkeypatch):
    RecordingClient.instances.clear()
    monkeypatch.setattr(database, "AsyncIOMotorClient", RecordingClient)
    monkeypatch.setattr(Database, "_initialized", False)
    monkeypatch.setattr(Database, "client", None)
    return RecordingClient


@pytest.mark.asyncio
async def test_every_store_operation_is_time_bounded(recording_client, monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_TIMEOUT_MS", 7500)

    with pytest.raises(ConnectionError):
        await Database.connect_db("mongodb://db:27017", "reflecta")

    [client] = recording_client.instances
    assert client.kwargs["timeoutMS"] == 7500
    assert client.kwargs["serverSelectionTimeoutMS"] == 5000
    assert client.kwargs["tz_aware"] is True


@pytest.mark.asyncio
async def test_failed_connect_closes_client_and_stays_uninitialized(recording_client):
    with pytest.raises(ConnectionError):
        await Database.connect_db("mongodb://db:27017", "reflecta")

    assert recording_client.instances[0].closed
    assert not Database.is_initialized()
    assert Database.client is None
    assert await Database.ping() is False
