import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add the project root to sys.path so we can import main
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from main import create_app
from audio_share.services.audio_store import MemoryAudioStore

TEST_MAX_UPLOAD_BYTES = 64 * 1024
TEST_TTL_SECONDS = 3600


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryAudioStore(clock=clock)


@pytest.fixture
def app(store):
    return create_app(
        store=store,
        max_upload_bytes=TEST_MAX_UPLOAD_BYTES,
        ttl_seconds=TEST_TTL_SECONDS,
        stream_chunk_size=1024,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def upload(client):
    """Upload ``content`` and return its token."""
    def _upload(content: bytes, filename: str = "song.mp3", mime: str = "audio/mpeg") -> str:
        response = client.post(
            "/api/upload",
            content=content,
            headers={"X-Filename": filename, "X-Mime-Type": mime},
        )
        assert response.status_code == 200, response.text
        return response.json()["token"]
    return _upload
