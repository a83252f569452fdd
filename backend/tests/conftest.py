"""
Test configuration and fixtures.
Uses an in-memory storage fake so no R2 account is needed.
"""
import os

# Keep tests independent of any developer .env / shell credentials
for _name in (
    "BIND",
    "R2_ACCOUNT_ID",
    "R2_ACCESS_KEY_ID",
    "R2_ACCESS_KEY_SECRET",
    "R2_BUCKET",
    "R2_ENDPOINT",
    "R2_REGION",
    "LOG_LEVEL",
    "METRICS_PORT",
):
    os.environ.pop(_name, None)

import asyncio
import pytest
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from r2_upload_proxy.errors import StorageError
from r2_upload_proxy.main import create_app


class FakeStorage:
    """In-memory stand-in for R2Client."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.block = False
        self.started = asyncio.Event()
        self.cancelled = False

    async def store(self, key: str, data: bytes) -> None:
        self.calls.append(key)
        self.started.set()
        if self.block:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise StorageError(self.error, key=key)
        self.objects[key] = data

    def fetch(self, key: str) -> bytes:
        return self.objects[key]


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def app(storage: FakeStorage) -> FastAPI:
    return create_app(storage)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def call_asgi(app, method: str, headers: list, receive) -> dict:
    """
    Drive the app with a hand-written receive channel.

    httpx always sends a body for POST, so requests without one, broken
    transports and disconnects are simulated at the ASGI level.
    """
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": "/upload",
        "raw_path": b"/upload",
        "query_string": b"",
        "root_path": "",
        "headers": [(name.lower().encode(), value.encode()) for name, value in headers],
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }
    response = {"status": None, "body": b""}

    async def send(message):
        if message["type"] == "http.response.start":
            response["status"] = message["status"]
        elif message["type"] == "http.response.body":
            response["body"] += message.get("body", b"")

    await app(scope, receive, send)
    return response
