"""Shared pytest fixtures for signaling tests."""

from __future__ import annotations

from typing import AsyncIterator, Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.monitoring.registry import registry
from meshcall.signaling import SignalingGateway


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    registry.reset()
    yield
    registry.reset()


@pytest.fixture()
async def gateway(anyio_backend) -> AsyncIterator[SignalingGateway]:
    """A fresh gateway that is independent from the application singleton."""

    instance = SignalingGateway(delivery_timeout=1.0, mailbox_size=64)
    await instance.start()
    try:
        yield instance
    finally:
        await instance.stop()


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """Yield a FastAPI TestClient; startup and shutdown reset signaling state."""

    with TestClient(app) as test_client:
        yield test_client
