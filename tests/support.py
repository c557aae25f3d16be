"""Test doubles shared by the signaling tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from fastapi.websockets import WebSocketDisconnect

MEMBERSHIP_EVENTS = {"user-connected", "user-disconnected"}


class DummyWebSocket:
    """Records payloads the way a connected websocket would receive them."""

    def __init__(
        self,
        *,
        fail_with: BaseException | None = None,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail_with = fail_with
        self.delay = delay
        self.gate = gate
        self.closed_with: int | None = None

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(payload)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def types(self) -> list[str]:
        return [payload["type"] for payload in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for payload in self.sent if payload.get("type") == event_type]

    def about(self, participant_id: str) -> list[dict[str, Any]]:
        """Every payload that introduces or removes *participant_id*."""

        found = []
        for payload in self.sent:
            if payload.get("type") in MEMBERSHIP_EVENTS:
                if payload.get("participantId") == participant_id:
                    found.append(payload)
            elif payload.get("type") == "room-joined" and participant_id in payload["participants"]:
                found.append(payload)
        return found


class ClosedWebSocket(DummyWebSocket):
    def __init__(self) -> None:
        super().__init__(fail_with=WebSocketDisconnect(code=1006))


class ObservingWebSocket(DummyWebSocket):
    """Captures some observable state at the moment each payload arrives."""

    def __init__(self, observe: Callable[[], Any], *, delay: float = 0.0) -> None:
        super().__init__(delay=delay)
        self.observed: list[tuple[str, Any]] = []
        self._observe = observe

    async def send_json(self, payload: dict[str, Any]) -> None:
        await super().send_json(payload)
        self.observed.append((payload["type"], self._observe()))
