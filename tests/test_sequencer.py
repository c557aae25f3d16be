from __future__ import annotations

import asyncio
import logging

import pytest

from app.monitoring.metrics import signaling_delivery_failures_total
from meshcall.signaling.errors import DeliveryFailureError
from meshcall.signaling.sequencer import EventSequencer, Mailbox

from support import ClosedWebSocket, DummyWebSocket


@pytest.mark.anyio("asyncio")
async def test_mailbox_delivers_in_post_order():
    websocket = DummyWebSocket(delay=0.001)
    mailbox = Mailbox("c1", websocket.send_json)
    mailbox.start()

    for index in range(5):
        mailbox.post({"type": "tick", "n": index})
    await mailbox.drain()

    assert [payload["n"] for payload in websocket.sent] == [0, 1, 2, 3, 4]
    await mailbox.close()


@pytest.mark.anyio("asyncio")
async def test_mailbox_closes_after_failed_send(caplog):
    mailbox = Mailbox("c1", ClosedWebSocket().send_json)
    mailbox.start()

    with caplog.at_level(logging.WARNING):
        mailbox.post({"type": "first"})
        mailbox.post({"type": "second"})
        await mailbox.drain()

    assert mailbox.closed
    assert mailbox.failure == "disconnected"
    assert signaling_delivery_failures_total.value("disconnected") == 1.0
    assert any("c1" in record.getMessage() for record in caplog.records)

    with pytest.raises(DeliveryFailureError) as exc:
        mailbox.post({"type": "third"})
    assert exc.value.reason == "disconnected"
    await mailbox.close()


@pytest.mark.anyio("asyncio")
async def test_mailbox_times_out_slow_peer():
    slow = DummyWebSocket(delay=0.5)
    mailbox = Mailbox("slow", slow.send_json, timeout=0.01)
    mailbox.start()

    mailbox.post({"type": "tick"})
    await mailbox.drain()

    assert mailbox.failure == "timeout"
    assert slow.sent == []
    await mailbox.close()


@pytest.mark.anyio("asyncio")
async def test_mailbox_rejects_posts_beyond_backlog():
    mailbox = Mailbox("c1", DummyWebSocket().send_json, max_size=1)

    mailbox.post({"type": "first"})
    with pytest.raises(DeliveryFailureError):
        mailbox.post({"type": "second"})

    assert mailbox.failure == "backlog"
    await mailbox.close()
    assert mailbox.pending == 0


@pytest.mark.anyio("asyncio")
async def test_mailbox_close_discards_queued_payloads():
    blocker = asyncio.Event()

    async def send(payload):
        await blocker.wait()

    mailbox = Mailbox("c1", send)
    mailbox.start()
    mailbox.post({"type": "one"})
    mailbox.post({"type": "two"})
    await asyncio.sleep(0)

    await mailbox.close()

    assert mailbox.closed
    assert mailbox.pending == 0
    await asyncio.wait_for(mailbox.drain(), timeout=1)


@pytest.mark.anyio("asyncio")
async def test_sequencer_skips_subject_and_continues_after_failures(caplog):
    alive = DummyWebSocket()
    mailboxes = {"alice": Mailbox("c-alice", alive.send_json)}
    mailboxes["alice"].start()
    sequencer = EventSequencer(mailboxes.get)

    with caplog.at_level(logging.WARNING):
        outcome = sequencer.announce_join("bob", ["ghost", "bob", "alice", "alice"], peer_id="peer-bob")
    await mailboxes["alice"].drain()

    assert outcome.event == "user-connected"
    assert outcome.delivered == ["alice"]
    assert outcome.failed == ["ghost"]
    assert alive.sent == [{"type": "user-connected", "participantId": "bob", "peerId": "peer-bob"}]
    assert signaling_delivery_failures_total.value("skipped") == 1.0
    assert any("ghost" in record.getMessage() for record in caplog.records)
    await mailboxes["alice"].close()


@pytest.mark.anyio("asyncio")
async def test_sequencer_leave_fan_out_uses_given_snapshot():
    sockets = {name: DummyWebSocket() for name in ("alice", "carol")}
    mailboxes = {name: Mailbox(name, ws.send_json) for name, ws in sockets.items()}
    for mailbox in mailboxes.values():
        mailbox.start()
    sequencer = EventSequencer(mailboxes.get)

    outcome = sequencer.announce_leave("bob", ["alice", "carol"])
    for mailbox in mailboxes.values():
        await mailbox.drain()

    assert outcome.delivered == ["alice", "carol"]
    for websocket in sockets.values():
        assert websocket.sent == [{"type": "user-disconnected", "participantId": "bob"}]
    for mailbox in mailboxes.values():
        await mailbox.close()


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("yields", [0, 1, 2, 3])
async def test_mailbox_close_returns_right_after_a_send(yields):
    websocket = DummyWebSocket()
    mailbox = Mailbox("c1", websocket.send_json, timeout=1.0)
    mailbox.start()
    mailbox.post({"type": "tick"})
    for _ in range(yields):
        await asyncio.sleep(0)

    await asyncio.wait_for(mailbox.close(), timeout=1)

    assert mailbox.closed
    assert mailbox.pending == 0
    assert websocket.sent in ([], [{"type": "tick"}])


@pytest.mark.anyio("asyncio")
async def test_mailbox_reports_failure_once():
    failures = []
    mailbox = Mailbox(
        "c1",
        ClosedWebSocket().send_json,
        on_failure=lambda connection_id, reason: failures.append((connection_id, reason)),
    )
    mailbox.start()

    mailbox.post({"type": "first"})
    mailbox.post({"type": "second"})
    await mailbox.drain()
    await mailbox.close()

    assert failures == [("c1", "disconnected")]


@pytest.mark.anyio("asyncio")
async def test_mailbox_reports_backlog_overflow():
    failures = []
    mailbox = Mailbox(
        "c1",
        DummyWebSocket().send_json,
        max_size=1,
        on_failure=lambda connection_id, reason: failures.append(reason),
    )

    mailbox.post({"type": "first"})
    with pytest.raises(DeliveryFailureError):
        mailbox.post({"type": "second"})

    assert failures == ["backlog"]
    await mailbox.close()
