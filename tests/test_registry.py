"""Unit tests for the participant registry."""

from __future__ import annotations

import pytest

from meshcall.signaling.errors import DuplicateIdentifierError, UnknownParticipantError
from meshcall.signaling.registry import Liveness, ParticipantRegistry


@pytest.fixture()
def registry() -> ParticipantRegistry:
    return ParticipantRegistry()


def test_register_creates_connecting_record(registry):
    participant = registry.register("alice", connection_id="c1")

    assert participant.state == Liveness.CONNECTING
    assert participant.peer_id == "alice"
    assert participant.room_id is None
    assert registry.lookup("alice") is participant
    assert "alice" in registry and len(registry) == 1


def test_register_keeps_explicit_peer_id(registry):
    participant = registry.register("alice", connection_id="c1", peer_id="peer-7")

    assert participant.peer_id == "peer-7"


def test_register_rejects_active_duplicate_without_overwriting(registry):
    original = registry.register("alice", connection_id="c1")
    registry.mark_active("alice")

    with pytest.raises(DuplicateIdentifierError) as exc:
        registry.register("alice", connection_id="c2")

    assert exc.value.participant_id == "alice"
    assert registry.lookup("alice") is original
    assert original.connection_id == "c1"


def test_register_supersedes_pending_record(registry):
    registry.register("alice", connection_id="c1")

    replacement = registry.register("alice", connection_id="c2")

    assert registry.lookup("alice") is replacement
    assert replacement.connection_id == "c2"


def test_mark_active_is_idempotent_and_ignores_unknown_ids(registry):
    registry.register("alice", connection_id="c1")

    first = registry.mark_active("alice")
    second = registry.mark_active("alice")

    assert first is second
    assert second.state == Liveness.ACTIVE
    assert registry.mark_active("ghost") is None


def test_unregister_returns_room_and_is_idempotent(registry):
    participant = registry.register("alice", connection_id="c1")
    registry.mark_active("alice")
    assert registry.assign_room("alice", "demo") is None

    assert registry.unregister("alice") == "demo"
    assert participant.state == Liveness.DISCONNECTED
    assert registry.lookup("alice") is None

    assert registry.unregister("alice") is None
    assert len(registry) == 0


def test_unregister_ignores_stale_connection(registry):
    registry.register("alice", connection_id="c1")
    registry.register("alice", connection_id="c2")

    assert registry.unregister("alice", connection_id="c1") is None
    assert registry.lookup("alice").connection_id == "c2"


def test_assign_room_returns_previous_room(registry):
    registry.register("alice", connection_id="c1")

    registry.assign_room("alice", "one")

    assert registry.assign_room("alice", "two") == "one"
    assert registry.lookup("alice").room_id == "two"
    assert registry.assign_room("ghost", "two") is None


def test_get_raises_for_unknown_participant(registry):
    with pytest.raises(UnknownParticipantError):
        registry.get("ghost")


def test_clear_marks_every_record_disconnected(registry):
    alice = registry.register("alice", connection_id="c1")
    bob = registry.register("bob", connection_id="c2")

    registry.clear()

    assert len(registry) == 0
    assert alice.state == bob.state == Liveness.DISCONNECTED
