import pytest

from meshcall.signaling import events
from meshcall.signaling.errors import MalformedEventError


def test_join_room_accepts_user_id_alias_and_numbers():
    event = events.parse_inbound({"type": "join-room", "roomId": " demo ", "userId": 42})

    assert event == events.JoinRoom(room_id="demo", participant_id="42", peer_id=None, stream_ready=True)


def test_join_room_reads_optional_fields():
    event = events.parse_inbound(
        {
            "type": "join-room",
            "roomId": "demo",
            "participantId": "alice",
            "peerId": "peer-alice",
            "streamReady": False,
        }
    )

    assert event.peer_id == "peer-alice"
    assert event.stream_ready is False


@pytest.mark.parametrize(
    "payload, message",
    [
        (["join-room"], "JSON object"),
        ({"roomId": "demo"}, "type must be provided"),
        ({"type": "shout"}, "Unsupported"),
        ({"type": "join-room", "participantId": "alice"}, "roomId"),
        ({"type": "join-room", "roomId": "demo", "participantId": "   "}, "must not be empty"),
        ({"type": "join-room", "roomId": "demo", "participantId": True}, "must be a string"),
        ({"type": "join-room", "roomId": "demo", "participantId": "a", "streamReady": "yes"}, "boolean"),
    ],
)
def test_malformed_payloads_are_rejected(payload, message):
    with pytest.raises(MalformedEventError) as exc:
        events.parse_inbound(payload)

    assert message in str(exc.value)


def test_identifier_length_is_bounded():
    with pytest.raises(MalformedEventError):
        events.parse_inbound(
            {"type": "join-room", "roomId": "r" * 9, "participantId": "alice"},
            max_identifier_length=8,
        )


@pytest.mark.parametrize(
    "event_type, expected",
    [
        ("stream-ready", events.StreamReady()),
        ("leave-room", events.LeaveRoom()),
        ("ping", events.Ping()),
        ("pong", events.Pong()),
    ],
)
def test_control_events(event_type, expected):
    assert events.parse_inbound({"type": event_type}) == expected


def test_outbound_envelopes():
    assert events.user_connected("bob") == {"type": "user-connected", "participantId": "bob", "peerId": "bob"}
    assert events.user_disconnected("bob") == {"type": "user-disconnected", "participantId": "bob"}
    assert events.error("nope") == {"type": "error", "detail": "nope"}


@pytest.mark.parametrize("room_id", ["health", "metrics", "api", "ws"])
def test_room_ids_taken_by_fixed_routes_are_rejected(room_id):
    with pytest.raises(MalformedEventError) as exc:
        events.parse_inbound({"type": "join-room", "roomId": room_id, "participantId": "alice"})

    assert "reserved" in str(exc.value)
