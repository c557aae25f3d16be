"""Unit tests for the room directory."""

from __future__ import annotations

from meshcall.signaling.rooms import RoomDirectory


def test_join_returns_prior_members_in_join_order():
    directory = RoomDirectory()

    assert directory.join("demo", "alice") == []
    assert directory.join("demo", "bob") == ["alice"]
    assert directory.join("demo", "carol") == ["alice", "bob"]
    assert directory.members_of("demo") == ["alice", "bob", "carol"]


def test_repeated_join_never_duplicates_members():
    directory = RoomDirectory()
    directory.join("demo", "alice")
    directory.join("demo", "bob")

    assert directory.join("demo", "alice") == ["bob"]
    assert directory.members_of("demo") == ["alice", "bob"]


def test_leave_returns_remaining_members():
    directory = RoomDirectory()
    for member in ("alice", "bob", "carol"):
        directory.join("demo", member)

    assert directory.leave("demo", "bob") == ["alice", "carol"]
    assert directory.leave("demo", "bob") == ["alice", "carol"]


def test_last_leave_removes_the_room():
    directory = RoomDirectory()
    directory.join("demo", "alice")

    assert directory.leave("demo", "alice") == []

    assert "demo" not in directory
    assert len(directory) == 0
    assert directory.members_of("demo") == []
    assert directory.rooms() == {}


def test_unknown_rooms_behave_as_empty():
    directory = RoomDirectory()

    assert directory.members_of("nowhere") == []
    assert directory.leave("nowhere", "alice") == []
    assert "nowhere" not in directory


def test_members_of_returns_a_copy():
    directory = RoomDirectory()
    directory.join("demo", "alice")

    snapshot = directory.members_of("demo")
    snapshot.append("mallory")

    assert directory.members_of("demo") == ["alice"]


def test_rooms_overview_lists_every_room():
    directory = RoomDirectory()
    directory.join("one", "alice")
    directory.join("two", "bob")
    directory.join("two", "carol")

    assert directory.rooms() == {"one": ["alice"], "two": ["bob", "carol"]}

    directory.clear()
    assert directory.rooms() == {}
