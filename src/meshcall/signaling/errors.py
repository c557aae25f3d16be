"""Exceptions raised by the signaling core."""

from __future__ import annotations


class SignalingError(Exception):
    """Base class for recoverable signaling failures."""


class DuplicateIdentifierError(SignalingError):
    """Raised when a participant id is already registered and active."""

    def __init__(self, participant_id: str) -> None:
        super().__init__(f"Participant '{participant_id}' is already connected")
        self.participant_id = participant_id


class UnknownParticipantError(SignalingError):
    """Raised when an operation refers to an id the registry never saw."""

    def __init__(self, participant_id: str | None) -> None:
        super().__init__(f"Unknown participant '{participant_id}'")
        self.participant_id = participant_id


class DeliveryFailureError(SignalingError):
    """A single fan-out delivery could not be handed to its recipient."""

    def __init__(self, recipient_id: str, reason: str) -> None:
        super().__init__(f"Delivery to '{recipient_id}' failed: {reason}")
        self.recipient_id = recipient_id
        self.reason = reason


class MalformedEventError(SignalingError, ValueError):
    """Inbound payload does not describe a supported event."""


__all__ = [
    "SignalingError",
    "DuplicateIdentifierError",
    "UnknownParticipantError",
    "DeliveryFailureError",
    "MalformedEventError",
]
