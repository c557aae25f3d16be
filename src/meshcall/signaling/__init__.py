"""Room membership coordination and ordered join/leave fan-out."""

from .errors import (  # noqa: F401
    DeliveryFailureError,
    DuplicateIdentifierError,
    MalformedEventError,
    SignalingError,
    UnknownParticipantError,
)
from .gateway import (  # noqa: F401
    JoinOutcome,
    LeaveOutcome,
    SignalingGateway,
    get_gateway,
    shutdown_signaling,
    startup_signaling,
)
from .registry import Liveness, Participant, ParticipantRegistry  # noqa: F401
from .rooms import RoomDirectory  # noqa: F401
from .sequencer import EventSequencer, FanOut, Mailbox  # noqa: F401

__all__ = [
    "startup_signaling",
    "shutdown_signaling",
    "get_gateway",
    "SignalingGateway",
    "JoinOutcome",
    "LeaveOutcome",
    "ParticipantRegistry",
    "Participant",
    "Liveness",
    "RoomDirectory",
    "EventSequencer",
    "FanOut",
    "Mailbox",
    "SignalingError",
    "DuplicateIdentifierError",
    "UnknownParticipantError",
    "DeliveryFailureError",
    "MalformedEventError",
]
