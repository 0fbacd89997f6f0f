"""Error kinds raised by the telephony engine.

Each exception carries structured context; the human-readable message is
only built in ``__str__``.
"""

from __future__ import annotations

from enum import StrEnum

from demo_telephony.models import CallState, ParticipantType

INJECTED_ERROR_MESSAGE = "demo error"


class ErrorKind(StrEnum):
    CALL_NOT_FOUND = "call_not_found"
    AGENT_UNAVAILABLE = "agent_unavailable"
    CAPABILITY_NOT_SUPPORTED = "capability_not_supported"
    EXTERNAL_SERVICE_FAILURE = "external_service_failure"
    INJECTED_FAILURE = "injected_failure"
    INVALID_CALL_STATE = "invalid_call_state"
    DUPLICATE_CALL_ID = "duplicate_call_id"


class UnavailableReason(StrEnum):
    INBOUND = "inbound"
    OUTBOUND = "no outbound capacity"
    TRANSFER = "no transfer capacity"


class Capability(StrEnum):
    MUTE = "mute"
    MERGE = "merge"
    SWAP = "swap"
    RECORD = "record"


class TelephonyError(Exception):
    """Base class for every failure surfaced by the engine."""

    kind: ErrorKind

    def __init__(self) -> None:
        super().__init__(str(self))


class CallNotFound(TelephonyError):
    kind = ErrorKind.CALL_NOT_FOUND

    def __init__(
        self,
        *,
        call_id: str | None = None,
        participant_type: ParticipantType | None = None,
    ) -> None:
        self.call_id = call_id
        self.participant_type = participant_type
        super().__init__()

    def __str__(self) -> str:
        if self.call_id is not None:
            return f"Couldn't find an active call for callId {self.call_id}"
        if self.participant_type is not None:
            return (
                f"Couldn't find an active call for participant {self.participant_type}"
            )
        return "Couldn't find an active call"


class AgentUnavailable(TelephonyError):
    kind = ErrorKind.AGENT_UNAVAILABLE

    def __init__(
        self, reason: UnavailableReason, *, phone_number: str | None = None
    ) -> None:
        self.reason = reason
        self.phone_number = phone_number
        super().__init__()

    def __str__(self) -> str:
        if self.reason == UnavailableReason.INBOUND:
            return (
                "Agent is not available for an inbound call from phoneNumber - "
                f"{self.phone_number}"
            )
        return f"Agent is not available: {self.reason}"


class CapabilityNotSupported(TelephonyError):
    kind = ErrorKind.CAPABILITY_NOT_SUPPORTED

    def __init__(self, capability: Capability) -> None:
        self.capability = capability
        super().__init__()

    def __str__(self) -> str:
        return f"{self.capability} is not supported"


class ExternalServiceFailure(TelephonyError):
    kind = ErrorKind.EXTERNAL_SERVICE_FAILURE

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__()

    def __str__(self) -> str:
        return f"{self.operation} failed: {self.detail}"


class InjectedFailure(TelephonyError):
    kind = ErrorKind.INJECTED_FAILURE

    def __str__(self) -> str:
        return INJECTED_ERROR_MESSAGE


class InvalidCallState(TelephonyError):
    kind = ErrorKind.INVALID_CALL_STATE

    def __init__(self, call_id: str, state: CallState, operation: str) -> None:
        self.call_id = call_id
        self.state = state
        self.operation = operation
        super().__init__()

    def __str__(self) -> str:
        return f"Cannot {self.operation} call {self.call_id} in state {self.state}"


class DuplicateCallId(TelephonyError):
    kind = ErrorKind.DUPLICATE_CALL_ID

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__()

    def __str__(self) -> str:
        return f"Call {self.call_id} is already active"
