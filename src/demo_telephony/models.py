"""Call, agent and result data model shared by the engine and its host."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class CallType(StrEnum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    CALLBACK = "callback"


class CallState(StrEnum):
    """Lifecycle of one leg.

    RINGING → CONNECTED → ON_HOLD ⇄ CONNECTED → ENDED for inbound and
    callback legs; outbound and transfer legs start in CONNECTING until the
    far end confirms.
    """

    RINGING = "ringing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ON_HOLD = "on_hold"
    ENDED = "ended"


class ParticipantType(StrEnum):
    INITIAL_CALLER = "Initial_Caller"
    THIRD_PARTY = "Third_Party"
    AGENT = "Agent"


class AgentStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"


class PhoneType(StrEnum):
    SOFT_PHONE = "SOFT_PHONE"
    DESK_PHONE = "DESK_PHONE"


class ContactType(StrEnum):
    PHONEBOOK = "PhoneBook"
    QUEUE = "Queue"
    PHONENUMBER = "PhoneNumber"
    AGENT = "Agent"


class EventType(StrEnum):
    """Fixed set of events delivered to the host."""

    CALL_STARTED = "CALL_STARTED"
    QUEUED_CALL_STARTED = "QUEUED_CALL_STARTED"
    CALL_CONNECTED = "CALL_CONNECTED"
    PARTICIPANT_CONNECTED = "PARTICIPANT_CONNECTED"
    PARTICIPANT_REMOVED = "PARTICIPANT_REMOVED"
    HANGUP = "HANGUP"
    AFTER_CALL_WORK_STARTED = "AFTER_CALL_WORK_STARTED"
    LOGIN_RESULT = "LOGIN_RESULT"
    LOGOUT_RESULT = "LOGOUT_RESULT"
    MESSAGE = "MESSAGE"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclasses.dataclass
class Phone:
    type: PhoneType
    number: str | None = None


@dataclasses.dataclass
class Contact:
    """Directory entry or free-form dial target."""

    phone_number: str | None = None
    id: str | None = None
    type: ContactType | None = None
    name: str | None = None
    prefix: str | None = None
    extension: str | None = None


@dataclasses.dataclass
class CallInfo:
    is_on_hold: bool = False
    is_softphone_call: bool = True
    is_recording_paused: bool = False
    call_state_timestamp: datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class Call:
    call_id: str
    call_type: CallType
    state: CallState
    participant_type: ParticipantType
    phone_number: str | None = None
    contact: Contact | None = None
    call_info: CallInfo = dataclasses.field(default_factory=CallInfo)

    def transition(self, state: CallState) -> None:
        """Move to *state* and stamp the change time."""
        self.state = state
        self.call_info.call_state_timestamp = utcnow()


@dataclasses.dataclass
class AgentConfig:
    has_mute: bool = True
    has_merge: bool = True
    has_record: bool = True
    has_swap: bool = True
    selected_phone: Phone = dataclasses.field(
        default_factory=lambda: Phone(type=PhoneType.SOFT_PHONE)
    )


@dataclasses.dataclass(frozen=True)
class AgentStatusInfo:
    status_id: str | None = None
    status_api_name: str | None = None
    status_name: str | None = None


@dataclasses.dataclass(frozen=True)
class ById:
    """Select a leg by its call id."""

    call_id: str


@dataclasses.dataclass(frozen=True)
class ByParticipant:
    """Select the active leg playing *participant_type*."""

    participant_type: ParticipantType


CallSelector = ById | ByParticipant


def selector_for(
    call: Call | CallSelector | None,
    default: ParticipantType = ParticipantType.INITIAL_CALLER,
) -> CallSelector:
    """Turn a host-supplied call reference into a selector.

    An explicit call id wins over the participant role; a missing reference
    selects the *default* role.
    """
    if call is None:
        return ByParticipant(default)
    if isinstance(call, (ById, ByParticipant)):
        return call
    return ById(call.call_id)


# ---------------------------------------------------------------------------
# Operation results and event payloads
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class GenericResult:
    success: bool


@dataclasses.dataclass
class InitResult:
    show_login: bool = False
    login_frame_height: int = 350


@dataclasses.dataclass
class CallResult:
    call: Call


@dataclasses.dataclass
class HangupResult:
    calls: list[Call]


@dataclasses.dataclass
class ActiveCallsResult:
    active_calls: dict[str, Call]


@dataclasses.dataclass
class MuteToggleResult:
    is_muted: bool


@dataclasses.dataclass
class HoldToggleResult:
    is_customer_on_hold: bool
    is_third_party_on_hold: bool
    calls: dict[str, Call]


@dataclasses.dataclass
class RecordingToggleResult:
    is_recording_paused: bool
    call_id: str


@dataclasses.dataclass
class ParticipantResult:
    call_id: str
    phone_number: str | None
    initial_call_has_ended: bool
    call_info: CallInfo


@dataclasses.dataclass
class PhoneContactsResult:
    contacts: list[Contact]


@dataclasses.dataclass
class AfterCallWorkResult:
    call_id: str


@dataclasses.dataclass(frozen=True)
class PhoneContactsFilter:
    contains: str | None = None
    type: ContactType | None = None


Message = dict[str, Any]
