"""Vendor-side call state machine and event emission.

The engine owns the active call set, the agent's configuration and status,
and any pending wrap-up timers. Host commands are coroutines; vendor-side
stimuli (far end answering, remote hangup, callbacks, login results) are
plain methods the simulator calls directly.

Every coroutine runs on the event loop without interleaving except at the
registrar call and the wrap-up delay, so registry mutations are always
applied in one step after any await.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar

from demo_telephony.config import Settings, StatusGating
from demo_telephony.engine.capabilities import CapabilityGate
from demo_telephony.engine.events import EventPublisher
from demo_telephony.engine.state import EngineState, PendingStatus
from demo_telephony.engine.wrapup import DEFAULT_WRAPUP_DELAY, WrapupTimerManager
from demo_telephony.errors import (
    AgentUnavailable,
    CallNotFound,
    Capability,
    ExternalServiceFailure,
    InjectedFailure,
    InvalidCallState,
    UnavailableReason,
)
from demo_telephony.models import (
    ActiveCallsResult,
    AfterCallWorkResult,
    AgentConfig,
    AgentStatus,
    AgentStatusInfo,
    ByParticipant,
    Call,
    CallInfo,
    CallResult,
    CallSelector,
    CallState,
    CallType,
    Contact,
    EventType,
    GenericResult,
    HangupResult,
    HoldToggleResult,
    InitResult,
    Message,
    MuteToggleResult,
    ParticipantResult,
    ParticipantType,
    Phone,
    PhoneContactsFilter,
    PhoneContactsResult,
    PhoneType,
    RecordingToggleResult,
    selector_for,
)
from demo_telephony.registration import CallRegistrar

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

CallRef = Call | CallSelector | None


def _vendor_operation(
    func: Callable[..., Awaitable[_T]],
) -> Callable[..., Awaitable[_T]]:
    """Mark a host command; it rejects with InjectedFailure while injection is on."""

    @functools.wraps(func)
    async def wrapper(self: TelephonyEngine, *args: Any, **kwargs: Any) -> _T:
        if self.state.throw_error:
            logger.warning("Injected failure for %s", func.__name__)
            raise InjectedFailure()
        return await func(self, *args, **kwargs)

    wrapper.vendor_operation = True  # type: ignore[attr-defined]
    return wrapper


class TelephonyEngine:
    def __init__(
        self,
        *,
        registrar: CallRegistrar | None = None,
        publisher: EventPublisher | None = None,
        state: EngineState | None = None,
        gate: CapabilityGate | None = None,
        wrapup_delay: float = DEFAULT_WRAPUP_DELAY,
        enqueued_status_gating: StatusGating = StatusGating.DEFERRED,
    ) -> None:
        self.state = state if state is not None else EngineState()
        self.publisher = publisher if publisher is not None else EventPublisher()
        self.wrapup = WrapupTimerManager(self._on_wrapup_fired, delay=wrapup_delay)
        self._registrar = registrar
        self._gate = gate if gate is not None else CapabilityGate()
        self._status_gating = enqueued_status_gating
        self._issued_ids: set[str] = set()
        self._participants: dict[str, ParticipantResult] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        registrar: CallRegistrar | None = None,
        publisher: EventPublisher | None = None,
    ) -> TelephonyEngine:
        engine = cls(
            registrar=registrar,
            publisher=publisher,
            wrapup_delay=settings.wrapup_delay,
            enqueued_status_gating=settings.enqueued_status_gating,
        )
        engine.state.show_login_page = settings.show_login_page
        return engine

    # ------------------------------------------------------------------
    # Setup, login and reads
    # ------------------------------------------------------------------

    @_vendor_operation
    async def init(self, call_center_config: Mapping[str, Any]) -> InitResult:
        if self._registrar is not None:
            configured = await self._registrar.configure_tenant(call_center_config)
            if not configured:
                raise ExternalServiceFailure(
                    "setCallCenterConfig", "Failed to configure tenant information"
                )
        logger.info("Initialized (show_login=%s)", self.state.show_login_page)
        return InitResult(show_login=self.state.show_login_page)

    def show_login_page(self, show: bool) -> None:
        self.state.show_login_page = show

    def subsystem_login_result(self, success: bool) -> GenericResult:
        self.state.logged_in = success
        result = GenericResult(success=success)
        self.publisher.publish(EventType.LOGIN_RESULT, result)
        return result

    def subsystem_logout(self) -> GenericResult:
        self.state.logged_in = False
        result = GenericResult(success=True)
        self.publisher.publish(EventType.LOGOUT_RESULT, result)
        return result

    @_vendor_operation
    async def logout(self) -> GenericResult:
        self.state.logged_in = False
        logger.info("Agent logged out")
        return GenericResult(success=True)

    @_vendor_operation
    async def get_active_calls(self) -> ActiveCallsResult:
        return ActiveCallsResult(active_calls=self.state.calls.all())

    def get_call(self, call: CallRef = None) -> Call:
        return self.state.calls.find(selector_for(call))

    @_vendor_operation
    async def get_agent_config(self) -> AgentConfig:
        config = self.state.agent_config
        return dataclasses.replace(
            config, selected_phone=dataclasses.replace(config.selected_phone)
        )

    @_vendor_operation
    async def get_phone_contacts(
        self, contact_filter: PhoneContactsFilter | None = None
    ) -> PhoneContactsResult:
        contacts = list(self.state.phone_contacts)
        if contact_filter is not None:
            if contact_filter.contains:
                contacts = [
                    c
                    for c in contacts
                    if c.phone_number and contact_filter.contains in c.phone_number
                ]
            if contact_filter.type is not None:
                contacts = [c for c in contacts if c.type == contact_filter.type]
        return PhoneContactsResult(contacts=contacts)

    # ------------------------------------------------------------------
    # Call creation
    # ------------------------------------------------------------------

    @_vendor_operation
    async def start_inbound_call(
        self,
        phone_number: str | None,
        call_attributes: Mapping[str, Any] | None = None,
    ) -> CallResult:
        if not self.state.agent_available:
            raise AgentUnavailable(UnavailableReason.INBOUND, phone_number=phone_number)
        attributes = dict(call_attributes or {})
        # Hosts send the camelCase key; keyword-style callers the snake_case one
        participant_type = ParticipantType(
            attributes.get(
                "participantType",
                attributes.get("participant_type", ParticipantType.INITIAL_CALLER),
            )
        )
        call_id = await self._register(
            phone_number,
            {"participantType": participant_type.value, "callType": CallType.INBOUND},
        )
        call = Call(
            call_id=call_id,
            call_type=CallType.INBOUND,
            state=CallState.RINGING,
            participant_type=participant_type,
            phone_number=phone_number,
            contact=Contact(phone_number=phone_number),
            call_info=CallInfo(is_softphone_call=self._uses_softphone()),
        )
        self.state.calls.add(call)
        logger.info("Inbound call %s from %s ringing", call_id, phone_number)
        result = CallResult(call=call)
        self.publisher.publish(EventType.CALL_STARTED, result)
        return result

    @_vendor_operation
    async def dial(
        self, contact: Contact, *, is_softphone_call: bool | None = None
    ) -> CallResult:
        self._require_outbound_slot()
        softphone = (
            self._uses_softphone() if is_softphone_call is None else is_softphone_call
        )
        call_id = await self._register(
            contact.phone_number,
            {
                "participantType": ParticipantType.INITIAL_CALLER.value,
                "callType": CallType.OUTBOUND,
            },
        )
        # Another dial may have taken the slot while we waited on the registrar
        self._require_outbound_slot()
        call = Call(
            call_id=call_id,
            call_type=CallType.OUTBOUND,
            state=CallState.CONNECTING,
            participant_type=ParticipantType.INITIAL_CALLER,
            phone_number=contact.phone_number,
            contact=contact,
            call_info=CallInfo(is_softphone_call=softphone),
        )
        self.state.calls.add(call)
        logger.info("Dialing %s as call %s", contact.phone_number, call_id)
        result = CallResult(call=call)
        if softphone:
            self.publisher.publish(EventType.CALL_STARTED, result)
        return result

    def request_callback(self, contact: Contact) -> CallResult:
        call = Call(
            call_id=self._mint_call_id(),
            call_type=CallType.CALLBACK,
            state=CallState.RINGING,
            participant_type=ParticipantType.INITIAL_CALLER,
            phone_number=contact.phone_number,
            contact=contact,
            call_info=CallInfo(is_softphone_call=self._uses_softphone()),
        )
        self.state.calls.add(call)
        logger.info("Callback %s queued for %s", call.call_id, contact.phone_number)
        result = CallResult(call=call)
        self.publisher.publish(EventType.QUEUED_CALL_STARTED, result)
        return result

    def connect_call(self) -> CallResult:
        """Far end answered the outbound dial."""
        call = self.state.calls.find(ByParticipant(ParticipantType.INITIAL_CALLER))
        if call.state != CallState.CONNECTING:
            raise InvalidCallState(call.call_id, call.state, "connect")
        call.transition(CallState.CONNECTED)
        logger.info("Call %s connected", call.call_id)
        result = CallResult(call=call)
        self.publisher.publish(EventType.CALL_CONNECTED, result)
        return result

    # ------------------------------------------------------------------
    # Ringing legs
    # ------------------------------------------------------------------

    @_vendor_operation
    async def accept_call(self, call: CallRef = None) -> CallResult:
        target = self._find(call)
        if target.state != CallState.RINGING:
            raise InvalidCallState(target.call_id, target.state, "accept")
        target.transition(CallState.CONNECTED)
        logger.info("Call %s accepted", target.call_id)
        return CallResult(call=target)

    @_vendor_operation
    async def decline_call(self, call: CallRef = None) -> CallResult:
        target = self._find(call)
        if target.state != CallState.RINGING:
            raise InvalidCallState(target.call_id, target.state, "decline")
        self._end_legs([target])
        logger.info("Call %s declined", target.call_id)
        return CallResult(call=target)

    # ------------------------------------------------------------------
    # Ending legs
    # ------------------------------------------------------------------

    @_vendor_operation
    async def end_call(self, call: CallRef = None) -> HangupResult:
        target = self._find(call)
        if target.participant_type == ParticipantType.AGENT:
            # The agent may only leave a conference both other parties are in.
            for other in (ParticipantType.INITIAL_CALLER, ParticipantType.THIRD_PARTY):
                self.state.calls.find(ByParticipant(other))
        self._end_legs([target])
        logger.info("Call %s ended by agent", target.call_id)
        return HangupResult(calls=[target])

    def hangup(self) -> HangupResult:
        """Remote side dropped: every active leg ends at once."""
        calls = self.state.calls.clear()
        for call in calls:
            call.transition(CallState.ENDED)
        result = HangupResult(calls=calls)
        logger.info("Hangup ended %d call(s)", len(calls))
        self.publisher.publish(EventType.HANGUP, result)
        self._after_legs_ended(calls)
        return result

    @_vendor_operation
    async def remove_participant(
        self, participant_type: ParticipantType = ParticipantType.THIRD_PARTY
    ) -> CallResult:
        call = self.state.calls.find(ByParticipant(participant_type))
        self._end_legs([call])
        logger.info("Removed %s leg %s", participant_type, call.call_id)
        result = CallResult(call=call)
        self.publisher.publish(EventType.PARTICIPANT_REMOVED, result)
        return result

    # ------------------------------------------------------------------
    # In-call controls
    # ------------------------------------------------------------------

    @_vendor_operation
    async def mute(self) -> MuteToggleResult:
        self._gate.require(self.state.agent_config, Capability.MUTE)
        self.state.is_muted = True
        return MuteToggleResult(is_muted=True)

    @_vendor_operation
    async def unmute(self) -> MuteToggleResult:
        self._gate.require(self.state.agent_config, Capability.MUTE)
        self.state.is_muted = False
        return MuteToggleResult(is_muted=False)

    @_vendor_operation
    async def hold(self, call: CallRef = None) -> HoldToggleResult:
        target = self._find(call)
        self._check_holdable(target, "hold")
        self._set_on_hold(target, True)
        return self._hold_result()

    @_vendor_operation
    async def resume(self, call: CallRef = None) -> HoldToggleResult:
        target = self._find(call)
        self._check_holdable(target, "resume")
        self._set_on_hold(target, False)
        return self._hold_result()

    @_vendor_operation
    async def swap_calls(self, call1: CallRef, call2: CallRef) -> HoldToggleResult:
        self._gate.require(self.state.agent_config, Capability.SWAP)
        # Resolve and validate both legs before touching either.
        legs = self._unique([self._find(call1), self._find(call2)])
        for leg in legs:
            self._check_holdable(leg, "swap")
        for leg in legs:
            self._set_on_hold(leg, leg.state == CallState.CONNECTED)
        return self._hold_result()

    @_vendor_operation
    async def conference(self, calls: Sequence[CallRef]) -> HoldToggleResult:
        self._gate.require(self.state.agent_config, Capability.MERGE)
        legs = self._unique([self._find(call) for call in calls])
        for leg in legs:
            self._check_holdable(leg, "conference")
        for leg in legs:
            self._set_on_hold(leg, False)
        logger.info("Conferenced %d leg(s)", len(legs))
        return self._hold_result()

    @_vendor_operation
    async def pause_recording(self, call: CallRef = None) -> RecordingToggleResult:
        return self._set_recording_paused(call, True)

    @_vendor_operation
    async def resume_recording(self, call: CallRef = None) -> RecordingToggleResult:
        return self._set_recording_paused(call, False)

    @_vendor_operation
    async def send_digits(self, digits: str) -> None:
        logger.info("Sending digits %s", digits)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    @_vendor_operation
    async def add_participant(
        self,
        contact: Contact,
        call: CallRef = None,
        is_blind_transfer: bool = False,
    ) -> ParticipantResult:
        if not is_blind_transfer:
            self._gate.require(self.state.agent_config, Capability.MERGE)
        self._require_transfer_slot()
        initial = self._find(call)
        call_id = await self._register(
            contact.phone_number,
            {
                "participantType": ParticipantType.THIRD_PARTY.value,
                "callType": CallType.OUTBOUND,
            },
        )
        # The remote side may have hung up while we waited on the registrar
        if initial.call_id not in self.state.calls:
            raise CallNotFound(call_id=initial.call_id)
        self._require_transfer_slot()
        leg = Call(
            call_id=call_id,
            call_type=CallType.OUTBOUND,
            state=CallState.CONNECTING,
            participant_type=ParticipantType.THIRD_PARTY,
            phone_number=contact.phone_number,
            contact=contact,
            call_info=CallInfo(
                is_on_hold=False,
                is_softphone_call=initial.call_info.is_softphone_call,
            ),
        )
        self.state.calls.add(leg)
        logger.info("Adding participant %s as call %s", contact.phone_number, call_id)
        initial_ended = False
        if is_blind_transfer and initial.call_id in self.state.calls:
            self._end_legs([initial])
            initial_ended = True
            logger.info("Blind transfer dropped call %s", initial.call_id)
        result = ParticipantResult(
            call_id=call_id,
            phone_number=initial.phone_number,
            initial_call_has_ended=initial_ended,
            call_info=leg.call_info,
        )
        self._participants[call_id] = result
        return result

    def connect_participant(self) -> ParticipantResult:
        """Third party answered the transfer leg."""
        leg = self.state.calls.find(ByParticipant(ParticipantType.THIRD_PARTY))
        if leg.state != CallState.CONNECTING:
            raise InvalidCallState(leg.call_id, leg.state, "connect")
        leg.transition(CallState.CONNECTED)
        initial = self.state.calls.find_optional(
            ByParticipant(ParticipantType.INITIAL_CALLER)
        )
        previous = self._participants.get(leg.call_id)
        result = ParticipantResult(
            call_id=leg.call_id,
            phone_number=(
                previous.phone_number if previous is not None else leg.phone_number
            ),
            initial_call_has_ended=initial is None,
            call_info=leg.call_info,
        )
        self._participants[leg.call_id] = result
        logger.info("Participant %s connected", leg.call_id)
        self.publisher.publish(EventType.PARTICIPANT_CONNECTED, result)
        return result

    # ------------------------------------------------------------------
    # Agent status and configuration
    # ------------------------------------------------------------------

    @_vendor_operation
    async def set_agent_status(
        self,
        status: AgentStatus,
        info: AgentStatusInfo | None = None,
        enqueue_next_state: bool = False,
    ) -> GenericResult:
        if enqueue_next_state and len(self.state.calls):
            self.state.pending_status = PendingStatus(status=status, info=info)
            if self._status_gating == StatusGating.IMMEDIATE:
                self.state.agent_available = status == AgentStatus.ONLINE
            logger.info("Agent status %s queued until calls end", status)
            return GenericResult(success=True)
        self.state.pending_status = None
        self._apply_status(status, info)
        return GenericResult(success=True)

    @_vendor_operation
    async def set_agent_config(
        self,
        *,
        has_mute: bool | None = None,
        has_merge: bool | None = None,
        has_record: bool | None = None,
        has_swap: bool | None = None,
        selected_phone: Phone | None = None,
    ) -> GenericResult:
        self.update_agent_config(
            has_mute=has_mute,
            has_merge=has_merge,
            has_record=has_record,
            has_swap=has_swap,
            selected_phone=selected_phone,
        )
        return GenericResult(success=True)

    def update_agent_config(
        self,
        *,
        has_mute: bool | None = None,
        has_merge: bool | None = None,
        has_record: bool | None = None,
        has_swap: bool | None = None,
        selected_phone: Phone | None = None,
    ) -> None:
        """Merge the given fields into the agent config; None leaves a field as is.

        A phone of the same type that only carries a new number keeps the
        current phone type; any other phone replaces the selection outright.
        """
        config = self.state.agent_config
        flags = {
            "has_mute": has_mute,
            "has_merge": has_merge,
            "has_record": has_record,
            "has_swap": has_swap,
        }
        for name, value in flags.items():
            if value is not None:
                setattr(config, name, value)
        if selected_phone is not None:
            current = config.selected_phone
            if (
                selected_phone.type == current.type
                and selected_phone.number is not None
            ):
                current.number = selected_phone.number
            else:
                config.selected_phone = dataclasses.replace(selected_phone)
        logger.debug("Agent config now %s", config)

    # ------------------------------------------------------------------
    # Wrap-up, messages and error injection
    # ------------------------------------------------------------------

    def end_wrapup(self) -> None:
        logger.info("endWrapup")
        cancelled = self.wrapup.cancel_all()
        if cancelled:
            logger.info("Wrap-up finished early for %s", ", ".join(cancelled))

    def handle_message(self, message: Message) -> None:
        logger.info("Message from host: %s", message)

    def publish_message(self, message: Message) -> None:
        self.publisher.publish(EventType.MESSAGE, message)

    def throw_error(self, enabled: bool) -> None:
        self.state.throw_error = enabled
        logger.info("Error injection %s", "enabled" if enabled else "disabled")

    async def execute_async(self, method_name: str, *args: Any, **kwargs: Any) -> Any:
        """Run the named host command, honouring error injection."""
        if self.state.throw_error:
            logger.warning("Injected failure for %s", method_name)
            raise InjectedFailure()
        method = getattr(self, method_name, None)
        if method is None or not getattr(method, "vendor_operation", False):
            raise ValueError(f"Unknown operation: {method_name}")
        return await method(*args, **kwargs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(
        self,
        call: CallRef,
        default: ParticipantType = ParticipantType.INITIAL_CALLER,
    ) -> Call:
        return self.state.calls.find(selector_for(call, default))

    def _uses_softphone(self) -> bool:
        return self.state.agent_config.selected_phone.type == PhoneType.SOFT_PHONE

    def _mint_call_id(self) -> str:
        call_id = str(uuid.uuid4())
        self._issued_ids.add(call_id)
        return call_id

    async def _register(
        self, phone_number: str | None, attributes: Mapping[str, Any]
    ) -> str:
        """Obtain a call id from the registrar, or mint one locally.

        Registrar errors propagate; a declined or already-issued id falls
        back to a local one.
        """
        if self._registrar is None:
            return self._mint_call_id()
        call_id = await self._registrar.register_call(phone_number, attributes)
        if call_id is None:
            logger.warning("No call id registered for %s, using local id", phone_number)
            return self._mint_call_id()
        if call_id in self._issued_ids:
            logger.warning("Registrar reused call id %s, using local id", call_id)
            return self._mint_call_id()
        self._issued_ids.add(call_id)
        return call_id

    def _require_outbound_slot(self) -> None:
        if not self.state.agent_available:
            raise AgentUnavailable(UnavailableReason.OUTBOUND)
        for call in self.state.calls.all().values():
            if (
                call.call_type == CallType.OUTBOUND
                and call.participant_type == ParticipantType.INITIAL_CALLER
            ):
                raise AgentUnavailable(UnavailableReason.OUTBOUND)

    def _require_transfer_slot(self) -> None:
        third_party = self.state.calls.find_optional(
            ByParticipant(ParticipantType.THIRD_PARTY)
        )
        if third_party is not None:
            raise AgentUnavailable(UnavailableReason.TRANSFER)

    @staticmethod
    def _unique(calls: list[Call]) -> list[Call]:
        seen: dict[str, Call] = {}
        for call in calls:
            seen.setdefault(call.call_id, call)
        return list(seen.values())

    @staticmethod
    def _check_holdable(call: Call, operation: str) -> None:
        if call.state not in (CallState.CONNECTED, CallState.ON_HOLD):
            raise InvalidCallState(call.call_id, call.state, operation)

    @staticmethod
    def _set_on_hold(call: Call, on_hold: bool) -> None:
        target = CallState.ON_HOLD if on_hold else CallState.CONNECTED
        call.call_info.is_on_hold = on_hold
        if call.state != target:
            call.transition(target)
            logger.info("Call %s %s", call.call_id, "held" if on_hold else "resumed")

    def _hold_result(self) -> HoldToggleResult:
        calls = self.state.calls
        customer = calls.find_optional(ByParticipant(ParticipantType.INITIAL_CALLER))
        third_party = calls.find_optional(ByParticipant(ParticipantType.THIRD_PARTY))
        return HoldToggleResult(
            is_customer_on_hold=customer is not None and customer.call_info.is_on_hold,
            is_third_party_on_hold=(
                third_party is not None and third_party.call_info.is_on_hold
            ),
            calls=calls.all(),
        )

    def _set_recording_paused(
        self, call: CallRef, paused: bool
    ) -> RecordingToggleResult:
        self._gate.require(self.state.agent_config, Capability.RECORD)
        target = self._find(call)
        target.call_info.is_recording_paused = paused
        action = "paused" if paused else "resumed"
        logger.info("Recording %s for call %s", action, target.call_id)
        return RecordingToggleResult(is_recording_paused=paused, call_id=target.call_id)

    def _apply_status(self, status: AgentStatus, info: AgentStatusInfo | None) -> None:
        self.state.agent_status = status
        self.state.agent_status_info = info
        self.state.agent_available = status == AgentStatus.ONLINE
        logger.info("Agent status %s", status)

    def _end_legs(self, calls: list[Call]) -> None:
        for call in calls:
            self.state.calls.remove(call.call_id)
            call.transition(CallState.ENDED)
        self._after_legs_ended(calls)

    def _after_legs_ended(self, ended: list[Call]) -> None:
        """Start wrap-up and apply a queued status once nothing is active."""
        for call in ended:
            self._participants.pop(call.call_id, None)
        if not ended or len(self.state.calls):
            return
        anchor = next(
            (c for c in ended if c.participant_type == ParticipantType.INITIAL_CALLER),
            ended[-1],
        )
        self.wrapup.schedule(anchor.call_id)
        pending = self.state.pending_status
        if pending is not None:
            self.state.pending_status = None
            self._apply_status(pending.status, pending.info)

    def _on_wrapup_fired(self, call_id: str) -> None:
        self.publisher.publish(
            EventType.AFTER_CALL_WORK_STARTED, AfterCallWorkResult(call_id=call_id)
        )
