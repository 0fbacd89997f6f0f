"""Tests for agent status, configuration, login and error injection."""

import pytest
from conftest import WRAPUP_DELAY, EventRecorder, FakeRegistrar

from demo_telephony.config import StatusGating
from demo_telephony.engine.telephony import TelephonyEngine
from demo_telephony.errors import (
    AgentUnavailable,
    ExternalServiceFailure,
    InjectedFailure,
    UnavailableReason,
)
from demo_telephony.models import (
    AgentStatus,
    AgentStatusInfo,
    Contact,
    ContactType,
    EventType,
    GenericResult,
    InitResult,
    Phone,
    PhoneContactsFilter,
    PhoneType,
)

OFFLINE_INFO = AgentStatusInfo(status_id="0N5", status_name="Offline")


# ---------------------------------------------------------------------------
# Agent status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_set_status_offline_blocks_inbound(engine: TelephonyEngine):
    result = await engine.set_agent_status(AgentStatus.OFFLINE, OFFLINE_INFO)
    assert result == GenericResult(success=True)
    assert engine.state.agent_status == AgentStatus.OFFLINE
    assert engine.state.agent_status_info == OFFLINE_INFO

    with pytest.raises(AgentUnavailable) as exc_info:
        await engine.start_inbound_call("555-0100")
    assert exc_info.value.reason == UnavailableReason.INBOUND
    assert str(exc_info.value) == (
        "Agent is not available for an inbound call from phoneNumber - 555-0100"
    )


@pytest.mark.asyncio
async def test_set_status_offline_blocks_dial(engine: TelephonyEngine):
    await engine.set_agent_status(AgentStatus.OFFLINE)
    with pytest.raises(AgentUnavailable) as exc_info:
        await engine.dial(Contact(phone_number="555-0200"))
    assert exc_info.value.reason == UnavailableReason.OUTBOUND


@pytest.mark.asyncio
async def test_enqueued_status_deferred_until_calls_end(engine: TelephonyEngine):
    await engine.start_inbound_call("555-0100")
    await engine.set_agent_status(
        AgentStatus.OFFLINE, OFFLINE_INFO, enqueue_next_state=True
    )

    assert engine.state.agent_status == AgentStatus.ONLINE
    assert engine.state.agent_available is True
    assert engine.state.pending_status is not None

    engine.hangup()

    assert engine.state.agent_status == AgentStatus.OFFLINE
    assert engine.state.agent_status_info == OFFLINE_INFO
    assert engine.state.agent_available is False
    assert engine.state.pending_status is None
    engine.end_wrapup()


@pytest.mark.asyncio
async def test_enqueued_status_immediate_gating(registrar: FakeRegistrar):
    engine = TelephonyEngine(
        registrar=registrar,
        wrapup_delay=WRAPUP_DELAY,
        enqueued_status_gating=StatusGating.IMMEDIATE,
    )
    await engine.start_inbound_call("555-0100")
    await engine.set_agent_status(AgentStatus.OFFLINE, enqueue_next_state=True)

    # Reported status waits for the call, gating does not
    assert engine.state.agent_status == AgentStatus.ONLINE
    assert engine.state.agent_available is False
    with pytest.raises(AgentUnavailable):
        await engine.start_inbound_call("555-0101")

    engine.hangup()
    assert engine.state.agent_status == AgentStatus.OFFLINE
    engine.end_wrapup()


@pytest.mark.asyncio
async def test_enqueued_status_without_calls_applies_now(engine: TelephonyEngine):
    await engine.set_agent_status(AgentStatus.OFFLINE, enqueue_next_state=True)
    assert engine.state.agent_status == AgentStatus.OFFLINE
    assert engine.state.pending_status is None


@pytest.mark.asyncio
async def test_direct_status_discards_pending(engine: TelephonyEngine):
    await engine.start_inbound_call("555-0100")
    await engine.set_agent_status(AgentStatus.OFFLINE, enqueue_next_state=True)
    await engine.set_agent_status(AgentStatus.ONLINE)

    engine.hangup()

    assert engine.state.agent_status == AgentStatus.ONLINE
    assert engine.state.agent_available is True
    engine.end_wrapup()


# ---------------------------------------------------------------------------
# Agent configuration and contacts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_agent_config_returns_copy(engine: TelephonyEngine):
    config = await engine.get_agent_config()
    config.has_mute = False
    config.selected_phone.number = "555-9999"
    assert engine.state.agent_config.has_mute is True
    assert engine.state.agent_config.selected_phone.number is None


@pytest.mark.asyncio
async def test_set_agent_config_merges_flags(engine: TelephonyEngine):
    result = await engine.set_agent_config(has_record=False)
    assert result.success is True
    config = await engine.get_agent_config()
    assert config.has_record is False
    assert config.has_mute is True
    assert config.selected_phone == Phone(type=PhoneType.SOFT_PHONE)


def test_update_agent_config_phone_rules(engine: TelephonyEngine):
    engine.update_agent_config(
        selected_phone=Phone(type=PhoneType.DESK_PHONE, number="555-1111")
    )
    phone = engine.state.agent_config.selected_phone
    assert phone == Phone(type=PhoneType.DESK_PHONE, number="555-1111")

    # Same type with a number only updates the number
    engine.update_agent_config(
        selected_phone=Phone(type=PhoneType.DESK_PHONE, number="555-2222")
    )
    assert engine.state.agent_config.selected_phone is phone
    assert phone.number == "555-2222"

    engine.update_agent_config(selected_phone=Phone(type=PhoneType.SOFT_PHONE))
    assert engine.state.agent_config.selected_phone == Phone(
        type=PhoneType.SOFT_PHONE
    )


@pytest.mark.asyncio
async def test_desk_phone_dial_publishes_nothing(
    engine: TelephonyEngine, recorder: EventRecorder
):
    engine.update_agent_config(selected_phone=Phone(type=PhoneType.DESK_PHONE))
    result = await engine.dial(Contact(phone_number="555-0200"))
    assert result.call.call_info.is_softphone_call is False
    assert recorder.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("contact_filter", "expected_ids"),
    [
        (None, ["123", "234", "345", "456", "567", "678"]),
        (PhoneContactsFilter(contains="445"), ["345", "456"]),
        (PhoneContactsFilter(type=ContactType.QUEUE), ["345", "456"]),
        (PhoneContactsFilter(contains="44", type=ContactType.AGENT), ["678"]),
        (PhoneContactsFilter(contains="0000"), []),
    ],
)
async def test_get_phone_contacts(
    engine: TelephonyEngine,
    contact_filter: PhoneContactsFilter | None,
    expected_ids: list[str],
):
    result = await engine.get_phone_contacts(contact_filter)
    assert [c.id for c in result.contacts] == expected_ids


@pytest.mark.asyncio
async def test_get_active_calls_is_snapshot(engine: TelephonyEngine):
    started = await engine.start_inbound_call("555-0100")
    result = await engine.get_active_calls()
    assert result.active_calls == {started.call.call_id: started.call}
    result.active_calls.clear()
    assert len(engine.state.calls) == 1


# ---------------------------------------------------------------------------
# Init and login
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_init_pushes_tenant_config(
    engine: TelephonyEngine, registrar: FakeRegistrar
):
    engine.show_login_page(True)
    result = await engine.init({"tenant": "acme"})
    assert result == InitResult(show_login=True, login_frame_height=350)
    assert registrar.tenant_configs == [{"tenant": "acme"}]


@pytest.mark.asyncio
async def test_init_tenant_rejected(engine: TelephonyEngine, registrar: FakeRegistrar):
    registrar.tenant_ok = False
    with pytest.raises(ExternalServiceFailure) as exc_info:
        await engine.init({"tenant": "acme"})
    assert exc_info.value.operation == "setCallCenterConfig"


@pytest.mark.asyncio
async def test_init_without_registrar():
    engine = TelephonyEngine()
    result = await engine.init({})
    assert result.show_login is False


def test_login_and_logout_events(engine: TelephonyEngine, recorder: EventRecorder):
    engine.subsystem_login_result(True)
    assert engine.state.logged_in is True
    engine.subsystem_logout()
    assert engine.state.logged_in is False

    assert recorder.types == [EventType.LOGIN_RESULT, EventType.LOGOUT_RESULT]
    assert recorder.events[0].payload == GenericResult(success=True)
    assert recorder.events[1].payload == GenericResult(success=True)


def test_failed_login_event(engine: TelephonyEngine, recorder: EventRecorder):
    engine.subsystem_login_result(False)
    assert recorder.events[0].payload == GenericResult(success=False)
    assert engine.state.logged_in is False


@pytest.mark.asyncio
async def test_logout_is_idempotent(engine: TelephonyEngine, recorder: EventRecorder):
    engine.subsystem_login_result(True)
    assert (await engine.logout()).success is True
    assert (await engine.logout()).success is True
    assert engine.state.logged_in is False
    assert recorder.types == [EventType.LOGIN_RESULT]


# ---------------------------------------------------------------------------
# Messages and error injection
# ---------------------------------------------------------------------------


def test_publish_message(engine: TelephonyEngine, recorder: EventRecorder):
    engine.handle_message({"type": "ping"})
    assert recorder.events == []
    engine.publish_message({"type": "pong"})
    [event] = recorder.events
    assert event.event_type == EventType.MESSAGE
    assert event.payload == {"type": "pong"}


@pytest.mark.asyncio
async def test_injected_failure_rejects_host_commands(engine: TelephonyEngine):
    engine.throw_error(True)
    with pytest.raises(InjectedFailure) as exc_info:
        await engine.dial(Contact(phone_number="555-0200"))
    assert str(exc_info.value) == "demo error"
    with pytest.raises(InjectedFailure):
        await engine.get_agent_config()
    assert len(engine.state.calls) == 0


@pytest.mark.asyncio
async def test_execute_async_injection_precedes_gate(engine: TelephonyEngine):
    engine.state.agent_config.has_swap = False
    engine.throw_error(True)
    with pytest.raises(InjectedFailure):
        await engine.execute_async("swap_calls", None, None)


@pytest.mark.asyncio
async def test_execute_async_runs_named_command(engine: TelephonyEngine):
    started = await engine.start_inbound_call("555-0100")
    result = await engine.execute_async("get_active_calls")
    assert list(result.active_calls) == [started.call.call_id]

    engine.throw_error(True)
    engine.throw_error(False)
    result = await engine.execute_async("accept_call", started.call)
    assert result.call.call_id == started.call.call_id


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["hangup", "no_such_command", "_find"])
async def test_execute_async_unknown_name(engine: TelephonyEngine, name: str):
    with pytest.raises(ValueError):
        await engine.execute_async(name)


@pytest.mark.asyncio
async def test_vendor_stimuli_ignore_injection(
    engine: TelephonyEngine, recorder: EventRecorder
):
    await engine.start_inbound_call("555-0100")
    engine.throw_error(True)
    result = engine.hangup()
    assert len(result.calls) == 1
    assert recorder.types[-1] == EventType.HANGUP
    engine.end_wrapup()
