"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from demo_telephony.engine.events import Event
from demo_telephony.engine.telephony import TelephonyEngine
from demo_telephony.models import EventType

# Short enough to keep tests fast, long enough to observe "not yet fired"
WRAPUP_DELAY = 0.05


class FakeRegistrar:
    """In-memory stand-in for the registration backend."""

    def __init__(self) -> None:
        self.requests: list[tuple[str | None, dict[str, Any]]] = []
        self.tenant_configs: list[dict[str, Any]] = []
        self.next_ids: list[str | None] = []
        self.error: Exception | None = None
        self.tenant_ok = True
        self.gate: asyncio.Event | None = None
        self._counter = 0

    async def register_call(
        self, phone_number: str | None, attributes: Mapping[str, Any]
    ) -> str | None:
        self.requests.append((phone_number, dict(attributes)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.next_ids:
            return self.next_ids.pop(0)
        self._counter += 1
        return f"voice-call-{self._counter}"

    async def configure_tenant(self, call_center_config: Mapping[str, Any]) -> bool:
        self.tenant_configs.append(dict(call_center_config))
        return self.tenant_ok


class EventRecorder:
    """Event sink that keeps every envelope it receives."""

    def __init__(self) -> None:
        self.events: list[Event] = []
        # Call state at delivery time, since payload calls keep mutating
        self.states: list[str | None] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)
        call = getattr(event.payload, "call", None)
        self.states.append(call.state if call is not None else None)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    @property
    def types(self) -> list[EventType]:
        return [e.event_type for e in self.events]


@pytest.fixture
def registrar() -> FakeRegistrar:
    return FakeRegistrar()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def engine(registrar: FakeRegistrar, recorder: EventRecorder) -> TelephonyEngine:
    eng = TelephonyEngine(registrar=registrar, wrapup_delay=WRAPUP_DELAY)
    eng.publisher.subscribe(recorder)
    return eng


async def wait_for_wrapup() -> None:
    await asyncio.sleep(WRAPUP_DELAY * 3)
