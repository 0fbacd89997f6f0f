"""Mutable state owned by one engine instance."""

from __future__ import annotations

import dataclasses

from demo_telephony.engine.registry import CallRegistry
from demo_telephony.models import (
    AgentConfig,
    AgentStatus,
    AgentStatusInfo,
    Contact,
    ContactType,
)


def default_phone_contacts() -> list[Contact]:
    """Speed-dial directory shown to the agent."""
    return [
        Contact(
            id="123",
            type=ContactType.PHONEBOOK,
            name="Alice Ito",
            phone_number="555-555-4441",
        ),
        Contact(
            id="234",
            type=ContactType.PHONEBOOK,
            name="Bob Kay",
            phone_number="555-555-4442",
        ),
        Contact(
            id="345",
            type=ContactType.QUEUE,
            name="Billing Queue",
            phone_number="555-555-4450",
        ),
        Contact(
            id="456",
            type=ContactType.QUEUE,
            name="Sales Queue",
            phone_number="555-555-4451",
        ),
        Contact(
            id="567",
            type=ContactType.PHONENUMBER,
            name="Front Desk",
            phone_number="555-555-4460",
            prefix="+1",
        ),
        Contact(
            id="678",
            type=ContactType.AGENT,
            name="Carol Diaz",
            phone_number="555-555-4470",
            extension="4470",
        ),
    ]


@dataclasses.dataclass
class PendingStatus:
    status: AgentStatus
    info: AgentStatusInfo | None


@dataclasses.dataclass
class EngineState:
    calls: CallRegistry = dataclasses.field(default_factory=CallRegistry)
    agent_config: AgentConfig = dataclasses.field(default_factory=AgentConfig)
    agent_status: AgentStatus = AgentStatus.ONLINE
    agent_status_info: AgentStatusInfo | None = None
    agent_available: bool = True
    pending_status: PendingStatus | None = None
    is_muted: bool = False
    show_login_page: bool = False
    logged_in: bool = False
    throw_error: bool = False
    phone_contacts: list[Contact] = dataclasses.field(
        default_factory=default_phone_contacts
    )
