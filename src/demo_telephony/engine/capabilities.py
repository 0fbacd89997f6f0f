"""Capability checks against the agent's phone configuration."""

from __future__ import annotations

from demo_telephony.errors import Capability, CapabilityNotSupported
from demo_telephony.models import AgentConfig

_FLAGS = {
    Capability.MUTE: "has_mute",
    Capability.MERGE: "has_merge",
    Capability.SWAP: "has_swap",
    Capability.RECORD: "has_record",
}


class CapabilityGate:
    """Stateless gate; reads the config it is handed and never touches calls."""

    def is_enabled(self, config: AgentConfig, capability: Capability) -> bool:
        return bool(getattr(config, _FLAGS[capability]))

    def require(self, config: AgentConfig, capability: Capability) -> None:
        if not self.is_enabled(config, capability):
            raise CapabilityNotSupported(capability)
