"""Active call set with lookup by call id or participant role."""

from __future__ import annotations

import logging

from demo_telephony.errors import CallNotFound, DuplicateCallId
from demo_telephony.models import ById, ByParticipant, Call, CallSelector

logger = logging.getLogger(__name__)


class CallRegistry:
    """Owns every active leg, keyed by call id.

    Ended legs are removed immediately; they only live on in the results
    and event payloads that reported them.
    """

    def __init__(self) -> None:
        self._calls: dict[str, Call] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def add(self, call: Call) -> None:
        if call.call_id in self._calls:
            raise DuplicateCallId(call.call_id)
        self._calls[call.call_id] = call
        logger.debug("Registered call %s (%s)", call.call_id, call.participant_type)

    def remove(self, call_id: str) -> Call:
        call = self._calls.pop(call_id, None)
        if call is None:
            raise CallNotFound(call_id=call_id)
        logger.debug("Removed call %s", call_id)
        return call

    def find(self, selector: CallSelector) -> Call:
        """Resolve *selector* to an active leg.

        Raises CallNotFound without context when nothing is active at all,
        otherwise with the call id or participant role that failed to match.
        """
        if not self._calls:
            raise CallNotFound()
        match selector:
            case ById(call_id):
                call = self._calls.get(call_id)
                if call is None:
                    raise CallNotFound(call_id=call_id)
                return call
            case ByParticipant(participant_type):
                for call in self._calls.values():
                    if call.participant_type == participant_type:
                        return call
                raise CallNotFound(participant_type=participant_type)
        raise TypeError(f"Unsupported call selector: {selector!r}")

    def find_optional(self, selector: CallSelector) -> Call | None:
        try:
            return self.find(selector)
        except CallNotFound:
            return None

    def all(self) -> dict[str, Call]:
        """Snapshot of the active set; mutating it leaves the registry intact."""
        return dict(self._calls)

    def clear(self) -> list[Call]:
        calls = list(self._calls.values())
        self._calls.clear()
        return calls
