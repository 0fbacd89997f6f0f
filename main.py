"""Demo telephony back-end entrypoint.

Boots an engine from the environment, logs every event it publishes, and
walks one inbound call through accept, transfer and hangup into wrap-up.
"""

import asyncio
import logging

import aiohttp
from dotenv import load_dotenv

from demo_telephony.config import load_settings
from demo_telephony.engine.events import Event
from demo_telephony.engine.telephony import TelephonyEngine
from demo_telephony.models import ByParticipant, Contact, ParticipantType
from demo_telephony.registration import RegistrationClient

logger = logging.getLogger(__name__)


def _log_event(event: Event) -> None:
    logger.info("event %s: %s", event.event_type, event.payload)


async def run_demo(engine: TelephonyEngine) -> None:
    started = await engine.start_inbound_call(
        "555-0100", {"participant_type": ParticipantType.INITIAL_CALLER}
    )
    call = started.call
    await engine.accept_call(call)
    await engine.hold(call)
    await engine.add_participant(Contact(phone_number="555-0200"), call)
    engine.connect_participant()
    await engine.conference([call, ByParticipant(ParticipantType.THIRD_PARTY)])
    await engine.remove_participant(ParticipantType.THIRD_PARTY)
    engine.hangup()
    # Let the wrap-up timer fire
    await asyncio.sleep(engine.wrapup.delay + 0.1)


async def main() -> None:
    load_dotenv()
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async with aiohttp.ClientSession() as session:
        registrar = None
        if settings.registration_url:
            registrar = RegistrationClient(
                session,
                settings.registration_url,
                timeout=settings.registration_timeout,
            )
        engine = TelephonyEngine.from_settings(settings, registrar=registrar)
        engine.publisher.subscribe(_log_event)

        result = await engine.init({"tenant": "demo"})
        logger.info("Engine ready (show_login=%s)", result.show_login)
        await run_demo(engine)
        logger.info("Demo finished")


if __name__ == "__main__":
    asyncio.run(main())
