"""
Live call flow check against a running relay and call-record API.

User A (caller) calls therapist B (callee); B accepts, both sides
negotiate over the relay, the call is held for a few seconds and A
hangs up.

    CALLER_TOKEN=... CALLEE_TOKEN=... CALLER_ID=... CALLEE_ID=... \
        python scripts/verify_flow.py
"""
import asyncio
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from peercall.client import CallClient, configure_logging
from peercall.config.settings import Settings
from peercall.services.session import NegotiatorState

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

CALLER_ID = os.getenv("CALLER_ID", "user-a")
CALLEE_ID = os.getenv("CALLEE_ID", "therapist-b")
HOLD_SECONDS = float(os.getenv("HOLD_SECONDS", "5"))


async def wait_for(predicate, timeout: float, what: str) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.2)
    logger.error(f"FAILED: Timeout waiting for {what}")
    return False


async def run_scenario():
    base = Settings()
    caller_client = CallClient(base.model_copy(update={"AUTH_TOKEN": os.getenv("CALLER_TOKEN")}))
    callee_client = CallClient(base.model_copy(update={"AUTH_TOKEN": os.getenv("CALLEE_TOKEN")}))

    caller = caller_client.caller(CALLER_ID, user_name="User A", balance=int(os.getenv("CALLER_BALANCE", "100")))
    callee = callee_client.callee(CALLEE_ID)

    try:
        # 1. Both sides register presence
        await callee.connect()
        await callee.set_availability(True)
        await caller.connect()
        logger.info(f"Callee available: {callee.is_available}")

        # 2. A calls B
        request = await caller.place_call(CALLEE_ID)
        logger.info(f"Ringing in room {request.room_id}")

        # 3. B receives the prompt and accepts
        if not await wait_for(lambda: callee.incoming is not None, 10, "incoming call"):
            return
        logger.info("SUCCESS: B received incoming call!")
        await callee.accept()

        # 4. Both sessions connect
        def both_connected():
            return (
                caller.negotiator is not None
                and callee.negotiator is not None
                and caller.negotiator.state is NegotiatorState.CONNECTED
                and callee.negotiator.state is NegotiatorState.CONNECTED
            )

        if not await wait_for(both_connected, base.CALL_SETUP_TIMEOUT_SEC, "connection"):
            return
        logger.info("SUCCESS: Both sides connected")

        await asyncio.sleep(HOLD_SECONDS)
        logger.info(f"Call duration: {caller.negotiator.session.duration_text}")

        # 5. A hangs up, B sees the remote end
        await caller.end_call()
        if await wait_for(lambda: callee.negotiator is None, 10, "remote hangup"):
            logger.info("SUCCESS: Call ended on both sides")

    finally:
        await caller.disconnect()
        await callee.disconnect()
        await caller_client.aclose()
        await callee_client.aclose()


if __name__ == "__main__":
    asyncio.run(run_scenario())
