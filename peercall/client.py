"""
Call Client - Composition Root

Wires one signaling channel, one API client and the media stack into the
caller or callee orchestrator. Nothing here is process-wide: every client
owns its channel and closes it in aclose().

Usage:
    async with open_client(settings) as client:
        caller = client.caller(user_id="u1", balance=20)
        await caller.connect()
        await caller.place_call("t1")
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from peercall.config.settings import Settings
from peercall.services.api_client import CallApiClient
from peercall.services.call.callee import CalleeOrchestrator
from peercall.services.call.caller import CallerOrchestrator
from peercall.services.call.ui import HeadlessNavigator, LoggingNotifier
from peercall.services.media.protocols import (
    AudioRouter,
    MediaDevices,
    PeerConnectionFactory,
)
from peercall.services.media.routing import NullAudioRouter
from peercall.services.protocols import CallNavigator, Notifier
from peercall.services.session.negotiator import SessionNegotiator, create_negotiator
from peercall.services.session.states import CallRole
from peercall.services.signaling.channel import SignalingChannel
from peercall.services.signaling.websocket import WebSocketSignalingChannel

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


class CallClient:
    def __init__(
        self,
        settings: Settings,
        channel: Optional[SignalingChannel] = None,
        api: Optional[CallApiClient] = None,
        media_devices: Optional[MediaDevices] = None,
        peer_connection_factory: Optional[PeerConnectionFactory] = None,
        audio_router: Optional[AudioRouter] = None,
        navigator: Optional[CallNavigator] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.settings = settings
        self.channel = channel or WebSocketSignalingChannel(settings.SIGNALING_URL, settings.AUTH_TOKEN)
        self.api = api or CallApiClient(
            settings.API_BASE_URL,
            token=settings.AUTH_TOKEN,
            timeout=settings.HTTP_TIMEOUT_SEC,
            room_prefix=settings.ROOM_PREFIX,
        )

        if media_devices is None or peer_connection_factory is None:
            # aiortc is only loaded when no media stack was injected
            from peercall.services.media.aiortc_stack import (
                AiortcMediaDevices,
                aiortc_peer_connection_factory,
            )
            media_devices = media_devices or AiortcMediaDevices()
            peer_connection_factory = peer_connection_factory or aiortc_peer_connection_factory

        self.media_devices = media_devices
        self.peer_connection_factory = peer_connection_factory
        self.audio_router = audio_router or NullAudioRouter()
        self.navigator = navigator or HeadlessNavigator()
        self.notifier = notifier or LoggingNotifier()

    def negotiator_factory(self, role: CallRole, room_id: str, remote_party_id: Optional[str]) -> SessionNegotiator:
        return create_negotiator(
            role,
            self.channel,
            room_id,
            media_devices=self.media_devices,
            peer_connection_factory=self.peer_connection_factory,
            audio_router=self.audio_router,
            remote_party_id=remote_party_id,
            call_records=self.api,
            ice_servers=self.settings.ICE_SERVERS,
            setup_timeout=self.settings.CALL_SETUP_TIMEOUT_SEC,
        )

    def caller(self, user_id: str, user_name: str = "User", balance: int = 0) -> CallerOrchestrator:
        return CallerOrchestrator(
            self.channel,
            self.api,
            self.negotiator_factory,
            self.navigator,
            self.notifier,
            user_id=user_id,
            user_name=user_name,
            balance=balance,
        )

    def callee(self, callee_id: str, is_available: bool = False) -> CalleeOrchestrator:
        return CalleeOrchestrator(
            self.channel,
            self.api,
            self.negotiator_factory,
            self.navigator,
            self.notifier,
            callee_id=callee_id,
            is_available=is_available,
        )

    async def aclose(self) -> None:
        await self.channel.disconnect()
        await self.api.aclose()
        logger.info("Call client closed")


@asynccontextmanager
async def open_client(settings: Optional[Settings] = None, **kwargs) -> AsyncIterator[CallClient]:
    client = CallClient(settings or Settings(), **kwargs)
    try:
        yield client
    finally:
        await client.aclose()
