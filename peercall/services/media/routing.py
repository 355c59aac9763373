"""
Audio routing for hosts without a platform routing service.

Tracks the requested routing state and logs every change.
"""
import logging

logger = logging.getLogger(__name__)


class NullAudioRouter:
    """AudioRouter that records state instead of touching hardware."""

    def __init__(self):
        self.active = False
        self.speaker_on = False
        self.keep_screen_on = False

    def start(self, media: str = "audio") -> None:
        self.active = True
        logger.info(f"[AudioRouter] Started ({media})")

    def stop(self) -> None:
        self.active = False
        self.speaker_on = False
        self.keep_screen_on = False
        logger.info("[AudioRouter] Stopped")

    def set_speaker_on(self, enabled: bool) -> None:
        self.speaker_on = enabled
        logger.info(f"[AudioRouter] Speaker {'on' if enabled else 'off'}")

    def set_keep_screen_on(self, enabled: bool) -> None:
        self.keep_screen_on = enabled
        logger.debug(f"[AudioRouter] Keep screen on: {enabled}")
