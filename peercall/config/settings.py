from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Call record / availability API
    API_BASE_URL: str = Field("http://localhost:5000/api")
    AUTH_TOKEN: str | None = Field(None)
    HTTP_TIMEOUT_SEC: float = Field(10.0)

    # Signaling relay
    SIGNALING_URL: str = Field("ws://localhost:5000/ws")
    ROOM_PREFIX: str = Field("room")

    # Peer connection
    ICE_SERVERS: List[str] = Field(
        default_factory=lambda: [
            "stun:stun.l.google.com:19302",
            "stun:stun1.l.google.com:19302",
            "stun:stun2.l.google.com:19302",
        ]
    )
    # 0 disables the setup timeout
    CALL_SETUP_TIMEOUT_SEC: float = Field(30.0)

    # App
    LOG_LEVEL: str = Field("INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_file_encoding="utf-8"
    )


settings = Settings()
