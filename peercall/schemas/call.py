from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from peercall.config.constants import COINS_PER_MINUTE


class CalleeSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str = "Therapist"
    is_available: bool = Field(True, alias="isAvailable")

    @property
    def rate_text(self) -> str:
        return f"{COINS_PER_MINUTE} coins/min"


class CalleeListResponse(BaseModel):
    therapists: List[CalleeSummary] = []


class InitiateCallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: Optional[str] = Field(None, alias="roomId")
    call_id: Optional[str] = Field(None, alias="callId")


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_available: bool = Field(alias="isAvailable")


class CallHistoryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    therapist: Optional[CalleeSummary] = Field(None, alias="therapistId")
    start_time: Optional[datetime] = Field(None, alias="startTime")
    duration_minutes: int = Field(0, alias="durationMinutes")
    cost_in_coins: int = Field(0, alias="costInCoins")
    status: Optional[str] = None


class CallHistoryResponse(BaseModel):
    calls: List[CallHistoryItem] = []
