"""
Call API Client

HTTP client for the call-record and availability collaborator:
- Call initiation (returns the room id)
- Answer / end records
- Availability get / set
- Routable callees and call history
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from peercall.schemas.call import (
    AvailabilityResponse,
    CalleeListResponse,
    CalleeSummary,
    CallHistoryItem,
    CallHistoryResponse,
    InitiateCallResponse,
)
from peercall.services.call.exceptions import CallApiError
from peercall.services.signaling.channel import make_room_id

logger = logging.getLogger(__name__)


class CallApiClient:
    """Thin async wrapper over the call-record REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        room_prefix: str = "room",
    ):
        self.room_prefix = room_prefix
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CallApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"[Api] {method} {url} failed: {e}")
            raise CallApiError(f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"[Api] {method} {url} -> {resp.status_code} {resp.text}")
            raise CallApiError(
                f"{method} {url} returned {resp.status_code}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise CallApiError(f"{method} {url} returned invalid JSON") from e
        return data if isinstance(data, dict) else {"data": data}

    # === Call records ===

    async def initiate_call(self, callee_id: str) -> str:
        """Create a call record. Returns the room id for the call."""
        data = await self._request("POST", "/call/initiate", json={"therapistId": callee_id})
        try:
            response = InitiateCallResponse.model_validate(data)
        except ValidationError as e:
            raise CallApiError(f"Malformed call initiation response: {e}") from e

        room_id = response.room_id
        if room_id is None and response.call_id:
            # Older servers only return the call record id
            room_id = make_room_id(response.call_id, self.room_prefix)
        if not room_id:
            raise CallApiError("Call initiation response missing roomId")
        logger.info(f"[Api] Call initiated, room ID: {room_id}")
        return room_id

    async def answer_call(self, call_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/call/answer/{call_id}")

    async def end_call(self, call_id: str, ended_by: str) -> Dict[str, Any]:
        """Record the end of a call; the server computes duration and cost."""
        data = await self._request("POST", f"/call/end/{call_id}", json={"endedBy": ended_by})
        logger.info(f"[Api] Call {call_id} end recorded (endedBy={ended_by})")
        return data

    # === Availability ===

    async def get_availability(self) -> bool:
        data = await self._request("GET", "/therapist/availability")
        return self._parse_availability(data)

    async def set_availability(self, is_available: bool) -> bool:
        """Request an availability change. Returns the server-confirmed value."""
        data = await self._request(
            "PUT", "/therapist/availability", json={"isAvailable": is_available}
        )
        return self._parse_availability(data)

    @staticmethod
    def _parse_availability(data: Dict[str, Any]) -> bool:
        payload = data.get("therapist", data)
        try:
            return AvailabilityResponse.model_validate(payload).is_available
        except ValidationError as e:
            raise CallApiError(f"Availability response missing isAvailable: {e}") from e

    # === Listings ===

    async def fetch_callees(self) -> List[CalleeSummary]:
        data = await self._request("GET", "/user/therapists")
        try:
            return CalleeListResponse.model_validate(data).therapists
        except ValidationError as e:
            raise CallApiError(f"Invalid callee list: {e}") from e

    async def fetch_call_history(self) -> List[CallHistoryItem]:
        data = await self._request("GET", "/user/call-history")
        try:
            return CallHistoryResponse.model_validate(data).calls
        except ValidationError as e:
            raise CallApiError(f"Invalid call history: {e}") from e
