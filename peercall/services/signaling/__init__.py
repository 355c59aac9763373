"""
Signaling module.

Provides the event channel shared by the orchestrators and the
session negotiator, and room identifier helpers.
"""
from .channel import SignalingChannel, make_room_id, call_id_from_room
from .websocket import WebSocketSignalingChannel

__all__ = [
    "SignalingChannel",
    "WebSocketSignalingChannel",
    "make_room_id",
    "call_id_from_room",
]
