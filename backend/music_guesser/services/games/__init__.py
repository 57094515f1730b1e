"""Game domain services: rooms, turns, scoring and timers.

This package contains the room state machine and its helpers. It is
imported by the Socket.IO handlers and HTTP routes, keeping transport
concerns separated from core game mechanics.
"""

from .registry import RoomRegistry, normalize_room_code
from .room import Room, RoomSettings
from .scheduler import BackgroundScheduler, TimerHandle

__all__ = [
    'BackgroundScheduler',
    'Room',
    'RoomRegistry',
    'RoomSettings',
    'TimerHandle',
    'normalize_room_code',
]
