import threading
from typing import Callable, Dict, List, Optional

from music_guesser import errors
from .room import Room, RoomSettings

MAX_ROOM_CODE_LENGTH = 32


def normalize_room_code(code) -> str:
    if not isinstance(code, str) or not code.strip():
        raise errors.missing_fields('room')
    code = code.strip().upper()
    if len(code) > MAX_ROOM_CODE_LENGTH:
        raise errors.ValidationError(f'Room code too long (max {MAX_ROOM_CODE_LENGTH} chars)', code='InvalidRoomCode')
    return code


class RoomRegistry:
    """In-memory map of room code -> Room.

    Rooms are created lazily by the first join and removed once their last
    player leaves. The map has its own lock; lock order is always registry
    first, then room.
    """

    def __init__(self, settings: RoomSettings, scheduler, emitter: Callable[[str], Callable[[str, dict], None]], logger):
        self.settings = settings
        self.scheduler = scheduler
        self.emitter = emitter
        self.logger = logger
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def get_or_create(self, code: str, connection_id: str) -> Room:
        code = normalize_room_code(code)
        with self._lock:
            room = self._rooms.get(code)
            if room is None:
                room = Room(code, connection_id, self.settings, self.scheduler, self.emitter(code), self.logger)
                self._rooms[code] = room
                self.logger.info(f"[room-create] room={code} host={connection_id}")
            return room

    def get(self, code: str) -> Room:
        code = normalize_room_code(code)
        with self._lock:
            room = self._rooms.get(code)
        if room is None:
            raise errors.room_not_found()
        return room

    def find(self, code: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(code)

    def remove(self, code: str) -> bool:
        """Destroy an empty room. A room that gained a player in the meantime is kept."""
        with self._lock:
            room = self._rooms.get(code)
            if room is None:
                return False
            with room.lock:
                if room.players:
                    return False
                room.close()
                del self._rooms[code]
        self.logger.info(f"[room-remove] room={code}")
        return True

    def find_by_connection(self, connection_id: str) -> List[Room]:
        with self._lock:
            rooms = list(self._rooms.values())
        return [room for room in rooms if connection_id in room.players]

    def codes(self) -> List[str]:
        with self._lock:
            return sorted(self._rooms)

    def __len__(self):
        with self._lock:
            return len(self._rooms)
