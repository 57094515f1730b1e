import functools

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from music_guesser import errors, socketio
from music_guesser.errors import GameError

SEARCH_LIMIT_DEFAULT = 10
SEARCH_LIMIT_MAX = 20


def room_channel(code: str) -> str:
    return f"room:{code}"


def make_room_emitter(namespace: str):
    """Build the per-room broadcast function handed to each Room."""
    def for_room(code):
        def _emit(event, payload):
            # socketio.emit (not flask_socketio.emit) since timers call this from background tasks
            socketio.emit(event, payload, to=room_channel(code), namespace=namespace)
        return _emit
    return for_room


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _registry():
    return current_app.extensions['room_registry']


def _sessions():
    return current_app.extensions['session_store']


def _metadata():
    return current_app.extensions['metadata_provider']


def acked(event_name):
    """Turn a handler's dict result (or GameError) into the request's ack payload."""
    def decorator(handler):
        @functools.wraps(handler)
        def wrapper(data=None, *args):
            sid = _get_sid()
            try:
                if data is None:
                    data = {}
                if not isinstance(data, dict):
                    raise errors.ValidationError('Payload must be an object', code='MissingFields')
                result = handler(sid, data)
            except GameError as exc:
                current_app.logger.info(f"[reject] event={event_name} sid={sid} code={exc.code} message={exc.message!r}")
                return exc.to_ack()
            except Exception:
                current_app.logger.exception(f"[handler-error] event={event_name} sid={sid}")
                return {'success': False, 'message': 'Internal server error', 'code': 'InternalError'}
            ack = {'success': True}
            ack.update(result or {})
            return ack
        return wrapper
    return decorator


def _depart(room, sid: str) -> None:
    if room.handle_disconnect(sid):
        _registry().remove(room.code)


def handle_connect(auth=None):
    emit('connected', {'sid': _get_sid(), 'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    sid = _get_sid()
    for room in _registry().find_by_connection(sid):
        current_app.logger.info(f"[leave] room={room.code} sid={sid} reason=disconnect")
        _depart(room, sid)


@acked('join-room')
def handle_join_room(sid, data):
    code = data.get('room')
    nickname = data.get('nickname')
    if not code or not nickname:
        raise errors.missing_fields('room', 'nickname')

    registry = _registry()
    for attempt in range(2):
        room = registry.get_or_create(code, sid)
        channel = room_channel(room.code)
        was_member = sid in room.players
        # Join the broadcast channel first so the joiner also gets the room-update
        join_room(channel)
        try:
            is_host = room.join(sid, nickname)
        except GameError as exc:
            # A rejected repeat join must not cut an existing player off from broadcasts
            if was_member:
                raise
            leave_room(channel)
            if exc.code == 'RoomClosed' and attempt == 0:
                continue
            if not room.players:
                registry.remove(room.code)
            raise
        return {'isHost': is_host, 'room': room.code, 'playerId': sid}


@acked('submit-track')
def handle_submit_track(sid, data):
    reference = data.get('trackRef')
    if not data.get('room') or not reference:
        raise errors.missing_fields('room', 'trackRef')
    room = _registry().get(data['room'])

    access_token = None
    session = _sessions().verify(data.get('sessionId'))
    if session is not None:
        access_token = session.token
    provider = _metadata()

    track, all_uploaded = room.submit_track(
        sid, reference, lambda ref: provider.resolve(ref, access_token=access_token),
    )
    return {'allUploaded': all_uploaded, 'track': track.to_dict()}


@acked('start-game')
def handle_start_game(sid, data):
    room = _registry().get(data.get('room'))
    duration = data.get('turnDurationSeconds', data.get('turnDuration'))
    room.start_game(sid, duration)
    return {}


@acked('next-turn')
def handle_next_turn(sid, data):
    _registry().get(data.get('room')).next_turn(sid)
    return {}


@acked('reset-game')
def handle_reset_game(sid, data):
    _registry().get(data.get('room')).reset_game(sid)
    return {'message': 'Game reset successfully. Players can now upload new songs.'}


@acked('chat-message')
def handle_chat_message(sid, data):
    room = _registry().get(data.get('room'))
    room.chat_message(sid, data.get('text', data.get('message')))
    return {}


@acked('search-tracks')
def handle_search_tracks(sid, data):
    query = (data.get('query') or '').strip()
    if not query:
        raise errors.missing_fields('query')
    session = _sessions().verify(data.get('sessionId'))
    if session is None:
        raise errors.invalid_session()
    try:
        limit = int(data.get('limit') or SEARCH_LIMIT_DEFAULT)
    except (TypeError, ValueError):
        limit = SEARCH_LIMIT_DEFAULT
    limit = max(1, min(SEARCH_LIMIT_MAX, limit))
    tracks = _metadata().search(query, session.token, limit=limit)
    return {'tracks': [t.to_dict() for t in tracks]}


@acked('leave-room')
def handle_leave_room(sid, data):
    room = _registry().get(data.get('room'))
    if sid not in room.players:
        raise errors.player_not_found()
    leave_room(room_channel(room.code))
    current_app.logger.info(f"[leave] room={room.code} sid={sid} reason=explicit")
    _depart(room, sid)
    return {}


EVENT_HANDLERS = {
    'join-room': handle_join_room,
    'submit-track': handle_submit_track,
    'start-game': handle_start_game,
    'next-turn': handle_next_turn,
    'reset-game': handle_reset_game,
    'chat-message': handle_chat_message,
    'search-tracks': handle_search_tracks,
    'leave-room': handle_leave_room,
}


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    for event, handler in EVENT_HANDLERS.items():
        socketio.on_event(event, handler, namespace=namespace)
