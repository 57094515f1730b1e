from flask import Blueprint, current_app, jsonify

from music_guesser.errors import GameError

rooms = Blueprint('rooms', __name__)


@rooms.route('/<string:room_code>/state', methods=['GET'])
def get_room_state(room_code):
    """Returns the current snapshot of a room, the same payload as room-update."""
    try:
        room = current_app.extensions['room_registry'].get(room_code)
    except GameError as exc:
        return jsonify(exc.to_ack()), 404
    return jsonify(room.snapshot())
