from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({
        'message': 'Welcome to the Music Guesser game server!',
        'rooms': len(current_app.extensions['room_registry']),
        'sessions': len(current_app.extensions['session_store']),
    })
