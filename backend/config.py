import os


def _csv(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    CORS_ORIGINS = _csv(os.environ.get('CORS_ORIGINS') or
                        'http://localhost:4200,http://127.0.0.1:4200,http://localhost:5173,http://127.0.0.1:5173')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Turn timing (seconds)
    DEFAULT_TURN_DURATION_SEC = int(os.environ.get('DEFAULT_TURN_DURATION_SEC', '30'))
    MIN_TURN_DURATION_SEC = int(os.environ.get('MIN_TURN_DURATION_SEC', '10'))
    MAX_TURN_DURATION_SEC = int(os.environ.get('MAX_TURN_DURATION_SEC', '120'))
    REVEAL_DURATION_SEC = int(os.environ.get('REVEAL_DURATION_SEC', '5'))
    NICKNAME_MAX_LENGTH = int(os.environ.get('NICKNAME_MAX_LENGTH', '20'))
    CHAT_MAX_LENGTH = int(os.environ.get('CHAT_MAX_LENGTH', '500'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
    SESSION_SWEEP_INTERVAL_SEC = int(os.environ.get('SESSION_SWEEP_INTERVAL_SEC', '60'))
    # Spotify (auth + track metadata)
    SPOTIFY_CLIENT_ID = os.environ.get('SPOTIFY_CLIENT_ID', '')
    SPOTIFY_CLIENT_SECRET = os.environ.get('SPOTIFY_CLIENT_SECRET', '')
    SPOTIFY_REDIRECT_URI = os.environ.get('SPOTIFY_REDIRECT_URI') or 'http://localhost:5000/auth/callback'
    SPOTIFY_SCOPES = os.environ.get('SPOTIFY_SCOPES') or 'user-read-private user-read-email'
    SPOTIFY_MARKET = os.environ.get('SPOTIFY_MARKET', 'US')
    HTTP_TIMEOUT_SEC = float(os.environ.get('HTTP_TIMEOUT_SEC', '10'))
    FRONTEND_URL = os.environ.get('FRONTEND_URL') or 'http://localhost:4200'
