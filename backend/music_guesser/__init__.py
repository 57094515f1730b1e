from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, scheduler=None, metadata_provider=None, auth_provider=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from music_guesser.services.games import BackgroundScheduler, RoomRegistry, RoomSettings
    from music_guesser.services.sessions import SessionStore
    from music_guesser.services.spotify import SpotifyAuthProvider, SpotifyMetadataProvider
    from music_guesser.socketio_events import make_room_emitter

    cfg = flask_app.config
    if scheduler is None:
        scheduler = BackgroundScheduler(socketio, flask_app.logger, heartbeat_sec=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)))
    if metadata_provider is None:
        metadata_provider = SpotifyMetadataProvider(
            cfg['SPOTIFY_CLIENT_ID'], cfg['SPOTIFY_CLIENT_SECRET'],
            market=cfg.get('SPOTIFY_MARKET'), timeout=cfg.get('HTTP_TIMEOUT_SEC', 10.0),
        )
    if auth_provider is None:
        auth_provider = SpotifyAuthProvider(
            cfg['SPOTIFY_CLIENT_ID'], cfg['SPOTIFY_CLIENT_SECRET'], cfg['SPOTIFY_REDIRECT_URI'],
            scopes=cfg.get('SPOTIFY_SCOPES', ''), timeout=cfg.get('HTTP_TIMEOUT_SEC', 10.0),
        )

    namespace = cfg.get('SOCKETIO_NAMESPACE', '/ws')
    flask_app.extensions['room_registry'] = RoomRegistry(
        RoomSettings.from_config(cfg), scheduler, make_room_emitter(namespace), flask_app.logger,
    )
    flask_app.extensions['session_store'] = SessionStore(flask_app.logger)
    flask_app.extensions['metadata_provider'] = metadata_provider
    flask_app.extensions['auth_provider'] = auth_provider

    # Import and register blueprints here
    from music_guesser.main import main
    flask_app.register_blueprint(main)

    from music_guesser.api.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/auth')

    from music_guesser.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Register Socket.IO event handlers
    from music_guesser.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace)

    return flask_app
