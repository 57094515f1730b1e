from music_guesser import create_app, socketio
from music_guesser.services.sessions import run_session_sweeper

app = create_app()

if __name__ == '__main__':
    socketio.start_background_task(
        run_session_sweeper, socketio, app.extensions['session_store'],
        app.config['SESSION_SWEEP_INTERVAL_SEC'],
    )
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
