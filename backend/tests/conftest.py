import logging
import os
import sys
import pytest

# Ensure the backend root (containing the `music_guesser` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from music_guesser import create_app, errors, socketio
from music_guesser.models import Track
from music_guesser.services.games import Room, RoomSettings, TimerHandle
from music_guesser.services.metadata import MetadataProvider

TRACKS = {
    'song-a': Track('song-a', 'Bohemian Rhapsody', 'Queen', preview_ref='preview-a'),
    'song-b': Track('song-b', 'Billie Jean', 'Michael Jackson', preview_ref='preview-b'),
    'song-c': Track('song-c', 'Hey Jude', 'The Beatles', preview_ref='preview-c'),
    'song-d': Track('song-d', 'Africa', 'Toto', preview_ref='preview-d'),
}


class ManualScheduler:
    """Records scheduled callbacks; tests fire them explicitly instead of sleeping."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, delay, callback, label=''):
        handle = TimerHandle(label, delay)
        self.scheduled.append((handle, callback))
        return handle

    def pending(self):
        return [(h, cb) for h, cb in self.scheduled if not h.cancelled]

    def fire_next(self):
        while self.scheduled:
            handle, callback = self.scheduled.pop(0)
            if handle.cancelled:
                continue
            callback(handle)
            return handle
        raise AssertionError('no pending timers')


class FakeMetadataProvider(MetadataProvider):
    def __init__(self):
        self.tracks = dict(TRACKS)
        self.resolved = []
        self.searches = []

    def resolve(self, reference, access_token=None):
        self.resolved.append((reference, access_token))
        if reference not in self.tracks:
            raise errors.metadata_lookup_failed('track not found')
        return self.tracks[reference]

    def search(self, query, access_token, limit=10):
        self.searches.append((query, access_token, limit))
        q = query.lower()
        hits = [t for t in self.tracks.values() if q in t.title.lower() or q in t.artist.lower()]
        return hits[:limit]


class FakeAuthProvider:
    def __init__(self):
        self.fail = False
        self.refreshed = []

    def authorize_url(self, state):
        return f'https://accounts.example.test/authorize?state={state}'

    def exchange_code(self, code):
        if self.fail or code == 'bad-code':
            raise errors.auth_provider_error('invalid_grant')
        return {'access_token': f'access-{code}', 'refresh_token': f'refresh-{code}', 'expires_in': 3600}

    def refresh(self, refresh_token):
        if self.fail:
            raise errors.auth_provider_error('invalid_grant')
        self.refreshed.append(refresh_token)
        return {'access_token': 'access-refreshed', 'expires_in': 7200}

    def fetch_profile(self, access_token):
        return {'id': 'spotify-user-1', 'display_name': 'Alice Listener'}


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    FRONTEND_URL = 'http://frontend.test'


class RecordingEmitter:
    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def named(self, event):
        return [payload for name, payload in self.events if name == event]

    def last(self, event):
        found = self.named(event)
        return found[-1] if found else None


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def make_room(scheduler, emitter):
    def _make(code='ABCD', host_id='sid-alice', **settings):
        return Room(code, host_id, RoomSettings(**settings), scheduler, emitter, logging.getLogger('music_guesser.tests'))
    return _make


@pytest.fixture()
def metadata_provider():
    return FakeMetadataProvider()


@pytest.fixture()
def auth_provider():
    return FakeAuthProvider()


@pytest.fixture()
def flask_app(scheduler, metadata_provider, auth_provider):
    application = create_app(
        TestConfig,
        scheduler=scheduler,
        metadata_provider=metadata_provider,
        auth_provider=auth_provider,
    )
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        # Flush the 'connected' greeting
        test_client.get_received('/ws')
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        # Tests may have disconnected already
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()
