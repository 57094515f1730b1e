"""Spotify Web API clients for login and track metadata."""

import threading
import time
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from music_guesser import errors
from music_guesser.models import Track
from .metadata import MetadataProvider, clean_song_details, parse_track_reference

ACCOUNTS_URL = 'https://accounts.spotify.com'
API_URL = 'https://api.spotify.com/v1'


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f'HTTP {response.status_code}'
    error = body.get('error') if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get('message') or f'HTTP {response.status_code}'
    return body.get('error_description') or error or f'HTTP {response.status_code}'


class SpotifyAuthProvider:
    """Authorization-code OAuth flow against Spotify accounts."""

    def __init__(self, client_id, client_secret, redirect_uri, scopes='', timeout=10.0, client=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.client = client or httpx.Client(timeout=timeout)

    def authorize_url(self, state: str) -> str:
        params = {
            'client_id': self.client_id,
            'response_type': 'code',
            'redirect_uri': self.redirect_uri,
            'scope': self.scopes,
            'state': state,
        }
        return f'{ACCOUNTS_URL}/authorize?{urlencode(params)}'

    def _token_request(self, data: dict) -> dict:
        try:
            response = self.client.post(
                f'{ACCOUNTS_URL}/api/token',
                data=data,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as exc:
            raise errors.auth_provider_error(str(exc)) from exc
        if response.status_code != 200:
            raise errors.auth_provider_error(_error_detail(response))
        return response.json()

    def exchange_code(self, code: str) -> dict:
        """Returns ``{access_token, refresh_token, expires_in}``."""
        return self._token_request({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.redirect_uri,
        })

    def refresh(self, refresh_token: str) -> dict:
        return self._token_request({'grant_type': 'refresh_token', 'refresh_token': refresh_token})

    def fetch_profile(self, access_token: str) -> dict:
        try:
            response = self.client.get(f'{API_URL}/me', headers={'Authorization': f'Bearer {access_token}'})
        except httpx.HTTPError as exc:
            raise errors.auth_provider_error(str(exc)) from exc
        if response.status_code != 200:
            raise errors.auth_provider_error(_error_detail(response))
        profile = response.json()
        return {'id': profile['id'], 'display_name': profile.get('display_name') or profile['id']}


class SpotifyMetadataProvider(MetadataProvider):
    """Resolve and search tracks through the Spotify Web API.

    Lookups without a user token fall back to an app token from the
    client-credentials grant, cached until shortly before it expires.
    """

    def __init__(self, client_id, client_secret, market=None, timeout=10.0, client=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.market = market
        self.client = client or httpx.Client(timeout=timeout)
        self._app_token = None
        self._app_token_expires = 0.0
        self._token_lock = threading.Lock()

    def _get_app_token(self) -> str:
        with self._token_lock:
            if self._app_token and time.time() < self._app_token_expires - 30:
                return self._app_token
            try:
                response = self.client.post(
                    f'{ACCOUNTS_URL}/api/token',
                    data={'grant_type': 'client_credentials'},
                    auth=(self.client_id, self.client_secret),
                )
            except httpx.HTTPError as exc:
                raise errors.metadata_lookup_failed(str(exc)) from exc
            if response.status_code != 200:
                raise errors.metadata_lookup_failed(_error_detail(response))
            body = response.json()
            self._app_token = body['access_token']
            self._app_token_expires = time.time() + float(body.get('expires_in', 3600))
            return self._app_token

    def _get(self, path: str, token: str, params: Optional[dict] = None) -> httpx.Response:
        try:
            return self.client.get(
                f'{API_URL}{path}',
                params=params,
                headers={'Authorization': f'Bearer {token}'},
            )
        except httpx.HTTPError as exc:
            raise errors.metadata_lookup_failed(str(exc)) from exc

    def resolve(self, reference: str, access_token: Optional[str] = None) -> Track:
        track_id = parse_track_reference(reference)
        if not track_id:
            raise errors.metadata_lookup_failed('unrecognized track reference')
        params = {'market': self.market} if self.market else None
        response = self._get(f'/tracks/{track_id}', access_token or self._get_app_token(), params)
        if response.status_code == 404:
            raise errors.metadata_lookup_failed('track not found')
        if response.status_code != 200:
            raise errors.metadata_lookup_failed(_error_detail(response))
        return track_from_json(response.json())

    def search(self, query: str, access_token: str, limit: int = 10) -> List[Track]:
        params = {'q': query, 'type': 'track', 'limit': limit}
        if self.market:
            params['market'] = self.market
        response = self._get('/search', access_token, params)
        if response.status_code != 200:
            raise errors.metadata_lookup_failed(_error_detail(response))
        items = response.json().get('tracks', {}).get('items', [])
        return [track_from_json(item) for item in items if item]


def track_from_json(item: dict) -> Track:
    artists = item.get('artists') or []
    # Primary artist only; guesses must contain the whole artist string
    primary = artists[0]['name'] if artists else ''
    title, artist = clean_song_details(item.get('name'), primary)
    album = item.get('album') or {}
    images = album.get('images') or []
    return Track(
        id=item['id'],
        title=title,
        artist=artist,
        preview_ref=item.get('preview_url') or item.get('uri'),
        album=album.get('name'),
        image_url=images[0]['url'] if images else None,
        duration_ms=item.get('duration_ms'),
        external_url=(item.get('external_urls') or {}).get('spotify'),
    )
