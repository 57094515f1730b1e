import secrets
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request, session

from music_guesser.errors import GameError

auth = Blueprint('auth', __name__)


def _provider():
    return current_app.extensions['auth_provider']


def _store():
    return current_app.extensions['session_store']


def _frontend_redirect(**params):
    return redirect(f"{current_app.config['FRONTEND_URL']}/?{urlencode(params)}")


@auth.route('/login', methods=['GET'])
def login():
    state = secrets.token_urlsafe(16)
    session['oauth_state'] = state
    return redirect(_provider().authorize_url(state))


@auth.route('/callback', methods=['GET'])
def callback():
    """
    OAuth redirect target: exchanges the code, creates a session and sends
    the browser back to the frontend with ``?session=<id>``.
    """
    if request.args.get('error'):
        return _frontend_redirect(error=request.args['error'])

    code = request.args.get('code')
    state = request.args.get('state')
    expected = session.pop('oauth_state', None)
    if not code or not state or state != expected:
        current_app.logger.warning("[auth-callback] state mismatch or missing code")
        return _frontend_redirect(error='state_mismatch')

    provider = _provider()
    try:
        grant = provider.exchange_code(code)
        profile = provider.fetch_profile(grant['access_token'])
    except GameError as exc:
        current_app.logger.warning(f"[auth-callback] provider failure code={exc.code} message={exc.message!r}")
        return _frontend_redirect(error='auth_failed')

    new_session = _store().create(
        owner_identity=profile['id'],
        display_name=profile['display_name'],
        token=grant['access_token'],
        expires_in=grant.get('expires_in', 3600),
        refresh_token=grant.get('refresh_token'),
    )
    return _frontend_redirect(session=new_session.id)


@auth.route('/session/<string:session_id>', methods=['GET'])
def get_session(session_id):
    found = _store().verify(session_id)
    if found is None:
        return jsonify({'success': False, 'message': 'Session not found or expired'}), 404
    payload = {'success': True}
    payload.update(found.to_dict())
    return jsonify(payload)


@auth.route('/refresh/<string:session_id>', methods=['POST', 'OPTIONS'])
def refresh_session(session_id):
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    store = _store()
    # Expired sessions may still refresh until the sweep removes them
    found = store.get(session_id)
    if found is None or not found.refresh_token:
        return jsonify({'success': False, 'message': 'Session not found'}), 404
    try:
        grant = _provider().refresh(found.refresh_token)
    except GameError as exc:
        current_app.logger.warning(f"[session-refresh] provider failure code={exc.code} message={exc.message!r}")
        return jsonify({'success': False, 'message': exc.message}), 502
    updated = store.refresh(
        session_id, grant['access_token'], grant.get('expires_in', 3600), grant.get('refresh_token'),
    )
    if updated is None:
        return jsonify({'success': False, 'message': 'Session not found'}), 404
    return jsonify({'success': True, 'expiresAt': updated.to_dict()['expiresAt']})


@auth.route('/logout/<string:session_id>', methods=['POST', 'OPTIONS'])
def logout(session_id):
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    _store().delete(session_id)
    return jsonify({'success': True})
