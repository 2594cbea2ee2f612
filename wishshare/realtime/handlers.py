from flask import current_app, request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_socketio import ConnectionRefusedError, emit
from jwt.exceptions import PyJWTError

from wishshare import db, socketio
from wishshare.models import Wishlist
from wishshare.realtime.broadcaster import USER_TYPING_COMMENT
from wishshare.realtime.registry import channel_name
from wishshare.utils.access import can_read, readers
from wishshare.utils.auth_utils import resolve_user_id

JOIN_ERROR = 'join_error'


def _registry():
    return current_app.extensions['channel_registry']


def _token_from(auth):
    # auth={"token": ...} on connect, or a bearer header
    if isinstance(auth, dict) and auth.get('token'):
        return auth['token']
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):]
    return None


def _wishlist_id(data):
    if isinstance(data, dict):
        data = data.get('wishlist_id')
    if isinstance(data, bool):
        return None
    try:
        return int(data)
    except (TypeError, ValueError):
        return None


def _readable_wishlist(wishlist_id, user_id):
    if wishlist_id is None or user_id is None:
        return None
    wishlist = db.session.get(Wishlist, wishlist_id)
    if wishlist is None or not can_read(wishlist, user_id):
        return None
    return wishlist


@socketio.on('connect')
def on_connect(auth=None):
    token = _token_from(auth)
    if not token:
        raise ConnectionRefusedError('authentication required')
    try:
        decoded = decode_token(token)
    except (JWTExtendedException, PyJWTError):
        raise ConnectionRefusedError('invalid token')

    user_id = resolve_user_id(decoded.get('sub'))
    if user_id is None:
        raise ConnectionRefusedError('invalid token')

    _registry().connect(request.sid, user_id)
    current_app.logger.info('Session %s connected as user %s', request.sid, user_id)


@socketio.on('disconnect')
def on_disconnect(reason=None):
    channels = _registry().disconnect(request.sid)
    current_app.logger.info('Session %s disconnected, left %d channel(s)', request.sid, len(channels))


@socketio.on('join_wishlist')
def on_join_wishlist(data):
    registry = _registry()
    sid = request.sid
    wishlist_id = _wishlist_id(data)
    wishlist = _readable_wishlist(wishlist_id, registry.user_of(sid))
    if wishlist is None:
        # Unknown and forbidden wishlists look the same to the client
        emit(JOIN_ERROR, {'wishlist_id': wishlist_id, 'error': 'Access denied'})
        current_app.logger.warning('Session %s refused channel for wishlist %s', sid, wishlist_id)
        return

    registry.join(sid, wishlist.wishlist_id)
    current_app.logger.info('Session %s joined %s', sid, channel_name(wishlist.wishlist_id))


@socketio.on('leave_wishlist')
def on_leave_wishlist(data):
    wishlist_id = _wishlist_id(data)
    if wishlist_id is None:
        return
    _registry().leave(request.sid, wishlist_id)
    current_app.logger.info('Session %s left %s', request.sid, channel_name(wishlist_id))


@socketio.on('typing_comment')
def on_typing_comment(data):
    """Relay a typing signal to the other viewers of a wishlist."""
    if not isinstance(data, dict):
        return
    registry = _registry()
    sid = request.sid
    wishlist_id = _wishlist_id(data)
    if wishlist_id is None or not registry.is_joined(sid, wishlist_id):
        return

    user_id = registry.user_of(sid)
    wishlist = _readable_wishlist(wishlist_id, user_id)
    if wishlist is None:
        registry.leave(sid, wishlist_id)
        return

    payload = {
        'item_id': data.get('item_id'),
        # Sender identity comes from the session, never from the payload
        'user_id': user_id,
        'is_typing': bool(data.get('is_typing')),
    }
    current_app.extensions['broadcaster'].publish(
        wishlist_id, USER_TYPING_COMMENT, payload, readers=readers(wishlist), skip_sid=sid
    )
