"""
Python client for the WishShare REST API and its live event channel.

Successful mutations are merged into ``client.view`` straight away, and once
``connect()`` is called the same view is fed by the broadcasts.
"""
import logging

import requests
import socketio

from wishshare.client.reconciler import EVENTS, WishlistView
from wishshare.errors import AccessDenied, ApiError, Conflict, NotFound, Unauthorized, ValidationError
from wishshare.realtime import broadcaster as events

logger = logging.getLogger(__name__)

ERRORS_BY_STATUS = {
    400: ValidationError,
    401: Unauthorized,
    403: AccessDenied,
    404: NotFound,
    409: Conflict,
}


class WishShareClient:

    def __init__(self, base_url, token=None, session=None, timeout=10):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.view = WishlistView()
        self.sio = None
        # Wishlists to subscribe again after a reconnect
        self.joined = set()

    def _request(self, method, path, json=None):
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        response = self.session.request(
            method, f'{self.base_url}/api{path}', json=json, headers=headers, timeout=self.timeout
        )
        try:
            body = response.json()
        except ValueError:
            body = {'error': response.text}

        if 200 <= response.status_code < 300:
            return body

        message = body.get('error') if isinstance(body, dict) else None
        errors = body.get('errors') if isinstance(body, dict) else None
        error_cls = ERRORS_BY_STATUS.get(response.status_code, ApiError)
        err = error_cls(message or f'HTTP {response.status_code}', errors=errors)
        err.status_code = response.status_code
        raise err

    def _authenticated(self, body):
        self.token = body['token']
        self.view.user_id = body['user']['user_id']
        return body['user']

    # ----- Auth -----

    def register(self, email, password, display_name):
        body = self._request('POST', '/auth/register', {
            'email': email, 'password': password, 'display_name': display_name,
        })
        return self._authenticated(body)

    def login(self, email, password):
        body = self._request('POST', '/auth/login', {'email': email, 'password': password})
        return self._authenticated(body)

    # ----- Wishlists -----

    def wishlists(self):
        data = self._request('GET', '/wishlists')
        self.view.load_wishlists(data)
        return data

    def wishlist(self, wishlist_id):
        data = self._request('GET', f'/wishlists/{wishlist_id}')
        self.view.upsert_wishlist(data)
        return data

    def create_wishlist(self, name, **fields):
        wishlist = self._request('POST', '/wishlists', {'name': name, **fields})['wishlist']
        self.view.upsert_wishlist(wishlist)
        return wishlist

    def update_wishlist(self, wishlist_id, **fields):
        wishlist = self._request('PUT', f'/wishlists/{wishlist_id}', fields)['wishlist']
        self.view.apply_response(events.WISHLIST_UPDATED, {'wishlist': wishlist})
        return wishlist

    def delete_wishlist(self, wishlist_id):
        self._request('DELETE', f'/wishlists/{wishlist_id}')
        self.joined.discard(wishlist_id)
        self.view.apply_response(events.WISHLIST_DELETED, {'wishlist_id': wishlist_id})

    def invite(self, wishlist_id, email, role='member'):
        body = self._request('POST', f'/wishlists/{wishlist_id}/invite', {'email': email, 'role': role})
        self.view.apply_response(events.MEMBER_INVITED, body)
        return body['member']

    def remove_member(self, wishlist_id, user_id):
        body = self._request('DELETE', f'/wishlists/{wishlist_id}/members/{user_id}')
        if user_id == self.view.user_id:
            self.joined.discard(wishlist_id)
        self.view.apply_response(events.MEMBER_REMOVED, {
            'wishlist_id': wishlist_id, 'wishlist': body['wishlist'], 'user_id': user_id,
        })

    # ----- Items -----

    def items(self, wishlist_id):
        data = self._request('GET', f'/wishlists/{wishlist_id}/items')
        self.view.load_items(wishlist_id, data)
        return data

    def create_item(self, wishlist_id, name, **fields):
        item = self._request('POST', f'/wishlists/{wishlist_id}/items', {'name': name, **fields})['item']
        self.view.apply_response(events.ITEM_ADDED, {'item': item})
        return item

    def update_item(self, wishlist_id, item_id, **fields):
        item = self._request('PUT', f'/wishlists/{wishlist_id}/items/{item_id}', fields)['item']
        self.view.apply_response(events.ITEM_UPDATED, {'item': item})
        return item

    def delete_item(self, wishlist_id, item_id):
        self._request('DELETE', f'/wishlists/{wishlist_id}/items/{item_id}')
        self.view.apply_response(events.ITEM_DELETED, {'item_id': item_id})

    def claim_item(self, wishlist_id, item_id):
        item = self._request('POST', f'/wishlists/{wishlist_id}/items/{item_id}/claim')['item']
        self.view.apply_response(events.ITEM_CLAIMED, {'item': item})
        return item

    def set_item_status(self, wishlist_id, item_id, status):
        item = self._request('PUT', f'/wishlists/{wishlist_id}/items/{item_id}/status', {'status': status})['item']
        self.view.apply_response(events.ITEM_UPDATED, {'item': item})
        return item

    # ----- Comments & reactions -----

    def add_comment(self, wishlist_id, item_id, text):
        comment = self._request(
            'POST', f'/wishlists/{wishlist_id}/items/{item_id}/comments', {'text': text}
        )['comment']
        self.view.apply_response(events.COMMENT_ADDED, {'item_id': item_id, 'comment': comment})
        return comment

    def delete_comment(self, wishlist_id, item_id, comment_id):
        self._request('DELETE', f'/wishlists/{wishlist_id}/items/{item_id}/comments/{comment_id}')
        self.view.apply_response(events.COMMENT_DELETED, {'item_id': item_id, 'comment_id': comment_id})

    def react(self, wishlist_id, item_id, emoji):
        reaction = self._request(
            'POST', f'/wishlists/{wishlist_id}/items/{item_id}/reactions', {'emoji': emoji}
        )['reaction']
        self.view.apply_response(events.REACTION_UPDATED, {'item_id': item_id, 'reaction': reaction})
        return reaction

    def unreact(self, wishlist_id, item_id):
        self._request('DELETE', f'/wishlists/{wishlist_id}/items/{item_id}/reactions')
        self.view.apply_response(events.REACTION_REMOVED, {'item_id': item_id, 'user_id': self.view.user_id})

    # ----- Live channel -----

    def connect(self, sio=None):
        """Open the Socket.IO connection and route every event into the view."""
        self.sio = sio or socketio.Client(reconnection=True, reconnection_attempts=5)
        for name in EVENTS:
            self.sio.on(name, self._event_handler(name))
        self.sio.on('join_error', self._on_join_error)
        self.sio.on('connect', self._on_connect)
        self.sio.connect(self.base_url, auth={'token': self.token})
        return self.sio

    def _event_handler(self, name):
        def handler(data):
            self.view.apply_event(name, data)
        return handler

    def _on_join_error(self, data):
        logger.warning('Channel refused: %s', data)
        if isinstance(data, dict):
            self.joined.discard(data.get('wishlist_id'))

    def _on_connect(self):
        # A reconnect gets a fresh session with no channels, and nothing
        # published while it was away is replayed
        for wishlist_id in sorted(self.joined):
            self.sio.emit('join_wishlist', wishlist_id)
            self.items(wishlist_id)

    def join(self, wishlist_id):
        """Subscribe to a wishlist, then refetch its items."""
        self.joined.add(wishlist_id)
        self.sio.emit('join_wishlist', wishlist_id)
        self.items(wishlist_id)

    def leave(self, wishlist_id):
        self.joined.discard(wishlist_id)
        self.sio.emit('leave_wishlist', wishlist_id)

    def typing(self, wishlist_id, item_id, is_typing):
        self.sio.emit('typing_comment', {'wishlist_id': wishlist_id, 'item_id': item_id, 'is_typing': is_typing})

    def disconnect(self):
        if self.sio is not None:
            self.sio.disconnect()
            self.sio = None
