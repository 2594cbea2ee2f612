import threading
from collections import defaultdict


def channel_name(wishlist_id):
    """Broadcast scope name for a wishlist, e.g. ``wishlist_42``."""
    return f'wishlist_{wishlist_id}'


class ChannelRegistry:
    """
    Tracks connected Socket.IO sessions, the user each one authenticated as,
    and the wishlist channels each one has joined. One registry per app.
    """

    def __init__(self):
        self._users = {}                    # sid -> user_id
        self._joined = defaultdict(set)     # sid -> {wishlist_id}
        self._channels = defaultdict(set)   # wishlist_id -> {sid}
        self._lock = threading.Lock()

    @property
    def session_count(self):
        with self._lock:
            return len(self._users)

    def connect(self, sid, user_id):
        with self._lock:
            self._users.setdefault(sid, user_id)

    def disconnect(self, sid):
        """Forget a session; returns the wishlist ids it was subscribed to."""
        with self._lock:
            if self._users.pop(sid, None) is None:
                return frozenset()
            channels = self._joined.pop(sid, set())
            for wishlist_id in channels:
                self._discard(wishlist_id, sid)
            return frozenset(channels)

    def join(self, sid, wishlist_id):
        # Unknown sessions cannot subscribe
        with self._lock:
            if sid not in self._users:
                return False
            self._joined[sid].add(wishlist_id)
            self._channels[wishlist_id].add(sid)
            return True

    def leave(self, sid, wishlist_id):
        with self._lock:
            if sid in self._joined:
                self._joined[sid].discard(wishlist_id)
            self._discard(wishlist_id, sid)

    def close_channel(self, wishlist_id):
        """Drop every subscriber of a deleted wishlist."""
        with self._lock:
            sids = self._channels.pop(wishlist_id, set())
            for sid in sids:
                if sid in self._joined:
                    self._joined[sid].discard(wishlist_id)
            return frozenset(sids)

    def subscribers(self, wishlist_id):
        """Snapshot of ``(sid, user_id)`` pairs listening to a wishlist."""
        with self._lock:
            return frozenset(
                (sid, self._users[sid])
                for sid in self._channels.get(wishlist_id, ())
                if sid in self._users
            )

    def channels_of(self, sid):
        with self._lock:
            return frozenset(self._joined.get(sid, ()))

    def user_of(self, sid):
        with self._lock:
            return self._users.get(sid)

    def is_joined(self, sid, wishlist_id):
        with self._lock:
            return sid in self._channels.get(wishlist_id, ())

    def _discard(self, wishlist_id, sid):
        # Caller holds the lock
        sids = self._channels.get(wishlist_id)
        if sids is None:
            return
        sids.discard(sid)
        if not sids:
            del self._channels[wishlist_id]
