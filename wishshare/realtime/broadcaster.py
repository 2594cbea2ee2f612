"""
Fans committed changes out to the sessions subscribed to a wishlist channel.

Delivery is best effort and at most once per connected session: nothing is
stored or replayed, and a session that cannot be reached is only logged.
"""
import logging

WISHLIST_UPDATED = 'wishlist_updated'
WISHLIST_DELETED = 'wishlist_deleted'
ITEM_ADDED = 'item_added'
ITEM_UPDATED = 'item_updated'
ITEM_DELETED = 'item_deleted'
ITEM_CLAIMED = 'item_claimed'
MEMBER_INVITED = 'member_invited'
MEMBER_REMOVED = 'member_removed'
COMMENT_ADDED = 'comment_added'
COMMENT_DELETED = 'comment_deleted'
REACTION_UPDATED = 'reaction_updated'
REACTION_REMOVED = 'reaction_removed'
USER_TYPING_COMMENT = 'user_typing_comment'


class Broadcaster:

    def __init__(self, socketio, registry, logger=None):
        self.socketio = socketio
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)

    def publish(self, wishlist_id, event, payload, readers=None, skip_sid=None):
        """
        Emit ``event`` to every session on the wishlist's channel.

        Sessions whose user is not in ``readers`` are dropped from the channel
        instead of receiving the event. ``skip_sid`` gets no echo.
        Returns the number of sessions the event was handed to.
        """
        body = dict(payload)
        body.setdefault('wishlist_id', wishlist_id)

        delivered = 0
        for sid, user_id in self.registry.subscribers(wishlist_id):
            if sid == skip_sid:
                continue
            if readers is not None and user_id not in readers:
                self.registry.leave(sid, wishlist_id)
                self.logger.info(
                    'Dropped session %s (user %s) from wishlist %s: access revoked',
                    sid, user_id, wishlist_id,
                )
                continue
            try:
                self.socketio.emit(event, body, to=sid)
                delivered += 1
            except Exception:
                self.logger.warning('Failed to deliver %s to session %s', event, sid, exc_info=True)

        self.logger.debug('Broadcast %s on wishlist %s to %d session(s)', event, wishlist_id, delivered)
        return delivered

    def close(self, wishlist_id, actor_id=None, readers=None):
        """Announce a deleted wishlist, then empty its channel."""
        delivered = self.publish(wishlist_id, WISHLIST_DELETED, {'actor_id': actor_id}, readers=readers)
        self.registry.close_channel(wishlist_id)
        return delivered
