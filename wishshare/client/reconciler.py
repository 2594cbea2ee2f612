"""
Client-side view of wishlists kept consistent with live events.

A client sees each of its own changes twice: in the direct response and
again as the broadcast echo. Both go through the same merge, which matches
entities by id. Creations insert, updates replace, deletions remove, and a
comment whose id is already present is not appended again. An update event
for an entity the view does not hold is ignored, so a late echo cannot bring
back something already deleted.
"""
from wishshare.realtime.broadcaster import (
    COMMENT_ADDED,
    COMMENT_DELETED,
    ITEM_ADDED,
    ITEM_CLAIMED,
    ITEM_DELETED,
    ITEM_UPDATED,
    MEMBER_INVITED,
    MEMBER_REMOVED,
    REACTION_REMOVED,
    REACTION_UPDATED,
    USER_TYPING_COMMENT,
    WISHLIST_DELETED,
    WISHLIST_UPDATED,
)

# Every event a view knows how to merge
EVENTS = (
    WISHLIST_UPDATED,
    WISHLIST_DELETED,
    ITEM_ADDED,
    ITEM_UPDATED,
    ITEM_DELETED,
    ITEM_CLAIMED,
    MEMBER_INVITED,
    MEMBER_REMOVED,
    COMMENT_ADDED,
    COMMENT_DELETED,
    REACTION_UPDATED,
    REACTION_REMOVED,
    USER_TYPING_COMMENT,
)

# Broadcasts that may add an entity the view has not seen yet
CREATION_EVENTS = (ITEM_ADDED,)


def _reaction_user(reaction):
    if reaction.get('user_id') is not None:
        return reaction['user_id']
    return (reaction.get('user') or {}).get('user_id')


class WishlistView:
    """
    In-memory wishlists and items for one signed-in user.

    Items are stored without their nested lists. Comments are kept per item
    keyed by comment_id in arrival order, reactions per item keyed by the
    reacting user_id.
    """

    def __init__(self, user_id=None):
        self.user_id = user_id
        self.wishlists = {}
        self._items = {}
        self._comments = {}
        self._reactions = {}
        self._typing = {}
        self._handlers = {
            WISHLIST_UPDATED: self._on_wishlist,
            MEMBER_INVITED: self._on_wishlist,
            MEMBER_REMOVED: self._on_member_removed,
            WISHLIST_DELETED: self._on_wishlist_deleted,
            ITEM_ADDED: self._on_item,
            ITEM_UPDATED: self._on_item,
            ITEM_CLAIMED: self._on_item,
            ITEM_DELETED: self._on_item_deleted,
            COMMENT_ADDED: self._on_comment_added,
            COMMENT_DELETED: self._on_comment_deleted,
            REACTION_UPDATED: self._on_reaction_updated,
            REACTION_REMOVED: self._on_reaction_removed,
            USER_TYPING_COMMENT: self._on_typing,
        }

    # ----- Loading full state -----

    def load_wishlists(self, wishlists):
        self.wishlists = {w['wishlist_id']: w for w in wishlists}

    def load_items(self, wishlist_id, items):
        """Replace every item of one wishlist with a fresh server listing."""
        for item_id in self._item_ids(wishlist_id):
            self.remove_item(item_id)
        for item in items:
            self.upsert_item(item)

    # ----- Merge primitives -----

    def upsert_wishlist(self, wishlist):
        current = self.wishlists.get(wishlist['wishlist_id'], {})
        merged = dict(wishlist)
        # Broadcast copies carry no item_count; keep the one we have
        if 'item_count' not in merged and 'item_count' in current:
            merged['item_count'] = current['item_count']
        self.wishlists[wishlist['wishlist_id']] = merged

    def remove_wishlist(self, wishlist_id):
        removed = self.wishlists.pop(wishlist_id, None) is not None
        for item_id in self._item_ids(wishlist_id):
            removed = self.remove_item(item_id) or removed
        return removed

    def upsert_item(self, item):
        item_id = item['item_id']
        self._items[item_id] = {k: v for k, v in item.items() if k not in ('comments', 'reactions')}
        if 'comments' in item:
            self._comments[item_id] = {c['comment_id']: c for c in item['comments']}
        else:
            self._comments.setdefault(item_id, {})
        if 'reactions' in item:
            self._reactions[item_id] = {_reaction_user(r): r for r in item['reactions']}
        else:
            self._reactions.setdefault(item_id, {})

    def remove_item(self, item_id):
        self._comments.pop(item_id, None)
        self._reactions.pop(item_id, None)
        self._typing.pop(item_id, None)
        return self._items.pop(item_id, None) is not None

    def add_comment(self, item_id, comment):
        comments = self._comments.get(item_id)
        if comments is None or comment['comment_id'] in comments:
            return False
        comments[comment['comment_id']] = comment
        return True

    def remove_comment(self, item_id, comment_id):
        return self._comments.get(item_id, {}).pop(comment_id, None) is not None

    def put_reaction(self, item_id, reaction):
        reactions = self._reactions.get(item_id)
        if reactions is None:
            return False
        reactions[_reaction_user(reaction)] = reaction
        return True

    def remove_reaction(self, item_id, user_id):
        return self._reactions.get(item_id, {}).pop(user_id, None) is not None

    # ----- Events -----

    def apply_event(self, event, payload):
        """Merge one broadcast event. Returns True if the view changed."""
        return self._merge(event, payload, insert=event in CREATION_EVENTS)

    def apply_response(self, event, payload):
        """
        Merge the direct response to this client's own request, named by the
        event it causes (``item_added`` for a create-item call and so on).
        The response is authoritative, so it may insert.
        """
        return self._merge(event, payload, insert=True)

    def _merge(self, event, payload, insert):
        handler = self._handlers.get(event)
        if handler is None or not isinstance(payload, dict):
            return False
        return handler(payload, insert)

    def _on_wishlist(self, payload, insert):
        wishlist = payload.get('wishlist')
        if not wishlist:
            return False
        if not insert and wishlist['wishlist_id'] not in self.wishlists:
            return False
        self.upsert_wishlist(wishlist)
        return True

    def _on_member_removed(self, payload, insert):
        if self.user_id is not None and payload.get('user_id') == self.user_id:
            return self.remove_wishlist(payload['wishlist_id'])
        return self._on_wishlist(payload, insert)

    def _on_wishlist_deleted(self, payload, insert):
        return self.remove_wishlist(payload['wishlist_id'])

    def _on_item(self, payload, insert):
        item = payload.get('item')
        if not item:
            return False
        if not insert and item['item_id'] not in self._items:
            return False
        self.upsert_item(item)
        return True

    def _on_item_deleted(self, payload, insert):
        return self.remove_item(payload['item_id'])

    def _on_comment_added(self, payload, insert):
        return self.add_comment(payload['item_id'], payload['comment'])

    def _on_comment_deleted(self, payload, insert):
        return self.remove_comment(payload['item_id'], payload['comment_id'])

    def _on_reaction_updated(self, payload, insert):
        return self.put_reaction(payload['item_id'], payload['reaction'])

    def _on_reaction_removed(self, payload, insert):
        return self.remove_reaction(payload['item_id'], payload['user_id'])

    def _on_typing(self, payload, insert):
        user_id = payload.get('user_id')
        item_id = payload.get('item_id')
        # Our own indicator is never shown
        if user_id is None or item_id is None or user_id == self.user_id:
            return False
        typing = self._typing.setdefault(item_id, set())
        before = len(typing)
        if payload.get('is_typing'):
            typing.add(user_id)
        else:
            typing.discard(user_id)
        return len(typing) != before

    # ----- Reading -----

    def _item_ids(self, wishlist_id):
        return [i for i, it in self._items.items() if it['wishlist_id'] == wishlist_id]

    def item(self, item_id):
        """An item with its comments and reactions as lists, or None."""
        body = self._items.get(item_id)
        if body is None:
            return None
        item = dict(body)
        item['comments'] = list(self._comments.get(item_id, {}).values())
        item['reactions'] = list(self._reactions.get(item_id, {}).values())
        return item

    def items(self, wishlist_id):
        """Items of a wishlist, newest first."""
        ids = self._item_ids(wishlist_id)
        ids.sort(key=lambda i: (self._items[i].get('created_at') or '', i), reverse=True)
        return [self.item(i) for i in ids]

    def typing_users(self, item_id):
        return frozenset(self._typing.get(item_id, ()))
