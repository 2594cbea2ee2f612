from wishshare import db
from wishshare.errors import AccessDenied, NotFound
from wishshare.models import Wishlist, Item


def _member(wishlist, user_id):
    return wishlist.members.get(user_id)


def is_owner(wishlist, user_id):
    return user_id is not None and wishlist.owner_id == user_id


def can_read(wishlist, user_id):
    """Owner or any member may read (and contribute to) a wishlist."""
    return is_owner(wishlist, user_id) or _member(wishlist, user_id) is not None


def can_manage(wishlist, user_id):
    """Owner or an admin member may change the wishlist itself."""
    if is_owner(wishlist, user_id):
        return True
    member = _member(wishlist, user_id)
    return member is not None and member.role == 'admin'


def can_edit_item(wishlist, item, user_id):
    # The creator of an item keeps edit rights on it without being an admin.
    return can_manage(wishlist, user_id) or (user_id is not None and item.added_by == user_id)


def readers(wishlist):
    """All user ids for which can_read holds."""
    return frozenset([wishlist.owner_id, *wishlist.members.keys()])


def get_wishlist_or_404(wishlist_id):
    wishlist = db.session.get(Wishlist, wishlist_id)
    if wishlist is None:
        raise NotFound('Wishlist not found')
    return wishlist


def load_wishlist(wishlist_id, user_id, manage=False):
    """Fetch a wishlist and check the caller's access to it.

    Raises NotFound when the wishlist does not exist and AccessDenied when
    the caller may not read it (or, with ``manage=True``, may not manage it).
    """
    wishlist = get_wishlist_or_404(wishlist_id)
    allowed = can_manage(wishlist, user_id) if manage else can_read(wishlist, user_id)
    if not allowed:
        raise AccessDenied()
    return wishlist


def load_item(wishlist, item_id):
    item = db.session.get(Item, item_id)
    if item is None or item.wishlist_id != wishlist.wishlist_id:
        raise NotFound('Item not found')
    return item
