from flask import current_app

from wishshare.utils.access import readers


def broadcast(target, event, **payload):
    """Publish a committed change to everyone still allowed to read ``target`` (a Wishlist)."""
    broadcaster = current_app.extensions['broadcaster']
    return broadcaster.publish(target.wishlist_id, event, payload, readers=readers(target))
