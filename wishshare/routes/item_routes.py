from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import IntegrityError

from wishshare import db
from wishshare.errors import AccessDenied, Conflict, NotFound, ValidationError
from wishshare.models import (
    Item, Comment, Reaction, PRIORITIES, STATUSES, ALLOWED_EMOJIS, claim_item, utcnow,
)
from wishshare.realtime import broadcaster as events
from wishshare.realtime.notify import broadcast
from wishshare.utils.access import load_wishlist, load_item, can_edit_item, can_manage
from wishshare.utils.auth_utils import resolve_user_id
from wishshare.utils.validators import (
    validate_json, FieldErrors, clean_text, clean_price, clean_url, clean_choice, clean_currency,
)

item_bp = Blueprint('item_bp', __name__)

STATUS_FIELD_MESSAGE = 'Status is changed by claiming the item or through the status endpoint'


def _clean_item_fields(data, creating):
    """Validate the editable item fields present in ``data``."""
    if 'status' in data:
        raise ValidationError.for_field('status', STATUS_FIELD_MESSAGE)

    errors = FieldErrors()
    fields = {
        'name': clean_text(data, 'name', errors, 200, required=creating),
        'description': clean_text(data, 'description', errors, 1000),
        'image_url': clean_url(data, 'image_url', errors),
        'price': clean_price(data, errors),
        'currency': clean_currency(data, errors),
        'url': clean_url(data, 'url', errors),
        'priority': clean_choice(data, 'priority', PRIORITIES, errors),
    }
    if not creating and 'name' in data and fields['name'] == '':
        errors.add('name', 'Item name cannot be empty')
    errors.raise_if_any()
    return fields


def _load_comment(item, comment_id):
    comment = db.session.get(Comment, comment_id)
    if comment is None or comment.item_id != item.item_id:
        raise NotFound('Comment not found')
    return comment


# ----- Items -----

@item_bp.route('/<int:wishlist_id>/items', methods=['GET'])
@jwt_required()
def list_items(wishlist_id):
    load_wishlist(wishlist_id, resolve_user_id())
    items = (
        Item.query.filter_by(wishlist_id=wishlist_id)
        .order_by(Item.created_at.desc(), Item.item_id.desc())
        .all()
    )
    return jsonify([item.to_dict() for item in items]), 200


@item_bp.route('/<int:wishlist_id>/items', methods=['POST'])
@jwt_required()
@validate_json(['name'])
def create_item(wishlist_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    fields = _clean_item_fields(request.get_json(), creating=True)

    item = Item(
        wishlist_id=wishlist.wishlist_id,
        name=fields['name'],
        description=fields['description'],
        image_url=fields['image_url'],
        price=fields['price'],
        currency=fields['currency'] or 'USD',
        url=fields['url'],
        priority=fields['priority'] or 'medium',
        added_by=user_id,
    )
    db.session.add(item)
    db.session.commit()

    payload = item.to_dict()
    broadcast(wishlist, events.ITEM_ADDED, item=payload, actor_id=user_id)
    current_app.logger.info('User %s added item %s to wishlist %s', user_id, item.item_id, wishlist_id)
    return jsonify({'message': 'Item added successfully', 'item': payload}), 201


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>', methods=['GET'])
@jwt_required()
def get_item(wishlist_id, item_id):
    wishlist = load_wishlist(wishlist_id, resolve_user_id())
    return jsonify(load_item(wishlist, item_id).to_dict()), 200


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>', methods=['PUT'])
@jwt_required()
@validate_json()
def update_item(wishlist_id, item_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)
    if not can_edit_item(wishlist, item, user_id):
        raise AccessDenied('Only the item creator or a wishlist admin can edit this item')

    data = request.get_json()
    fields = _clean_item_fields(data, creating=False)

    if fields['name']:
        item.name = fields['name']
    for key in ('description', 'image_url', 'price', 'url'):
        if key in data:
            setattr(item, key, fields[key])
    if fields['currency']:
        item.currency = fields['currency']
    if fields['priority']:
        item.priority = fields['priority']
    item.edited_by = user_id

    db.session.commit()

    payload = item.to_dict()
    broadcast(wishlist, events.ITEM_UPDATED, item=payload, actor_id=user_id)
    return jsonify({'message': 'Item updated successfully', 'item': payload}), 200


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>', methods=['DELETE'])
@jwt_required()
def delete_item(wishlist_id, item_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)
    if not can_edit_item(wishlist, item, user_id):
        raise AccessDenied('Only the item creator or a wishlist admin can delete this item')

    db.session.delete(item)
    db.session.commit()

    broadcast(wishlist, events.ITEM_DELETED, item_id=item_id, actor_id=user_id)
    return jsonify({'message': 'Item deleted successfully'}), 200


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>/claim', methods=['POST'])
@jwt_required()
def claim(wishlist_id, item_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)

    if not claim_item(item.item_id, user_id):
        db.session.rollback()
        # Zero rows also means the item was deleted after it was loaded
        if db.session.query(Item.item_id).filter_by(item_id=item_id).scalar() is None:
            raise NotFound('Item not found')
        raise Conflict('Item is already claimed')
    db.session.commit()

    payload = item.to_dict()
    broadcast(wishlist, events.ITEM_CLAIMED, item=payload, actor_id=user_id)
    current_app.logger.info('User %s claimed item %s', user_id, item_id)
    return jsonify({'message': 'Item claimed successfully', 'item': payload}), 200


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>/status', methods=['PUT'])
@jwt_required()
@validate_json(['status'])
def force_status(wishlist_id, item_id):
    """
    Manager-only override that sets any status without the claim guard.
    """
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    if not can_manage(wishlist, user_id):
        raise AccessDenied('Only the owner or an admin can override item status')
    item = load_item(wishlist, item_id)

    errors = FieldErrors()
    status = clean_choice(request.get_json(), 'status', STATUSES, errors)
    errors.raise_if_any()

    item.status = status
    if status == 'available':
        item.claimed_by = None
    elif item.claimed_by is None:
        item.claimed_by = user_id
    item.edited_by = user_id
    db.session.commit()

    payload = item.to_dict()
    broadcast(wishlist, events.ITEM_UPDATED, item=payload, actor_id=user_id)
    return jsonify({'message': 'Item status updated successfully', 'item': payload}), 200


# ----- Comments -----

@item_bp.route('/<int:wishlist_id>/items/<int:item_id>/comments', methods=['POST'])
@jwt_required()
@validate_json(['text'])
def add_comment(wishlist_id, item_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)

    errors = FieldErrors()
    text = clean_text(request.get_json(), 'text', errors, 500, required=True)
    errors.raise_if_any()

    comment = Comment(item_id=item.item_id, user_id=user_id, text=text)
    db.session.add(comment)
    db.session.commit()

    payload = comment.to_dict()
    broadcast(wishlist, events.COMMENT_ADDED, item_id=item.item_id, comment=payload, actor_id=user_id)
    return jsonify({'message': 'Comment added successfully', 'comment': payload}), 201


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>/comments/<int:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_comment(wishlist_id, item_id, comment_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)
    comment = _load_comment(item, comment_id)

    # Authors remove their own comments; managers moderate everyone's
    if comment.user_id != user_id and not can_manage(wishlist, user_id):
        raise AccessDenied()

    db.session.delete(comment)
    db.session.commit()

    broadcast(wishlist, events.COMMENT_DELETED, item_id=item_id, comment_id=comment_id, actor_id=user_id)
    return jsonify({'message': 'Comment deleted successfully'}), 200


# ----- Reactions -----

@item_bp.route('/<int:wishlist_id>/items/<int:item_id>/reactions', methods=['POST'])
@jwt_required()
@validate_json(['emoji'])
def add_reaction(wishlist_id, item_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)

    emoji = request.get_json().get('emoji')
    if emoji not in ALLOWED_EMOJIS:
        raise ValidationError.for_field('emoji', 'Invalid emoji')

    reaction = item.reactions.get(user_id)
    if reaction is not None:
        reaction.emoji = emoji
        reaction.created_at = utcnow()
    else:
        item.reactions[user_id] = Reaction(user_id=user_id, emoji=emoji)
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent request inserted this user's reaction first; replace it
        db.session.rollback()
        reaction = Reaction.query.filter_by(item_id=item_id, user_id=user_id).one()
        reaction.emoji = emoji
        reaction.created_at = utcnow()
        db.session.commit()

    payload = item.reactions[user_id].to_dict()
    broadcast(wishlist, events.REACTION_UPDATED, item_id=item_id, reaction=payload, actor_id=user_id)
    return jsonify({'message': 'Reaction updated successfully', 'reaction': payload}), 200


@item_bp.route('/<int:wishlist_id>/items/<int:item_id>/reactions', methods=['DELETE'])
@jwt_required()
def remove_reaction(wishlist_id, item_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)
    item = load_item(wishlist, item_id)

    if user_id in item.reactions:
        del item.reactions[user_id]
        db.session.commit()
        broadcast(wishlist, events.REACTION_REMOVED, item_id=item_id, user_id=user_id, actor_id=user_id)

    return jsonify({'message': 'Reaction removed successfully'}), 200
