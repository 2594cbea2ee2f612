from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import or_, func

from wishshare import db
from wishshare.errors import AccessDenied, NotFound, ValidationError
from wishshare.models import User, Wishlist, WishlistMember, Item, MEMBER_ROLES, DEFAULT_COLOR
from wishshare.realtime import broadcaster as events
from wishshare.realtime.notify import broadcast
from wishshare.utils.access import load_wishlist, get_wishlist_or_404, can_read, can_manage, is_owner, readers
from wishshare.utils.auth_utils import resolve_user_id, send_invite_email
from wishshare.utils.validators import (
    validate_json, FieldErrors, clean_text, clean_bool, clean_color, clean_email, clean_choice,
)

wishlist_bp = Blueprint('wishlist_bp', __name__)


def _item_counts(wishlist_ids):
    if not wishlist_ids:
        return {}
    rows = (
        db.session.query(Item.wishlist_id, func.count(Item.item_id))
        .filter(Item.wishlist_id.in_(wishlist_ids))
        .group_by(Item.wishlist_id)
        .all()
    )
    return dict(rows)


@wishlist_bp.route('', methods=['GET'])
@jwt_required()
def list_wishlists():
    """Wishlists the caller owns or is a member of, most recently updated first."""
    user_id = resolve_user_id()
    wishlists = (
        Wishlist.query
        .filter(or_(
            Wishlist.owner_id == user_id,
            Wishlist.members.any(WishlistMember.user_id == user_id),
        ))
        .order_by(Wishlist.updated_at.desc(), Wishlist.wishlist_id.desc())
        .all()
    )
    counts = _item_counts([w.wishlist_id for w in wishlists])
    return jsonify([w.to_dict(item_count=counts.get(w.wishlist_id, 0)) for w in wishlists]), 200


@wishlist_bp.route('', methods=['POST'])
@jwt_required()
@validate_json(['name'])
def create_wishlist():
    user_id = resolve_user_id()
    data = request.get_json()
    errors = FieldErrors()
    name = clean_text(data, 'name', errors, 100, required=True)
    description = clean_text(data, 'description', errors, 500)
    is_public = clean_bool(data, 'is_public', errors)
    color = clean_color(data, errors)
    errors.raise_if_any()

    if db.session.get(User, user_id) is None:
        raise NotFound('User not found')

    wishlist = Wishlist(
        name=name,
        description=description,
        owner_id=user_id,
        is_public=bool(is_public),
        color=color or DEFAULT_COLOR,
    )
    db.session.add(wishlist)
    db.session.commit()

    current_app.logger.info('User %s created wishlist %s', user_id, wishlist.wishlist_id)
    return jsonify({
        'message': 'Wishlist created successfully',
        'wishlist': wishlist.to_dict(item_count=0),
    }), 201


@wishlist_bp.route('/<int:wishlist_id>', methods=['GET'])
@jwt_required()
def get_wishlist(wishlist_id):
    wishlist = load_wishlist(wishlist_id, resolve_user_id())
    counts = _item_counts([wishlist.wishlist_id])
    return jsonify(wishlist.to_dict(item_count=counts.get(wishlist.wishlist_id, 0))), 200


@wishlist_bp.route('/<int:wishlist_id>', methods=['PUT'])
@jwt_required()
@validate_json()
def update_wishlist(wishlist_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id, manage=True)

    data = request.get_json()
    if 'owner_id' in data and data['owner_id'] != wishlist.owner_id:
        raise ValidationError.for_field('owner_id', 'Wishlist owner cannot be changed')

    errors = FieldErrors()
    name = clean_text(data, 'name', errors, 100)
    description = clean_text(data, 'description', errors, 500)
    is_public = clean_bool(data, 'is_public', errors)
    color = clean_color(data, errors)
    if 'name' in data and name == '':
        errors.add('name', 'Wishlist name cannot be empty')
    errors.raise_if_any()

    if name:
        wishlist.name = name
    if 'description' in data:
        wishlist.description = description
    if is_public is not None:
        wishlist.is_public = is_public
    if color:
        wishlist.color = color

    db.session.commit()

    payload = wishlist.to_dict()
    broadcast(wishlist, events.WISHLIST_UPDATED, wishlist=payload, actor_id=user_id)
    return jsonify({'message': 'Wishlist updated successfully', 'wishlist': payload}), 200


@wishlist_bp.route('/<int:wishlist_id>', methods=['DELETE'])
@jwt_required()
def delete_wishlist(wishlist_id):
    user_id = resolve_user_id()
    wishlist = get_wishlist_or_404(wishlist_id)

    # Only owner can delete
    if not is_owner(wishlist, user_id):
        raise AccessDenied('Only the owner can delete this wishlist')

    audience = readers(wishlist)
    # Items (and their comments and reactions) go with it via the ORM cascade
    db.session.delete(wishlist)
    db.session.commit()

    current_app.extensions['broadcaster'].close(wishlist_id, actor_id=user_id, readers=audience)
    current_app.logger.info('User %s deleted wishlist %s', user_id, wishlist_id)
    return jsonify({'message': 'Wishlist deleted successfully'}), 200


@wishlist_bp.route('/<int:wishlist_id>/invite', methods=['POST'])
@jwt_required()
@validate_json(['email'])
def invite_member(wishlist_id):
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id, manage=True)

    data = request.get_json()
    errors = FieldErrors()
    email = clean_email(data, errors)
    role = clean_choice(data, 'role', MEMBER_ROLES, errors) or 'member'
    errors.raise_if_any()

    if role == 'admin' and not is_owner(wishlist, user_id):
        raise AccessDenied('Only the owner can invite admins')

    # Find user to invite
    invitee = User.query.filter_by(email=email).first()
    if not invitee:
        raise NotFound('User not found')

    if can_read(wishlist, invitee.user_id):
        raise ValidationError.for_field('email', 'User is already a member')

    member = WishlistMember(user_id=invitee.user_id, user=invitee, role=role)
    wishlist.members[invitee.user_id] = member
    db.session.commit()

    inviter = db.session.get(User, user_id)
    send_invite_email(invitee, wishlist, inviter)

    payload = wishlist.to_dict()
    member_payload = member.to_dict()
    broadcast(wishlist, events.MEMBER_INVITED, wishlist=payload, member=member_payload, actor_id=user_id)
    current_app.logger.info('User %s invited user %s to wishlist %s', user_id, invitee.user_id, wishlist_id)
    return jsonify({
        'message': 'User invited successfully',
        'wishlist': payload,
        'member': member_payload,
    }), 200


@wishlist_bp.route('/<int:wishlist_id>/members/<int:member_user_id>', methods=['DELETE'])
@jwt_required()
def remove_member(wishlist_id, member_user_id):
    """Remove a member (managers) or leave a wishlist (the member themselves)."""
    user_id = resolve_user_id()
    wishlist = load_wishlist(wishlist_id, user_id)

    member = wishlist.members.get(member_user_id)
    if member is None:
        raise NotFound('Member not found')

    if member_user_id != user_id:
        if not can_manage(wishlist, user_id):
            raise AccessDenied()
        if member.role == 'admin' and not is_owner(wishlist, user_id):
            raise AccessDenied('Only the owner can remove admins')

    audience = readers(wishlist)
    del wishlist.members[member_user_id]
    db.session.commit()

    payload = wishlist.to_dict()
    # The removed user still hears about their own removal; later events skip them
    current_app.extensions['broadcaster'].publish(
        wishlist_id,
        events.MEMBER_REMOVED,
        {'wishlist': payload, 'user_id': member_user_id, 'actor_id': user_id},
        readers=audience,
    )
    return jsonify({'message': 'Member removed successfully', 'wishlist': payload}), 200
