from wishshare import db
from datetime import datetime, timezone
from sqlalchemy import update
from sqlalchemy.orm import validates
from sqlalchemy.orm.collections import attribute_keyed_dict
from werkzeug.security import generate_password_hash, check_password_hash

PRIORITIES = ('low', 'medium', 'high')
STATUSES = ('available', 'claimed', 'purchased')
MEMBER_ROLES = ('member', 'admin')
ALLOWED_EMOJIS = ('👍', '❤️', '😍', '🔥', '👏', '😂', '😮', '😢', '🎉', '💯')
DEFAULT_COLOR = '#3B82F6'

# SQLite only autoincrements INTEGER primary keys.
BigId = db.BigInteger().with_variant(db.Integer, 'sqlite')


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def user_summary(user):
    """Compact user reference embedded in wishlist/item payloads."""
    if user is None:
        return None
    return {
        "user_id": user.user_id,
        "display_name": user.display_name,
        "email": user.email,
        "avatar_url": user.avatar_url,
    }


# -------------------------
# User Model
# -------------------------
class User(db.Model):
    __tablename__ = 'users'

    user_id = db.Column(BigId, primary_key=True, autoincrement=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    display_name = db.Column(db.String(100), nullable=False)
    avatar_url = db.Column(db.Text, nullable=True)
    password_hash = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    owned_wishlists = db.relationship('Wishlist', back_populates='owner', lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        data = user_summary(self)
        data["created_at"] = _iso(self.created_at)
        return data


# -------------------------
# Wishlist Model
# -------------------------
class Wishlist(db.Model):
    __tablename__ = 'wishlists'

    wishlist_id = db.Column(BigId, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    is_public = db.Column(db.Boolean, default=False, nullable=False)
    color = db.Column(db.String(20), default=DEFAULT_COLOR, nullable=False)
    owner_id = db.Column(BigId, db.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    owner = db.relationship('User', back_populates='owned_wishlists', lazy='joined')
    # Keyed by user_id: a user can hold at most one membership per wishlist.
    members = db.relationship(
        'WishlistMember',
        back_populates='wishlist',
        lazy='selectin',
        cascade='all, delete-orphan',
        collection_class=attribute_keyed_dict('user_id'),
    )
    items = db.relationship('Item', back_populates='wishlist', lazy=True, cascade='all, delete-orphan')

    @validates('owner_id')
    def _freeze_owner(self, key, value):
        if self.owner_id is not None and value != self.owner_id:
            raise ValueError('Wishlist owner cannot be changed')
        return value

    def to_dict(self, item_count=None):
        members = sorted(self.members.values(), key=lambda m: (m.joined_at or utcnow(), m.user_id))
        data = {
            "wishlist_id": self.wishlist_id,
            "name": self.name,
            "description": self.description,
            "is_public": self.is_public,
            "color": self.color,
            "owner_id": self.owner_id,
            "owner": user_summary(self.owner),
            "members": [m.to_dict() for m in members],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if item_count is not None:
            data["item_count"] = item_count
        return data


# -------------------------
# WishlistMember Model
# -------------------------
class WishlistMember(db.Model):
    __tablename__ = 'wishlist_members'
    __table_args__ = (
        db.UniqueConstraint('wishlist_id', 'user_id', name='unique_wishlist_member'),
    )

    member_id = db.Column(BigId, primary_key=True, autoincrement=True)
    wishlist_id = db.Column(BigId, db.ForeignKey('wishlists.wishlist_id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(BigId, db.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False)
    role = db.Column(db.String(20), default='member', nullable=False)
    joined_at = db.Column(db.DateTime, default=utcnow)

    wishlist = db.relationship('Wishlist', back_populates='members')
    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        data = user_summary(self.user) or {"user_id": self.user_id}
        data["role"] = self.role
        data["joined_at"] = _iso(self.joined_at)
        return data


# -------------------------
# Comment Model
# -------------------------
class Comment(db.Model):
    __tablename__ = 'comments'

    comment_id = db.Column(BigId, primary_key=True, autoincrement=True)
    item_id = db.Column(BigId, db.ForeignKey('items.item_id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(BigId, db.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False)
    text = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    item = db.relationship('Item', back_populates='comments')
    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            "comment_id": self.comment_id,
            "item_id": self.item_id,
            "user": user_summary(self.user),
            "text": self.text,
            "created_at": _iso(self.created_at),
        }


# -------------------------
# Reaction Model
# -------------------------
class Reaction(db.Model):
    __tablename__ = 'reactions'
    __table_args__ = (
        db.UniqueConstraint('item_id', 'user_id', name='unique_item_reaction'),
    )

    reaction_id = db.Column(BigId, primary_key=True, autoincrement=True)
    item_id = db.Column(BigId, db.ForeignKey('items.item_id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(BigId, db.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False)
    emoji = db.Column(db.String(16), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    item = db.relationship('Item', back_populates='reactions')
    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            "reaction_id": self.reaction_id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "user": user_summary(self.user),
            "emoji": self.emoji,
            "created_at": _iso(self.created_at),
        }


# -------------------------
# Item Model
# -------------------------
class Item(db.Model):
    __tablename__ = 'items'

    item_id = db.Column(BigId, primary_key=True, autoincrement=True)
    wishlist_id = db.Column(BigId, db.ForeignKey('wishlists.wishlist_id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    image_url = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), default='USD', nullable=False)
    url = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(10), default='medium', nullable=False)
    status = db.Column(db.String(10), default='available', nullable=False)
    added_by = db.Column(BigId, db.ForeignKey('users.user_id'), nullable=False, index=True)
    claimed_by = db.Column(BigId, db.ForeignKey('users.user_id'), nullable=True)
    edited_by = db.Column(BigId, db.ForeignKey('users.user_id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    wishlist = db.relationship('Wishlist', back_populates='items')
    added_by_user = db.relationship('User', foreign_keys=[added_by], lazy='joined')
    claimed_by_user = db.relationship('User', foreign_keys=[claimed_by], lazy='joined')
    edited_by_user = db.relationship('User', foreign_keys=[edited_by], lazy='joined')

    # Comments are rows of their own, added and removed by primary key.
    comments = db.relationship(
        'Comment',
        back_populates='item',
        lazy='selectin',
        cascade='all, delete-orphan',
        order_by=[Comment.created_at, Comment.comment_id],
    )
    # Keyed by user_id: one reaction per user per item.
    reactions = db.relationship(
        'Reaction',
        back_populates='item',
        lazy='selectin',
        cascade='all, delete-orphan',
        collection_class=attribute_keyed_dict('user_id'),
    )

    @validates('added_by')
    def _freeze_creator(self, key, value):
        if self.added_by is not None and value != self.added_by:
            raise ValueError('Item creator cannot be changed')
        return value

    def to_dict(self):
        reactions = sorted(self.reactions.values(), key=lambda r: (r.created_at or utcnow(), r.reaction_id or 0))
        return {
            "item_id": self.item_id,
            "wishlist_id": self.wishlist_id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
            "url": self.url,
            "priority": self.priority,
            "status": self.status,
            "added_by": user_summary(self.added_by_user),
            "claimed_by": user_summary(self.claimed_by_user),
            "edited_by": user_summary(self.edited_by_user),
            "comments": [c.to_dict() for c in self.comments],
            "reactions": [r.to_dict() for r in reactions],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


def claim_item(item_id, user_id):
    """Atomically move an item to ``claimed`` unless it is already claimed.

    Runs as a single conditional UPDATE so two concurrent claims cannot both
    pass the check. Returns True when this call performed the transition.
    The caller owns the commit.
    """
    result = db.session.execute(
        update(Item)
        .where(Item.item_id == item_id, Item.status != 'claimed')
        .values(status='claimed', claimed_by=user_id, edited_by=user_id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
