from flask import current_app
from flask_jwt_extended import get_jwt_identity, create_access_token
from flask_mail import Message
from smtplib import SMTPException

from wishshare import mail


def resolve_user_id(identity=None):
    """Return a JWT identity coerced to int to match DB types."""
    uid = identity if identity is not None else get_jwt_identity()
    try:
        return int(uid)
    except (TypeError, ValueError):
        return None


def issue_token(user):
    return create_access_token(identity=str(user.user_id))


def send_invite_email(invitee, wishlist, inviter):
    """Tell a user they were added to a wishlist. Returns True on success, False on failure."""
    if not invitee or not invitee.email:
        current_app.logger.warning('send_invite_email: no recipient for wishlist %s', wishlist.wishlist_id)
        return False

    inviter_name = inviter.display_name if inviter else 'Someone'
    subject = f"{inviter_name} shared the wishlist \"{wishlist.name}\" with you"
    body = (
        f"Hi {invitee.display_name or invitee.email},\n\n"
        f"{inviter_name} added you to the wishlist \"{wishlist.name}\" on WishShare.\n"
        "Sign in to see what's on it, claim an item or leave a comment.\n"
    )

    msg = Message(subject=subject, recipients=[invitee.email], body=body)
    try:
        mail.send(msg)
        return True
    except (SMTPException, OSError):
        # Log and return False so the invite itself still succeeds
        current_app.logger.warning('Failed to send invite email to %s', invitee.email, exc_info=True)
        return False
