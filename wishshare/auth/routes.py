from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import IntegrityError

from wishshare import db, limiter
from wishshare.errors import NotFound, Unauthorized, ValidationError
from wishshare.models import User
from wishshare.utils.auth_utils import issue_token, resolve_user_id
from wishshare.utils.validators import validate_json, FieldErrors, clean_text, clean_email, clean_url

auth_bp = Blueprint('auth_bp', __name__)

MIN_PASSWORD_LENGTH = 6


def _current_user():
    user = db.session.get(User, resolve_user_id())
    if not user:
        raise NotFound('User not found')
    return user


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per minute")
@validate_json(['display_name', 'email', 'password'])
def register():
    data = request.get_json()
    errors = FieldErrors()
    display_name = clean_text(data, 'display_name', errors, 100, required=True)
    email = clean_email(data, errors)
    avatar_url = clean_url(data, 'avatar_url', errors)
    password = data.get('password')
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors.add('password', f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    errors.raise_if_any()

    # Prevent duplicate accounts
    if User.query.filter_by(email=email).first():
        raise ValidationError.for_field('email', 'User already exists')

    user = User(email=email, display_name=display_name, avatar_url=avatar_url)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError.for_field('email', 'User already exists')

    current_app.logger.info('Registered user %s', user.user_id)
    return jsonify({
        'message': 'User registered successfully',
        'token': issue_token(user),
        'user': user.to_dict(),
    }), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
@validate_json(['email', 'password'])
def login():
    data = request.get_json()
    email = str(data.get('email') or '').lower().strip()
    password = data.get('password') or ''

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        raise Unauthorized('Invalid email or password')

    return jsonify({
        'message': 'Login successful',
        'token': issue_token(user),
        'user': user.to_dict(),
    }), 200


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_profile():
    return jsonify(_current_user().to_dict()), 200


@auth_bp.route('/me', methods=['PUT'])
@jwt_required()
@validate_json()
def update_profile():
    """
    Updates the caller's display name and avatar. Identity (id, email) is fixed.
    """
    user = _current_user()
    data = request.get_json()
    errors = FieldErrors()
    display_name = clean_text(data, 'display_name', errors, 100)
    avatar_url = clean_url(data, 'avatar_url', errors)
    if 'display_name' in data and display_name == '':
        errors.add('display_name', 'display_name cannot be empty')
    errors.raise_if_any()

    if display_name:
        user.display_name = display_name
    if 'avatar_url' in data:
        user.avatar_url = avatar_url

    db.session.commit()
    return jsonify({'message': 'Profile updated successfully', 'user': user.to_dict()}), 200
