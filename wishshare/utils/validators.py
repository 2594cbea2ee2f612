from flask import request
from functools import wraps
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse
import re

from wishshare.errors import ValidationError

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
COLOR_RE = re.compile(r'^#[0-9A-Fa-f]{6}$')
CURRENCY_RE = re.compile(r'^[A-Z]{3}$')


def validate_json(required_fields=()):
    """
    Ensures the request body is a JSON object and contains all required fields.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                raise ValidationError('Request body must be a JSON object')

            missing_fields = [field for field in required_fields if field not in data]
            if missing_fields:
                raise ValidationError(
                    f'Missing required fields: {", ".join(missing_fields)}',
                    errors=[{'field': f, 'message': 'This field is required'} for f in missing_fields],
                )

            return func(*args, **kwargs)
        return wrapper
    return decorator


class FieldErrors:
    """Collects field-level problems so a request reports all of them at once."""

    def __init__(self):
        self.errors = []

    def add(self, field, message):
        self.errors.append({'field': field, 'message': message})

    def raise_if_any(self):
        if self.errors:
            raise ValidationError(self.errors[0]['message'], errors=self.errors)


def clean_text(data, field, errors, max_length, required=False):
    """Return the stripped string value of ``field`` or None if absent."""
    if field not in data or data[field] is None:
        if required:
            errors.add(field, f'{field} is required')
        return None
    value = data[field]
    if not isinstance(value, str):
        errors.add(field, f'{field} must be a string')
        return None
    value = value.strip()
    if required and not value:
        errors.add(field, f'{field} cannot be empty')
    elif len(value) > max_length:
        errors.add(field, f'{field} must be {max_length} characters or less')
    return value


def clean_price(data, errors, field='price'):
    value = data.get(field)
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        errors.add(field, 'Price must be a number')
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        errors.add(field, 'Price must be a number')
        return None
    if not price.is_finite() or price < 0:
        errors.add(field, 'Price must be a non-negative number')
        return None
    return price.quantize(Decimal('0.01'))


def clean_url(data, field, errors):
    value = data.get(field)
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        errors.add(field, 'Please enter a valid URL')
        return None
    parsed = urlparse(value.strip())
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        errors.add(field, 'Please enter a valid URL')
        return None
    return value.strip()


def clean_choice(data, field, choices, errors):
    value = data.get(field)
    if value is None:
        return None
    if value not in choices:
        errors.add(field, f'{field} must be one of: {", ".join(choices)}')
        return None
    return value


def clean_bool(data, field, errors):
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, bool):
        errors.add(field, f'{field} must be true or false')
        return None
    return value


def clean_email(data, errors, field='email'):
    value = clean_text(data, field, errors, 120, required=True)
    if value and not EMAIL_RE.match(value):
        errors.add(field, 'Please enter a valid email')
        return None
    return value.lower() if value else value


def clean_color(data, errors, field='color'):
    value = data.get(field)
    if value is None or value == '':
        return None
    if not isinstance(value, str) or not COLOR_RE.match(value):
        errors.add(field, 'Color must be a hex value like #3B82F6')
        return None
    return value


def clean_currency(data, errors, field='currency'):
    value = data.get(field)
    if value is None or value == '':
        return None
    value = str(value).strip().upper()
    if not CURRENCY_RE.match(value):
        errors.add(field, 'Currency must be a 3-letter code')
        return None
    return value
