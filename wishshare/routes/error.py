from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from wishshare import db
from wishshare.errors import ApiError

error_bp = Blueprint('error_bp', __name__)


@error_bp.app_errorhandler(ApiError)
def handle_api_error(err):
    return jsonify(err.to_dict()), err.status_code


@error_bp.app_errorhandler(SQLAlchemyError)
def handle_db_error(err):
    # Roll back so the scoped session is usable by the next request
    db.session.rollback()
    current_app.logger.exception('Database error: %s', err)
    return jsonify({'error': 'Server error'}), 500


@error_bp.app_errorhandler(HTTPException)
def handle_http_error(err):
    if err.code == 404:
        return jsonify({'error': 'Route not found'}), 404
    return jsonify({'error': err.description or err.name}), err.code
