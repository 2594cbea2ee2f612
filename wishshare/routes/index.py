from flask import blueprints, jsonify, current_app
from datetime import datetime, timezone

from wishshare import limiter

index_bp = blueprints.Blueprint('index_bp', __name__)


@index_bp.route('/health', methods=['GET'])
@limiter.exempt
def health():
    registry = current_app.extensions['channel_registry']
    return jsonify({
        'status': 'OK',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'live_sessions': registry.session_count,
    }), 200
