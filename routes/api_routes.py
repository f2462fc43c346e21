"""
Local JSON endpoints — Kimlik Web.

These sit under /api/, which LocaleMiddleware never rewrites.

Endpoints:
    GET /api/config   - Current feature-flag snapshot (with loading flag)
    GET /api/health   - Liveness probe
"""

from functools import wraps

from flask import Blueprint, current_app, jsonify

api_bp = Blueprint('api', __name__, url_prefix='/api')


def handle_errors(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except Exception:
            current_app.logger.exception("API error in %s", f.__name__)
            return jsonify({"status": "error", "message": "Internal server error"}), 500
    return decorated


@api_bp.route('/config', methods=['GET'])
@handle_errors
def get_config():
    snapshot = current_app.extensions['kimlik']['config_snapshot']
    return jsonify({"status": "success", "data": snapshot.as_dict()})


@api_bp.route('/health', methods=['GET'])
@handle_errors
def health():
    snapshot = current_app.extensions['kimlik']['config_snapshot']
    return jsonify({
        "status": "ok",
        "config_loaded": not snapshot.is_loading,
    })
