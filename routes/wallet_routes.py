"""
Account and wallet pages — Kimlik Web.

Protected pages run the session gate before touching the backend; balances
and transactions are fetched with the stored bearer token.

Routes:
    GET /                       - Landing page
    GET /dashboard              - Profile + balance summary (login required)
    GET /wallet                 - Balance and recent transactions (login required)
    GET /wallet/transactions    - Paginated transactions (login required)
    GET /oauth/loading          - Bare popup page shown during OAuth hand-offs
"""

from functools import wraps
from typing import Optional

from flask import Blueprint, abort, current_app, render_template, request

from routes.auth_routes import get_auth_service, get_token_store, redirect_to_login, require_login
from utils.api_client import BackendError

wallet_bp = Blueprint('pages', __name__, url_prefix='/<lang>')


def require_wallet(f):
    """Decorator: 404 while the wallet feature flag is off."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_app.extensions['kimlik']['config_snapshot'].wallet_enabled:
            abort(404)
        return f(*args, **kwargs)
    return decorated


def _fetch(path: str, params: Optional[dict] = None):
    try:
        payload = current_app.extensions['kimlik']['api_client'].get(path, params=params)
    except BackendError as e:
        current_app.logger.info("Wallet data unavailable (%s): %s", path, e.message)
        return None
    return payload.get('data')


def _transactions(per_page: int, page: int = 1) -> list:
    data = _fetch('/wallet/transactions', {'per_page': per_page, 'page': page})
    if isinstance(data, dict):
        return data.get('data') or []
    return data or []


@wallet_bp.route('')
@wallet_bp.route('/')
def home():
    return render_template('home.html', authenticated=get_token_store().is_authenticated())


@wallet_bp.route('/dashboard')
@require_login
def dashboard():
    user = get_auth_service().get_current_user()
    if not get_token_store().is_authenticated():
        # Backend rejected the token
        return redirect_to_login()

    return render_template(
        'dashboard.html',
        user=user,
        balance=_fetch('/wallet/balance'),
        transactions=_transactions(per_page=5),
    )


@wallet_bp.route('/wallet')
@require_login
@require_wallet
def wallet():
    return render_template(
        'wallet/index.html',
        balance=_fetch('/wallet/balance'),
        transactions=_transactions(per_page=10),
    )


@wallet_bp.route('/wallet/transactions')
@require_login
@require_wallet
def transactions():
    page = request.args.get('page', 1, type=int)
    return render_template(
        'wallet/transactions.html',
        transactions=_transactions(per_page=20, page=max(page, 1)),
        page=max(page, 1),
    )


@wallet_bp.route('/oauth/loading')
def oauth_loading():
    return render_template('oauth/loading.html')
