"""
Authentication routes — Kimlik Web.

All routes live under the locale segment that LocaleMiddleware guarantees
(/az/... internally, / or /en/... in the address bar).

Routes:
    GET  /login              - Email/password form
    POST /login              - Email or phone + password, then go to the return URL
    GET  /login/otp          - Phone OTP form
    POST /login/otp          - Send a code, or verify it when "code" is posted
    GET  /register           - Registration form
    POST /register           - Register via backend
    GET  /logout             - Revoke (best effort) and clear the local session
    GET  /auth/2fa           - Second factor form (user_id, provider, return_url)
    POST /auth/2fa           - Verify the code, then go to the return URL
    GET  /auth/<provider>    - Hand off to the backend's OAuth entry point
    GET  /auth/callback      - Complete OAuth: store token, navigate onward
"""

from functools import wraps
from urllib.parse import urlencode

from flask import (
    Blueprint, abort, after_this_request, current_app, flash, g, redirect,
    render_template, request
)

from config import config
from utils.api_client import BackendError
from utils.auth import AuthService, ReturnUrlStore, TokenStore, safe_destination
from utils.locale_router import PRIVATE_CACHE_CONTROL, localized_path, original_path
from utils.oauth_callback import OAuthCallback

auth_bp = Blueprint('auth', __name__, url_prefix='/<lang>')


def _services() -> dict:
    return current_app.extensions['kimlik']


def get_token_store() -> TokenStore:
    return TokenStore(_services()['token_storage'])


def get_return_url_store() -> ReturnUrlStore:
    return ReturnUrlStore(_services()['return_url_storage'])


def get_auth_service() -> AuthService:
    return AuthService(_services()['api_client'], get_token_store())


def locale_url(path: str) -> str:
    return localized_path(path, g.get('lang', config.DEFAULT_LOCALE), _services()['locale_settings'])


def redirect_to_login():
    """Remember the browser-visible URL, then send the visitor to login."""
    here = original_path(request.environ)
    query = request.query_string.decode('utf-8', 'replace')
    get_return_url_store().set_return_url(f"{here}?{query}" if query else here)
    return redirect(locale_url(config.LOGIN_PATH))


def _no_shared_cache(response):
    response.headers['Cache-Control'] = PRIVATE_CACHE_CONTROL
    return response


def require_login(f):
    """Decorator: send anonymous visitors to login, remembering where they were."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not get_token_store().is_authenticated():
            return redirect_to_login()
        # Signed-in pages are per-user
        after_this_request(_no_shared_cache)
        return f(*args, **kwargs)
    return decorated


def post_login_destination() -> str:
    """Query return_url first, then the stored one, then the default landing page."""
    stored = get_return_url_store().get_return_url()
    candidate = request.args.get('return_url') or stored
    return safe_destination(candidate) or locale_url(config.DEFAULT_LANDING)


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if get_token_store().is_authenticated():
        return redirect(post_login_destination())

    if request.method == 'POST':
        password = request.form.get('password', '')

        if 'phone' in request.form:
            identity = {'phone': request.form.get('phone', '').strip()}
            attempt = get_auth_service().login_phone
            missing = 'Phone number and password are required'
        else:
            identity = {'email': request.form.get('email', '').strip()}
            attempt = get_auth_service().login
            missing = 'Email and password are required'

        if not all(identity.values()) or not password:
            flash(missing, 'error')
            return render_template('auth/login.html')

        try:
            payload = attempt({**identity, 'password': password})
        except BackendError as e:
            flash(e.message, 'error')
        else:
            if get_token_store().is_authenticated():
                return redirect(post_login_destination())
            flash(payload.get('message') or 'No token received from server', 'error')

    return render_template('auth/login.html')


@auth_bp.route('/login/otp', methods=['GET', 'POST'])
def login_otp():
    phone = ''
    code_sent = False

    if request.method == 'POST':
        phone = request.form.get('phone', '').strip()
        code = request.form.get('code', '').strip()

        if not phone:
            flash('Phone number is required', 'error')
            return render_template('auth/otp.html', phone=phone, code_sent=False)

        try:
            if code:
                get_auth_service().verify_otp({
                    'phone': phone,
                    'code': code,
                    'name': request.form.get('name', '').strip() or None,
                })
                if get_token_store().is_authenticated():
                    return redirect(post_login_destination())
                flash('Verification failed', 'error')
                code_sent = True
            else:
                get_auth_service().send_otp(phone)
                flash('Verification code sent', 'success')
                code_sent = True
        except BackendError as e:
            flash(e.message, 'error')
            code_sent = bool(code)

    return render_template('auth/otp.html', phone=phone, code_sent=code_sent)


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    if get_token_store().is_authenticated():
        return redirect(post_login_destination())

    if request.method == 'POST':
        name = request.form.get('name', '').strip()
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')
        password_confirmation = request.form.get('password_confirmation', '')

        if not all([name, email, password]):
            flash('Fill in all required fields', 'error')
            return render_template('auth/register.html')

        if password != password_confirmation:
            flash('Passwords do not match', 'error')
            return render_template('auth/register.html')

        try:
            get_auth_service().register({
                'name': name,
                'email': email,
                'password': password,
                'password_confirmation': password_confirmation,
                'locale': g.lang,
            })
        except BackendError as e:
            flash(e.message, 'error')
        else:
            if get_token_store().is_authenticated():
                return redirect(post_login_destination())
            flash('Registration did not return a session', 'error')

    return render_template('auth/register.html')


@auth_bp.route('/logout')
def logout():
    get_auth_service().logout()
    return redirect(locale_url(config.LOGIN_PATH))


@auth_bp.route('/auth/callback')
def oauth_callback():
    handler = OAuthCallback(
        get_token_store(),
        get_return_url_store(),
        landing_path=locale_url(config.DEFAULT_LANDING),
        login_path=locale_url(config.LOGIN_PATH),
    )
    return redirect(handler.complete(request.args))


@auth_bp.route('/auth/2fa', methods=['GET', 'POST'])
def two_factor():
    """Second login step for 2FA accounts, reached from the backend's OAuth flow."""
    user_id = request.args.get('user_id', type=int)
    provider = request.args.get('provider') or None
    return_url = request.args.get('return_url')

    if not user_id:
        return redirect(locale_url(config.LOGIN_PATH))

    if request.method == 'POST':
        code = request.form.get('code', '').strip()

        if not code:
            flash('Verification code is required', 'error')
        else:
            data = {'code': code, 'user_id': user_id}
            if provider:
                data['provider'] = provider
            try:
                get_auth_service().verify_two_factor(data)
            except BackendError as e:
                flash(e.message, 'error')
            else:
                if get_token_store().is_authenticated():
                    return redirect(post_login_destination())
                flash('No token received from server', 'error')

    cancel_url = locale_url(config.LOGIN_PATH)
    if return_url:
        cancel_url += '?' + urlencode({'return_url': return_url})
    return render_template('auth/two_factor.html', provider=provider, cancel_url=cancel_url)


@auth_bp.route('/auth/<provider>')
def oauth_redirect(provider: str):
    if provider not in config.OAUTH_PROVIDERS:
        abort(404)

    return_url = request.args.get('return_url')
    if return_url:
        get_return_url_store().set_return_url(return_url)

    current_app.logger.info("Starting %s OAuth hand-off", provider)
    return redirect(get_auth_service().oauth_redirect_url(provider, return_url))
