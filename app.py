"""
Kimlik Web — Flask application entry point.

Identity/wallet front-end for the Kimlik backend API. Requests pass through
LocaleMiddleware first (canonical locale URLs, default-locale rewrite);
pages then gate on the client-held session token, and OAuth hand-offs come
back through /auth/callback.

Usage:
    python app.py
"""

import logging
import os
from typing import Optional

from flask import Flask, abort, g, jsonify, redirect, request
from flask_cors import CORS

from config import config
from utils.api_client import BackendClient
from utils.auth import TokenStore
from utils.config_snapshot import ConfigSnapshot, FeatureConfig
from utils.locale_router import (
    LocaleMiddleware, LocaleSettings, is_oauth_popup, localized_path, original_path
)
from utils.storage import CookieStorage, Storage


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )


def create_app(
    api_client: Optional[BackendClient] = None,
    token_storage: Optional[Storage] = None,
    return_url_storage: Optional[Storage] = None,
    fetch_config: bool = True,
) -> Flask:
    """
    Build the application.

    Args:
        api_client: Backend client; defaults to one pointed at API_URL that
                    sends the stored bearer token.
        token_storage: Persistent browser storage for the session token.
        return_url_storage: Session-scoped browser storage for the return URL.
        fetch_config: Start the one-shot GET /config fetch in the background.
    """
    configure_logging()

    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY
    app.config['ENV'] = config.ENV
    app.config['DEBUG'] = config.DEBUG

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    settings = LocaleSettings.from_config(config)
    if token_storage is None:
        token_storage = CookieStorage(config.TOKEN_COOKIE, max_age=config.TOKEN_MAX_AGE, salt='kimlik-local')
    if return_url_storage is None:
        return_url_storage = CookieStorage(config.RETURN_URL_COOKIE, max_age=None, salt='kimlik-session')

    if api_client is None:
        api_client = BackendClient(
            config.API_URL,
            timeout=config.API_TIMEOUT,
            token_provider=lambda: TokenStore(token_storage).get_token(),
        )

    snapshot = ConfigSnapshot(FeatureConfig(app_name=config.APP_NAME, wallet_enabled=config.WALLET_ENABLED))

    app.extensions['kimlik'] = {
        'api_client': api_client,
        'token_storage': token_storage,
        'return_url_storage': return_url_storage,
        'config_snapshot': snapshot,
        'locale_settings': settings,
    }

    app.wsgi_app = LocaleMiddleware(
        app.wsgi_app,
        settings,
        cookie_name=config.LOCALE_COOKIE,
        production=config.IS_PRODUCTION,
        build_version=config.BUILD_VERSION or None,
    )

    from routes.auth_routes import auth_bp
    from routes.wallet_routes import wallet_bp
    from routes.api_routes import api_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(api_bp)

    @app.url_value_preprocessor
    def pull_lang(endpoint, values):
        if values and 'lang' in values:
            lang = values.pop('lang')
            if lang not in settings.locales:
                abort(404)
            g.lang = lang

    @app.after_request
    def persist_storage(response):
        token_storage.save(response)
        return_url_storage.save(response)
        return response

    @app.context_processor
    def layout_context():
        lang = g.get('lang', settings.default)
        return {
            'lang': lang,
            'locales': settings.locales,
            'default_locale': settings.default,
            'app_config': snapshot,
            'hide_chrome': is_oauth_popup(original_path(request.environ)),
            'locale_url': lambda path: localized_path(path, lang, settings),
        }

    @app.errorhandler(404)
    def not_found(error):
        if request.path.startswith('/api/'):
            return jsonify({"status": "error", "message": "Not found"}), 404
        return redirect('/')

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"status": "error", "message": "Internal server error"}), 500

    if fetch_config:
        snapshot.start(lambda: api_client.get('/config', auth=False))

    return app


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port, debug=config.DEBUG)
