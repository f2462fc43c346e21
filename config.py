import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list:
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    # Flask
    SECRET_KEY: str = os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')
    ENV: str = os.getenv('FLASK_ENV', 'development')
    DEBUG: bool = os.getenv('FLASK_DEBUG', 'True').lower() == 'true'
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    # Backend API
    API_URL: str = os.getenv('API_URL', 'http://localhost:8011/api').rstrip('/')
    API_TIMEOUT: float = float(os.getenv('API_TIMEOUT', '10'))

    # Built-in feature defaults, used until (or instead of) GET /config
    APP_NAME: str = os.getenv('APP_NAME', 'Kimlik.az')
    WALLET_ENABLED: bool = os.getenv('WALLET_ENABLED', 'false').lower() == 'true'

    # Locales — the default one never shows up in a canonical URL
    LOCALES: list = _csv(os.getenv('LOCALES', 'az,en,ru'))
    DEFAULT_LOCALE: str = os.getenv('DEFAULT_LOCALE', 'az')
    LOCALE_COOKIE: str = os.getenv('LOCALE_COOKIE', 'NEXT_LOCALE')

    # Auth flow
    LOGIN_PATH: str = os.getenv('LOGIN_PATH', '/login')
    DEFAULT_LANDING: str = os.getenv('DEFAULT_LANDING', '/dashboard')
    OAUTH_PROVIDERS: list = _csv(os.getenv('OAUTH_PROVIDERS', 'google,facebook'))

    # Browser storage cookies
    TOKEN_COOKIE: str = os.getenv('TOKEN_COOKIE', 'kimlik_local')
    TOKEN_MAX_AGE: int = int(os.getenv('TOKEN_MAX_AGE', str(60 * 60 * 24 * 365)))
    RETURN_URL_COOKIE: str = os.getenv('RETURN_URL_COOKIE', 'kimlik_session')

    # Set by the deploy pipeline; falls back to a per-response timestamp
    BUILD_VERSION: str = os.getenv('BUILD_VERSION', '')

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENV == 'production'


config = Config()
