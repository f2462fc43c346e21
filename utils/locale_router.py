"""
Locale resolution and request rewriting for Kimlik Web.

Runs in front of Flask's URL map (as WSGI middleware) and decides, per
request, which locale a page is served under:

    1. SKIP      assets, /api/ and _next paths, anything with a dot
    2. REDIRECT  /az, /az/...        -> same path without /az
    3. REDIRECT  no prefix + cookie  -> /<cookie-locale><path>
    4. REWRITE   no prefix           -> /az<path> (address bar unchanged)
    5. NEXT      /en/..., /ru/...    -> untouched

Rule 2 is checked before the cookie so an explicit default-locale URL is
always folded to its canonical form. Every rewrite and redirect keeps the
query string exactly as received.

Paths are resolved in their percent-encoded form, as the browser sent them,
so a redirect only ever drops or adds the locale segment. Decisions carry a
metadata map (``x-pathname`` = the pre-rewrite path) that the middleware
exposes both on the WSGI environ, for the layout, and on the response.

The production cache header only applies to responses that are safe to share:
one that sets a cookie becomes ``private, no-store``, and a Cache-Control set
by the app itself is never replaced.
"""

import enum
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

from werkzeug.wrappers import Request, Response

ROUTE_META_KEY = 'kimlik.route_meta'
PATHNAME_HEADER = 'x-pathname'
SKIP_MARKERS = ('_next', '/api/')
REDIRECT_STATUS = 307
SHARED_CACHE_CONTROL = 's-maxage=1, stale-while-revalidate'
PRIVATE_CACHE_CONTROL = 'private, no-store'
PATH_SAFE = "/:@!$&'()*+,;=-._~%"


class RouteAction(enum.Enum):
    SKIP = 'skip'
    REDIRECT = 'redirect'
    REWRITE = 'rewrite'
    NEXT = 'next'


@dataclass(frozen=True)
class LocaleSettings:
    locales: Tuple[str, ...]
    default: str

    def __post_init__(self):
        if self.default not in self.locales:
            raise ValueError(f"Default locale {self.default!r} is not in {self.locales!r}")

    @property
    def others(self) -> Tuple[str, ...]:
        return tuple(loc for loc in self.locales if loc != self.default)

    @classmethod
    def from_config(cls, cfg) -> 'LocaleSettings':
        return cls(locales=tuple(cfg.LOCALES), default=cfg.DEFAULT_LOCALE)


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    path: str
    query: str = ''
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path


def has_locale_prefix(path: str, locale: str) -> bool:
    """True for "/<locale>" and "/<locale>/..." but not "/<locale>xyz"."""
    return path == f"/{locale}" or path.startswith(f"/{locale}/")


def resolve(
    path: str,
    query_string: str = '',
    cookie_locale: Optional[str] = None,
    settings: LocaleSettings = LocaleSettings(('az', 'en', 'ru'), 'az'),
    production: bool = False,
    build_version: Optional[str] = None,
) -> RouteDecision:
    """
    Decide how one request path is served.

    Args:
        path: Percent-encoded request path, e.g. "/dashboard".
        query_string: Raw query string without the "?", carried verbatim.
        cookie_locale: Value of the locale-preference cookie, if any.
        settings: Supported locales and the default one.
        production: Adds cache and build-version headers on pass-through.
        build_version: Value for X-Build-Version; epoch ms when empty.

    Returns:
        RouteDecision with exactly one action.
    """
    if any(marker in path for marker in SKIP_MARKERS) or '.' in path:
        return RouteDecision(RouteAction.SKIP, path, query_string)

    default = settings.default
    if has_locale_prefix(path, default):
        stripped = path[len(default) + 1:] or '/'
        return RouteDecision(RouteAction.REDIRECT, stripped, query_string)

    has_other_prefix = any(has_locale_prefix(path, loc) for loc in settings.others)
    suffix = '' if path == '/' else path

    if not has_other_prefix and cookie_locale in settings.others:
        return RouteDecision(RouteAction.REDIRECT, f"/{cookie_locale}{suffix}", query_string)

    headers = {PATHNAME_HEADER: path}

    if not has_other_prefix:
        # Root rewrites to "/az/" so it lands on the locale index rule
        return RouteDecision(RouteAction.REWRITE, f"/{default}{path}", query_string, headers)

    if production:
        headers['Cache-Control'] = SHARED_CACHE_CONTROL
        headers['X-Build-Version'] = build_version or str(int(time.time() * 1000))

    return RouteDecision(RouteAction.NEXT, path, query_string, headers)


def _header_value(value: str) -> str:
    # Header values must be latin-1; percent-encode non-ASCII paths
    return value if value.isascii() else quote(value, safe=PATH_SAFE)


def raw_path(environ) -> str:
    """
    Request path exactly as the client encoded it ("/docs/a%2Fb" stays so).

    Uses the server's RAW_URI / REQUEST_URI when present (gunicorn, uWSGI,
    mod_wsgi, werkzeug), otherwise re-encodes the decoded PATH_INFO.
    """
    raw = environ.get('RAW_URI') or environ.get('REQUEST_URI')
    if not raw:
        path_info = environ.get('PATH_INFO', '') or '/'
        return quote(path_info.encode('latin-1').decode('utf-8', 'replace'), safe="/:@!$&'()*+,;=-._~")

    path = raw.partition('?')[0]
    if not path.startswith('/'):
        # Absolute-form request target
        path = urlsplit(path).path or '/'
    path = quote(path.encode('latin-1').decode('utf-8', 'replace'), safe=PATH_SAFE)

    script_name = quote(environ.get('SCRIPT_NAME', ''), safe=PATH_SAFE)
    if script_name and path.startswith(script_name):
        path = path[len(script_name):] or '/'
    return path


def localized_path(path: str, lang: str, settings: LocaleSettings) -> str:
    """Canonical URL for ``path`` under ``lang``: no prefix for the default locale."""
    if lang == settings.default or lang not in settings.locales:
        return path
    return f"/{lang}" if path == '/' else f"/{lang}{path}"


def is_oauth_popup(original_path: str) -> bool:
    """OAuth popup pages render without the shared header and footer."""
    return '/oauth/' in (original_path or '')


def original_path(environ) -> str:
    """Browser-visible path of the current request, before any rewrite."""
    meta = environ.get(ROUTE_META_KEY) or {}
    return meta.get(PATHNAME_HEADER) or environ.get('PATH_INFO', '/')


class LocaleMiddleware:
    """
    WSGI wrapper applying ``resolve`` before the Flask app sees the request.

    Usage:
        app.wsgi_app = LocaleMiddleware(app.wsgi_app, settings, cookie_name='NEXT_LOCALE')
    """

    def __init__(
        self,
        wsgi_app,
        settings: LocaleSettings,
        cookie_name: str,
        production: bool = False,
        build_version: Optional[str] = None,
    ):
        self.wsgi_app = wsgi_app
        self.settings = settings
        self.cookie_name = cookie_name
        self.production = production
        self.build_version = build_version

    def __call__(self, environ, start_response):
        request = Request(environ)
        decision = resolve(
            raw_path(environ),
            environ.get('QUERY_STRING', ''),
            request.cookies.get(self.cookie_name),
            self.settings,
            production=self.production,
            build_version=self.build_version,
        )

        if decision.action is RouteAction.SKIP:
            return self.wsgi_app(environ, start_response)

        if decision.action is RouteAction.REDIRECT:
            response = Response(status=REDIRECT_STATUS, headers={'Location': decision.location})
            response.autocorrect_location_header = False
            return response(environ, start_response)

        environ[ROUTE_META_KEY] = dict(decision.headers)
        if decision.action is RouteAction.REWRITE:
            # WSGI paths are latin-1 strings holding the UTF-8 bytes
            environ['PATH_INFO'] = unquote(decision.path).encode('utf-8').decode('latin-1')

        extra = [(name, _header_value(value)) for name, value in decision.headers.items()]
        return self.wsgi_app(environ, self._with_headers(start_response, extra))

    @staticmethod
    def _with_headers(start_response, extra: List[Tuple[str, str]]):
        def wrapped(status, headers, exc_info=None):
            present = {name.lower() for name, _ in headers}
            added = []
            for name, value in extra:
                if name.lower() == 'cache-control':
                    if 'cache-control' in present:
                        continue
                    if 'set-cookie' in present:
                        value = PRIVATE_CACHE_CONTROL
                added.append((name, value))

            names = {name.lower() for name, _ in added}
            headers = [(n, v) for n, v in headers if n.lower() not in names] + added
            if exc_info is not None:
                return start_response(status, headers, exc_info)
            return start_response(status, headers)

        return wrapped
