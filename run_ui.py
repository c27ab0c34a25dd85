import logging
import os
import uuid
from functools import wraps

import uvicorn
from flask import Flask, Response, g, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded
from flask_limiter.util import get_remote_address
from uvicorn.middleware.wsgi import WSGIMiddleware
from werkzeug.exceptions import HTTPException

from safepass.helpers import dotenv, runtime
from safepass.helpers.api import (
    SERVICES_EXTENSION,
    SESSION_HEADER,
    ApiHandler,
    HmacPolicy,
    client_ip,
    error_response,
    get_services,
    load_handler_classes,
    request_payload,
)
from safepass.helpers.errors import AuthError, ErrorCode, format_error
from safepass.helpers.hmac_verifier import (
    CHALLENGE_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
)
from safepass.helpers.log_sanitize import sanitize_log_value
from safepass.helpers.services import AuthServices
from safepass.helpers.settings import AuthSettings, get_settings

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1024 * 1024

ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    CHALLENGE_HEADER,
    SESSION_HEADER,
    "X-CSRF-Token",
]


def configure_logging(level: str | None = None) -> None:
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# --- Security Response Headers ---
def add_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = (
        "camera=(), microphone=(), geolocation=(), payment=()"
    )
    response.headers["Strict-Transport-Security"] = (
        "max-age=31536000; includeSubDomains"
    )
    response.headers["Content-Security-Policy"] = (
        "default-src 'none'; frame-ancestors 'none'"
    )
    response.headers["X-Request-ID"] = uuid.uuid4().hex
    return response


# reject requests whose signature, timestamp or challenge header is bad
def hmac_protect(f):
    @wraps(f)
    async def decorated(*args, **kwargs):
        services = get_services()
        try:
            g.verified_request = services.hmac_verifier.verify_request(
                request_payload(request), request.headers
            )
        except AuthError as e:
            logger.warning(
                "HMAC rejected for %s %s from %s: %s",
                request.method,
                sanitize_log_value(request.path),
                sanitize_log_value(client_ip()),
                e.code,
            )
            services.events.record(
                "hmac_rejected", client_ip(), e.code, {"path": request.path}
            )
            return error_response(e)
        return await f(*args, **kwargs)

    return decorated


# require a live, IP-bound session for handlers
def requires_session(f):
    @wraps(f)
    async def decorated(*args, **kwargs):
        services = get_services()
        try:
            g.session_id = services.authenticator.authorize_session(
                request.headers.get(SESSION_HEADER), client_ip()
            )
        except AuthError as e:
            return error_response(e)
        return await f(*args, **kwargs)

    return decorated


def register_api_handler(app: Flask, limiter: Limiter, handler: type[ApiHandler]):
    instance = handler(app, get_services_for(app))

    async def handler_wrap(**kwargs) -> Response:
        return await instance.handle_request(request=request)

    # endpoint and rate-limit keys derive from the view name
    handler_wrap.__name__ = handler.__name__
    handler_wrap.__qualname__ = handler.__name__

    if handler.hmac_policy() is HmacPolicy.REQUIRED:
        handler_wrap = hmac_protect(handler_wrap)
    if handler.requires_session():
        handler_wrap = requires_session(handler_wrap)

    if handler.rate_limit_exempt():
        handler_wrap = limiter.exempt(handler_wrap)
    elif limit := handler.rate_limit():
        handler_wrap = limiter.limit(limit)(handler_wrap)

    app.add_url_rule(
        handler.get_route(),
        handler.__name__,
        handler_wrap,
        methods=handler.get_methods(),
    )


def get_services_for(app: Flask) -> AuthServices:
    return app.extensions[SERVICES_EXTENSION]


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(RateLimitExceeded)
    def rate_limited(e):
        logger.warning(
            "Rate limit exceeded for %s on %s",
            sanitize_log_value(client_ip()),
            sanitize_log_value(request.path),
        )
        return error_response(
            AuthError(
                ErrorCode.RATE_LIMITED,
                "Too many requests, please try again later",
                data={"limit": str(e.description)},
            )
        )

    @app.errorhandler(HTTPException)
    def http_error(e):
        if e.code in (404, 405):
            code = ErrorCode.NOT_FOUND
        elif e.code is not None and e.code < 500:
            code = ErrorCode.INVALID_PARAMETERS
        else:
            code = ErrorCode.INTERNAL_ERROR
        return error_response(AuthError(code, e.name, status=e.code or 500))

    @app.errorhandler(Exception)
    def unhandled_error(e):
        error = format_error(e)
        logger.error("Unhandled error: %s", error)
        data = (
            {"detail": error} if get_services_for(app).settings.is_development else None
        )
        return error_response(
            AuthError(ErrorCode.INTERNAL_ERROR, "Internal server error", data=data)
        )


def create_app(
    settings: AuthSettings | None = None, services: AuthServices | None = None
) -> Flask:
    if services is None:
        services = AuthServices.from_settings(settings or get_settings())
    settings = services.settings

    webapp = Flask(__name__)
    webapp.config.update(MAX_CONTENT_LENGTH=MAX_CONTENT_LENGTH)
    webapp.extensions[SERVICES_EXTENSION] = services

    # --- Rate Limiting ---
    limiter = Limiter(
        app=webapp,
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
        storage_uri="memory://",
        enabled=settings.rate_limit_enabled,
    )

    # --- CORS Policy ---
    CORS(
        webapp,
        origins=settings.cors_origins,
        allow_headers=ALLOWED_HEADERS,
        methods=["GET", "POST", "DELETE", "OPTIONS"],
        supports_credentials=True,
    )

    webapp.after_request(add_security_headers)
    register_error_handlers(webapp)

    for handler in load_handler_classes():
        if handler.development_only() and not settings.is_development:
            continue
        register_api_handler(webapp, limiter, handler)

    return webapp


def run():
    dotenv.load_dotenv()
    configure_logging()

    settings = get_settings()
    webapp = create_app(settings)
    services = get_services_for(webapp)

    host = runtime.get_web_ui_host()
    port = runtime.get_web_ui_port()
    logger.info(
        "Starting SafePass on http://%s:%d (%s)", host, port, settings.environment
    )

    services.sweeper.start()
    config = uvicorn.Config(
        WSGIMiddleware(webapp),
        host=host,
        port=port,
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
        access_log=False,
    )
    server = uvicorn.Server(config)
    try:
        server.run()
    finally:
        services.sweeper.stop()


if __name__ == "__main__":
    run()
