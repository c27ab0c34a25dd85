import importlib
import json
import logging
import pkgutil
from abc import abstractmethod
from enum import StrEnum
from typing import Any, Dict, Union

from flask import Flask, Request, Response, current_app, g
from flask_limiter.util import get_remote_address
from pydantic import BaseModel

from safepass.helpers.errors import AuthError, ErrorCode, format_error
from safepass.helpers.hmac_verifier import canonical_json
from safepass.helpers.services import AuthServices

logger = logging.getLogger(__name__)

Input = dict
Output = Union[Dict[str, Any], Response]

SESSION_HEADER = "X-Session-Id"
SERVICES_EXTENSION = "safepass"


class HmacPolicy(StrEnum):
    REQUIRED = "required"
    NONE = "none"


class ApiEnvelope(BaseModel):
    """Single response shape for every endpoint.

    Success: ``{"success": true, "data": {...}}``.
    Failure: ``{"success": false, "error": "...", "code": "...", "data": {...}}``
    where ``data`` is present only when the error carries details.
    """

    success: bool
    data: Dict[str, Any] | None = None
    error: str | None = None
    code: str | None = None

    def to_response(self, status: int = 200) -> Response:
        return Response(
            response=json.dumps(self.model_dump(exclude_unset=True)),
            status=status,
            mimetype="application/json",
        )


def envelope_response(data: Dict[str, Any], status: int = 200) -> Response:
    return ApiEnvelope(success=True, data=data).to_response(status)


def error_response(error: AuthError) -> Response:
    fields: Dict[str, Any] = {
        "success": False,
        "error": error.message,
        "code": str(error.code),
    }
    if error.data is not None:
        fields["data"] = error.data
    response = ApiEnvelope(**fields).to_response(error.status)
    if error.code == ErrorCode.ACCOUNT_LOCKED and error.data:
        retry_after = error.data.get("remainingSeconds")
        if retry_after:
            response.headers["Retry-After"] = str(retry_after)
    return response


def get_services() -> AuthServices:
    return current_app.extensions[SERVICES_EXTENSION]


def client_ip() -> str:
    return get_remote_address()


def request_body(request: Request) -> Any:
    """Parsed JSON body, or ``{}`` when the request carries none."""
    if request.method == "GET" or not request.data:
        return {}
    body = request.get_json(silent=True)
    return body if body is not None else {}


def request_payload(request: Request) -> str:
    """The string a client signs: canonical JSON body, or path+query for GET."""
    if request.method == "GET":
        query = request.query_string.decode("utf-8")
        return f"{request.path}?{query}" if query else request.path
    return canonical_json(request_body(request))


class ApiHandler:
    def __init__(self, app: Flask, services: AuthServices):
        self.app = app
        self.services = services

    @classmethod
    def get_route(cls) -> str:
        raise NotImplementedError

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["POST"]

    @classmethod
    def hmac_policy(cls) -> HmacPolicy:
        return HmacPolicy.NONE

    @classmethod
    def requires_session(cls) -> bool:
        return False

    @classmethod
    def rate_limit(cls) -> str | None:
        """Per-route limit in addition to the global one."""
        return None

    @classmethod
    def rate_limit_exempt(cls) -> bool:
        return False

    @classmethod
    def development_only(cls) -> bool:
        return False

    @abstractmethod
    async def process(self, input: Input, request: Request) -> Output:
        pass

    async def handle_request(self, request: Request) -> Response:
        try:
            input_data = request_body(request)
            output = await self.process(input_data, request)

            if isinstance(output, Response):
                return output
            return envelope_response(output)

        except AuthError as e:
            return error_response(e)
        except Exception as e:
            error = format_error(e)
            logger.error("API error: %s", error)
            data = {"detail": error} if self.services.settings.is_development else None
            return error_response(
                AuthError(ErrorCode.INTERNAL_ERROR, "Internal server error", data=data)
            )

    @staticmethod
    def verified_request():
        """The :class:`VerifiedRequest` set by the HMAC gate, if any."""
        return g.get("verified_request")

    @staticmethod
    def session_id() -> str | None:
        return g.get("session_id")


def load_handler_classes(package: str = "safepass.api") -> list[type[ApiHandler]]:
    """Import every module in *package* and collect the handlers it defines."""
    root = importlib.import_module(package)
    handlers: list[type[ApiHandler]] = []
    for info in sorted(pkgutil.iter_modules(root.__path__), key=lambda m: m.name):
        module = importlib.import_module(f"{package}.{info.name}")
        for obj in vars(module).values():
            if (
                isinstance(obj, type)
                and issubclass(obj, ApiHandler)
                and obj.__module__ == module.__name__
            ):
                handlers.append(obj)
    return handlers
