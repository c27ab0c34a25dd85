from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from safepass.helpers import runtime
from safepass.helpers.api import ApiHandler, Request


def _package_version() -> str:
    try:
        return get_version("safepass")
    except PackageNotFoundError:
        return "0.0.0"


class Health(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/health"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    @classmethod
    def rate_limit_exempt(cls) -> bool:
        return True

    async def process(self, input: dict, request: Request) -> dict:
        return {
            "status": "healthy",
            "version": _package_version(),
            "environment": self.services.settings.environment,
            "serverTime": runtime.now_ms(),
        }
