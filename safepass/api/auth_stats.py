"""Authentication diagnostics (development only).

Routed at GET /auth/stats.

Query parameters:
- limit: Maximum number of recent security events (positive, default 50)
- type: Filter events by type (pin_failed, lockout, session_created, ...)
"""

from safepass.helpers.api import ApiHandler, Request
from safepass.helpers.errors import AuthError, ErrorCode


class AuthStats(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/auth/stats"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    @classmethod
    def development_only(cls) -> bool:
        return True

    async def process(self, input: dict, request: Request) -> dict:
        try:
            limit = int(request.args.get("limit", "50"))
        except ValueError:
            limit = 0
        if limit < 1:
            raise AuthError(
                ErrorCode.INVALID_PARAMETERS, "limit must be a positive integer"
            )
        event_type = request.args.get("type")
        return {
            "sessions": self.services.sessions.stats(),
            "lockouts": self.services.lockout.stats(),
            "recentEvents": self.services.events.recent(
                limit=limit, event_type=event_type
            ),
        }
