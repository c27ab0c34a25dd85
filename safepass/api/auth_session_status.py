from safepass.helpers import runtime
from safepass.helpers.api import SESSION_HEADER, ApiHandler, Request, client_ip


class AuthSessionStatus(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/auth/session-status"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    async def process(self, input: dict, request: Request) -> dict:
        session_id = request.headers.get(SESSION_HEADER)
        authenticated = self.services.authenticator.session_status(
            session_id, client_ip()
        )
        return {
            "authenticated": authenticated,
            "sessionId": session_id if authenticated else None,
            "serverTime": runtime.now_ms(),
        }
