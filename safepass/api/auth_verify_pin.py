"""PIN verification.

Routed at POST /auth/verify-pin. The HMAC gate runs first; the lockout
check, challenge consumption and PIN comparison happen in
:meth:`PinAuthenticator.verify_pin`.
"""

from safepass.helpers.api import ApiHandler, HmacPolicy, Request, client_ip


class AuthVerifyPin(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/auth/verify-pin"

    @classmethod
    def hmac_policy(cls) -> HmacPolicy:
        return HmacPolicy.REQUIRED

    async def process(self, input: dict, request: Request) -> dict:
        result = await self.services.authenticator.verify_pin(
            input, self.verified_request(), client_ip()
        )
        return {"sessionId": result.session_id, "expiresAt": result.expires_at}
