from safepass.helpers.api import ApiHandler, Request, client_ip


class AuthLockoutStatus(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/auth/lockout-status"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    async def process(self, input: dict, request: Request) -> dict:
        status = self.services.authenticator.lockout_status(client_ip())
        return {
            "isLocked": status.is_locked,
            "attemptsRemaining": status.attempts_remaining,
            "lockoutExpiresAt": status.lockout_expires_at,
            "remainingSeconds": status.remaining_seconds,
        }
