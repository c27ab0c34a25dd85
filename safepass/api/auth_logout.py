from safepass.helpers.api import ApiHandler, HmacPolicy, Request, client_ip


class AuthLogout(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/auth/logout"

    @classmethod
    def hmac_policy(cls) -> HmacPolicy:
        return HmacPolicy.REQUIRED

    async def process(self, input: dict, request: Request) -> dict:
        removed = self.services.authenticator.logout(
            input, self.verified_request(), client_ip()
        )
        return {"loggedOut": True, "sessionRemoved": removed}
