"""Deterministic password generation.

Routed at POST /password/generate-password. Requires a live session
(X-Session-Id) and a valid HMAC signature; the challenge token is checked
for presence and signature binding but not consumed here.
"""

from safepass.helpers.api import ApiHandler, HmacPolicy, Request


class PasswordGenerate(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/password/generate-password"

    @classmethod
    def hmac_policy(cls) -> HmacPolicy:
        return HmacPolicy.REQUIRED

    @classmethod
    def requires_session(cls) -> bool:
        return True

    async def process(self, input: dict, request: Request) -> dict:
        deriver = self.services.deriver
        generate_request = deriver.parse_request(input)
        generated = await deriver.generate(generate_request)
        return {"password": generated.password, "metadata": generated.metadata}
