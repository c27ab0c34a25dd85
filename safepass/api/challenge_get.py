"""Challenge issuance.

Routed at GET /challenge. Each token is single-use, bound to the requesting
IP and expires after CHALLENGE_TOKEN_EXPIRY.
"""

import base64
import secrets

from flask import Response

from safepass.helpers.api import ApiHandler, Request, client_ip, envelope_response


class ChallengeGet(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/challenge"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    @classmethod
    def rate_limit(cls) -> str | None:
        return "20 per 5 minutes"

    async def process(self, input: dict, request: Request) -> Response:
        issued = self.services.challenges.issue(client_ip())
        response = envelope_response(
            {
                "token": issued.id,
                "csrf": base64.b64encode(secrets.token_bytes(32)).decode("ascii"),
                "expiresAt": issued.expires_at,
                "expiresIn": issued.expires_in,
            }
        )
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response
