"""Generation statistics (development only).

Routed at /password/stats: GET returns the counters, DELETE clears them.
"""

from safepass.helpers.api import ApiHandler, Request


class PasswordStats(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/password/stats"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET", "DELETE"]

    @classmethod
    def development_only(cls) -> bool:
        return True

    async def process(self, input: dict, request: Request) -> dict:
        deriver = self.services.deriver
        if request.method == "DELETE":
            deriver.clear_stats()
            return {"cleared": True}
        return {"stats": deriver.stats()}
